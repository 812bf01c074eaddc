"""
Bedrock streaming completion client.

This package provides:
- Provider-specific payload adapters (Anthropic, AI21, Amazon)
- SigV4 request signing
- Binary event-stream decoding
- A cancellable, pull-based stream of text chunks
"""

from __future__ import annotations

from .adapters import prepare_input, prepare_output
from .cancellation import CancellationToken
from .client import BedrockStreamingClient, CompletionStream
from .exceptions import (
    BedrockError,
    CancellationError,
    ConfigurationError,
    DecodeError,
    TransportError,
)
from .models import (
    CompletionRequest,
    DecodedEvent,
    ModelProvider,
    SignedHttpRequest,
    StreamState,
    TextChunk,
)

__all__ = [
    # Exceptions
    "BedrockError",
    # Client
    "BedrockStreamingClient",
    "CancellationError",
    "CancellationToken",
    # Core models
    "CompletionRequest",
    "CompletionStream",
    "ConfigurationError",
    "DecodeError",
    "DecodedEvent",
    "ModelProvider",
    "SignedHttpRequest",
    "StreamState",
    "TextChunk",
    "TransportError",
    # Adapters
    "prepare_input",
    "prepare_output",
]
