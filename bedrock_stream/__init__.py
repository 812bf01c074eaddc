"""Streaming text completions from Amazon Bedrock."""

from .llm import (
    BedrockError,
    BedrockStreamingClient,
    CancellationError,
    CancellationToken,
    ConfigurationError,
    DecodeError,
    TextChunk,
    TransportError,
)

__all__ = [
    "BedrockError",
    "BedrockStreamingClient",
    "CancellationError",
    "CancellationToken",
    "ConfigurationError",
    "DecodeError",
    "TextChunk",
    "TransportError",
]
