"""
Core dataclasses for Bedrock streaming completions.

This module provides the foundational types for one streaming call:
- Provider selection from a model identifier
- The immutable completion request
- The signed HTTP request handed to the transport
- Decoded wire events and caller-facing text chunks
- The lifecycle states of a stream
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from .exceptions import ConfigurationError

DEFAULT_MAX_TOKENS = 50
DEFAULT_TEMPERATURE = 0


class ModelProvider(Enum):
    """Supported Bedrock model families."""
    ANTHROPIC = "anthropic"
    AI21 = "ai21"
    AMAZON = "amazon"

    @classmethod
    def from_model_id(cls, model_id: str) -> ModelProvider:
        """Select the provider from the first dotted segment of a model id."""
        segment = model_id.split(".")[0]
        try:
            return cls(segment)
        except ValueError:
            supported = [provider.value for provider in cls]
            raise ConfigurationError(
                f"Unknown model provider '{segment}' in model '{model_id}', "
                f"only these are supported: {supported}",
                model=model_id,
                provider=segment,
            ) from None


class StreamState(Enum):
    """Lifecycle of a single streaming call."""
    IDLE = "idle"
    REQUEST_BUILT = "request_built"
    SIGNED = "signed"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.FAILED, StreamState.CANCELLED)


@dataclass(frozen=True)
class CompletionRequest:
    """A prompt plus generation parameters for one model."""
    model_id: str
    prompt: str
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE

    def __post_init__(self) -> None:
        if (
            isinstance(self.max_tokens, bool)
            or not isinstance(self.max_tokens, int)
            or self.max_tokens < 1
        ):
            raise ConfigurationError(
                f"max_tokens must be a positive integer, got {self.max_tokens!r}",
                model=self.model_id,
            )
        if (
            isinstance(self.temperature, bool)
            or not isinstance(self.temperature, int | float)
            or not 0.0 <= self.temperature <= 1.0
        ):
            raise ConfigurationError(
                f"temperature must be a number between 0.0 and 1.0, got {self.temperature!r}",
                model=self.model_id,
            )

    @property
    def provider(self) -> ModelProvider:
        return ModelProvider.from_model_id(self.model_id)


@dataclass(frozen=True)
class SignedHttpRequest:
    """Authenticated request ready for the transport. Not reused across calls."""
    method: str
    url: str
    headers: httpx.Headers
    body: bytes


@dataclass(frozen=True)
class DecodedEvent:
    """One event decoded from the binary event stream."""
    event_type: str | None
    content_type: str | None
    payload: bytes
    message_type: str | None = None
    exception_type: str | None = None


@dataclass(frozen=True)
class TextChunk:
    """Caller-facing unit of generated text."""
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
