"""
Error handling for Bedrock streaming completions.

This module provides typed errors with rich context:
- Configuration problems caught before any network call
- Transport failures with HTTP status and response body
- Event-stream decode failures with the offending frame
- Cooperative cancellation, kept apart from real failures
"""

from __future__ import annotations


class BedrockError(Exception):
    """Base Bedrock error with rich context."""

    def __init__(
        self,
        message: str,
        model: str = "unknown",
        provider: str = "unknown",
    ):
        super().__init__(message)
        self.model = model
        self.provider = provider


class ConfigurationError(BedrockError):
    """Unknown provider, missing region or credentials, invalid parameters."""
    pass


class TransportError(BedrockError):
    """HTTP transport failure, including non-2xx responses."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        status_text: str = "",
        body: str = "",
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.status_text = status_text
        self.body = body


class DecodeError(BedrockError):
    """Malformed frame, unexpected event or malformed payload envelope."""

    def __init__(
        self,
        message: str,
        event_type: str | None = None,
        content_type: str | None = None,
        raw_frame: bytes | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.event_type = event_type
        self.content_type = content_type
        self.raw_frame = raw_frame


class CancellationError(BedrockError):
    """Cooperative cancellation was observed; not a failure of the remote call."""
    pass
