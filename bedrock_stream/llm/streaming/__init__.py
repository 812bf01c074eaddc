"""
Streaming functionality for Bedrock responses.

This package contains:
- Binary event-stream framing via botocore
- Chunk event validation
- Payload envelope unwinding
"""

from .parser import EventStreamDecoder

__all__ = ["EventStreamDecoder"]
