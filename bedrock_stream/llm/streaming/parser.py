"""
Event-stream parser for Bedrock response bodies.

Bedrock answers invoke-with-response-stream with the AWS binary event-stream
encoding: length-prefixed messages with typed headers, a payload and CRC32
checks. Framing and integrity are handled by botocore; this module validates
the headers and unwinds the payload envelope down to the provider's JSON.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

from botocore.eventstream import EventStreamBuffer, EventStreamMessage, ParserError
from pydantic import BaseModel, Field, ValidationError

from ..exceptions import DecodeError
from ..models import DecodedEvent

CHUNK_EVENT_TYPE = "chunk"
JSON_CONTENT_TYPE = "application/json"


class ChunkEnvelope(BaseModel):
    """JSON wrapper around the base64-encoded model output."""
    encoded: str = Field(alias="bytes")


class EventStreamDecoder:
    """
    Stateless decoder from raw response reads to provider JSON bodies.

    All per-stream state (the frame buffer) lives inside `iter_events`, so one
    decoder instance can serve any number of concurrent streams.
    """

    async def iter_events(
        self, reads: AsyncIterator[bytes]
    ) -> AsyncGenerator[DecodedEvent]:
        """
        Reassemble frames from raw reads and yield validated events.

        A single read may carry several frames or only part of one.
        Nothing is consumed once `reads` is exhausted.

        Raises:
            DecodeError: On codec failures, unexpected events, or a stream
                that ends in the middle of a frame.
        """
        buffer = EventStreamBuffer()
        received = 0
        consumed = 0

        async for data in reads:
            if not data:
                continue
            buffer.add_data(data)
            received += len(data)

            while True:
                try:
                    message = next(buffer)
                except StopIteration:
                    break
                except ParserError as e:
                    raise DecodeError(
                        f"Malformed event-stream frame: {e}", raw_frame=data
                    ) from e

                consumed += message.prelude.total_length
                yield self.decode_message(message, raw_frame=data)

        if received > consumed:
            raise DecodeError(
                f"Event stream ended inside a frame: {received - consumed} "
                "trailing bytes"
            )

    def decode_message(
        self, message: EventStreamMessage, raw_frame: bytes | None = None
    ) -> DecodedEvent:
        """Validate one decoded message; only JSON `chunk` events are accepted."""
        headers = message.headers
        event = DecodedEvent(
            event_type=headers.get(":event-type"),
            content_type=headers.get(":content-type"),
            payload=message.payload,
            message_type=headers.get(":message-type"),
            exception_type=headers.get(":exception-type"),
        )

        if (
            event.event_type != CHUNK_EVENT_TYPE
            or event.content_type != JSON_CONTENT_TYPE
        ):
            detail = f"event-type={event.event_type!r}, content-type={event.content_type!r}"
            if event.exception_type:
                detail += f", exception-type={event.exception_type!r}"
            raise DecodeError(
                f"Failed to get event chunk: got {detail}: {message.payload!r}",
                event_type=event.event_type,
                content_type=event.content_type,
                raw_frame=raw_frame,
            )

        return event

    def decode_body(self, event: DecodedEvent) -> dict[str, Any]:
        """
        Unwind the payload layers in order.

        The payload is UTF-8 JSON `{"bytes": <base64>}`; the base64 text
        decodes to UTF-8 JSON which is the provider's response body.
        """
        try:
            envelope = ChunkEnvelope.model_validate_json(event.payload)
        except ValidationError as e:
            raise self._envelope_error(event, "invalid chunk envelope", e) from e

        try:
            decoded = base64.b64decode(envelope.encoded, validate=True)
        except binascii.Error as e:
            raise self._envelope_error(event, "invalid base64 payload", e) from e

        try:
            body = json.loads(decoded.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise self._envelope_error(event, "invalid model output JSON", e) from e

        if not isinstance(body, dict):
            raise DecodeError(
                f"Model output must be a JSON object, got {type(body).__name__}",
                event_type=event.event_type,
                content_type=event.content_type,
            )
        return body

    @staticmethod
    def _envelope_error(
        event: DecodedEvent, reason: str, error: Exception
    ) -> DecodeError:
        return DecodeError(
            f"Failed to decode event chunk, {reason}: {error}",
            event_type=event.event_type,
            content_type=event.content_type,
            raw_frame=event.payload,
        )
