"""Shared fixtures: event-stream frames, fake HTTP bodies and a wired client."""

import base64
import binascii
import json
import struct

import httpx
import pytest
from botocore.credentials import Credentials

from bedrock_stream.llm import BedrockStreamingClient

STRING_HEADER_TYPE = 7


def _encode_header(name: str, value: str) -> bytes:
    name_bytes = name.encode("utf-8")
    value_bytes = value.encode("utf-8")
    return (
        struct.pack("!B", len(name_bytes))
        + name_bytes
        + struct.pack("!BH", STRING_HEADER_TYPE, len(value_bytes))
        + value_bytes
    )


def encode_frame(headers: dict[str, str], payload: bytes) -> bytes:
    """Write one message in the AWS event-stream binary layout."""
    header_bytes = b"".join(_encode_header(k, v) for k, v in headers.items())
    total_length = 12 + len(header_bytes) + len(payload) + 4
    prelude = struct.pack("!II", total_length, len(header_bytes))
    prelude += struct.pack("!I", binascii.crc32(prelude) & 0xFFFFFFFF)
    message = prelude + header_bytes + payload
    return message + struct.pack("!I", binascii.crc32(message) & 0xFFFFFFFF)


def encode_chunk(body: dict, event_type: str = "chunk",
                 content_type: str = "application/json") -> bytes:
    """Frame a provider body the way Bedrock does: JSON in base64 in JSON."""
    encoded = base64.b64encode(json.dumps(body).encode("utf-8")).decode("ascii")
    payload = json.dumps({"bytes": encoded}).encode("utf-8")
    return encode_frame(
        {
            ":event-type": event_type,
            ":content-type": content_type,
            ":message-type": "event",
        },
        payload,
    )


class TrackingStream(httpx.AsyncByteStream):
    """Response body that hands out fixed reads and records being closed."""

    def __init__(self, reads: list[bytes], error: Exception | None = None):
        self.reads = list(reads)
        self.error = error
        self.served = 0
        self.released = False

    async def __aiter__(self):
        for data in self.reads:
            self.served += 1
            yield data
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.released = True


@pytest.fixture
def frame():
    return encode_frame


@pytest.fixture
def chunk_frame():
    return encode_chunk


@pytest.fixture
def credentials():
    return Credentials("AKIDEXAMPLE", "wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY")


@pytest.fixture
def make_client(credentials):
    """Factory wiring a client to an httpx.MockTransport handler."""
    def factory(handler, model="amazon.titan-tg1-large", **kwargs):
        kwargs.setdefault("region", "us-east-1")
        kwargs.setdefault("credentials", credentials)
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return BedrockStreamingClient(model=model, http_client=http_client, **kwargs)
    return factory


@pytest.fixture
def streaming_handler():
    """Handler factory returning 200 with a TrackingStream body; records requests."""
    def factory(body: TrackingStream):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                headers={"content-type": "application/vnd.amazon.eventstream"},
                stream=body,
            )

        handler.requests = requests
        return handler
    return factory


@pytest.fixture
def tracking_stream():
    return TrackingStream
