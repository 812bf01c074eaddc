"""
Streaming completion client for Amazon Bedrock.

One call walks a fixed lifecycle: build the provider payload, sign it, open a
streaming HTTP response, then pull raw reads, decode event-stream frames and
adapt each event into a TextChunk until the body is exhausted.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import os
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from typing import Any

import httpx
from botocore.credentials import Credentials

from ..logging_utils import log_operation, logger, operation_context
from .adapters import prepare_input, prepare_output
from .cancellation import CancellationToken
from .exceptions import (
    BedrockError,
    CancellationError,
    ConfigurationError,
    TransportError,
)
from .models import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    CompletionRequest,
    ModelProvider,
    SignedHttpRequest,
    StreamState,
    TextChunk,
)
from .signing import (
    DEFAULT_ENDPOINT_SUFFIX,
    DEFAULT_SERVICE,
    RequestSigner,
    base_headers,
    build_invoke_url,
)
from .streaming.parser import EventStreamDecoder

DEFAULT_MODEL = "amazon.titan-tg1-large"
REGION_ENV_VAR = "AWS_DEFAULT_REGION"

TokenObserver = Callable[[str], Awaitable[None] | None]


class CompletionStream:
    """
    Async iterator over the TextChunks of one call.

    Exposes the call's `state`. Use it as an async context manager, or call
    `aclose()`, to release the connection when stopping early. Breaking out
    of a bare `async for` leaves the stream in STREAMING with the connection
    held until the generator is garbage collected.
    """

    def __init__(self, runner: Callable[[CompletionStream], AsyncGenerator[TextChunk]]):
        self.state = StreamState.IDLE
        self.chunk_count = 0
        self._generator = runner(self)

    def _transition(self, state: StreamState) -> None:
        if not self.state.is_terminal:
            self.state = state

    def __aiter__(self) -> CompletionStream:
        return self

    async def __anext__(self) -> TextChunk:
        return await self._generator.__anext__()

    async def aclose(self) -> None:
        await self._generator.aclose()
        self._transition(StreamState.CANCELLED)

    async def __aenter__(self) -> CompletionStream:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class BedrockStreamingClient:
    """
    Bedrock client producing streamed text for a prompt.

    Configuration is captured once at construction and never mutated, so a
    single client can serve concurrent calls.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        region: str | None = None,
        credentials: Credentials | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | None = None,
        service: str = DEFAULT_SERVICE,
        endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
    ):
        self.provider = ModelProvider.from_model_id(model)
        self.model = model

        region = region or _env_region()
        if not region:
            raise ConfigurationError(
                f"Please set the {REGION_ENV_VAR} environment variable or pass "
                "it to the constructor as the region field.",
                model=model,
                provider=self.provider.value,
            )
        self.region = region
        self.service = service
        self.endpoint_suffix = endpoint_suffix
        self.max_tokens = max_tokens
        self.temperature = temperature

        self._signer = RequestSigner(region, credentials=credentials, service=service)
        self._decoder = EventStreamDecoder()
        self._timeout = timeout
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @classmethod
    def from_config(cls, configuration, **overrides: Any) -> BedrockStreamingClient:
        """Build a client from a `Configuration`; keyword overrides win."""
        bedrock_config = configuration.get_bedrock_config()
        http_config = configuration.get_http_client_config()

        kwargs: dict[str, Any] = {
            "model": bedrock_config["model"],
            "region": configuration.default_region,
            "max_tokens": bedrock_config["max_tokens"],
            "temperature": bedrock_config["temperature"],
            "service": bedrock_config["service"],
            "endpoint_suffix": bedrock_config["endpoint_suffix"],
            "timeout": httpx.Timeout(
                connect=http_config["connect_timeout"],
                read=http_config["read_timeout"],
                write=http_config["write_timeout"],
                pool=http_config["pool_timeout"],
            ),
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def url(self) -> str:
        return build_invoke_url(
            self.model, self.region, self.service, self.endpoint_suffix
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._timeout or httpx.Timeout(30.0)
            )
        return self._http_client

    def build_request(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> CompletionRequest:
        """Per-call values win over client defaults, which win over provider defaults."""
        return CompletionRequest(
            model_id=self.model,
            prompt=prompt,
            max_tokens=_first_set(max_tokens, self.max_tokens, DEFAULT_MAX_TOKENS),
            temperature=_first_set(temperature, self.temperature, DEFAULT_TEMPERATURE),
        )

    def serialize_body(self, request: CompletionRequest) -> bytes:
        payload = prepare_input(
            self.provider, request.prompt, request.max_tokens, request.temperature
        )
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")

    async def sign_request(self, body: bytes) -> SignedHttpRequest:
        url = self.url
        return await self._signer.sign("POST", url, body, base_headers(url))

    def stream(
        self,
        prompt: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        cancellation: CancellationToken | None = None,
        on_token: TokenObserver | None = None,
    ) -> CompletionStream:
        """
        Stream generated text for a prompt.

        Args:
            prompt: Prompt text
            max_tokens: Overrides the client default for this call
            temperature: Overrides the client default for this call
            cancellation: Token checked at every suspension point
            on_token: Called with each chunk's text before it is yielded;
                its errors are logged and ignored

        Stopping early (`break`) only releases the connection inside
        `async with` or after an explicit `await stream.aclose()`.

        Returns:
            CompletionStream yielding TextChunk objects
        """
        def runner(stream: CompletionStream) -> AsyncGenerator[TextChunk]:
            return self._run(
                stream, prompt, max_tokens, temperature, cancellation, on_token
            )

        return CompletionStream(runner)

    async def _run(
        self,
        stream: CompletionStream,
        prompt: str,
        max_tokens: int | None,
        temperature: float | None,
        cancellation: CancellationToken | None,
        on_token: TokenObserver | None,
    ) -> AsyncGenerator[TextChunk]:
        context = {"model": self.model, "provider": self.provider.value}
        async with operation_context("bedrock_stream", context=context) as op_logger:
            try:
                request = self.build_request(prompt, max_tokens, temperature)
                body = self.serialize_body(request)
                stream._transition(StreamState.REQUEST_BUILT)

                signed = await self.sign_request(body)
                stream._transition(StreamState.SIGNED)

                _check(cancellation, context)
                stream._transition(StreamState.CONNECTING)

                async with self._open(signed, cancellation) as response:
                    stream._transition(StreamState.STREAMING)
                    op_logger.debug("Stream opened", status_code=response.status_code)

                    reads = self._read_chunks(response, cancellation)
                    events = self._decoder.iter_events(reads)
                    try:
                        async for event in events:
                            _check(cancellation, context)
                            text = prepare_output(
                                self.provider, self._decoder.decode_body(event)
                            )
                            await self._notify(on_token, text, op_logger)

                            stream.chunk_count += 1
                            yield TextChunk(text=text, metadata={})
                    finally:
                        await events.aclose()
                        await reads.aclose()

                stream._transition(StreamState.COMPLETED)
                op_logger.info("Stream completed", chunk_count=stream.chunk_count)

            except (CancellationError, asyncio.CancelledError, GeneratorExit):
                stream._transition(StreamState.CANCELLED)
                raise
            except BedrockError as e:
                # Signer and decoder errors are raised without call context
                if e.model == "unknown":
                    e.model, e.provider = self.model, self.provider.value
                stream._transition(StreamState.FAILED)
                raise
            except Exception:
                stream._transition(StreamState.FAILED)
                raise

    def _open(self, signed: SignedHttpRequest, cancellation: CancellationToken | None):
        return _ResponseScope(self, signed, cancellation)

    async def _read_chunks(
        self, response: httpx.Response, cancellation: CancellationToken | None
    ) -> AsyncGenerator[bytes]:
        """Pull raw reads from the body until it reports done."""
        reader = response.aiter_bytes()
        try:
            while True:
                done, value = await self._read(reader, cancellation)
                if done:
                    return
                yield value
        except httpx.HTTPError as e:
            raise TransportError(
                f"Stream from '{response.url}' failed: {e}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                model=self.model,
                provider=self.provider.value,
            ) from e
        finally:
            await reader.aclose()

    async def _read(
        self, reader: AsyncIterator[bytes], cancellation: CancellationToken | None
    ) -> tuple[bool, bytes]:
        """One read; abandoned if the cancellation token fires first."""
        if cancellation is None:
            return await _next_read(reader)

        _check(cancellation, {"model": self.model, "provider": self.provider.value})
        read_task = asyncio.ensure_future(_next_read(reader))
        cancel_task = asyncio.ensure_future(cancellation.wait())
        try:
            await asyncio.wait(
                {read_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not read_task.done():
                read_task.cancel()
                await asyncio.gather(read_task, return_exceptions=True)

        if read_task.cancelled():
            _check(cancellation, {"model": self.model, "provider": self.provider.value})
        return read_task.result()

    async def _notify(self, on_token: TokenObserver | None, text: str, op_logger) -> None:
        if on_token is None:
            return
        try:
            result = on_token(text)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            op_logger.warning(
                "Token observer failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )

    @log_operation("bedrock_complete")
    async def acomplete(self, prompt: str, **kwargs: Any) -> str:
        """Stream a prompt and return the concatenated text."""
        chunks = []
        async with self.stream(prompt, **kwargs) as stream:
            async for chunk in stream:
                chunks.append(chunk.text)
        return "".join(chunks)

    def complete(self, prompt: str, **kwargs: Any) -> str:
        """Synchronous `acomplete`; must not be called from a running event loop."""
        async def run() -> str:
            try:
                return await self.acomplete(prompt, **kwargs)
            finally:
                if self._owns_http_client:
                    await self.aclose()

        return asyncio.run(run())

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> BedrockStreamingClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class _ResponseScope:
    """Sends the signed request and guarantees the response is closed."""

    def __init__(
        self,
        client: BedrockStreamingClient,
        signed: SignedHttpRequest,
        cancellation: CancellationToken | None,
    ):
        self._client = client
        self._signed = signed
        self._cancellation = cancellation
        self._response: httpx.Response | None = None

    async def __aenter__(self) -> httpx.Response:
        client = self._client
        http = client._get_http_client()
        request = http.build_request(
            self._signed.method,
            self._signed.url,
            headers=self._signed.headers,
            content=self._signed.body,
        )
        logger.debug("Sending request", model=client.model, url=self._signed.url)

        try:
            self._response = await _race(
                http.send(request, stream=True), self._cancellation, client
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"Failed to access underlying url '{self._signed.url}': {e}",
                model=client.model,
                provider=client.provider.value,
            ) from e

        response = self._response
        if not response.is_success:
            try:
                await response.aread()
                body = response.text
            finally:
                await response.aclose()
            raise TransportError(
                f"Failed to access underlying url '{self._signed.url}': got "
                f"{response.status_code} {response.reason_phrase}: {body}",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                body=body,
                model=client.model,
                provider=client.provider.value,
            )
        return response

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._response is not None:
            await self._response.aclose()


async def _race(
    awaitable: Awaitable[httpx.Response],
    cancellation: CancellationToken | None,
    client: BedrockStreamingClient,
) -> httpx.Response:
    """Await the request unless the token fires first."""
    if cancellation is None:
        return await awaitable

    send_task = asyncio.ensure_future(awaitable)
    cancel_task = asyncio.ensure_future(cancellation.wait())
    try:
        await asyncio.wait({send_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_task.cancel()
        if not send_task.done():
            send_task.cancel()
            await asyncio.gather(send_task, return_exceptions=True)

    if send_task.cancelled():
        cancellation.raise_if_cancelled(
            model=client.model, provider=client.provider.value
        )
    return send_task.result()


async def _next_read(reader: AsyncIterator[bytes]) -> tuple[bool, bytes]:
    try:
        return False, await reader.__anext__()
    except StopAsyncIteration:
        return True, b""


def _check(cancellation: CancellationToken | None, context: dict[str, str]) -> None:
    if cancellation is not None:
        cancellation.raise_if_cancelled(**context)


def _first_set(*values):
    return next(value for value in values if value is not None)


def _env_region() -> str | None:
    return os.getenv(REGION_ENV_VAR)
