"""
AWS Signature V4 request signing for the Bedrock runtime endpoint.

Credentials come from the caller when given explicitly, otherwise from the
botocore default chain (environment, shared files, container or instance
metadata). The chain is consulted at signing time in a worker thread, through
one lazily built botocore session, so a missing credential fails that call
before anything is sent and never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import threading
from urllib.parse import quote

import httpx
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials, ReadOnlyCredentials
from botocore.exceptions import BotoCoreError
from botocore.session import Session, get_session

from .exceptions import ConfigurationError
from .models import SignedHttpRequest

DEFAULT_SERVICE = "bedrock"
DEFAULT_ENDPOINT_SUFFIX = "amazonaws.com"


def build_invoke_url(
    model_id: str,
    region: str,
    service: str = DEFAULT_SERVICE,
    endpoint_suffix: str = DEFAULT_ENDPOINT_SUFFIX,
) -> str:
    """URL of the streaming invoke endpoint for a model."""
    return (
        f"https://{service}.{region}.{endpoint_suffix}"
        f"/model/{quote(model_id, safe='')}/invoke-with-response-stream"
    )


class RequestSigner:
    """Signs requests with SigV4 for one service and region."""

    def __init__(
        self,
        region: str,
        credentials: Credentials | None = None,
        service: str = DEFAULT_SERVICE,
    ):
        self.region = region
        self.service = service
        self._credentials = credentials
        self._session: Session | None = None
        self._session_lock = threading.Lock()

    def _get_session(self) -> Session:
        # Built once; botocore caches the resolved chain on the session
        with self._session_lock:
            if self._session is None:
                self._session = get_session()
            return self._session

    def resolve_credentials(self) -> ReadOnlyCredentials:
        """Resolve and freeze credentials for a single call.

        Blocking: the default chain may hit instance metadata, SSO or a
        credential process. Call it from a worker thread.

        Raises:
            ConfigurationError: If no credentials are discoverable.
        """
        credentials = self._credentials
        if credentials is None:
            try:
                credentials = self._get_session().get_credentials()
            except BotoCoreError as e:
                raise ConfigurationError(
                    f"Failed to resolve AWS credentials: {e}"
                ) from e

        if credentials is None:
            raise ConfigurationError(
                "No AWS credentials found. Pass credentials to the client or "
                "configure the default AWS credential chain."
            )

        try:
            return credentials.get_frozen_credentials()
        except BotoCoreError as e:
            raise ConfigurationError(
                f"Failed to refresh AWS credentials: {e}"
            ) from e

    async def sign(
        self,
        method: str,
        url: str,
        body: bytes,
        headers: dict[str, str],
    ) -> SignedHttpRequest:
        """Attach SigV4 authorization headers. The body is left untouched."""
        # The default chain may block on network or subprocess I/O
        loop = asyncio.get_running_loop()
        frozen = await loop.run_in_executor(None, self.resolve_credentials)

        aws_request = AWSRequest(method=method, url=url, data=body, headers=headers)
        SigV4Auth(frozen, self.service, self.region).add_auth(aws_request)

        return SignedHttpRequest(
            method=method,
            url=url,
            headers=httpx.Headers(list(aws_request.headers.items())),
            body=body,
        )


def base_headers(url: str) -> dict[str, str]:
    """Headers required before signing; host is part of the canonical request."""
    return {
        "host": httpx.URL(url).host,
        "accept": "application/json",
        "Content-Type": "application/json",
    }
