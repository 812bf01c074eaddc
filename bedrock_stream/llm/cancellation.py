"""Cooperative cancellation for streaming calls."""

from __future__ import annotations

import asyncio

from .exceptions import CancellationError


class CancellationToken:
    """Advisory cancellation signal checked at each suspension point.

    The token never interrupts a call by itself. A stream checks it before
    connecting, races it against every pending read, and checks it again
    after each chunk is handed to the observer.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self, **context) -> None:
        if self.cancelled:
            message = "Stream cancelled"
            if self.reason:
                message = f"{message}: {self.reason}"
            raise CancellationError(message, **context)
