"""Cooperative cancellation for runs."""

from __future__ import annotations

import asyncio
from typing import Optional

from .errors import RunCancelled


class CancellationToken:
    """External cancellation signal checked by the Runner between steps.

    In-flight tool calls are not killed; the Runner only stops scheduling new
    work once the token is set.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "") -> None:
        self.reason = reason or None
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelled(f"Run cancelled: {self.reason}" if self.reason else "Run cancelled")
