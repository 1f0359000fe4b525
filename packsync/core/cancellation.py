"""
Cooperative cancellation shared by every stage of one provisioning request.
"""

import asyncio
import logging

from packsync.exceptions import Cancelled

log = logging.getLogger(__name__)


class CancellationToken:
    """
    A one-way switch from "active" to "aborted".

    One token is created per provisioning request and passed explicitly to
    every component taking part in it. Components poll ``cancelled`` or call
    ``raise_if_cancelled()`` at their checkpoints; long blocking waits can
    race against ``wait()``. A token is never reset.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "Operation cancelled") -> None:
        """Aborts the token. Calling it again has no effect."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        log.debug(f"Cancellation requested: {reason}")
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise Cancelled(self._reason)

    async def sleep(self, delay: float) -> None:
        """Sleeps for ``delay`` seconds, raising Cancelled as soon as the token fires."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise Cancelled(self._reason)

    async def wait(self) -> None:
        """Suspends until the token is cancelled."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()
