"""
Progress reporting seam between the provisioning engine and whatever displays it.
"""

import logging
import time
from dataclasses import dataclass
from typing import Protocol

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    task: str
    current: int
    total: int
    message: str | None = None


class ProgressSink(Protocol):
    """Receives progress events. Implementations must not block the caller."""

    def emit(
        self, task: str, current: int, total: int, message: str | None = None
    ) -> None: ...


class NullProgressSink:
    """A sink that discards every event."""

    def emit(
        self, task: str, current: int, total: int, message: str | None = None
    ) -> None:
        return None


class ThrottledProgress:
    """
    Rate-limits events before forwarding them to a sink.

    Events are forwarded at most once per ``interval`` seconds, except that
    the first (``current == 0``) and final (``current == total``) events of a
    task always go through. Each engine owns one instance, so throttling state
    is never shared between provisioning requests.
    """

    def __init__(self, sink: ProgressSink | None = None, interval: float = 0.1):
        self.sink = sink or NullProgressSink()
        self.interval = interval
        self._last_emit = 0.0

    def emit(
        self, task: str, current: int, total: int, message: str | None = None
    ) -> None:
        now = time.monotonic()
        if now - self._last_emit > self.interval or current == total or current == 0:
            self._last_emit = now
            try:
                self.sink.emit(task, current, total, message)
            except Exception as e:
                # A broken display must never abort a transfer.
                log.debug(f"Progress sink raised: {e}")
