"""
Handles the downloading of single files over HTTP with a skip-if-complete check,
linear retry backoff and throttled progress callbacks.
"""

import asyncio
import logging
import os
import time
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path

import aiofiles
import aiohttp

from packsync.core.cancellation import CancellationToken
from packsync.exceptions import DownloadFailed
from packsync.models.bundle import TransferTarget

from .client import TRANSFER_ERRORS, RemoteSource

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def part_path(destination: Path) -> Path:
    """The in-progress file a download writes before it is moved into place."""
    return destination.with_name(destination.name + ".part")


class _HighWaterProgress:
    """Keeps reported progress from moving backwards when an attempt restarts."""

    def __init__(self, callback: ProgressCallback):
        self.callback = callback
        self.peak = 0

    def __call__(self, current: int, total: int) -> None:
        self.peak = max(self.peak, current)
        self.callback(self.peak, max(total, self.peak))


class Downloader:
    """A whole-file downloader with retry logic and throttled progress."""

    def __init__(
        self,
        source: RemoteSource,
        max_retries: int = 3,
        base_delay: float = 1.0,
        progress_interval: float = 0.1,
    ):
        self.source = source
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.progress_interval = progress_interval
        self.bytes_transferred = 0

    async def remote_size(self, url: str) -> int | None:
        """Returns the size a server declares for a resource, or None if unknown."""
        try:
            return (await self.source.head(url)).size
        except TRANSFER_ERRORS as e:
            log.debug(f"Size check for '{url}' failed: {e}")
            return None

    async def _matches_remote_size(self, target: TransferTarget) -> bool:
        destination = target.destination
        is_file = await asyncio.to_thread(destination.is_file)
        if not is_file:
            return False
        remote = await self.remote_size(target.url)
        return remote is not None and remote == destination.stat().st_size

    async def fetch(
        self,
        target: TransferTarget,
        retries: int | None = None,
        check_size: bool = True,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> bool:
        """
        Downloads ``target`` unless an identical-size copy already exists.

        Args:
            target: Source URL and destination path.
            retries: Extra attempts after the first one (defaults to max_retries).
            check_size: Skip the transfer when the local file already has the
                size the server declares.
            on_progress: Called with (bytes_so_far, total_bytes), throttled.
            token: Cancellation token checked before every attempt.

        Returns:
            True if bytes were transferred, False if the existing file was kept.

        Raises:
            Cancelled: The token fired.
            DownloadFailed: Every attempt failed.
        """
        retries = self.max_retries if retries is None else retries
        name = target.destination.name
        last_exception: BaseException | None = None
        report = _HighWaterProgress(on_progress) if on_progress else None

        for attempt in range(1, retries + 2):
            if token:
                token.raise_if_cancelled()
            try:
                if check_size and await self._matches_remote_size(target):
                    log.debug(f"File already exists and matches size: {name}")
                    return False
                await self._transfer(target, report, token)
                return True
            except TRANSFER_ERRORS as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{retries + 1} for '{name}' failed: {e}"
                )
                if attempt <= retries:
                    delay = self.base_delay * attempt
                    if token:
                        await token.sleep(delay)
                    else:
                        await asyncio.sleep(delay)

        raise DownloadFailed(target.url, last_exception) from last_exception

    async def _transfer(
        self,
        target: TransferTarget,
        on_progress: ProgressCallback | None,
        token: CancellationToken | None,
    ) -> None:
        destination = target.destination
        temp_path = part_path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        downloaded = 0
        total = 0
        try:
            async with self.source.stream(target.url) as response:
                total = response.content_length or target.expected_size or 0
                last_report = 0.0
                async with aiofiles.open(temp_path, "wb") as f:
                    async for chunk in response.iter_chunks():
                        if token:
                            token.raise_if_cancelled()
                        await f.write(chunk)
                        downloaded += len(chunk)
                        if on_progress:
                            now = time.monotonic()
                            if now - last_report >= self.progress_interval:
                                on_progress(downloaded, total)
                                last_report = now
                if total and downloaded < total:
                    raise aiohttp.ClientPayloadError(
                        f"Connection closed after {downloaded} of {total} bytes"
                    )
            os.replace(temp_path, destination)
            self.bytes_transferred += downloaded
        except BaseException:
            with suppress(OSError):
                os.remove(temp_path)
            raise

        if on_progress:
            on_progress(downloaded, max(total, downloaded))
