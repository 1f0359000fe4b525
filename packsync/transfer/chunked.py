"""
Parallel downloads of large files using HTTP byte ranges written at fixed offsets.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
import aiohttp

from packsync.core.cancellation import CancellationToken
from packsync.core.progress import ThrottledProgress
from packsync.exceptions import Cancelled, DownloadFailed, RangeNotSupportedError
from packsync.models.bundle import TransferTarget
from packsync.utils.formatting import format_size

from .client import TRANSFER_ERRORS, RemoteSource
from .downloader import Downloader

log = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 10 * 1024 * 1024  # 10 MB


def plan_ranges(total_size: int, chunk_size: int) -> list[tuple[int, int]]:
    """
    Splits ``[0, total_size)`` into inclusive (start, end) byte ranges.

    Every range is ``chunk_size`` long except possibly the last one; ranges
    are contiguous and never overlap.
    """
    if chunk_size <= 0:
        raise ValueError("Chunk size must be positive.")
    if total_size <= 0:
        return []
    return [
        (start, min(start + chunk_size, total_size) - 1)
        for start in range(0, total_size, chunk_size)
    ]


@dataclass
class _ChunkState:
    """Shared between the workers of one chunked download."""

    total: int
    pending: deque[int]
    downloaded: int = 0
    aborted: bool = False
    range_unsupported: bool = False
    error: BaseException | None = None
    completed: set[int] = field(default_factory=set)

    def fail(self, error: BaseException) -> None:
        if self.error is None:
            self.error = error
        self.aborted = True


class ChunkedDownloader:
    """
    Downloads a resource as concurrent byte ranges into one pre-sized file.

    Falls back to the whole-file Downloader when the size is unknown or the
    server does not honour range requests.
    """

    def __init__(
        self,
        source: RemoteSource,
        downloader: Downloader,
        progress: ThrottledProgress | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 5,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ):
        self.source = source
        self.downloader = downloader
        self.progress = progress or ThrottledProgress()
        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.bytes_transferred = 0

    async def fetch_large(
        self,
        target: TransferTarget,
        token: CancellationToken | None = None,
        task: str = "Downloading",
    ) -> bool:
        """
        Downloads ``target`` in parallel chunks.

        Raises:
            Cancelled: The token fired; the destination is left for the caller.
            DownloadFailed: A chunk exhausted its retries.
        """
        if token:
            token.raise_if_cancelled()

        try:
            metadata = await self.source.head(target.url)
        except TRANSFER_ERRORS as e:
            if token:
                token.raise_if_cancelled()
            log.info(
                "Could not determine file size for chunked download, "
                f"falling back to stream: {e}"
            )
            return await self._fetch_whole(target, token, task)

        total = metadata.size
        if not total or metadata.accepts_ranges is False:
            log.debug(f"No size or range support for '{target.url}', streaming it.")
            return await self._fetch_whole(target, token, task)

        ranges = plan_ranges(total, self.chunk_size)
        destination = target.destination
        log.info(
            f"Downloading {destination.name} in {len(ranges)} chunks "
            f"(Total: {format_size(total)})"
        )

        destination.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(self._preallocate, destination, total)

        state = _ChunkState(total=total, pending=deque(range(len(ranges))))
        self.progress.emit(task, 0, total)
        worker_count = min(self.max_workers, len(ranges))
        await asyncio.gather(
            *(
                self._worker(target.url, destination, ranges, state, token, task)
                for _ in range(worker_count)
            )
        )

        if token:
            token.raise_if_cancelled()
        if state.range_unsupported:
            log.warning(
                f"[yellow]Server ignored range requests for {destination.name}, "
                "downloading it as a single stream.[/yellow]"
            )
            return await self._fetch_whole(target, token, task)
        if state.error is not None:
            raise DownloadFailed(target.url, state.error) from state.error
        return True

    @staticmethod
    def _preallocate(path: Path, size: int) -> None:
        with open(path, "wb") as f:
            f.truncate(size)

    async def _fetch_whole(
        self, target: TransferTarget, token: CancellationToken | None, task: str
    ) -> bool:
        return await self.downloader.fetch(
            target,
            check_size=False,
            on_progress=lambda done, total: self.progress.emit(task, done, total),
            token=token,
        )

    async def _worker(
        self,
        url: str,
        destination: Path,
        ranges: list[tuple[int, int]],
        state: _ChunkState,
        token: CancellationToken | None,
        task: str,
    ) -> None:
        """Pulls range indices until none are left or the download is aborted."""
        try:
            async with aiofiles.open(destination, "r+b") as f:
                while state.pending and not state.aborted:
                    if token and token.cancelled:
                        return
                    index = state.pending.popleft()
                    start, end = ranges[index]
                    data = await self._fetch_range(url, start, end, state.total, token)
                    await f.seek(start)
                    await f.write(data)
                    state.completed.add(index)
                    state.downloaded += len(data)
                    self.bytes_transferred += len(data)
                    self.progress.emit(task, state.downloaded, state.total)
        except Cancelled:
            return
        except RangeNotSupportedError:
            state.range_unsupported = True
            state.aborted = True
        except TRANSFER_ERRORS as e:
            log.debug(f"Chunk download for '{url}' gave up: {e}")
            state.fail(e)

    async def _fetch_range(
        self,
        url: str,
        start: int,
        end: int,
        total: int,
        token: CancellationToken | None,
    ) -> bytes:
        expected = end - start + 1
        whole_resource = start == 0 and expected == total
        last_exception: BaseException | None = None

        for attempt in range(1, self.max_retries + 2):
            if token:
                token.raise_if_cancelled()
            try:
                async with self.source.stream(url, (start, end)) as response:
                    if response.status != 206 and not whole_resource:
                        raise RangeNotSupportedError(
                            f"Expected 206 for bytes={start}-{end}, got {response.status}"
                        )
                    data = await response.read()
                if len(data) != expected:
                    raise aiohttp.ClientPayloadError(
                        f"Range {start}-{end} returned {len(data)} of {expected} bytes"
                    )
                if token:
                    token.raise_if_cancelled()
                return data
            except TRANSFER_ERRORS as e:
                last_exception = e
                log.debug(
                    f"Chunk {start}-{end} attempt {attempt}/{self.max_retries + 1} "
                    f"failed: {e}"
                )
                if attempt <= self.max_retries:
                    delay = self.base_delay * attempt
                    if token:
                        await token.sleep(delay)
                    else:
                        await asyncio.sleep(delay)

        raise last_exception
