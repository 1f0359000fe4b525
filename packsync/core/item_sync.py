"""
Makes sure every individually addressed file of a bundle exists in a folder.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from rich.markup import escape

from packsync.core.cancellation import CancellationToken
from packsync.core.progress import ThrottledProgress
from packsync.exceptions import Cancelled, DownloadFailed
from packsync.models.bundle import TransferTarget
from packsync.transfer.downloader import Downloader
from packsync.utils.path import filename_from_url

log = logging.getLogger(__name__)

PROGRESS_TASK = "Checking/Downloading Mods"


@dataclass
class ItemSyncResult:
    downloaded: list[str] = field(default_factory=list)
    existing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.downloaded) + len(self.existing) + len(self.failed)


class ItemSynchronizer:
    """
    Downloads missing items with a bounded pool of workers.

    An item counts as satisfied as soon as a file with its name exists; its
    size is not compared. A failed item is recorded and the others continue.
    """

    def __init__(
        self,
        downloader: Downloader,
        progress: ThrottledProgress | None = None,
        max_workers: int = 5,
    ):
        self.downloader = downloader
        self.progress = progress or ThrottledProgress()
        self.max_workers = max_workers

    async def sync_items(
        self,
        urls: Iterable[str],
        folder: Path,
        token: CancellationToken | None = None,
    ) -> ItemSyncResult:
        """
        Ensures ``folder`` holds a file for every URL.

        Raises:
            Cancelled: The token fired. Items already in flight finish first.
        """
        if token:
            token.raise_if_cancelled()

        items = list(dict.fromkeys(url for url in urls if url))
        result = ItemSyncResult()
        if not items:
            return result

        await asyncio.to_thread(folder.mkdir, parents=True, exist_ok=True)
        queue: deque[str] = deque()
        claimed: set[str] = set()
        for url in items:
            name = filename_from_url(url)
            if name and name in claimed:
                # Another URL already writes this file.
                log.debug(f"Skipping {url}: {name} is already queued")
                result.existing.append(name)
                continue
            claimed.add(name)
            queue.append(url)
        total = len(items)
        self.progress.emit(PROGRESS_TASK, result.processed, total)

        worker_count = min(self.max_workers, len(queue))
        await asyncio.gather(
            *(self._worker(queue, folder, result, total, token) for _ in range(worker_count))
        )

        if token:
            token.raise_if_cancelled()
        log.info(
            f"Items: {len(result.downloaded)} downloaded, "
            f"{len(result.existing)} already present, {len(result.failed)} failed"
        )
        return result

    async def _worker(
        self,
        queue: deque[str],
        folder: Path,
        result: ItemSyncResult,
        total: int,
        token: CancellationToken | None,
    ) -> None:
        while queue:
            if token and token.cancelled:
                return
            url = queue.popleft()
            try:
                await self._sync_one(url, folder, result, token)
            except Cancelled:
                return
            self.progress.emit(PROGRESS_TASK, result.processed, total)

    async def _sync_one(
        self,
        url: str,
        folder: Path,
        result: ItemSyncResult,
        token: CancellationToken | None,
    ) -> None:
        name = filename_from_url(url)
        if not name:
            log.warning(f"[yellow]Cannot derive a filename from {escape(url)}[/yellow]")
            result.failed.append(url)
            return

        destination = folder / name
        if await asyncio.to_thread(destination.exists):
            result.existing.append(name)
            return

        try:
            await self.downloader.fetch(
                TransferTarget(url, destination), check_size=False, token=token
            )
            result.downloaded.append(name)
            log.debug(f"Downloaded {name}")
        except DownloadFailed as e:
            log.error(f"[red]✗ Failed to download {escape(name)}: {e.last_error}[/red]")
            result.failed.append(url)
