"""
The main orchestrator for provisioning one bundle into an instance directory.
"""

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path

from rich.markup import escape

from packsync.archive.extractors import ExtractionBackend
from packsync.archive.reconciler import ArchiveReconciler
from packsync.core.cancellation import CancellationToken
from packsync.core.cleanup import cleanup_folder
from packsync.core.integrity import (
    archive_mod_names,
    compare_patches,
    remove_files,
    repair_libraries,
)
from packsync.core.item_sync import ItemSynchronizer
from packsync.core.progress import ProgressSink, ThrottledProgress
from packsync.core.runtime import RuntimeInstaller
from packsync.exceptions import DownloadFailed, UnsupportedArchiveError
from packsync.models.bundle import ManagedBundle, TransferTarget
from packsync.models.config import SyncConfig
from packsync.models.stats import ProvisionStats
from packsync.storage.version_store import VersionStore
from packsync.transfer.chunked import ChunkedDownloader
from packsync.transfer.client import HttpTransport, RemoteSource
from packsync.transfer.downloader import Downloader
from packsync.utils.path import remove_path, url_suffix

log = logging.getLogger(__name__)

ARCHIVE_NAME = "modpack.zip"


class BundleProvisioner:
    """
    Orchestrates one provisioning request.

    An instance owns its transport, its throttled progress sink and the
    cancellation token shared by every stage, so two provisioners never
    share state. Create one per request; callers must not run two requests
    for the same bundle id at the same time.
    """

    def __init__(
        self,
        config: SyncConfig,
        sink: ProgressSink | None = None,
        source: RemoteSource | None = None,
        extractors: Sequence[ExtractionBackend] | None = None,
        version_store: VersionStore | None = None,
    ):
        self.config = config
        self.token = CancellationToken()
        self.progress = ThrottledProgress(sink, config.progress_interval)

        self._owns_source = source is None
        self.source = source or HttpTransport(
            max_connections=max(config.max_workers, config.item_workers),
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )
        self.downloader = Downloader(
            self.source,
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            progress_interval=config.progress_interval,
        )
        self.chunked = ChunkedDownloader(
            self.source,
            self.downloader,
            self.progress,
            chunk_size=config.chunk_size,
            max_workers=config.max_workers,
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
        )
        self.reconciler = ArchiveReconciler(extractors)
        self.items = ItemSynchronizer(
            self.downloader, self.progress, max_workers=config.item_workers
        )
        self.runtime = RuntimeInstaller(
            Path(config.runtime_dir), self.chunked, self.reconciler, self.progress
        )
        self.versions = version_store or VersionStore(Path(config.config_path))

    def cancel(self, reason: str = "Cancelled by user") -> None:
        self.token.cancel(reason)

    def instance_dir(self, bundle: ManagedBundle) -> Path:
        return Path(self.config.instances_dir) / bundle.id

    async def close(self) -> None:
        if self._owns_source and isinstance(self.source, HttpTransport):
            await self.source.close()

    async def __aenter__(self) -> "BundleProvisioner":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def ensure_runtime(self, game_version: str) -> Path:
        """Installs (or finds) the Java runtime for ``game_version``."""
        return await self.runtime.ensure_runtime(game_version, self.token)

    async def provision(
        self,
        bundle: ManagedBundle,
        repair: bool = False,
        root: Path | None = None,
    ) -> ProvisionStats:
        """
        Brings the instance directory of ``bundle`` up to date.

        Stages run in order: archive reconciliation, item synchronization,
        library repair, preload downloads and, for bundles without an archive,
        orphan cleanup of the mods folder.

        Args:
            bundle: What to install.
            repair: Discard the cached archive and clean the mods folder first.
            root: Instance directory; defaults to ``<instances_dir>/<id>``.

        Returns:
            Statistics about what was done.

        Raises:
            Cancelled: The request was cancelled.
            UnsupportedArchiveError: The bundle declares a RAR archive.
            DownloadFailed: The archive could not be downloaded.
            ExtractionFailed: The archive could not be reconciled.
        """
        token = self.token
        stats = ProvisionStats(bundle_id=bundle.id)
        root = root or self.instance_dir(bundle)
        mods_folder = root / "mods"
        archive = root / ARCHIVE_NAME

        if bundle.has_archive and url_suffix(bundle.modpack_url) == ".rar":
            raise UnsupportedArchiveError(
                "Modpack URL must point to a .zip file (RAR is not supported)"
            )

        current_version = bundle.target_version
        installed_version = self.versions.get(bundle.id)
        if installed_version and current_version and installed_version != current_version:
            log.info(
                f"[yellow]Version change detected for {escape(bundle.id)}: "
                f"{escape(installed_version)} -> {escape(current_version)}[/yellow]"
            )
            repair = True
        stats.repaired = repair

        log.info(f"Preparing instance at: [dim]{root}[/dim] (repair: {repair})")
        token.raise_if_cancelled()

        if repair:
            await self._prepare_repair(bundle, archive, mods_folder)
        await asyncio.to_thread(mods_folder.mkdir, parents=True, exist_ok=True)

        if bundle.has_archive:
            await self._sync_archive(bundle, root, archive, mods_folder, stats)
        token.raise_if_cancelled()

        expected = bundle.expected_mod_names()
        if bundle.has_archive and archive.is_file():
            expected |= await asyncio.to_thread(archive_mod_names, archive)
        await self._compare_patches(mods_folder, expected, bundle, stats)

        if bundle.mods:
            log.info(f"Checking {len(bundle.mods)} mods...")
            result = await self.items.sync_items(bundle.mods, mods_folder, token)
            stats.files_downloaded += len(result.downloaded)
            stats.files_skipped_exists += len(result.existing)
            for url in result.failed:
                stats.record_failure(url)

        repaired = await asyncio.to_thread(repair_libraries, root / "libraries")
        stats.libraries_repaired = len(repaired)

        await self._preload(bundle, mods_folder, stats)

        if not bundle.has_archive:
            token.raise_if_cancelled()
            removed = await asyncio.to_thread(
                cleanup_folder, mods_folder, expected, bundle.ignore_files
            )
            stats.files_removed += len(removed)

        if current_version:
            self.versions.set(bundle.id, current_version)
        stats.bytes_downloaded = (
            self.downloader.bytes_transferred + self.chunked.bytes_transferred
        )
        return stats

    async def _prepare_repair(
        self, bundle: ManagedBundle, archive: Path, mods_folder: Path
    ) -> None:
        if archive.exists():
            log.info("Removing cached modpack archive to force a fresh download")
            await asyncio.to_thread(remove_path, archive)
        if mods_folder.is_dir():
            log.info("Cleaning mods folder (preserving ignored files)...")
            await asyncio.to_thread(
                cleanup_folder, mods_folder, (), bundle.ignore_files
            )

    async def _sync_archive(
        self,
        bundle: ManagedBundle,
        root: Path,
        archive: Path,
        mods_folder: Path,
        stats: ProvisionStats,
    ) -> None:
        if not archive.is_file():
            log.info(f"Downloading modpack: [dim]{escape(bundle.modpack_url)}[/dim]")
            try:
                await self.chunked.fetch_large(
                    TransferTarget(bundle.modpack_url, archive),
                    self.token,
                    task="Downloading Modpack",
                )
            except BaseException:
                # A partial archive would be mistaken for a cached one next time.
                await asyncio.to_thread(remove_path, archive)
                raise
        elif await asyncio.to_thread(lambda: any(mods_folder.iterdir())):
            log.info("Modpack archive is cached and mods are installed, skipping extraction.")
            return
        else:
            log.info("Mods folder empty. Extracting cached modpack archive...")

        result = await self.reconciler.reconcile(
            archive, root, self.token, whitelist_extra=bundle.ignore_files
        )
        stats.archive_extracted = True
        stats.files_installed += len(result.installed)
        stats.settings_preserved += len(result.skipped_protected)
        stats.files_removed += len(result.removed)
        stats.files_whitelisted += len(result.preserved)

    async def _compare_patches(
        self,
        mods_folder: Path,
        expected: set[str],
        bundle: ManagedBundle,
        stats: ProvisionStats,
    ) -> None:
        summary = await asyncio.to_thread(
            compare_patches, mods_folder, expected, bundle.ignore_files
        )
        stats.patch = summary
        if not summary.has_changes:
            log.info("No mod changes detected.")
            return

        log.info(
            f"Changes for {escape(bundle.id)}: {len(summary.added)} new, "
            f"{len(summary.deleted)} outdated, {len(summary.corrupt)} corrupt"
        )
        for name in summary.added:
            log.debug(f"  + {name}")
        for name in summary.deleted:
            log.debug(f"  - {name}")
        if summary.corrupt:
            log.warning(
                f"[yellow]Removing {len(summary.corrupt)} corrupt mods so they are "
                "downloaded again[/yellow]"
            )
            await asyncio.to_thread(remove_files, mods_folder, summary.corrupt)

    async def _preload(
        self, bundle: ManagedBundle, mods_folder: Path, stats: ProvisionStats
    ) -> None:
        if not bundle.preload_mods:
            return
        log.info(f"Checking {len(bundle.preload_mods)} preload mods...")

        for item in bundle.preload_mods:
            self.token.raise_if_cancelled()
            name = item.filename
            if not name:
                log.warning(f"[yellow]Cannot derive a filename from {escape(item.url)}[/yellow]")
                stats.record_failure(item.url)
                continue
            task = f"Downloading {name}"
            try:
                transferred = await self.downloader.fetch(
                    TransferTarget(item.url, mods_folder / name),
                    check_size=True,
                    on_progress=lambda done, total, task=task: self.progress.emit(
                        task, done, total
                    ),
                    token=self.token,
                )
            except DownloadFailed as e:
                log.error(f"[red]✗ Preload mod {escape(name)} failed: {e.last_error}[/red]")
                stats.record_failure(item.url)
                continue
            if transferred:
                stats.files_downloaded += 1
            else:
                stats.files_skipped_exists += 1
