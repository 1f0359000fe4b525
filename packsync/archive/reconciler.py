"""
Installs the contents of an archive into a target directory and removes
files the archive no longer ships.
"""

import asyncio
import logging
import shutil
import tempfile
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from packsync.core.cancellation import CancellationToken
from packsync.exceptions import Cancelled, ExtractionFailed
from packsync.utils.path import remove_path, to_posix
from packsync.utils.walk import list_files

from .extractors import ExtractionBackend, default_extractors, extract_archive
from .rules import WATCHED_FOLDERS, is_content_folder, is_settings_file, is_whitelisted

log = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """What a reconcile call did to the target directory."""

    installed: list[str] = field(default_factory=list)
    skipped_protected: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    preserved: list[str] = field(default_factory=list)
    extractor: str = ""


def effective_root(staging: Path) -> Path:
    """
    Returns the directory whose contents should be installed.

    Archives often wrap everything in one top-level folder; when the only
    visible top-level entry is a directory that is not itself a content
    folder, its contents are used instead.
    """
    entries = [entry for entry in staging.iterdir() if not entry.name.startswith(".")]
    if len(entries) == 1 and entries[0].is_dir() and not is_content_folder(entries[0].name):
        log.debug(f"Flattening wrapper folder '{entries[0].name}'")
        return entries[0]
    return staging


def _check(token: CancellationToken | None) -> None:
    if token:
        token.raise_if_cancelled()


class ArchiveReconciler:
    """
    Makes a target directory mirror an archive without touching user state.

    Existing settings files are never overwritten, and only the watched
    subfolders are pruned of files the archive does not contain.
    """

    def __init__(self, backends: Sequence[ExtractionBackend] | None = None):
        self.backends = list(backends) if backends is not None else default_extractors()

    async def reconcile(
        self,
        archive: Path,
        target_dir: Path,
        token: CancellationToken | None = None,
        whitelist_extra: Iterable[str] = (),
    ) -> ReconcileResult:
        """
        Extracts ``archive`` into ``target_dir`` through a private staging area.

        Raises:
            ExtractionFailed: Extraction or a filesystem step failed.
            Cancelled: The token fired.
        """
        _check(token)
        target_dir.mkdir(parents=True, exist_ok=True)
        extra = tuple(whitelist_extra)
        staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=target_dir.parent))
        result = ReconcileResult()
        log.info(f"Extracting {archive.name} into {target_dir}")

        try:
            result.extractor = await extract_archive(
                archive, staging, self.backends, token
            )
            _check(token)

            source_root = effective_root(staging)
            source_files, errors = list_files(source_root)
            if errors:
                first = errors[0]
                raise ExtractionFailed(
                    f"Could not read extracted files at '{first.path}': {first.error}"
                )

            await asyncio.to_thread(
                self._install_files, source_root, target_dir, source_files, result, token
            )
            _check(token)
            await asyncio.to_thread(
                self._remove_orphans, target_dir, set(source_files), extra, result, token
            )
        except (Cancelled, ExtractionFailed):
            raise
        except OSError as e:
            raise ExtractionFailed(f"Reconciling '{target_dir}' failed: {e}") from e
        finally:
            await asyncio.to_thread(shutil.rmtree, staging, True)

        log.info(
            f"Installed {len(result.installed)} files, removed {len(result.removed)}, "
            f"kept {len(result.skipped_protected)} settings and "
            f"{len(result.preserved)} whitelisted files"
        )
        return result

    @staticmethod
    def _install_files(
        source_root: Path,
        target_dir: Path,
        relative_paths: list[str],
        result: ReconcileResult,
        token: CancellationToken | None,
    ) -> None:
        for relative in relative_paths:
            _check(token)
            destination = target_dir / relative
            if is_settings_file(relative) and destination.exists():
                log.debug(f"Keeping existing settings file '{relative}'")
                result.skipped_protected.append(relative)
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            remove_path(destination)
            shutil.move(source_root / relative, destination)
            result.installed.append(relative)

    @staticmethod
    def _remove_orphans(
        target_dir: Path,
        shipped: set[str],
        whitelist_extra: tuple[str, ...],
        result: ReconcileResult,
        token: CancellationToken | None,
    ) -> None:
        for folder_name in WATCHED_FOLDERS:
            folder = target_dir / folder_name
            if not folder.is_dir():
                continue
            files, errors = list_files(folder)
            for error in errors:
                log.warning(f"[yellow]Could not scan '{error.path}': {error.error}[/yellow]")

            for inner in files:
                _check(token)
                relative = to_posix(f"{folder_name}/{inner}")
                if relative in shipped:
                    continue
                if is_whitelisted(relative, whitelist_extra):
                    result.preserved.append(relative)
                    continue
                try:
                    remove_path(target_dir / relative)
                    result.removed.append(relative)
                    log.debug(f"Removed orphan '{relative}'")
                except OSError as e:
                    log.warning(f"[yellow]Could not remove '{relative}': {e}[/yellow]")
