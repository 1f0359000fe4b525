"""
Dataclasses for tracking what a provisioning request did.
"""

import time
from dataclasses import dataclass, field


@dataclass
class PatchSummary:
    """Differences between the expected mod list and the mods folder on disk."""

    added: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    corrupt: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.deleted or self.corrupt)


@dataclass
class ProvisionStats:
    """Tracks statistics for a single provisioning request."""

    bundle_id: str = ""
    files_downloaded: int = 0
    files_skipped_exists: int = 0
    files_failed: int = 0
    bytes_downloaded: int = 0
    files_installed: int = 0
    settings_preserved: int = 0
    files_removed: int = 0
    files_whitelisted: int = 0
    libraries_repaired: int = 0
    repaired: bool = False
    archive_extracted: bool = False
    failed_items: list[str] = field(default_factory=list)
    patch: PatchSummary = field(default_factory=PatchSummary)
    _start_time: float = field(default_factory=time.monotonic, repr=False)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start_time

    def record_failure(self, url: str) -> None:
        self.files_failed += 1
        self.failed_items.append(url)
