"""
Removal of stale entries from a content folder.
"""

import logging
from collections.abc import Collection, Iterable
from pathlib import Path

from packsync.archive.rules import CLEANUP_PROTECTED_NAMES, contains_any
from packsync.utils.path import remove_path

log = logging.getLogger(__name__)


def cleanup_folder(
    folder: Path, keep_names: Collection[str], extra_protected: Iterable[str] = ()
) -> list[str]:
    """
    Deletes every immediate child of ``folder`` that is not expected.

    A child survives when its name is in ``keep_names`` or contains one of the
    protected names. Only the top level is inspected; surviving directories
    are never descended into. Failures to delete an entry are logged.

    Returns:
        Names of the entries that were removed.
    """
    if not folder.is_dir():
        return []

    protected = (*CLEANUP_PROTECTED_NAMES, *extra_protected)
    removed = []
    for entry in sorted(folder.iterdir()):
        name = entry.name
        if name in keep_names or contains_any(name, protected):
            continue
        try:
            remove_path(entry)
            removed.append(name)
            log.info(f"Removed unused file: {name}")
        except OSError as e:
            log.warning(f"[yellow]Could not remove '{name}': {e}[/yellow]")
    return removed
