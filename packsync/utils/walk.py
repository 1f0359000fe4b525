"""
Lazy recursive directory walking that reports unreadable subtrees instead of
silently dropping them.
"""

import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkError:
    path: Path
    error: OSError


class DirectoryWalker:
    """
    Iterates over every file below ``root`` as a relative POSIX path.

    Directories are not yielded. A subtree that cannot be listed is recorded
    in ``errors`` and skipped; the rest of the walk continues. Symlinked
    directories are treated as files and never followed.
    """

    def __init__(self, root: Path):
        self.root = root
        self.errors: list[WalkError] = []

    def __iter__(self) -> Iterator[str]:
        stack: list[tuple[Path, str]] = [(self.root, "")]
        while stack:
            directory, prefix = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                log.debug(f"Could not list '{directory}': {e}")
                self.errors.append(WalkError(directory, e))
                continue

            subdirectories = []
            for entry in entries:
                relative = f"{prefix}{entry.name}"
                try:
                    is_dir = entry.is_dir(follow_symlinks=False)
                except OSError as e:
                    self.errors.append(WalkError(Path(entry.path), e))
                    continue
                if is_dir:
                    subdirectories.append((Path(entry.path), f"{relative}/"))
                else:
                    yield relative
            # Reversed so subdirectories are visited in name order.
            stack.extend(reversed(subdirectories))


def list_files(root: Path) -> tuple[list[str], list[WalkError]]:
    """Eagerly walks ``root``, returning its relative file paths and walk errors."""
    walker = DirectoryWalker(root)
    files = list(walker)
    return files, walker.errors
