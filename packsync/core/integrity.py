"""
Detects broken jar files and compares the expected mod list with what is on disk.
"""

import logging
import zipfile
from collections.abc import Iterable
from pathlib import Path

from packsync.archive.rules import CLEANUP_PROTECTED_NAMES, contains_any
from packsync.models.stats import PatchSummary
from packsync.utils.walk import list_files

log = logging.getLogger(__name__)

ZIP_MAGIC = b"PK"


class JarIntegrityChecker:
    """A collection of static methods for validating jar files."""

    @staticmethod
    def check_jar(filepath: Path) -> bool:
        """
        Performs a basic integrity check on a jar (zip) file.

        A jar is considered broken when it is empty or does not start with the
        zip local header signature.

        Args:
            filepath: Path to the jar file.

        Returns:
            True if the file looks like a valid jar, False otherwise.
        """
        try:
            if filepath.stat().st_size == 0:
                log.warning(f"Jar integrity check failed for '{filepath.name}': empty file.")
                return False
            with open(filepath, "rb") as f:
                header = f.read(4)
        except OSError as e:
            log.debug(f"Jar check failed for '{filepath}' with unexpected error: {e}")
            return False
        if not header.startswith(ZIP_MAGIC):
            log.warning(
                f"Jar integrity check failed for '{filepath.name}': missing zip header."
            )
            return False
        return True


def archive_mod_names(archive: Path) -> set[str]:
    """
    Lists the names directly inside any ``mods`` folder of a zip archive.

    An unreadable archive yields an empty set.
    """
    names = set()
    try:
        with zipfile.ZipFile(archive) as zf:
            entries = zf.namelist()
    except (OSError, zipfile.BadZipFile) as e:
        log.warning(f"[yellow]Could not read {archive.name} to list its mods: {e}[/yellow]")
        return names

    for entry in entries:
        if entry.endswith("/"):
            continue
        parts = entry.replace("\\", "/").split("/")
        if "mods" in parts:
            index = parts.index("mods")
            if index < len(parts) - 1:
                names.add(parts[index + 1])
    return names


def compare_patches(
    mods_folder: Path, expected: Iterable[str], ignore: Iterable[str] = ()
) -> PatchSummary:
    """
    Compares the expected mod filenames with the files in ``mods_folder``.

    ``added`` are expected but missing, ``deleted`` are present but no longer
    expected (protected and ignored names excluded), ``corrupt`` are expected
    jars present on disk that fail the integrity check.
    """
    expected_names = set(expected)
    present = set()
    if mods_folder.is_dir():
        present = {entry.name for entry in mods_folder.iterdir() if entry.is_file()}

    protected = (*CLEANUP_PROTECTED_NAMES, *ignore)
    return PatchSummary(
        added=sorted(expected_names - present),
        deleted=sorted(
            name for name in present - expected_names if not contains_any(name, protected)
        ),
        corrupt=sorted(
            name
            for name in expected_names & present
            if name.lower().endswith(".jar")
            and not JarIntegrityChecker.check_jar(mods_folder / name)
        ),
    )


def remove_files(folder: Path, names: Iterable[str]) -> list[str]:
    """Deletes the named files from ``folder``; failures are logged."""
    removed = []
    for name in names:
        try:
            (folder / name).unlink(missing_ok=True)
            removed.append(name)
        except OSError as e:
            log.error(f"[red]Failed to delete {name}: {e}[/red]")
    return removed


def repair_libraries(libraries_dir: Path) -> list[str]:
    """
    Deletes broken jars anywhere under ``libraries_dir`` so they are fetched again.

    Returns:
        Relative paths of the deleted jars.
    """
    if not libraries_dir.is_dir():
        return []

    files, errors = list_files(libraries_dir)
    for error in errors:
        log.warning(f"[yellow]Library scan skipped '{error.path}': {error.error}[/yellow]")

    broken = [
        relative
        for relative in files
        if relative.lower().endswith(".jar")
        and not JarIntegrityChecker.check_jar(libraries_dir / relative)
    ]
    removed = remove_files(libraries_dir, broken)
    if removed:
        log.info(f"Removed {len(removed)} broken libraries")
    return removed
