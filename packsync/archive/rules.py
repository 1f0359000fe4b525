"""
Name rules deciding what reconciliation and cleanup may touch.

All comparisons are case-insensitive regardless of the filesystem.
"""

from collections.abc import Iterable

# Top-level folders that are part of an instance layout and must never be
# mistaken for a wrapper folder when flattening an archive.
CONTENT_FOLDERS = frozenset(
    {
        "mods",
        "config",
        "versions",
        "saves",
        "resourcepacks",
        "shaderpacks",
        "screenshots",
        "logs",
    }
)

# Subfolders of the target whose extra files are removed during reconciliation.
WATCHED_FOLDERS = ("mods", "config")

# Substrings of user-installed cosmetic add-ons that survive reconciliation.
RECONCILE_WHITELIST = ("figura", "fragmentskin", "emotes")

# Substrings of entry names that orphan cleanup never deletes.
CLEANUP_PROTECTED_NAMES = (
    "figura",
    "fragmentskin",
    "cache",
    "shaderpacks",
    "screenshots",
)


def is_settings_file(relative_path: str) -> bool:
    """True for user settings files: ``options.txt`` and ``options*.txt``."""
    lowered = relative_path.lower()
    return lowered == "options.txt" or (
        lowered.startswith("options") and lowered.endswith(".txt")
    )


def contains_any(name: str, needles: Iterable[str]) -> bool:
    """True if ``name`` contains any non-empty needle, ignoring case."""
    lowered = name.lower()
    return any(needle and needle.lower() in lowered for needle in needles)


def is_whitelisted(relative_path: str, extra: Iterable[str] = ()) -> bool:
    """True if a path under a watched folder must be preserved from deletion."""
    return contains_any(relative_path, (*RECONCILE_WHITELIST, *extra))


def is_content_folder(name: str) -> bool:
    return name.lower() in CONTENT_FOLDERS
