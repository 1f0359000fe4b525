"""
Utilities for handling file paths and deriving local names from URLs.
"""

import os
import shutil
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from pathvalidate import sanitize_filename


def filename_from_url(url: str) -> str:
    """
    Derives a local filename from the last path segment of a URL.

    The query string and fragment are dropped, the segment is percent-decoded
    and sanitized so it can never escape the destination folder.
    """
    segment = urlparse(url).path.rsplit("/", 1)[-1]
    return sanitize_filename(unquote(segment), platform="auto")


def url_suffix(url: str) -> str:
    """Returns the lower-cased extension of a URL's path, e.g. '.zip'."""
    return PurePosixPath(urlparse(url).path.lower()).suffix


def remove_path(path: Path) -> None:
    """Removes a file, symlink or directory tree. Missing paths are ignored."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        os.remove(path)


def to_posix(relative: str) -> str:
    """Normalizes a relative path to forward slashes for comparisons."""
    return relative.replace(os.sep, "/").replace("\\", "/")
