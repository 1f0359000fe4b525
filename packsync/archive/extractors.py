"""
Archive extraction backends.

Extraction is tried with an external process first (memory efficient and
killable) and falls back to the in-process ``zipfile``/``tarfile`` modules.
"""

import asyncio
import logging
import os
import shutil
import tarfile
import zipfile
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from packsync.core.cancellation import CancellationToken
from packsync.exceptions import Cancelled, ExtractionFailed

log = logging.getLogger(__name__)

TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2")


def archive_kind(archive: Path) -> str | None:
    """Returns 'zip', 'tar' or None, by file name and then by content."""
    name = archive.name.lower()
    if name.endswith((".zip", ".jar")):
        return "zip"
    if name.endswith(TAR_SUFFIXES):
        return "tar"
    if archive.is_file():
        if zipfile.is_zipfile(archive):
            return "zip"
        if tarfile.is_tarfile(archive):
            return "tar"
    return None


class ExtractionBackend(ABC):
    """One way of unpacking an archive into a directory."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def supports(self, archive: Path) -> bool:
        """Whether this backend can currently handle ``archive``."""
        ...

    @abstractmethod
    async def extract(
        self, archive: Path, destination: Path, token: CancellationToken | None = None
    ) -> None:
        """
        Unpacks ``archive`` into ``destination``.

        Raises:
            ExtractionFailed: The archive could not be unpacked.
            Cancelled: The token fired before or during extraction.
        """
        ...


def _powershell_quote(path: Path) -> str:
    return "'" + str(path).replace("'", "''") + "'"


class ProcessExtractor(ExtractionBackend):
    """
    Extracts with an operating system tool in a child process.

    PowerShell ``Expand-Archive`` on Windows, ``unzip``/``tar`` elsewhere. The
    child is killed as soon as the cancellation token fires.
    """

    @property
    def name(self) -> str:
        return "process"

    def _command(self, archive: Path, destination: Path) -> list[str] | None:
        kind = archive_kind(archive)
        if kind == "zip":
            if os.name == "nt":
                if not shutil.which("powershell"):
                    return None
                return [
                    "powershell",
                    "-NoProfile",
                    "-NonInteractive",
                    "-Command",
                    f"Expand-Archive -LiteralPath {_powershell_quote(archive)} "
                    f"-DestinationPath {_powershell_quote(destination)} -Force",
                ]
            if shutil.which("unzip"):
                return ["unzip", "-o", "-q", str(archive), "-d", str(destination)]
        elif kind == "tar" and shutil.which("tar"):
            return ["tar", "-xf", str(archive), "-C", str(destination)]
        return None

    def supports(self, archive: Path) -> bool:
        return self._command(archive, archive.parent) is not None

    async def extract(
        self, archive: Path, destination: Path, token: CancellationToken | None = None
    ) -> None:
        command = self._command(archive, destination)
        if command is None:
            raise ExtractionFailed(f"No extraction tool available for '{archive.name}'")
        if token:
            token.raise_if_cancelled()

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExtractionFailed(f"Could not start {command[0]}: {e}") from e

        communicate = asyncio.ensure_future(process.communicate())
        watchers: set[asyncio.Future] = {communicate}
        cancel_watch = None
        if token:
            cancel_watch = asyncio.ensure_future(token.wait())
            watchers.add(cancel_watch)
        try:
            await asyncio.wait(watchers, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if cancel_watch:
                cancel_watch.cancel()
            if not communicate.done():
                log.debug(f"Killing {command[0]} extraction of {archive.name}")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await communicate

        if token and token.cancelled:
            raise Cancelled(token.reason)

        _, stderr = communicate.result()
        if process.returncode != 0:
            detail = (stderr or b"").decode(errors="replace").strip()[:500]
            raise ExtractionFailed(
                f"{command[0]} exited with code {process.returncode}: {detail}"
            )


class InProcessExtractor(ExtractionBackend):
    """
    Extracts with ``zipfile``/``tarfile`` in a worker thread.

    The blocking call cannot be interrupted, so the token is checked right
    before and right after it.
    """

    @property
    def name(self) -> str:
        return "in-process"

    def supports(self, archive: Path) -> bool:
        return archive_kind(archive) is not None

    @staticmethod
    def _extract_sync(archive: Path, destination: Path) -> None:
        kind = archive_kind(archive)
        if kind == "zip":
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(destination)
        elif kind == "tar":
            with tarfile.open(archive) as tf:
                tf.extractall(destination, filter="data")
        else:
            raise ExtractionFailed(f"Unsupported archive format: '{archive.name}'")

    async def extract(
        self, archive: Path, destination: Path, token: CancellationToken | None = None
    ) -> None:
        if token:
            token.raise_if_cancelled()
        try:
            await asyncio.to_thread(self._extract_sync, archive, destination)
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
            raise ExtractionFailed(f"Unzip failed: {e}") from e
        if token:
            token.raise_if_cancelled()


def default_extractors() -> list[ExtractionBackend]:
    return [ProcessExtractor(), InProcessExtractor()]


async def extract_archive(
    archive: Path,
    destination: Path,
    backends: Sequence[ExtractionBackend],
    token: CancellationToken | None = None,
) -> str:
    """
    Tries each backend in order until one succeeds.

    Returns:
        The name of the backend that extracted the archive.

    Raises:
        ExtractionFailed: Every applicable backend failed.
        Cancelled: The token fired.
    """
    failures = []
    for backend in backends:
        if not backend.supports(archive):
            log.debug(f"Extractor '{backend.name}' cannot handle {archive.name}")
            continue
        try:
            await backend.extract(archive, destination, token)
            return backend.name
        except ExtractionFailed as e:
            log.warning(
                f"[yellow]{backend.name} extraction failed, falling back: {e}[/yellow]"
            )
            failures.append(f"{backend.name}: {e}")

    detail = "; ".join(failures) or "unsupported archive format"
    raise ExtractionFailed(f"Could not extract '{archive.name}' ({detail})")
