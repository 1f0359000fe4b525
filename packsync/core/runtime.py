"""
Installs the Java runtime a game version needs into a private directory.
"""

import asyncio
import logging
import os
import platform
import re
import sys
from pathlib import Path

from packsync.archive.reconciler import ArchiveReconciler
from packsync.core.cancellation import CancellationToken
from packsync.core.progress import ThrottledProgress
from packsync.exceptions import InstallFailed
from packsync.models.bundle import TransferTarget
from packsync.transfer.chunked import ChunkedDownloader
from packsync.utils.path import remove_path

log = logging.getLogger(__name__)

ADOPTIUM_URL = (
    "https://api.adoptium.net/v3/binary/latest/{major}/ga/{os}/{arch}"
    "/jre/hotspot/normal/eclipse"
)

_VERSION_PATTERN = re.compile(r"^\s*(\d+)\.(\d+)(?:\.(\d+))?")

_ARCH_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "i386": "x32",
    "i686": "x32",
    "x86": "x32",
    "armv7l": "arm",
}


def java_major_for(game_version: str) -> int:
    """
    Maps a game version such as '1.20.4' to the Java major version it runs on.

    1.21+ and 1.20.5+ need 21, 1.17 up to 1.20.4 need 17, anything older
    (or unparsable) gets 8.
    """
    match = _VERSION_PATTERN.match(game_version)
    if not match:
        log.warning(
            f"[yellow]Unrecognised game version '{game_version}', assuming Java 8[/yellow]"
        )
        return 8
    minor = int(match.group(2))
    patch = int(match.group(3) or 0)

    if minor >= 21:
        return 21
    if minor == 20 and patch >= 5:
        return 21
    if minor >= 17:
        return 17
    return 8


def java_executable_name() -> str:
    return "java.exe" if os.name == "nt" else "java"


def find_java_executable(directory: Path) -> Path | None:
    """Looks for ``bin/java`` in ``directory`` or one of its immediate subfolders."""
    if not directory.is_dir():
        return None
    executable = java_executable_name()

    direct = directory / "bin" / executable
    if direct.is_file():
        return direct
    for child in sorted(directory.iterdir()):
        if child.is_dir():
            nested = child / "bin" / executable
            if nested.is_file():
                return nested
    return None


def adoptium_platform() -> tuple[str, str]:
    """Returns the (os, arch) pair Adoptium uses for the running machine."""
    if sys.platform.startswith("win"):
        os_name = "windows"
    elif sys.platform == "darwin":
        os_name = "mac"
    elif sys.platform.startswith("linux"):
        os_name = "linux"
    else:
        raise InstallFailed(f"No Java runtime builds for platform '{sys.platform}'")

    machine = platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine)
    if arch is None:
        raise InstallFailed(f"No Java runtime builds for architecture '{machine}'")
    return os_name, arch


class RuntimeInstaller:
    """Finds or installs ``<runtime_dir>/jre-<major>``."""

    def __init__(
        self,
        runtime_dir: Path,
        downloader: ChunkedDownloader,
        reconciler: ArchiveReconciler,
        progress: ThrottledProgress | None = None,
    ):
        self.runtime_dir = runtime_dir
        self.downloader = downloader
        self.reconciler = reconciler
        self.progress = progress or ThrottledProgress()

    async def ensure_runtime(
        self, game_version: str, token: CancellationToken | None = None
    ) -> Path:
        """
        Returns the path of a Java executable suitable for ``game_version``.

        Raises:
            InstallFailed: The runtime could not be found after installing it.
            DownloadFailed: The runtime package could not be downloaded.
            ExtractionFailed: The runtime package could not be extracted.
            Cancelled: The token fired.
        """
        major = java_major_for(game_version)
        target = self.runtime_dir / f"jre-{major}"

        existing = await asyncio.to_thread(find_java_executable, target)
        if existing:
            log.info(f"Found existing Java {major} at: [dim]{existing}[/dim]")
            return existing

        if token:
            token.raise_if_cancelled()
        log.info(f"Java {major} not found. Downloading JRE...")

        os_name, arch = adoptium_platform()
        url = ADOPTIUM_URL.format(major=major, os=os_name, arch=arch)
        suffix = ".zip" if os_name == "windows" else ".tar.gz"
        package = self.runtime_dir / f"jre-{major}{suffix}"

        await asyncio.to_thread(remove_path, target)
        target.mkdir(parents=True, exist_ok=True)

        try:
            await self.downloader.fetch_large(
                TransferTarget(url, package), token, task=f"Downloading Java {major}"
            )
            self.progress.emit(f"Extracting Java {major}", 0, 1)
            await self.reconciler.reconcile(package, target, token)
            await asyncio.to_thread(remove_path, package)
            self.progress.emit(f"Extracting Java {major}", 1, 1)

            executable = await asyncio.to_thread(find_java_executable, target)
            if executable is None:
                raise InstallFailed(
                    f"Java executable not found after extraction in {target}"
                )
        except BaseException as e:
            log.error(f"[red]Failed to install Java {major}: {e}[/red]")
            self._discard(package, target)
            raise

        log.info(f"[green]Java {major} installed: {executable}[/green]")
        return executable

    @staticmethod
    def _discard(*paths: Path) -> None:
        for path in paths:
            try:
                remove_path(path)
            except OSError as e:
                log.warning(f"[yellow]Could not remove '{path}': {e}[/yellow]")
