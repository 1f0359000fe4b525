"""
In-memory stand-ins for the remote source and progress sink, plus archive builders.
"""

import asyncio
import io
import tarfile
import zipfile
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiohttp

from packsync.core.progress import ProgressEvent
from packsync.transfer.client import RemoteMetadata

JAR_BYTES = b"PK\x03\x04" + b"\x00" * 60


@dataclass
class FakeStream:
    status: int
    data: bytes
    content_length: int | None
    truncate_at: int | None = None

    async def iter_chunks(self, size: int = 64 * 1024):
        body = self.data if self.truncate_at is None else self.data[: self.truncate_at]
        for offset in range(0, len(body), size):
            await asyncio.sleep(0)
            yield body[offset : offset + size]

    async def read(self) -> bytes:
        await asyncio.sleep(0)
        return self.data


class FakeRemoteSource:
    """
    Serves byte strings keyed by URL, with failure injection.

    - ``fail_times[url]``: number of upcoming stream requests that fail.
    - ``fail_ranges[(url, start)]``: same, for one byte range.
    - ``truncate[url]``: whole-file bodies stop after this many bytes.
    - ``truncate_once[url]``: like ``truncate`` but only for the next request.
    - ``honor_ranges``: when False, range requests get the full body (200).
    - ``on_stream``: called with (url, byte_range) before each request.
    """

    def __init__(self):
        self.resources: dict[str, bytes] = {}
        self.fail_times: dict[str, int] = {}
        self.fail_ranges: dict[tuple[str, int], int] = {}
        self.truncate: dict[str, int] = {}
        self.truncate_once: dict[str, int] = {}
        self.honor_ranges = True
        self.declare_size = True
        self.accept_ranges: bool | None = True
        self.head_error: Exception | None = None
        self.on_stream: Callable[[str, tuple[int, int] | None], None] | None = None
        self.head_calls: list[str] = []
        self.stream_calls: list[tuple[str, tuple[int, int] | None]] = []
        self.active = 0
        self.max_active = 0

    def add(self, url: str, data: bytes, fail_times: int = 0) -> str:
        self.resources[url] = data
        if fail_times:
            self.fail_times[url] = fail_times
        return url

    def calls_for(self, url: str) -> list[tuple[int, int] | None]:
        return [byte_range for called, byte_range in self.stream_calls if called == url]

    async def head(self, url: str) -> RemoteMetadata:
        self.head_calls.append(url)
        await asyncio.sleep(0)
        if self.head_error is not None:
            raise self.head_error
        if url not in self.resources:
            raise aiohttp.ClientConnectionError(f"404 for {url}")
        size = len(self.resources[url]) if self.declare_size else None
        return RemoteMetadata(size=size, accepts_ranges=self.accept_ranges)

    @asynccontextmanager
    async def stream(self, url: str, byte_range: tuple[int, int] | None = None):
        self.stream_calls.append((url, byte_range))
        if self.on_stream:
            self.on_stream(url, byte_range)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if url not in self.resources:
                raise aiohttp.ClientConnectionError(f"404 for {url}")
            if self.fail_times.get(url, 0) > 0:
                self.fail_times[url] -= 1
                raise aiohttp.ClientConnectionError("connection reset")
            if byte_range is not None:
                key = (url, byte_range[0])
                if self.fail_ranges.get(key, 0) > 0:
                    self.fail_ranges[key] -= 1
                    raise aiohttp.ClientConnectionError("range connection reset")

            data = self.resources[url]
            if byte_range is not None and self.honor_ranges:
                start, end = byte_range
                part = data[start : end + 1]
                yield FakeStream(206, part, len(part))
            else:
                cut = self.truncate_once.pop(url, self.truncate.get(url))
                yield FakeStream(200, data, len(data), cut)
        finally:
            self.active -= 1


class RecordingSink:
    """A progress sink that keeps every event."""

    def __init__(self):
        self.events: list[ProgressEvent] = []

    def emit(self, task, current, total, message=None):
        self.events.append(ProgressEvent(task, current, total, message))

    def for_task(self, task: str) -> list[tuple[int, int]]:
        return [(e.current, e.total) for e in self.events if e.task == task]


def make_zip(path: Path, files: dict[str, bytes]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return path


def make_zip_bytes(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def make_tar_gz_bytes(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        for name, data in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tf.addfile(info, io.BytesIO(data))
    return buffer.getvalue()
