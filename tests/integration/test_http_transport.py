"""
Runs the aiohttp transport and both downloaders against a local HTTP server.
"""

from dataclasses import dataclass, field

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from packsync.exceptions import DownloadFailed
from packsync.models.bundle import TransferTarget
from packsync.transfer.chunked import ChunkedDownloader
from packsync.transfer.client import HttpTransport
from packsync.transfer.downloader import Downloader

PAYLOAD = bytes((i * 31) % 256 for i in range(300_000))


@dataclass
class FileServer:
    server: test_utils.TestServer
    ranges: list[str] = field(default_factory=list)

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))


def parse_range(header: str) -> tuple[int, int]:
    start, end = header.removeprefix("bytes=").split("-")
    return int(start), int(end)


@pytest_asyncio.fixture
async def files():
    ranges: list[str] = []

    # GET routes answer HEAD too; aiohttp drops the body for those.
    async def ranged(request: web.Request) -> web.Response:
        headers = {"Accept-Ranges": "bytes"}
        if "Range" in request.headers:
            ranges.append(request.headers["Range"])
            start, end = parse_range(request.headers["Range"])
            headers["Content-Range"] = f"bytes {start}-{end}/{len(PAYLOAD)}"
            return web.Response(status=206, body=PAYLOAD[start : end + 1], headers=headers)
        return web.Response(body=PAYLOAD, headers=headers)

    async def ignores_ranges(request: web.Request) -> web.Response:
        return web.Response(body=PAYLOAD, headers={"Accept-Ranges": "bytes"})

    app = web.Application()
    app.router.add_get("/files/payload.bin", ranged)
    app.router.add_get("/files/norange.bin", ignores_ranges)
    server = test_utils.TestServer(app)
    await server.start_server()
    yield FileServer(server, ranges)
    await server.close()


@pytest_asyncio.fixture
async def transport():
    async with HttpTransport(max_connections=4) as http:
        yield http


@pytest.mark.asyncio
async def test_head_reports_size_and_ranges(files, transport):
    metadata = await transport.head(files.url("/files/payload.bin"))

    assert metadata.size == len(PAYLOAD)
    assert metadata.accepts_ranges is True


@pytest.mark.asyncio
async def test_stream_range(files, transport):
    async with transport.stream(files.url("/files/payload.bin"), (10, 19)) as response:
        assert response.status == 206
        assert await response.read() == PAYLOAD[10:20]


@pytest.mark.asyncio
async def test_whole_file_download(files, transport, tmp_path):
    downloader = Downloader(transport, max_retries=0, base_delay=0)
    dest = tmp_path / "payload.bin"
    target = TransferTarget(files.url("/files/payload.bin"), dest)

    assert await downloader.fetch(target)
    assert dest.read_bytes() == PAYLOAD
    # Same size on the server: nothing is transferred the second time.
    assert not await downloader.fetch(target)


@pytest.mark.asyncio
async def test_missing_file_fails(files, transport, tmp_path):
    downloader = Downloader(transport, max_retries=1, base_delay=0)
    target = TransferTarget(files.url("/files/missing.bin"), tmp_path / "missing.bin")

    with pytest.raises(DownloadFailed):
        await downloader.fetch(target)
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_chunked_download(files, transport, tmp_path):
    downloader = Downloader(transport, max_retries=0, base_delay=0)
    chunked = ChunkedDownloader(
        transport, downloader, chunk_size=64 * 1024, max_workers=3, base_delay=0
    )
    dest = tmp_path / "payload.bin"

    await chunked.fetch_large(TransferTarget(files.url("/files/payload.bin"), dest))

    assert dest.read_bytes() == PAYLOAD
    assert sorted(files.ranges, key=lambda r: parse_range(r)[0]) == [
        "bytes=0-65535",
        "bytes=65536-131071",
        "bytes=131072-196607",
        "bytes=196608-262143",
        "bytes=262144-299999",
    ]


@pytest.mark.asyncio
async def test_chunked_download_falls_back(files, transport, tmp_path):
    downloader = Downloader(transport, max_retries=0, base_delay=0)
    chunked = ChunkedDownloader(
        transport, downloader, chunk_size=64 * 1024, max_workers=2, base_delay=0
    )
    dest = tmp_path / "norange.bin"

    await chunked.fetch_large(TransferTarget(files.url("/files/norange.bin"), dest))

    assert dest.read_bytes() == PAYLOAD
