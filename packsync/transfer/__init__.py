"""
Transfer Layer.

This package moves bytes from remote sources to local files, either as a
single stream or as parallel byte ranges.
"""

from .chunked import ChunkedDownloader, plan_ranges
from .client import HttpTransport, RemoteMetadata, RemoteSource
from .downloader import Downloader

__all__ = [
    "ChunkedDownloader",
    "Downloader",
    "HttpTransport",
    "RemoteMetadata",
    "RemoteSource",
    "plan_ranges",
]
