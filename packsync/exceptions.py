"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class PackSyncError(Exception):
    """Base exception for all application-specific errors."""


class Cancelled(PackSyncError):
    """Raised when the cancellation token of a provisioning request has fired."""


class DownloadFailed(PackSyncError):
    """
    Raised when a whole-file or chunked transfer has exhausted its retries.

    The last underlying transport error is kept on ``last_error`` and chained
    as ``__cause__``.
    """

    def __init__(self, url: str, last_error: BaseException | None = None):
        self.url = url
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Download failed for '{url}'{detail}")


class RangeNotSupportedError(PackSyncError):
    """Raised when a server answers a byte-range request with the full body."""


class ExtractionFailed(PackSyncError):
    """
    Raised when no extraction backend could unpack an archive, or when the
    copy/delete phases of reconciliation hit a filesystem error.
    """


class InstallFailed(PackSyncError):
    """Raised when a runtime could not be located after a download and extract."""


class UnsupportedArchiveError(PackSyncError):
    """Raised when a bundle declares an archive format that cannot be extracted."""


class BundleError(PackSyncError):
    """Raised when a bundle descriptor cannot be read or fails validation."""


class ConfigurationError(PackSyncError):
    """Raised for issues related to configuration loading or validation."""
