"""Custom exceptions for anitorrent."""


class AnitorrentError(Exception):
    """Base exception for all anitorrent errors."""

    pass


class ConfigError(AnitorrentError):
    """Configuration-related errors."""

    pass


class InvalidConfigError(ConfigError):
    """Invalid or incomplete configuration data."""

    pass


class FeedParseError(AnitorrentError):
    """Feed body could not be parsed into items."""

    pass


class RemoteError(AnitorrentError):
    """A remote API call failed.

    Attributes:
        operation: Name of the operation that failed (e.g. "get_mapping")
        status_code: HTTP status code, if the server answered
    """

    def __init__(
        self, message: str, operation: str = "", status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class RemoteUnavailableError(RemoteError):
    """Server error (5xx), transport failure or timeout. Safe to retry."""

    pass


class RemoteRejectedError(RemoteError):
    """Request rejected with a 4xx status other than 404. Not retried."""

    pass


class RemoteNotFoundError(RemoteError):
    """Resource does not exist (404)."""

    pass


class ResourceExhaustedError(AnitorrentError):
    """A local resource ran out."""

    pass


class InsufficientSpaceError(ResourceExhaustedError):
    """Not enough free disk space for a download."""

    def __init__(self, free_bytes: int, required_bytes: int, path: str = "") -> None:
        super().__init__(
            f"Insufficient disk space at {path or 'download dir'}: "
            f"{free_bytes} bytes free, {required_bytes} bytes required"
        )
        self.free_bytes = free_bytes
        self.required_bytes = required_bytes


class BufferExhaustedError(ResourceExhaustedError):
    """The torrent client ran out of system buffer space (ENOBUFS)."""

    pass


class DownloadError(AnitorrentError):
    """Torrent download failed."""

    pass


class DownloadTimeoutError(DownloadError):
    """Torrent download did not complete in time."""

    pass


class MediaToolError(AnitorrentError):
    """An external media tool (ffmpeg, mkvmerge, ...) failed or is missing."""

    pass


class ProbeError(MediaToolError):
    """Listing the streams of a media file failed."""

    pass


class ExtractionError(MediaToolError):
    """Extracting a track from a media file failed."""

    pass


class StorageError(AnitorrentError):
    """Object storage operation failed."""

    pass


class PlatformError(AnitorrentError):
    """Video platform operation failed."""

    pass


class ImportRejectedError(PlatformError):
    """The platform did not accept an import request."""

    pass


class PipelineCancelled(AnitorrentError):
    """Processing was interrupted by a shutdown request."""

    pass
