"""
Exception hierarchy for relprobe.

A filename that cannot be classified is not an error: `classify` degrades to a
partial `AssetInfo` instead. Likewise a format without an archive adapter just
skips introspection.
"""
from typing import Optional


class RelprobeError(RuntimeError):
    """Base class for all relprobe errors."""


class ConfigurationError(RelprobeError):
    """Raised when settings loaded from the environment are invalid."""


class NetworkError(RelprobeError):
    """
    The fetch itself failed or the server answered with a non-success status.
    """

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"failed to fetch {url}: {reason}")


class ArchiveCorruptError(RelprobeError):
    """
    The archive could not be read and no member could be salvaged.

    The pipeline fills in `url` and the `digest` computed for the same bytes,
    since hashing carries on independently of introspection.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        format: Optional[str] = None,
        digest: Optional[str] = None,
    ):
        self.message = message
        self.url = url
        self.format = format
        self.digest = digest
        super().__init__(message if url is None else f"{message} ({url})")


class StreamClosedError(RelprobeError):
    """A fan-out reader was used after the broadcast was aborted or detached."""


class InspectionError(RelprobeError):
    """
    Any other failure while inspecting `url`, such as a progress callback
    raising. The original exception is chained as the cause.
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"failed to inspect {url}: {reason}")
