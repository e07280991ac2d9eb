"""RadarSource abstract base class.

Defines the fetch capability the acquisition phase depends on.  The
orchestrator interacts exclusively with this interface; it never knows
which concrete source is behind it, or how the bytes travel.

Contract:
    ``fetch(url)`` returns the full body of the radar image at *url*, or
    raises a ``SourceError`` describing why it could not.  Whether the
    error is worth retrying is carried on the exception (``retryable``).
"""

from __future__ import annotations

import abc

from ims_radar.core.exceptions import RadarError, TransientError


class RadarSource(abc.ABC):
    """Abstract base class for radar image sources.

    Sources may hold a connection pool; callers that create one should
    ``close()`` it (or use it as a context manager) when done.

    Example usage::

        with get_source("ims", config) as source:
            payload = source.fetch(candidate.remote_url)
    """

    name: str = ""

    @abc.abstractmethod
    def fetch(self, url: str) -> bytes:
        """Fetch the resource at *url*.

        Args:
            url: Absolute URL of one radar image.

        Returns:
            The non-empty response body.

        Raises:
            SourceError: On any failure; ``retryable`` tells the caller
                whether another attempt may succeed.
        """

    def close(self) -> None:  # noqa: B027
        """Release any held resources.  Default: nothing to release."""

    def __enter__(self) -> RadarSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Source exceptions
# ---------------------------------------------------------------------------


class SourceError(RadarError):
    """Base exception for radar source errors.

    Attributes:
        source: Name of the source that raised the error.
        url: The URL being fetched.
        retries_used: Extra attempts made before this error was raised.
    """

    default_stage = "acquisition"
    default_code = "SOURCE_ERROR"

    def __init__(
        self,
        source: str,
        url: str,
        message: str,
        *,
        retryable: bool = False,
    ) -> None:
        self.source = source
        self.url = url
        self.retries_used = 0
        super().__init__(
            message,
            retryable=retryable,
            code=self.default_code,
            stage=self.default_stage,
        )

    def __str__(self) -> str:
        return f"[{self.source}] {self.message}"


class FetchError(SourceError):
    """Error while transferring a radar image."""

    default_code = "FETCH_FAILED"


class SourceUnavailableError(FetchError, TransientError):
    """The source could not be reached or answered with a server error.

    Covers timeouts, transport failures, HTTP 5xx and empty bodies.  Always
    retryable.
    """

    default_code = "SOURCE_UNAVAILABLE"

    def __init__(self, source: str, url: str, message: str) -> None:
        super().__init__(source, url, message, retryable=True)


class SourceNotFoundError(FetchError):
    """The source has not published an image for this minute."""

    default_code = "SOURCE_NOT_FOUND"

    def __init__(self, source: str, url: str, message: str) -> None:
        super().__init__(source, url, message, retryable=False)
