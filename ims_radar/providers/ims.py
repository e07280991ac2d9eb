"""Israel Meteorological Service radar source.

Fetches the ``IMSRadar4GIS`` PNG composites over HTTPS using ``httpx``.
One ``httpx.Client`` is kept for the lifetime of the source so the
200 requests of a cycle share a connection pool.

Error mapping:
    - HTTP 404             → ``SourceNotFoundError`` (minute not published).
    - other HTTP 4xx       → ``FetchError``, not retryable.
    - HTTP 5xx             → ``SourceUnavailableError`` (retryable).
    - timeouts / transport → ``SourceUnavailableError`` (retryable).
    - empty body           → ``SourceUnavailableError`` (retryable).
"""

from __future__ import annotations

import logging

import httpx

from ims_radar.core.constants import DEFAULT_FETCH_TIMEOUT_SECONDS
from ims_radar.providers.base import (
    FetchError,
    RadarSource,
    SourceNotFoundError,
    SourceUnavailableError,
)

logger = logging.getLogger("ims_radar.providers.ims")

_USER_AGENT = "ims-radar/0.1"


class ImsRadarSource(RadarSource):
    """``RadarSource`` backed by the public IMS image server."""

    name = "ims"

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
            transport=transport,
        )

    def fetch(self, url: str) -> bytes:
        try:
            response = self._client.get(url)
        except httpx.TimeoutException as exc:
            msg = f"Timed out fetching {url}: {exc}"
            raise SourceUnavailableError(self.name, url, msg) from exc
        except httpx.HTTPError as exc:
            msg = f"Transport error fetching {url}: {exc}"
            raise SourceUnavailableError(self.name, url, msg) from exc

        status = response.status_code
        if status == httpx.codes.NOT_FOUND:
            raise SourceNotFoundError(self.name, url, f"No image published at {url}")
        if status >= 500:
            msg = f"HTTP {status} fetching {url}"
            raise SourceUnavailableError(self.name, url, msg)
        if status >= 400:
            msg = f"HTTP {status} fetching {url}"
            raise FetchError(self.name, url, msg)

        payload = response.content
        if not payload:
            msg = f"Empty response body from {url}"
            raise SourceUnavailableError(self.name, url, msg)

        logger.debug("Fetched %d bytes from %s", len(payload), url)
        return payload

    def close(self) -> None:
        self._client.close()
