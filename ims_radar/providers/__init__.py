"""Radar image sources.

Implements the fetch capability behind a small adapter interface:
- RadarSource: Abstract base class defining ``fetch(url) -> bytes``
- ImsRadarSource: HTTPS source for the IMS radar composites

The active source is selected via configuration.
"""

from ims_radar.providers.base import (
    FetchError,
    RadarSource,
    SourceError,
    SourceNotFoundError,
    SourceUnavailableError,
)
from ims_radar.providers.factory import (
    IMS,
    get_source,
    list_sources,
    register_source,
)

__all__ = [
    "IMS",
    "FetchError",
    "RadarSource",
    "SourceError",
    "SourceNotFoundError",
    "SourceUnavailableError",
    "get_source",
    "list_sources",
    "register_source",
]
