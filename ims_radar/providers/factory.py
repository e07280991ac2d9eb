"""Source factory — selects the active radar source by name.

The factory maintains a registry of known sources.  New sources are
registered with ``register_source``; the active one is chosen through
``RadarConfig.source`` (``RADAR_SOURCE``).

Usage::

    from ims_radar.providers.factory import get_source

    with get_source("ims", config) as source:
        payload = source.fetch(url)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ims_radar.providers.base import RadarSource, SourceError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ims_radar.core.config import RadarConfig

logger = logging.getLogger(__name__)

IMS = "ims"

# Each entry maps a source name to a callable building the source from the
# service configuration.  Built-in entries import lazily so that httpx is
# only loaded when the IMS source is selected.
_SOURCE_REGISTRY: dict[str, Callable[[RadarConfig], RadarSource]] = {}


def _register_builtin_sources() -> None:
    """Register the built-in radar sources."""

    def _ims(config: RadarConfig) -> RadarSource:
        from ims_radar.providers.ims import ImsRadarSource

        return ImsRadarSource(timeout_seconds=config.fetch_timeout_seconds)

    _SOURCE_REGISTRY[IMS] = _ims


def _ensure_registry() -> None:
    """Initialise the source registry once (idempotent)."""
    if not _SOURCE_REGISTRY:
        _register_builtin_sources()


def register_source(
    name: str,
    builder: Callable[[RadarConfig], RadarSource],
) -> None:
    """Register a custom radar source.

    Args:
        name: Source name (e.g. ``"mirror"``).
        builder: Callable receiving the ``RadarConfig`` and returning a source.

    Raises:
        ValueError: If the name is empty.
    """
    if not name:
        msg = "Source name must be non-empty"
        raise ValueError(msg)
    _ensure_registry()
    _SOURCE_REGISTRY[name] = builder
    logger.debug("Registered radar source: %s", name)


def get_source(name: str, config: RadarConfig) -> RadarSource:
    """Create and return a radar source instance.

    Raises:
        SourceError: If the named source is not registered.
    """
    _ensure_registry()

    builder = _SOURCE_REGISTRY.get(name)
    if builder is None:
        available = ", ".join(sorted(_SOURCE_REGISTRY))
        msg = f"Unknown radar source: {name!r}. Available: {available}"
        raise SourceError(name, "", msg)

    logger.info("Creating radar source: %s", name)
    return builder(config)


def list_sources() -> list[str]:
    """Return the names of all registered sources."""
    _ensure_registry()
    return sorted(_SOURCE_REGISTRY)
