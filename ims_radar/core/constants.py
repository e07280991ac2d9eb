"""Shared service constants — single source of truth.

Centralises the remote URL template, artifact naming formats, manifest file
names, and the default timing values used by the orchestrator, the phase
runners, and the scheduling loop.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Remote resource naming
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL: str = (
    "https://ims.gov.il/sites/default/files/ims_data/map_images/IMSRadar4GIS/IMSRadar4GIS_"
)
"""URL prefix; the compact timestamp and ``REMOTE_SUFFIX`` are appended."""

REMOTE_SUFFIX: str = "_0.png"

COMPACT_TIMESTAMP_FORMAT: str = "%Y%m%d%H%M"
"""``yyyyMMddHHmm``, embedded in the remote URL."""

CANONICAL_NAME_FORMAT: str = "%Y_%m_%d_%H_%M"
"""``yyyy_MM_dd_HH_mm``, the local artifact stem."""

# ---------------------------------------------------------------------------
# Work folder layout
# ---------------------------------------------------------------------------

ARTIFACT_EXTENSION: str = ".png"
CONVERTED_EXTENSION: str = ".tif"
DATES_FOLDER: str = "Dates"
DATES_LOG: str = "dates.txt"
DATES_TIME_LOG: str = "datesTime.txt"

# ---------------------------------------------------------------------------
# Cycle and scheduling defaults (seconds unless noted)
# ---------------------------------------------------------------------------

DEFAULT_WINDOW_MINUTES: int = 200
DEFAULT_SETTLE_DELAY_SECONDS: float = 1.5
DEFAULT_INTERVAL_SECONDS: float = 300.0
DEFAULT_POLL_INTERVAL_SECONDS: float = 0.1
DEFAULT_FETCH_TIMEOUT_SECONDS: float = 30.0
DEFAULT_FETCH_MAX_RETRIES: int = 2
DEFAULT_TIMEZONE: str = "UTC"
DEFAULT_GEOREF_CRS: str = "EPSG:4326"

#: Simulated per-transition delay used when exercising states for missing items.
DEBUG_EXERCISE_DELAY_SECONDS: float = 0.05
