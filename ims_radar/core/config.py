"""Service configuration loaded from environment variables.

Every value except the work folder has a default matching the reference
deployment (a 200-minute window refreshed every five minutes).  Command-line
flags in ``radar_app.py`` override the environment.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any numeric value is
    out of its valid range or the work folder is not set.  Bad configuration
    is caught at startup rather than in the middle of a cycle.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ims_radar.core.constants import (
    DEFAULT_BASE_URL,
    DEFAULT_FETCH_MAX_RETRIES,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    DEFAULT_GEOREF_CRS,
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_SETTLE_DELAY_SECONDS,
    DEFAULT_TIMEZONE,
    DEFAULT_WINDOW_MINUTES,
)
from ims_radar.core.exceptions import ValidationError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


class ConfigValidationError(ValidationError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class RadarConfig:
    """Immutable service configuration.

    Attributes:
        work_folder: Directory receiving radar images, GeoTIFFs and ``Dates``.
        base_url: Remote URL prefix the compact timestamp is appended to.
        source: Name of the radar source adapter (see ``providers.factory``).
        window_minutes: Number of one-minute candidates per cycle.
        settle_delay_seconds: Pause after each phase so observers can render 100%.
        interval_seconds: Time between scheduled cycle starts.
        poll_interval_seconds: Scheduling loop polling quantum.
        fetch_timeout_seconds: Per-request HTTP timeout.
        fetch_max_retries: Retries for a transient fetch failure before skipping.
        timezone: IANA zone used to read the wall clock for candidate names.
        georef_bounds: Optional ``(west, south, east, north)`` for GeoTIFF output.
        georef_crs: CRS the bounds are expressed in.
        debug_exercise_states: Emit processing transitions for missing items.
    """

    work_folder: str
    base_url: str = DEFAULT_BASE_URL
    source: str = "ims"
    window_minutes: int = DEFAULT_WINDOW_MINUTES
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    fetch_max_retries: int = DEFAULT_FETCH_MAX_RETRIES
    timezone: str = DEFAULT_TIMEZONE
    georef_bounds: tuple[float, float, float, float] | None = None
    georef_crs: str = DEFAULT_GEOREF_CRS
    debug_exercise_states: bool = False

    @property
    def tzinfo(self) -> ZoneInfo:
        """Return the configured zone as a ``ZoneInfo``."""
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls, **overrides: object) -> RadarConfig:
        """Load and validate configuration from environment variables.

        Keyword overrides (e.g. from CLI flags) win over the environment;
        ``None`` overrides are ignored.

        Raises:
            ConfigValidationError: If a value is out of range, the work
                folder is empty, or the timezone/bounds cannot be parsed.
            ValueError: If a numeric environment variable cannot be parsed
                (e.g. ``RADAR_WINDOW_MINUTES=abc``).
        """
        values: dict[str, object] = {
            "work_folder": os.getenv("RADAR_WORK_FOLDER", ""),
            "base_url": os.getenv("RADAR_BASE_URL", DEFAULT_BASE_URL),
            "source": os.getenv("RADAR_SOURCE", "ims"),
            "window_minutes": int(os.getenv("RADAR_WINDOW_MINUTES", str(DEFAULT_WINDOW_MINUTES))),
            "settle_delay_seconds": float(
                os.getenv("RADAR_SETTLE_DELAY_SECONDS", str(DEFAULT_SETTLE_DELAY_SECONDS))
            ),
            "interval_seconds": float(
                os.getenv("RADAR_INTERVAL_SECONDS", str(DEFAULT_INTERVAL_SECONDS))
            ),
            "poll_interval_seconds": float(
                os.getenv("RADAR_POLL_INTERVAL_SECONDS", str(DEFAULT_POLL_INTERVAL_SECONDS))
            ),
            "fetch_timeout_seconds": float(
                os.getenv("RADAR_FETCH_TIMEOUT_SECONDS", str(DEFAULT_FETCH_TIMEOUT_SECONDS))
            ),
            "fetch_max_retries": int(
                os.getenv("RADAR_FETCH_MAX_RETRIES", str(DEFAULT_FETCH_MAX_RETRIES))
            ),
            "timezone": os.getenv("RADAR_TIMEZONE", DEFAULT_TIMEZONE),
            "georef_bounds": parse_bounds(os.getenv("RADAR_GEOREF_BOUNDS", "")),
            "georef_crs": os.getenv("RADAR_GEOREF_CRS", DEFAULT_GEOREF_CRS),
            "debug_exercise_states": (
                os.getenv("RADAR_DEBUG_EXERCISE_STATES", "").strip().lower() in _TRUE_VALUES
            ),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        config = cls(**values)  # type: ignore[arg-type]
        _validate(config)
        return config


def parse_bounds(raw: str) -> tuple[float, float, float, float] | None:
    """Parse ``"west,south,east,north"`` into a float tuple.

    Returns ``None`` for an empty string.

    Raises:
        ConfigValidationError: If the string does not hold four numbers or
            the box is empty.
    """
    if not raw.strip():
        return None
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 4:
        raise ConfigValidationError(
            "RADAR_GEOREF_BOUNDS", raw, "expected four comma-separated numbers"
        )
    try:
        west, south, east, north = (float(p) for p in parts)
    except ValueError as exc:
        raise ConfigValidationError("RADAR_GEOREF_BOUNDS", raw, str(exc)) from exc
    if west >= east or south >= north:
        raise ConfigValidationError(
            "RADAR_GEOREF_BOUNDS", raw, "west must be < east and south must be < north"
        )
    return (west, south, east, north)


def _validate(config: RadarConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if not config.work_folder:
        raise ConfigValidationError(
            "RADAR_WORK_FOLDER",
            config.work_folder,
            "must not be empty",
        )

    if not config.base_url:
        raise ConfigValidationError(
            "RADAR_BASE_URL",
            config.base_url,
            "must not be empty",
        )

    if config.window_minutes <= 0:
        raise ConfigValidationError(
            "RADAR_WINDOW_MINUTES",
            config.window_minutes,
            "must be > 0 (minutes)",
        )

    if config.settle_delay_seconds < 0:
        raise ConfigValidationError(
            "RADAR_SETTLE_DELAY_SECONDS",
            config.settle_delay_seconds,
            "must be >= 0 (seconds)",
        )

    if config.poll_interval_seconds <= 0:
        raise ConfigValidationError(
            "RADAR_POLL_INTERVAL_SECONDS",
            config.poll_interval_seconds,
            "must be > 0 (seconds)",
        )

    if config.interval_seconds <= config.poll_interval_seconds:
        raise ConfigValidationError(
            "RADAR_INTERVAL_SECONDS",
            config.interval_seconds,
            f"must be > poll interval ({config.poll_interval_seconds}s)",
        )

    if config.fetch_timeout_seconds <= 0:
        raise ConfigValidationError(
            "RADAR_FETCH_TIMEOUT_SECONDS",
            config.fetch_timeout_seconds,
            "must be > 0 (seconds)",
        )

    if config.fetch_max_retries < 0:
        raise ConfigValidationError(
            "RADAR_FETCH_MAX_RETRIES",
            config.fetch_max_retries,
            "must be >= 0",
        )

    try:
        ZoneInfo(config.timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigValidationError(
            "RADAR_TIMEZONE",
            config.timezone,
            "must be a valid IANA time zone name",
        ) from exc
