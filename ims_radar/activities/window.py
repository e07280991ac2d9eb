"""Clock and window policy — derive a cycle's candidates from wall-clock time.

Given "now", the policy rounds down to the start of the current minute and
steps back one minute at a time, producing ``window_minutes`` instants in
strictly descending order (current minute first).  Each instant yields one
``Candidate`` (remote URL, canonical name, local path).

``build_window`` is pure: two calls with clocks inside the same minute
return equal lists.  The dated manifest (``Dates/dates.txt`` and
``Dates/datesTime.txt``) is written separately by ``append_dated_manifest``,
which appends one line per instant on every call.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from ims_radar.core.constants import (
    COMPACT_TIMESTAMP_FORMAT,
    DATES_FOLDER,
    DATES_LOG,
    DATES_TIME_LOG,
    DEFAULT_BASE_URL,
    DEFAULT_WINDOW_MINUTES,
)
from ims_radar.core.exceptions import ManifestWriteError
from ims_radar.models.candidate import Candidate
from ims_radar.utils.helpers import round_down_to_minute

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger("ims_radar.activities.window")

_ONE_MINUTE = timedelta(minutes=1)
_HUMAN_FORMAT = "%Y-%m-%d %H:%M:%S"


def window_minutes(now: datetime, size: int = DEFAULT_WINDOW_MINUTES) -> Iterator[datetime]:
    """Yield *size* minute instants, newest first, ending at *now* rounded down."""
    current = round_down_to_minute(now)
    for _ in range(size):
        yield current
        current -= _ONE_MINUTE


def build_window(
    now: datetime,
    folder: Path,
    *,
    base_url: str = DEFAULT_BASE_URL,
    size: int = DEFAULT_WINDOW_MINUTES,
) -> list[Candidate]:
    """Build the full, unfiltered candidate list for the minute containing *now*.

    Args:
        now: Current wall-clock instant.
        folder: Work folder the local paths are rooted in.
        base_url: Remote URL prefix.
        size: Number of one-minute steps.

    Returns:
        ``size`` candidates in strictly descending timestamp order.
    """
    return [
        Candidate.for_minute(minute, base_url=base_url, folder=folder)
        for minute in window_minutes(now, size)
    ]


def append_dated_manifest(folder: Path, minutes: Sequence[datetime]) -> Path:
    """Append each instant to the two dated logs under ``{folder}/Dates``.

    ``dates.txt`` receives the compact ``yyyyMMddHHmm`` form and
    ``datesTime.txt`` the human-readable date-time, one line per instant,
    in the given order.  The ``Dates`` folder is created if absent.

    Returns:
        The ``Dates`` folder path.

    Raises:
        ManifestWriteError: If the folder cannot be created or either log
            cannot be written.  The manifest is required for the cycle, so
            this is fatal.
    """
    dates_dir = folder / DATES_FOLDER
    try:
        dates_dir.mkdir(exist_ok=True)
        with (
            (dates_dir / DATES_LOG).open("a", encoding="utf-8") as compact_log,
            (dates_dir / DATES_TIME_LOG).open("a", encoding="utf-8") as human_log,
        ):
            for minute in minutes:
                compact_log.write(minute.strftime(COMPACT_TIMESTAMP_FORMAT) + "\n")
                human_log.write(minute.strftime(_HUMAN_FORMAT) + "\n")
    except OSError as exc:
        msg = f"Cannot write dated manifest in {dates_dir}: {exc}"
        raise ManifestWriteError(msg) from exc

    logger.debug("Dated manifest appended | folder=%s | lines=%d", dates_dir, len(minutes))
    return dates_dir
