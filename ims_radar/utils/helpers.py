"""Shared helper functions used across the activity and phase modules."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import datetime


def round_down_to_minute(moment: datetime) -> datetime:
    """Drop seconds and sub-seconds, keeping the time zone."""
    return moment.replace(second=0, microsecond=0)


def percent_complete(done: int, total: int) -> int:
    """Return ``ceil(done / total * 100)`` as an integer in ``[0, 100]``.

    Integer arithmetic keeps the result exact (no float rounding at the
    edges) and reports at least 1 once any item is done.  ``total == 0``
    counts as complete.
    """
    if total <= 0:
        return 100
    done = max(0, min(done, total))
    return (done * 100 + total - 1) // total


def write_bytes_atomic(path: Path, payload: bytes) -> int:
    """Write *payload* to *path* via a temporary sibling and a rename.

    A reader listing the folder never sees a partially written file under
    the final name.

    Returns:
        The number of bytes written.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".part", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return len(payload)
