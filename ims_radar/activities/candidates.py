"""Candidate set builder — the reduced work list for one cycle.

Builds the full window (see ``window.py``), appends it to the dated
manifest, and removes every candidate whose image is already in the work
folder.  An existing ``*.png`` removes the first remaining candidate whose
canonical name *contains* the file stem; matching is by containment, not
equality, so a stem that is a prefix of a canonical name still counts.

The result keeps the window's descending order.  It is computed before the
orchestrator enters ``Downloading`` so that an empty list can be detected.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ims_radar.activities.window import append_dated_manifest, build_window
from ims_radar.core.constants import ARTIFACT_EXTENSION, DEFAULT_BASE_URL, DEFAULT_WINDOW_MINUTES
from ims_radar.core.exceptions import WorkFolderError

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from ims_radar.models.candidate import Candidate

logger = logging.getLogger("ims_radar.activities.candidates")


def list_existing_stems(folder: Path, extension: str = ARTIFACT_EXTENSION) -> list[str]:
    """Return the stems of ``*{extension}`` files directly inside *folder*.

    Sorted for a deterministic removal order.

    Raises:
        WorkFolderError: If *folder* does not exist or cannot be listed.
    """
    if not folder.is_dir():
        msg = f"Work folder does not exist: {folder}"
        raise WorkFolderError(msg)
    try:
        return sorted(
            path.stem
            for path in folder.glob(f"*{extension}")
            if path.is_file() and path.stem and not path.name.startswith(".")
        )
    except OSError as exc:
        msg = f"Cannot list work folder {folder}: {exc}"
        raise WorkFolderError(msg) from exc


def exclude_existing(candidates: list[Candidate], existing_stems: list[str]) -> list[Candidate]:
    """Drop, per existing stem, the first candidate whose name contains it."""
    remaining = list(candidates)
    for stem in existing_stems:
        for index, candidate in enumerate(remaining):
            if stem in candidate.canonical_name:
                del remaining[index]
                break
    return remaining


def build_candidates(
    folder: Path,
    *,
    now: datetime,
    base_url: str = DEFAULT_BASE_URL,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
) -> list[Candidate]:
    """Build the reduced candidate list for the cycle starting at *now*.

    Args:
        folder: Work folder (must exist).
        now: Current wall-clock instant.
        base_url: Remote URL prefix.
        window_minutes: Size of the look-back window.

    Returns:
        Candidates not yet present in *folder*, newest first.

    Raises:
        WorkFolderError: If the work folder is missing or unreadable.
        ManifestWriteError: If the dated manifest cannot be written.
    """
    existing = list_existing_stems(folder)
    window = build_window(now, folder, base_url=base_url, size=window_minutes)
    append_dated_manifest(folder, [c.timestamp for c in window])

    reduced = exclude_existing(window, existing)

    logger.info(
        "Candidates built | folder=%s | window=%d | existing=%d | reduced=%d | newest=%s",
        folder,
        len(window),
        len(existing),
        len(reduced),
        window[0].canonical_name if window else "",
    )
    return reduced
