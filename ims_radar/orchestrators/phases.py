"""Phase runners for the radar cycle orchestrator.

Each phase walks the cycle's reduced candidate list once, in order, and
reports through the shared ``CycleStatus``.  The orchestrator in
``radar_cycle.py`` runs the phases sequentially; there is no pipelining
between them.

Phases
------
1. **Acquisition** — fetch each candidate and persist it to its local path.
2. **Transformation** — convert each candidate that is present locally.

Progress accounting (both phases):
    ``progress`` is reset to 0 on entry and, after each item, set to
    ``ceil(items_done / total * 100)``; it is forced to 100 on exit and the
    phase then holds for the settle delay so observers can render the final
    value before the next phase resets it.

Failure policy:
    Per-item failures (fetch errors, missing artifacts, conversion errors)
    are logged and counted; the phase always runs to the end of the list.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, TypedDict

from ims_radar.core.constants import (
    DEBUG_EXERCISE_DELAY_SECONDS,
    DEFAULT_FETCH_MAX_RETRIES,
    DEFAULT_SETTLE_DELAY_SECONDS,
)
from ims_radar.core.exceptions import RadarError
from ims_radar.models.candidate import CycleState
from ims_radar.providers.base import SourceError, SourceNotFoundError
from ims_radar.utils.helpers import percent_complete, write_bytes_atomic

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from pathlib import Path

    from ims_radar.core.observable import CycleStatus
    from ims_radar.models.candidate import Candidate
    from ims_radar.providers.base import RadarSource

logger = logging.getLogger("ims_radar.orchestrators.phases")


# ---------------------------------------------------------------------------
# Phase result contracts
# ---------------------------------------------------------------------------


class AcquisitionResult(TypedDict):
    """Output contract for the acquisition phase."""

    total: int
    fetched: int
    not_published: int
    failed: int
    retries: int
    bytes_written: int
    failures: list[dict[str, object]]
    duration_seconds: float


class TransformationResult(TypedDict):
    """Output contract for the transformation phase."""

    total: int
    processed: int
    missing: int
    failed: int
    failures: list[dict[str, object]]
    duration_seconds: float


# ---------------------------------------------------------------------------
# Phase 1: Acquisition
# ---------------------------------------------------------------------------


def run_acquisition_phase(
    status: CycleStatus,
    candidates: Sequence[Candidate],
    source: RadarSource,
    *,
    max_retries: int = DEFAULT_FETCH_MAX_RETRIES,
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    cycle_id: str = "",
) -> AcquisitionResult:
    """Fetch every candidate and write it to its local path.

    ``Downloading`` is entered only when there is at least one candidate;
    ``DownloadCompleted`` is always entered on exit.

    Args:
        status: The orchestrator's observable status.
        candidates: Reduced candidate list, newest first.
        source: Fetch capability.
        max_retries: Extra attempts for a retryable fetch failure.
        settle_delay_seconds: Hold after forcing progress to 100.
        sleep: Sleep function (injected by tests).
        cycle_id: Cycle identifier for logging.

    Returns:
        AcquisitionResult with per-outcome counts.
    """
    phase_start = time.monotonic()
    status.set_progress(0)

    total = len(candidates)
    fetched = not_published = failed = retries = bytes_written = 0
    failures: list[dict[str, object]] = []

    if candidates:
        status.set_state(CycleState.DOWNLOADING)

        for completed, candidate in enumerate(candidates, start=1):
            try:
                payload, attempts = _fetch_with_retry(
                    source, candidate.remote_url, max_retries=max_retries
                )
                retries += attempts
                bytes_written += write_bytes_atomic(candidate.local_path, payload)
                fetched += 1
                logger.debug(
                    "Fetched | cycle=%s | candidate=%s | size=%d bytes",
                    cycle_id,
                    candidate.canonical_name,
                    len(payload),
                )
            except SourceNotFoundError as exc:
                retries += exc.retries_used
                not_published += 1
                logger.debug(
                    "Not published | cycle=%s | candidate=%s",
                    cycle_id,
                    candidate.canonical_name,
                )
            except SourceError as exc:
                retries += exc.retries_used
                failed += 1
                failures.append({"candidate": candidate.canonical_name, **exc.to_error_dict()})
                logger.warning(
                    "Fetch skipped | cycle=%s | candidate=%s | error=%s",
                    cycle_id,
                    candidate.canonical_name,
                    exc,
                )
            except OSError as exc:
                failed += 1
                failures.append({"candidate": candidate.canonical_name, "message": str(exc)})
                logger.warning(
                    "Persist skipped | cycle=%s | candidate=%s | path=%s | error=%s",
                    cycle_id,
                    candidate.canonical_name,
                    candidate.local_path,
                    exc,
                )

            status.set_progress(percent_complete(completed, total))

    status.set_state(CycleState.DOWNLOAD_COMPLETED)
    status.set_progress(100)

    duration = time.monotonic() - phase_start
    logger.info(
        "phase=acquisition completed | cycle=%s | total=%d | fetched=%d | "
        "not_published=%d | failed=%d | retries=%d | bytes=%d | duration=%.1fs",
        cycle_id,
        total,
        fetched,
        not_published,
        failed,
        retries,
        bytes_written,
        duration,
    )

    sleep(settle_delay_seconds)

    return AcquisitionResult(
        total=total,
        fetched=fetched,
        not_published=not_published,
        failed=failed,
        retries=retries,
        bytes_written=bytes_written,
        failures=failures,
        duration_seconds=round(duration, 3),
    )


# ---------------------------------------------------------------------------
# Phase 2: Transformation
# ---------------------------------------------------------------------------


def run_transformation_phase(
    status: CycleStatus,
    candidates: Sequence[Candidate],
    transform: Callable[[Path], Any],
    *,
    settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    exercise_missing: bool = False,
    exercise_delay_seconds: float = DEBUG_EXERCISE_DELAY_SECONDS,
    cycle_id: str = "",
) -> TransformationResult:
    """Convert every candidate whose local artifact exists.

    Present items go ``ImageProcessing`` → transform → ``ImageProcessed``.
    Missing items are logged and leave the state untouched, unless
    *exercise_missing* is set, in which case the two transitions are still
    emitted around a short simulated delay.

    Args:
        status: The orchestrator's observable status.
        candidates: The same reduced list given to the acquisition phase.
        transform: Transform capability; raises on failure.
        settle_delay_seconds: Hold after forcing progress to 100.
        sleep: Sleep function (injected by tests).
        exercise_missing: Emit processing transitions for missing items.
        exercise_delay_seconds: Simulated delay per exercised transition.
        cycle_id: Cycle identifier for logging.

    Returns:
        TransformationResult with per-outcome counts.
    """
    phase_start = time.monotonic()
    status.set_progress(0)

    total = len(candidates)
    processed = missing = failed = 0
    failures: list[dict[str, object]] = []

    for index, candidate in enumerate(candidates):
        if candidate.local_path.is_file():
            status.set_state(CycleState.IMAGE_PROCESSING)
            try:
                transform(candidate.local_path)
                processed += 1
            except (RadarError, OSError) as exc:
                failed += 1
                error: dict[str, object] = (
                    exc.to_error_dict() if isinstance(exc, RadarError) else {"message": str(exc)}
                )
                failures.append({"candidate": candidate.canonical_name, **error})
                logger.warning(
                    "Transform failed | cycle=%s | candidate=%s | error=%s",
                    cycle_id,
                    candidate.canonical_name,
                    exc,
                )
            except Exception as exc:
                # transform is injected; anything it raises stays per-item
                failed += 1
                failures.append(
                    {
                        "candidate": candidate.canonical_name,
                        "code": "TRANSFORM_UNEXPECTED_ERROR",
                        "message": f"{type(exc).__name__}: {exc}",
                    }
                )
                logger.exception(
                    "Transform raised unexpectedly | cycle=%s | candidate=%s",
                    cycle_id,
                    candidate.canonical_name,
                )
            status.set_state(CycleState.IMAGE_PROCESSED)
        else:
            if exercise_missing:
                status.set_state(CycleState.IMAGE_PROCESSING)
                sleep(exercise_delay_seconds)
                status.set_state(CycleState.IMAGE_PROCESSED)
                sleep(exercise_delay_seconds)
            missing += 1
            logger.info(
                "Candidate not found | cycle=%s | path=%s",
                cycle_id,
                candidate.local_path,
            )

        status.set_progress(percent_complete(index + 1, total))

    status.set_progress(100)

    duration = time.monotonic() - phase_start
    logger.info(
        "phase=transformation completed | cycle=%s | total=%d | processed=%d | "
        "missing=%d | failed=%d | duration=%.1fs",
        cycle_id,
        total,
        processed,
        missing,
        failed,
        duration,
    )

    sleep(settle_delay_seconds)

    return TransformationResult(
        total=total,
        processed=processed,
        missing=missing,
        failed=failed,
        failures=failures,
        duration_seconds=round(duration, 3),
    )


# ---------------------------------------------------------------------------
# Cycle summary
# ---------------------------------------------------------------------------


def build_cycle_summary(
    acquisition: AcquisitionResult,
    transformation: TransformationResult,
    *,
    cycle_id: str,
    started_at: str,
    window_size: int,
    candidate_names: Sequence[str],
) -> dict[str, object]:
    """Build the result of one cycle from the phase outputs.

    Returns:
        Dict summarising the cycle.  ``status`` is ``"completed"`` when no
        item failed, otherwise ``"partial"``.
    """
    status_label = (
        "completed"
        if acquisition["failed"] == 0 and transformation["failed"] == 0
        else "partial"
    )

    return {
        "status": status_label,
        "cycle_id": cycle_id,
        "started_at": started_at,
        "window_size": window_size,
        "candidate_count": len(candidate_names),
        "already_present": window_size - len(candidate_names),
        "candidates": list(candidate_names),
        "fetched": acquisition["fetched"],
        "not_published": acquisition["not_published"],
        "fetch_failed": acquisition["failed"],
        "processed": transformation["processed"],
        "missing": transformation["missing"],
        "transform_failed": transformation["failed"],
        "acquisition": acquisition,
        "transformation": transformation,
        "message": (
            f"Window {window_size}, {len(candidate_names)} candidate(s), "
            f"fetched={acquisition['fetched']} "
            f"not_published={acquisition['not_published']} "
            f"failed={acquisition['failed']}, "
            f"processed={transformation['processed']} "
            f"missing={transformation['missing']} "
            f"failed={transformation['failed']}."
        ),
    }


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _fetch_with_retry(
    source: RadarSource,
    url: str,
    *,
    max_retries: int = DEFAULT_FETCH_MAX_RETRIES,
) -> tuple[bytes, int]:
    """Call ``source.fetch()`` with retry logic.

    Retries on ``SourceError`` when the error is marked as retryable.
    Non-retryable errors propagate immediately.

    Returns:
        Tuple of (payload, retries_used).

    Raises:
        SourceError: The last error, after all retries are exhausted or on
            a non-retryable error, with ``retries_used`` set.
    """
    attempt = 0
    while True:
        try:
            return source.fetch(url), attempt
        except SourceError as exc:
            if not exc.retryable or attempt >= max_retries:
                exc.retries_used = attempt
                raise
            logger.warning(
                "Fetch attempt %d/%d failed (retryable) | url=%s | error=%s",
                attempt + 1,
                max_retries + 1,
                url,
                exc,
            )
            attempt += 1
