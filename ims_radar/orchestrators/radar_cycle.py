"""Radar cycle orchestrator — state machine plus change notifier.

One ``RadarOrchestrator`` owns the observable ``state``/``progress`` of the
service and the candidate list of the cycle in flight.  ``run_cycle()``
drives one complete cycle:

1. ``Initializing`` — build the reduced candidate list (writes the manifest).
2. Acquisition phase — ``Downloading`` (if any) → ``DownloadCompleted``.
3. Transformation phase — ``ImageProcessing`` ⇄ ``ImageProcessed``, run on
   the orchestrator's single worker thread while the caller waits.
4. ``Waiting``.

Guarantees:
    - ``run_cycle()`` is not reentrant: a call while another cycle is in
      flight raises ``CycleInProgressError`` immediately.
    - Every effective change of ``state`` or ``progress`` is delivered to all
      subscribers, in order, before the assignment returns.
    - A fatal error (work folder, manifest) propagates to the caller, leaves
      ``state`` where it was, and is published on the ``error`` channel.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ims_radar.activities.candidates import build_candidates
from ims_radar.core.constants import (
    DEBUG_EXERCISE_DELAY_SECONDS,
    DEFAULT_BASE_URL,
    DEFAULT_FETCH_MAX_RETRIES,
    DEFAULT_SETTLE_DELAY_SECONDS,
    DEFAULT_WINDOW_MINUTES,
)
from ims_radar.core.exceptions import CycleInProgressError, RadarError
from ims_radar.core.observable import CycleStatus
from ims_radar.models.candidate import CycleState
from ims_radar.orchestrators.phases import (
    build_cycle_summary,
    run_acquisition_phase,
    run_transformation_phase,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import tzinfo

    from ims_radar.core.config import RadarConfig
    from ims_radar.core.observable import StatusChange, Subscription
    from ims_radar.models.candidate import Candidate
    from ims_radar.providers.base import RadarSource

logger = logging.getLogger("ims_radar.orchestrators.radar_cycle")


class RadarOrchestrator:
    """Runs radar cycles one at a time and publishes their progress.

    Args:
        folder: Work folder (must exist when a cycle starts).
        source: Fetch capability.
        transform: Transform capability, called with each local path.
        base_url: Remote URL prefix.
        window_minutes: Candidates per cycle.
        settle_delay_seconds: Hold after each phase.
        fetch_max_retries: Extra attempts for retryable fetch errors.
        exercise_missing: Emit processing transitions for missing items.
        timezone: Zone the default clock reads wall time in.
        clock: Returns "now"; overrides *timezone* (injected by tests).
        sleep: Sleep function used for settle and simulated delays.
    """

    def __init__(
        self,
        folder: Path | str,
        *,
        source: RadarSource,
        transform: Callable[[Path], Any],
        base_url: str = DEFAULT_BASE_URL,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        settle_delay_seconds: float = DEFAULT_SETTLE_DELAY_SECONDS,
        fetch_max_retries: int = DEFAULT_FETCH_MAX_RETRIES,
        exercise_missing: bool = False,
        timezone: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.folder = Path(folder)
        self.base_url = base_url
        self.window_minutes = window_minutes
        self.settle_delay_seconds = settle_delay_seconds
        self.fetch_max_retries = fetch_max_retries
        self.exercise_missing = exercise_missing
        self._source = source
        self._transform = transform
        self._clock = clock or (lambda: datetime.now(timezone))
        self._sleep = sleep
        self._status = CycleStatus()
        self._candidates: tuple[Candidate, ...] = ()
        self._cycle_lock = threading.Lock()
        self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="radar-transform")
        self._owned: list[RadarSource] = []

    @classmethod
    def from_config(
        cls,
        config: RadarConfig,
        *,
        source: RadarSource | None = None,
        transform: Callable[[Path], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> RadarOrchestrator:
        """Build an orchestrator from configuration.

        The source named by ``config.source`` and a ``GeoTiffConverter`` are
        created unless given.  A source created here is closed by ``close()``.
        """
        from ims_radar.activities.convert_image import GeoTiffConverter
        from ims_radar.providers.factory import get_source

        owned_source = source is None
        if source is None:
            source = get_source(config.source, config)
        if transform is None:
            transform = GeoTiffConverter(bounds=config.georef_bounds, crs=config.georef_crs)

        orchestrator = cls(
            config.work_folder,
            source=source,
            transform=transform,
            base_url=config.base_url,
            window_minutes=config.window_minutes,
            settle_delay_seconds=config.settle_delay_seconds,
            fetch_max_retries=config.fetch_max_retries,
            exercise_missing=config.debug_exercise_states,
            timezone=config.tzinfo,
            clock=clock,
            sleep=sleep,
        )
        if owned_source:
            orchestrator._owned.append(source)
        return orchestrator

    # ------------------------------------------------------------------
    # Observable surface
    # ------------------------------------------------------------------

    @property
    def state(self) -> CycleState:
        return self._status.state

    @property
    def progress(self) -> int:
        return self._status.progress

    @property
    def candidates(self) -> tuple[Candidate, ...]:
        """The in-flight cycle's reduced candidate list (empty when idle)."""
        return self._candidates

    @property
    def busy(self) -> bool:
        """Whether a cycle is currently running."""
        return self._cycle_lock.locked()

    def subscribe(
        self,
        callback: Callable[[StatusChange], None],
        *,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
    ) -> Subscription:
        """Attach *callback* to state, progress and error changes.

        See ``CycleStatus.subscribe`` for the meaning of *dispatch*.
        """
        return self._status.subscribe(callback, dispatch=dispatch)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> dict[str, object]:
        """Run one complete cycle and return its summary.

        Raises:
            CycleInProgressError: If another cycle is already running.
            WorkFolderError: If the work folder is missing or unreadable.
            ManifestWriteError: If the dated manifest cannot be written.
        """
        if not self._cycle_lock.acquire(blocking=False):
            msg = "A radar cycle is already running on this orchestrator"
            raise CycleInProgressError(msg)

        try:
            return self._run_locked()
        finally:
            self._candidates = ()
            self._cycle_lock.release()

    def _run_locked(self) -> dict[str, object]:
        cycle_id = uuid.uuid4().hex[:12]
        now = self._clock()
        cycle_start = time.monotonic()

        # still Initializing after a fatal error; announce the start regardless
        self._status.set_state(CycleState.INITIALIZING, force=True)
        logger.info(
            "Cycle started | cycle=%s | folder=%s | now=%s | window=%d",
            cycle_id,
            self.folder,
            now.isoformat(),
            self.window_minutes,
        )

        try:
            self._candidates = tuple(
                build_candidates(
                    self.folder,
                    now=now,
                    base_url=self.base_url,
                    window_minutes=self.window_minutes,
                )
            )

            acquisition = run_acquisition_phase(
                self._status,
                self._candidates,
                self._source,
                max_retries=self.fetch_max_retries,
                settle_delay_seconds=self.settle_delay_seconds,
                sleep=self._sleep,
                cycle_id=cycle_id,
            )

            transformation = self._worker.submit(
                run_transformation_phase,
                self._status,
                self._candidates,
                self._transform,
                settle_delay_seconds=self.settle_delay_seconds,
                sleep=self._sleep,
                exercise_missing=self.exercise_missing,
                exercise_delay_seconds=DEBUG_EXERCISE_DELAY_SECONDS,
                cycle_id=cycle_id,
            ).result()
        except RadarError as exc:
            exc.cycle_id = exc.cycle_id or cycle_id
            logger.error(
                "Cycle failed | cycle=%s | state=%s | progress=%d | code=%s | error=%s",
                cycle_id,
                self._status.state,
                self._status.progress,
                exc.code,
                exc,
            )
            self._status.report_error(exc)
            raise

        summary = build_cycle_summary(
            acquisition,
            transformation,
            cycle_id=cycle_id,
            started_at=now.isoformat(),
            window_size=self.window_minutes,
            candidate_names=[c.canonical_name for c in self._candidates],
        )
        self._status.set_state(CycleState.WAITING)

        logger.info(
            "Cycle completed | cycle=%s | status=%s | duration=%.1fs | %s",
            cycle_id,
            summary["status"],
            time.monotonic() - cycle_start,
            summary["message"],
        )
        return summary

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop the transform worker and close sources created by ``from_config``.

        Waits for a transform phase in flight to finish.
        """
        self._worker.shutdown(wait=True)
        for source in self._owned:
            source.close()
        self._owned.clear()

    def __enter__(self) -> RadarOrchestrator:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
