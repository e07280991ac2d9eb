"""Cooperative scheduling loop — one radar cycle per interval.

The loop keeps a target "next run" instant, initialised to now, and polls
the wall clock every ``poll_interval_seconds``:

- when the target has been reached, it hides the countdown, runs one cycle
  synchronously, checks the orchestrator is back in ``Waiting``, and moves
  the target forward by exactly one interval (whole intervals missed while
  a long cycle ran are skipped, never replayed);
- otherwise it shows a ``mm:ss`` countdown and sleeps one polling quantum.

Because the cycle runs inside the loop, two cycles can never overlap, and
because the target advances from itself rather than from the cycle end, the
schedule does not drift.  ``stop()`` ends the loop after the cycle in
flight, if any, has finished; cycles are never cancelled midway.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from ims_radar.core.constants import DEFAULT_INTERVAL_SECONDS, DEFAULT_POLL_INTERVAL_SECONDS
from ims_radar.core.exceptions import CycleStateError, RadarError
from ims_radar.models.candidate import CycleState

if TYPE_CHECKING:
    from collections.abc import Callable

    from ims_radar.orchestrators.radar_cycle import RadarOrchestrator

logger = logging.getLogger("ims_radar.orchestrators.scheduler")


class CountdownDisplay(Protocol):
    """Where the loop renders the time left until the next cycle."""

    def show(self, text: str) -> None: ...

    def hide(self) -> None: ...


class NullCountdownDisplay:
    """Display that renders nothing."""

    def show(self, text: str) -> None:
        pass

    def hide(self) -> None:
        pass


def format_countdown(remaining: timedelta) -> str:
    """Format *remaining* as ``mm:ss``, rounding partial seconds up."""
    seconds = max(0, math.ceil(remaining.total_seconds()))
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes:02d}:{seconds:02d}"


class CycleScheduler:
    """Drives ``RadarOrchestrator.run_cycle()`` at a fixed interval.

    Args:
        orchestrator: The orchestrator to trigger.
        interval_seconds: Time between consecutive cycle starts.
        poll_interval_seconds: Polling quantum of the loop.
        display: Countdown renderer; defaults to rendering nothing.
        clock: Wall clock (injected by tests).
        sleep: Sleep function; defaults to waiting on the stop event so that
            ``stop()`` interrupts the countdown immediately.
    """

    def __init__(
        self,
        orchestrator: RadarOrchestrator,
        *,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        display: CountdownDisplay | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        if poll_interval_seconds <= 0:
            msg = f"poll_interval_seconds must be > 0, got {poll_interval_seconds}"
            raise ValueError(msg)
        if interval_seconds <= poll_interval_seconds:
            msg = (
                f"interval_seconds ({interval_seconds}) must exceed "
                f"poll_interval_seconds ({poll_interval_seconds})"
            )
            raise ValueError(msg)

        self._orchestrator = orchestrator
        self.interval = timedelta(seconds=interval_seconds)
        self.poll_interval_seconds = poll_interval_seconds
        self._display = display or NullCountdownDisplay()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait
        self.next_run: datetime | None = None
        self.cycles_run = 0
        self.cycles_failed = 0

    def stop(self) -> None:
        """Ask the loop to exit; an in-flight cycle is allowed to finish."""
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def run(self, max_cycles: int | None = None) -> int:
        """Run the loop until ``stop()`` or *max_cycles* cycles have run.

        Returns:
            The number of cycles triggered by this call.
        """
        triggered = 0
        self.next_run = self._clock()
        logger.info(
            "Scheduler started | interval=%.1fs | poll=%.2fs | first_run=%s",
            self.interval.total_seconds(),
            self.poll_interval_seconds,
            self.next_run.isoformat(),
        )

        while not self._stop.is_set():
            remaining = self.next_run - self._clock()
            if remaining <= timedelta(0):
                self._display.hide()
                self._trigger()
                triggered += 1
                self.next_run = self._advance(self.next_run)
                if max_cycles is not None and triggered >= max_cycles:
                    break
            else:
                self._display.show(f"Next download in: {format_countdown(remaining)}")
                self._sleep(self.poll_interval_seconds)

        self._display.hide()
        logger.info(
            "Scheduler stopped | cycles=%d | failed=%d",
            self.cycles_run,
            self.cycles_failed,
        )
        return triggered

    def _trigger(self) -> None:
        self.cycles_run += 1
        try:
            self._orchestrator.run_cycle()
        except RadarError:
            self.cycles_failed += 1
            logger.exception(
                "Scheduled cycle failed | cycle_number=%d | state=%s",
                self.cycles_run,
                self._orchestrator.state,
            )
            return

        if self._orchestrator.state is not CycleState.WAITING:
            msg = f"Cycle returned in state {self._orchestrator.state}, expected Waiting"
            raise CycleStateError(msg)

    def _advance(self, target: datetime) -> datetime:
        """Move *target* forward one interval, skipping intervals already past."""
        target += self.interval
        now = self._clock()
        skipped = 0
        while target < now:
            target += self.interval
            skipped += 1
        if skipped:
            logger.warning(
                "Cycle overran its interval | skipped=%d | next_run=%s",
                skipped,
                target.isoformat(),
            )
        return target
