"""Process entry point — IMS Radar Acquisition Service.

Wires configuration, logging, the orchestrator, a console observer, and the
scheduling loop together.  All behaviour lives in the ``ims_radar`` package;
this file is only the wiring layer.

Usage::

    RADAR_WORK_FOLDER=/data/radar python radar_app.py
    python radar_app.py --work-folder /data/radar --once

Ctrl-C (SIGINT) or SIGTERM stops the loop once the cycle in flight finishes.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import TYPE_CHECKING, TextIO

from ims_radar import __version__
from ims_radar.core.config import ConfigValidationError, RadarConfig
from ims_radar.core.exceptions import RadarError
from ims_radar.core.observable import ObservedField
from ims_radar.orchestrators.radar_cycle import RadarOrchestrator
from ims_radar.orchestrators.scheduler import CycleScheduler
from ims_radar.providers.base import SourceError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ims_radar.core.observable import StatusChange

logger = logging.getLogger("ims_radar.app")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ConsoleCountdown:
    """Renders the countdown on one rewritten terminal line."""

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        self._stream = stream
        self._visible = False

    def show(self, text: str) -> None:
        self._stream.write(f"\r{text}")
        self._stream.flush()
        self._visible = True

    def hide(self) -> None:
        if self._visible:
            self._stream.write("\r\033[K")
            self._stream.flush()
            self._visible = False


def log_status_change(change: StatusChange) -> None:
    """Console observer: title line on state changes, progress at debug level."""
    if change.field is ObservedField.STATE:
        logger.info("Radar - %s", change.value)
    elif change.field is ObservedField.PROGRESS:
        logger.debug("Progress %s%%", change.value)
    else:
        logger.error("Radar - cycle failed | %s", change.value)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ims-radar",
        description="Download the latest IMS radar images and convert them to GeoTIFF.",
    )
    parser.add_argument("--work-folder", help="Folder for images (env: RADAR_WORK_FOLDER)")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit instead of scheduling",
    )
    parser.add_argument(
        "--interval",
        type=float,
        dest="interval_seconds",
        help="Seconds between cycle starts (env: RADAR_INTERVAL_SECONDS, default 300)",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        dest="poll_interval_seconds",
        help="Scheduler polling quantum in seconds (default 0.1)",
    )
    parser.add_argument(
        "--window",
        type=int,
        dest="window_minutes",
        help="Minutes of history per cycle (default 200)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=_LOG_FORMAT,
    )
    # httpx logs every request at INFO; 200 per cycle drowns the cycle log.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        config = RadarConfig.from_env(
            work_folder=args.work_folder,
            interval_seconds=args.interval_seconds,
            poll_interval_seconds=args.poll_interval_seconds,
            window_minutes=args.window_minutes,
        )
    except (ConfigValidationError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    try:
        orchestrator = RadarOrchestrator.from_config(config)
    except SourceError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    with orchestrator:
        orchestrator.subscribe(log_status_change)

        if args.once:
            try:
                summary = orchestrator.run_cycle()
            except RadarError as exc:
                logger.error("Cycle failed: %s", exc)
                return 1
            return 0 if summary["status"] == "completed" else 1

        scheduler = CycleScheduler(
            orchestrator,
            interval_seconds=config.interval_seconds,
            poll_interval_seconds=config.poll_interval_seconds,
            display=ConsoleCountdown(),
        )

        def _request_stop(signum: int, _frame: object) -> None:
            logger.info("Stop requested (signal %d); finishing current cycle", signum)
            scheduler.stop()

        signal.signal(signal.SIGINT, _request_stop)
        signal.signal(signal.SIGTERM, _request_stop)
        scheduler.run()

    return 0


if __name__ == "__main__":
    sys.exit(main())
