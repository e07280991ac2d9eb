"""Shared pytest fixtures for the IMS radar test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from ims_radar.core.observable import ObservedField, StatusChange

# ---------------------------------------------------------------------------
# Clock fixtures
# ---------------------------------------------------------------------------

#: 2026-03-15 12:34:56.789 UTC, not on a minute boundary.
FIXED_NOW = datetime(2026, 3, 15, 12, 34, 56, 789_000, tzinfo=UTC)


class FakeClock:
    """Manually advanced wall clock whose ``sleep`` moves time forward."""

    def __init__(self, start: datetime = FIXED_NOW) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class ChangeRecorder:
    """Subscriber that keeps every ``StatusChange`` it receives."""

    def __init__(self) -> None:
        self.changes: list[StatusChange] = []

    def __call__(self, change: StatusChange) -> None:
        self.changes.append(change)

    def values(self, field: ObservedField) -> list[object]:
        return [c.value for c in self.changes if c.field is field]

    @property
    def states(self) -> list[object]:
        return self.values(ObservedField.STATE)

    @property
    def progress(self) -> list[object]:
        return self.values(ObservedField.PROGRESS)

    @property
    def errors(self) -> list[object]:
        return self.values(ObservedField.ERROR)


@pytest.fixture()
def fake_clock() -> FakeClock:
    """Return a fake clock starting at ``FIXED_NOW``."""
    return FakeClock()


@pytest.fixture()
def recorder() -> ChangeRecorder:
    """Return an empty change recorder."""
    return ChangeRecorder()


# ---------------------------------------------------------------------------
# Filesystem fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def work_folder(tmp_path: Path) -> Path:
    """Return an existing, empty work folder."""
    folder = tmp_path / "radar"
    folder.mkdir()
    return folder
