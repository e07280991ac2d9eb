"""Tests for the acquisition and transformation phase runners.

Each phase is driven against a real ``CycleStatus`` with a recording
subscriber, a mocked fetch capability and a mocked transform capability.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from conftest import ChangeRecorder

from ims_radar.activities.window import build_window
from ims_radar.core.observable import CycleStatus
from ims_radar.models.candidate import Candidate, CycleState
from ims_radar.orchestrators.phases import (
    AcquisitionResult,
    TransformationResult,
    _fetch_with_retry,
    build_cycle_summary,
    run_acquisition_phase,
    run_transformation_phase,
)
from ims_radar.providers.base import (
    FetchError,
    SourceNotFoundError,
    SourceUnavailableError,
)

NOW = datetime(2026, 3, 15, 12, 34, tzinfo=UTC)
PNG_BYTES = b"\x89PNG\r\n\x1a\nradar"


def _candidates(folder: Path, size: int = 200) -> list[Candidate]:
    return build_window(NOW, folder, size=size)


def _status_with(recorder: ChangeRecorder) -> CycleStatus:
    status = CycleStatus()
    status.subscribe(recorder)
    return status


def _source(payload: bytes = PNG_BYTES) -> MagicMock:
    source = MagicMock()
    source.fetch.return_value = payload
    return source


# ===================================================================
# Acquisition phase
# ===================================================================


class TestAcquisitionPhase:
    """run_acquisition_phase with a mocked source."""

    def test_progress_sequence_for_full_window(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        """200 candidates → progress ceil(100·k/200) for k=1..200, then 100."""
        status = _status_with(recorder)
        status.set_progress(37)  # leftover from a previous phase
        recorder.changes.clear()

        run_acquisition_phase(
            status, _candidates(work_folder), _source(), settle_delay_seconds=0, sleep=MagicMock()
        )

        expected = [0]
        for k in range(1, 201):
            value = math.ceil(100 * k / 200)
            if value != expected[-1]:
                expected.append(value)
        assert recorder.progress == expected
        assert recorder.progress[-1] == 100

    def test_progress_is_monotonic(self, work_folder: Path, recorder: ChangeRecorder) -> None:
        status = _status_with(recorder)
        run_acquisition_phase(
            status, _candidates(work_folder, 7), _source(), settle_delay_seconds=0
        )
        values = recorder.progress
        assert values == sorted(values)
        assert values[-1] == 100

    def test_state_sequence_non_empty(self, work_folder: Path, recorder: ChangeRecorder) -> None:
        status = _status_with(recorder)
        run_acquisition_phase(
            status, _candidates(work_folder, 3), _source(), settle_delay_seconds=0
        )
        assert recorder.states == [CycleState.DOWNLOADING, CycleState.DOWNLOAD_COMPLETED]

    def test_empty_list_skips_downloading(self, recorder: ChangeRecorder) -> None:
        status = _status_with(recorder)
        source = _source()

        result = run_acquisition_phase(status, [], source, settle_delay_seconds=0)

        assert recorder.states == [CycleState.DOWNLOAD_COMPLETED]
        assert status.progress == 100
        assert result["total"] == 0
        source.fetch.assert_not_called()

    def test_writes_payload_to_local_path(self, work_folder: Path) -> None:
        candidates = _candidates(work_folder, 2)

        result = run_acquisition_phase(
            CycleStatus(), candidates, _source(), settle_delay_seconds=0
        )

        for candidate in candidates:
            assert candidate.local_path.read_bytes() == PNG_BYTES
        assert result["fetched"] == 2
        assert result["bytes_written"] == 2 * len(PNG_BYTES)

    def test_fetches_in_descending_order(self, work_folder: Path) -> None:
        candidates = _candidates(work_folder, 3)
        source = _source()

        run_acquisition_phase(CycleStatus(), candidates, source, settle_delay_seconds=0)

        urls = [call.args[0] for call in source.fetch.call_args_list]
        assert urls == [c.remote_url for c in candidates]

    def test_failure_skips_and_continues(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        candidates = _candidates(work_folder, 3)
        source = MagicMock()
        source.fetch.side_effect = [
            PNG_BYTES,
            FetchError("ims", candidates[1].remote_url, "HTTP 403", retryable=False),
            PNG_BYTES,
        ]
        status = _status_with(recorder)

        result = run_acquisition_phase(status, candidates, source, settle_delay_seconds=0)

        assert result["fetched"] == 2
        assert result["failed"] == 1
        assert result["failures"][0]["candidate"] == candidates[1].canonical_name
        assert result["failures"][0]["code"] == "FETCH_FAILED"
        assert not candidates[1].local_path.exists()
        assert recorder.progress[-1] == 100
        assert recorder.states[-1] is CycleState.DOWNLOAD_COMPLETED

    def test_not_published_is_counted_separately(self, work_folder: Path) -> None:
        candidates = _candidates(work_folder, 2)
        source = MagicMock()
        source.fetch.side_effect = [
            SourceNotFoundError("ims", candidates[0].remote_url, "404"),
            PNG_BYTES,
        ]

        result = run_acquisition_phase(CycleStatus(), candidates, source, settle_delay_seconds=0)

        assert result["not_published"] == 1
        assert result["failed"] == 0
        assert result["fetched"] == 1

    def test_transient_error_is_retried(self, work_folder: Path) -> None:
        candidates = _candidates(work_folder, 1)
        source = MagicMock()
        source.fetch.side_effect = [
            FetchError("ims", candidates[0].remote_url, "HTTP 503", retryable=True),
            PNG_BYTES,
        ]

        result = run_acquisition_phase(
            CycleStatus(), candidates, source, max_retries=2, settle_delay_seconds=0
        )

        assert result["fetched"] == 1
        assert result["retries"] == 1
        assert source.fetch.call_count == 2

    def test_retries_on_skipped_item_are_counted(self, work_folder: Path) -> None:
        candidates = _candidates(work_folder, 1)
        source = MagicMock()
        source.fetch.side_effect = SourceUnavailableError("ims", "u", "HTTP 503")

        result = run_acquisition_phase(
            CycleStatus(), candidates, source, max_retries=2, settle_delay_seconds=0
        )

        assert result["failed"] == 1
        assert result["retries"] == 2
        assert result["failures"][0]["code"] == "SOURCE_UNAVAILABLE"

    def test_retries_before_not_published_are_counted(self, work_folder: Path) -> None:
        candidates = _candidates(work_folder, 1)
        source = MagicMock()
        source.fetch.side_effect = [
            SourceUnavailableError("ims", "u", "HTTP 503"),
            SourceNotFoundError("ims", "u", "404"),
        ]

        result = run_acquisition_phase(
            CycleStatus(), candidates, source, max_retries=2, settle_delay_seconds=0
        )

        assert result["not_published"] == 1
        assert result["retries"] == 1

    def test_persist_failure_skips_item(self, tmp_path: Path) -> None:
        candidates = _candidates(tmp_path / "gone", 2)

        result = run_acquisition_phase(
            CycleStatus(), candidates, _source(), settle_delay_seconds=0
        )

        assert result["failed"] == 2
        assert result["fetched"] == 0

    def test_holds_settle_delay(self, work_folder: Path) -> None:
        sleep = MagicMock()
        run_acquisition_phase(
            CycleStatus(), _candidates(work_folder, 1), _source(),
            settle_delay_seconds=1.5, sleep=sleep,
        )
        sleep.assert_called_once_with(1.5)


class TestFetchWithRetry:
    """Retry helper semantics."""

    def test_non_retryable_raises_immediately(self) -> None:
        source = MagicMock()
        source.fetch.side_effect = FetchError("ims", "u", "HTTP 400", retryable=False)

        with pytest.raises(FetchError):
            _fetch_with_retry(source, "u", max_retries=3)
        assert source.fetch.call_count == 1

    def test_retries_exhausted_raises_last_error(self) -> None:
        source = MagicMock()
        source.fetch.side_effect = FetchError("ims", "u", "timeout", retryable=True)

        with pytest.raises(FetchError) as exc_info:
            _fetch_with_retry(source, "u", max_retries=2)
        assert "timeout" in exc_info.value.message
        # 1 initial + 2 retries = 3 total attempts
        assert source.fetch.call_count == 3

    def test_zero_retries(self) -> None:
        source = MagicMock()
        source.fetch.side_effect = FetchError("ims", "u", "timeout", retryable=True)

        with pytest.raises(FetchError):
            _fetch_with_retry(source, "u", max_retries=0)
        assert source.fetch.call_count == 1


# ===================================================================
# Transformation phase
# ===================================================================


class TestTransformationPhase:
    """run_transformation_phase with a mocked transform."""

    def test_present_items_emit_pairs(self, work_folder: Path, recorder: ChangeRecorder) -> None:
        candidates = _candidates(work_folder, 3)
        for candidate in candidates:
            candidate.local_path.write_bytes(PNG_BYTES)
        transform = MagicMock()
        status = _status_with(recorder)

        result = run_transformation_phase(status, candidates, transform, settle_delay_seconds=0)

        assert recorder.states == [
            CycleState.IMAGE_PROCESSING,
            CycleState.IMAGE_PROCESSED,
        ] * 3
        assert [call.args[0] for call in transform.call_args_list] == [
            c.local_path for c in candidates
        ]
        assert result["processed"] == 3

    def test_missing_items_do_not_transition(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        candidates = _candidates(work_folder, 4)
        transform = MagicMock()
        status = _status_with(recorder)

        result = run_transformation_phase(status, candidates, transform, settle_delay_seconds=0)

        assert recorder.states == []
        assert result["missing"] == 4
        transform.assert_not_called()
        assert status.progress == 100

    def test_exercise_missing_emits_pairs(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        candidates = _candidates(work_folder, 2)
        sleep = MagicMock()
        status = _status_with(recorder)

        result = run_transformation_phase(
            status,
            candidates,
            MagicMock(),
            settle_delay_seconds=0,
            sleep=sleep,
            exercise_missing=True,
            exercise_delay_seconds=0.05,
        )

        assert recorder.states == [
            CycleState.IMAGE_PROCESSING,
            CycleState.IMAGE_PROCESSED,
        ] * 2
        assert result["missing"] == 2
        # two simulated delays per item, then the settle delay
        assert sleep.call_count == 5

    def test_progress_reaches_100_on_last_item(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        candidates = _candidates(work_folder, 3)
        status = _status_with(recorder)
        status.set_progress(100)
        recorder.changes.clear()

        run_transformation_phase(status, candidates, MagicMock(), settle_delay_seconds=0)

        assert recorder.progress == [0, 34, 67, 100]

    def test_progress_monotonic_for_full_window(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        status = _status_with(recorder)
        run_transformation_phase(
            status, _candidates(work_folder), MagicMock(), settle_delay_seconds=0
        )
        values = recorder.progress
        assert values == sorted(values)
        assert values[-1] == 100

    def test_transform_failure_is_absorbed(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        from ims_radar.activities.convert_image import ConversionError

        candidates = _candidates(work_folder, 2)
        for candidate in candidates:
            candidate.local_path.write_bytes(PNG_BYTES)
        transform = MagicMock(side_effect=[ConversionError("corrupt"), None])
        status = _status_with(recorder)

        result = run_transformation_phase(status, candidates, transform, settle_delay_seconds=0)

        assert result["failed"] == 1
        assert result["processed"] == 1
        assert result["failures"][0]["code"] == "CONVERSION_FAILED"
        assert recorder.states[-1] is CycleState.IMAGE_PROCESSED

    def test_unexpected_transform_error_is_absorbed(
        self, work_folder: Path, recorder: ChangeRecorder
    ) -> None:
        candidates = _candidates(work_folder, 2)
        for candidate in candidates:
            candidate.local_path.write_bytes(PNG_BYTES)
        transform = MagicMock(side_effect=ValueError("bad pixel"))
        status = _status_with(recorder)

        result = run_transformation_phase(status, candidates, transform, settle_delay_seconds=0)

        assert result["failed"] == 2
        assert result["failures"][0]["code"] == "TRANSFORM_UNEXPECTED_ERROR"
        assert "bad pixel" in result["failures"][0]["message"]
        assert recorder.states == [
            CycleState.IMAGE_PROCESSING,
            CycleState.IMAGE_PROCESSED,
        ] * 2
        assert status.progress == 100

    def test_empty_list(self, recorder: ChangeRecorder) -> None:
        status = _status_with(recorder)
        status.set_progress(50)
        recorder.changes.clear()

        result = run_transformation_phase(status, [], MagicMock(), settle_delay_seconds=0)

        assert recorder.progress == [0, 100]
        assert result["total"] == 0

    def test_holds_settle_delay(self) -> None:
        sleep = MagicMock()
        run_transformation_phase(
            CycleStatus(), [], MagicMock(), settle_delay_seconds=1.5, sleep=sleep
        )
        sleep.assert_called_once_with(1.5)


# ===================================================================
# Cycle summary
# ===================================================================


def _acquisition(**overrides: object) -> AcquisitionResult:
    base: dict[str, object] = {
        "total": 2,
        "fetched": 1,
        "not_published": 1,
        "failed": 0,
        "retries": 0,
        "bytes_written": 10,
        "failures": [],
        "duration_seconds": 0.1,
    }
    base.update(overrides)
    return AcquisitionResult(**base)  # type: ignore[typeddict-item]


def _transformation(**overrides: object) -> TransformationResult:
    base: dict[str, object] = {
        "total": 2,
        "processed": 1,
        "missing": 1,
        "failed": 0,
        "failures": [],
        "duration_seconds": 0.1,
    }
    base.update(overrides)
    return TransformationResult(**base)  # type: ignore[typeddict-item]


class TestBuildCycleSummary:
    """build_cycle_summary status and counts."""

    def test_completed_when_nothing_failed(self) -> None:
        summary = build_cycle_summary(
            _acquisition(),
            _transformation(),
            cycle_id="abc",
            started_at="2026-03-15T12:34:00+00:00",
            window_size=200,
            candidate_names=["2026_03_15_12_34", "2026_03_15_12_33"],
        )
        assert summary["status"] == "completed"
        assert summary["candidate_count"] == 2
        assert summary["already_present"] == 198
        assert summary["fetched"] == 1
        assert summary["processed"] == 1

    def test_partial_when_an_item_failed(self) -> None:
        summary = build_cycle_summary(
            _acquisition(failed=1),
            _transformation(),
            cycle_id="abc",
            started_at="",
            window_size=200,
            candidate_names=[],
        )
        assert summary["status"] == "partial"
