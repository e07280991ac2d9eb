"""Typed models exchanged between the orchestrator and its phase runners.

- ``CycleState``: the orchestrator's one-at-a-time state machine value
- ``Candidate``: one time-indexed radar image and its local artifact path

Design notes:
- Candidates are frozen dataclasses; a cycle replaces its list wholesale
  and never mutates an item.
- ``CycleState`` values are the display strings observers receive.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ims_radar.core.constants import (
    ARTIFACT_EXTENSION,
    CANONICAL_NAME_FORMAT,
    COMPACT_TIMESTAMP_FORMAT,
    CONVERTED_EXTENSION,
    REMOTE_SUFFIX,
)
from ims_radar.core.exceptions import ValidationError

if TYPE_CHECKING:
    from datetime import datetime


class ModelValidationError(ValueError, ValidationError):
    """Raised when a domain model is constructed with invalid field values.

    Attributes:
        model: Name of the model class that failed validation.
        field_name: The field that violated the invariant.
        value: The invalid value.
    """

    default_stage = "model_validation"
    default_code = "MODEL_VALIDATION_FAILED"

    def __init__(self, model: str, field_name: str, value: object, message: str) -> None:
        self.model = model
        self.field_name = field_name
        self.value = value
        formatted = f"{model}.{field_name}={value!r}: {message}"
        ValidationError.__init__(self, formatted)


class CycleState(enum.Enum):
    """Lifecycle state of the radar orchestrator.

    Values:
        WAITING:            Idle between cycles.
        INITIALIZING:       Building the candidate list and dated manifest.
        DOWNLOADING:        Fetching candidates (only when the list is non-empty).
        DOWNLOAD_COMPLETED: Acquisition phase finished.
        IMAGE_PROCESSING:   Converting one downloaded image.
        IMAGE_PROCESSED:    The current image has been converted.
    """

    WAITING = "Waiting"
    INITIALIZING = "Initializing"
    DOWNLOADING = "Downloading"
    DOWNLOAD_COMPLETED = "DownloadCompleted"
    IMAGE_PROCESSING = "ImageProcessing"
    IMAGE_PROCESSED = "ImageProcessed"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Candidate:
    """One radar image expected for a given minute.

    Attributes:
        timestamp: The minute this image covers (seconds are always zero).
        remote_url: Where the image is published.
        canonical_name: Local artifact stem, ``yyyy_MM_dd_HH_mm``.
        local_path: ``{work_folder}/{canonical_name}.png``.
    """

    timestamp: datetime
    remote_url: str
    canonical_name: str
    local_path: Path

    def __post_init__(self) -> None:
        if self.timestamp.second or self.timestamp.microsecond:
            raise ModelValidationError(
                "Candidate",
                "timestamp",
                self.timestamp,
                "must be rounded down to the minute",
            )
        if not self.remote_url:
            raise ModelValidationError(
                "Candidate", "remote_url", self.remote_url, "must not be empty"
            )
        if not self.canonical_name:
            raise ModelValidationError(
                "Candidate", "canonical_name", self.canonical_name, "must not be empty"
            )

    @property
    def compact_timestamp(self) -> str:
        """Return the ``yyyyMMddHHmm`` form embedded in ``remote_url``."""
        return self.timestamp.strftime(COMPACT_TIMESTAMP_FORMAT)

    @property
    def converted_path(self) -> Path:
        """Return where the converter writes this candidate's GeoTIFF."""
        return self.local_path.with_suffix(CONVERTED_EXTENSION)

    @classmethod
    def for_minute(cls, minute: datetime, *, base_url: str, folder: Path) -> Candidate:
        """Derive the URL, canonical name and local path for *minute*."""
        canonical = minute.strftime(CANONICAL_NAME_FORMAT)
        return cls(
            timestamp=minute,
            remote_url=f"{base_url}{minute.strftime(COMPACT_TIMESTAMP_FORMAT)}{REMOTE_SUFFIX}",
            canonical_name=canonical,
            local_path=folder / f"{canonical}{ARTIFACT_EXTENSION}",
        )
