"""Unified exception taxonomy.

Provides a shared base exception hierarchy for the orchestrator, its phase
runners, and the external collaborators (radar source, image converter).
Every domain exception inherits from ``RadarError`` and carries structured
context fields that drive retry decisions and operator diagnostics.

Taxonomy categories
-------------------
- ``ValidationError``   — configuration/model violations, never retryable.
- ``TransientError``    — temporary failures (network, throttle), retryable.
- ``PermanentError``    — unrecoverable failures, not retryable.
- ``ContractError``     — broken invariants between components, never retryable.

Every exception exposes ``to_error_dict()`` for a stable structured error
payload, which is also what subscribers receive on the ``error`` channel
when a cycle fails.
"""

from __future__ import annotations


class RadarError(Exception):
    """Base exception for all radar-service errors.

    Attributes:
        message: Human-readable error description.
        stage: Cycle stage where the error occurred
            (e.g. ``"candidates"``, ``"acquisition"``).
        code: Machine-readable error code (e.g. ``"FETCH_FAILED"``).
        retryable: Whether the caller may retry the operation.
        cycle_id: Identifier of the cycle during which the error occurred.
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool = False,
        cycle_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.cycle_id = cycle_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
            "retryable": self.retryable,
            "cycle_id": self.cycle_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(RadarError):
    """Configuration or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(RadarError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(RadarError):
    """Unrecoverable failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(RadarError):
    """A component broke an invariant another component relies on."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Cycle-level errors
# ---------------------------------------------------------------------------


class WorkFolderError(PermanentError):
    """The work folder is missing or cannot be listed."""

    default_stage = "candidates"
    default_code = "WORK_FOLDER_UNAVAILABLE"


class ManifestWriteError(PermanentError):
    """The ``Dates`` folder or one of the dated manifest logs cannot be written."""

    default_stage = "candidates"
    default_code = "MANIFEST_WRITE_FAILED"


class CycleInProgressError(ContractError):
    """``run_cycle()`` was invoked while another cycle is still running."""

    default_stage = "orchestrator"
    default_code = "CYCLE_IN_PROGRESS"


class CycleStateError(ContractError):
    """A cycle returned without resetting the orchestrator to ``Waiting``."""

    default_stage = "scheduler"
    default_code = "CYCLE_STATE_INVALID"
