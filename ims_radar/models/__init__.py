"""Domain models for the radar acquisition service."""

from ims_radar.models.candidate import Candidate, CycleState, ModelValidationError

__all__ = ["Candidate", "CycleState", "ModelValidationError"]
