"""Orchestration models — trial phases and immutable trial records."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class TrialPhase(str, Enum):
    """Sequential states of a single trial."""
    PROVISIONING = "PROVISIONING"
    SCHEMA_INIT = "SCHEMA_INIT"
    SEEDING = "SEEDING"
    RACING = "RACING"
    ASSERTING = "ASSERTING"
    TEARING_DOWN = "TEARING_DOWN"
    DONE = "DONE"


class TrialResult(BaseModel):
    """Outcome of one passing trial.

    Failing trials raise ConsistencyViolation instead of producing a
    record.
    """

    model_config = ConfigDict(frozen=True)

    trial_index: int = Field(..., ge=0)
    passed: bool = Field(
        default=True,
        description="Always True; a failing trial raises ConsistencyViolation instead",
    )
    highest_id: int = Field(..., ge=0)
    observed_ids: list[int] = Field(default_factory=list)
    writer_iterations: int = Field(
        default=0,
        ge=0,
        description="Committed delete transactions on store B during the race",
    )
    started_at: datetime = Field(...)
    finished_at: datetime = Field(...)
    duration_ms: float = Field(default=0.0, ge=0.0)


class HarnessRun(BaseModel):
    """Record of a sequence of trials that all passed."""

    model_config = ConfigDict(frozen=True)

    run_id: UUID = Field(default_factory=uuid4)
    requested_trials: int = Field(..., ge=0)
    started_at: datetime = Field(...)
    finished_at: Optional[datetime] = Field(default=None)
    results: list[TrialResult] = Field(default_factory=list)

    @property
    def completed_count(self) -> int:
        return len(self.results)

    @property
    def total_duration_ms(self) -> float:
        return sum(r.duration_ms for r in self.results)
