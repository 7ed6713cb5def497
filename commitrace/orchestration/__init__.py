"""Orchestration layer — race scheduling, single trials, and the trial driver."""

from commitrace.orchestration.models import HarnessRun, TrialPhase, TrialResult
from commitrace.orchestration.race import RaceOutcome, race
from commitrace.orchestration.runner import HarnessRunner
from commitrace.orchestration.trial import TrialRunner, WriteLoad

__all__ = [
    "HarnessRun",
    "HarnessRunner",
    "RaceOutcome",
    "TrialPhase",
    "TrialResult",
    "TrialRunner",
    "WriteLoad",
    "race",
]
