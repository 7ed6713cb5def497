"""HarnessRunner — sequential driver over many trials.

Trials never overlap. The first failing trial ends the run and its
exception propagates to the caller unchanged.
"""

from datetime import datetime, timezone

import structlog

from commitrace.orchestration.models import HarnessRun, TrialResult
from commitrace.orchestration.trial import TrialRunner

logger = structlog.get_logger()


class HarnessRunner:
    """Runs ``TrialRunner.run`` for trial indices 0..trials-1."""

    def __init__(self, trial_runner: TrialRunner) -> None:
        self._trial_runner = trial_runner
        self._completed = 0

    @property
    def completed_count(self) -> int:
        return self._completed

    async def run(self, trials: int) -> HarnessRun:
        if trials < 0:
            raise ValueError("trials must be non-negative")

        started_at = datetime.now(timezone.utc)
        logger.info(
            "Harness starting",
            trials=trials,
            highest_id=self._trial_runner.highest_id,
        )

        results: list[TrialResult] = []
        for trial_index in range(trials):
            result = await self._trial_runner.run(trial_index)
            results.append(result)
            self._completed += 1

        run = HarnessRun(
            requested_trials=trials,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            results=results,
        )
        logger.info(
            "Harness complete",
            completed=run.completed_count,
            duration_ms=round(run.total_duration_ms, 1),
        )
        return run
