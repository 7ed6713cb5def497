"""CommitRace CLI — run the read-after-commit consistency harness.

Usage:
    python -m commitrace                      1000 trials, default settings
    python -m commitrace --trials 50          Fewer trials
    python -m commitrace --journal-mode WAL   Different journal mode

Exits with status 1 on the first failed trial.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from commitrace.config.settings import CommitRaceSettings, get_settings
from commitrace.exceptions import CommitRaceError
from commitrace.orchestration.runner import HarnessRunner
from commitrace.orchestration.trial import TrialRunner
from commitrace.store.pool import JournalMode, PoolOptions, SynchronousMode
from commitrace.store.provisioner import StoreProvisioner
from commitrace.utils.logging import configure_logging

logger = structlog.get_logger()


def _parse_args(settings: CommitRaceSettings, argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="commitrace",
        description="Read-after-commit consistency harness for pooled SQLite connections",
    )
    parser.add_argument(
        "--trials",
        type=int,
        default=settings.trials,
        help=f"Number of sequential trials (default: {settings.trials})",
    )
    parser.add_argument(
        "--highest-id",
        type=int,
        default=settings.highest_id,
        help=f"Highest key seeded into store A (default: {settings.highest_id})",
    )
    parser.add_argument(
        "--synchronous",
        type=lambda v: SynchronousMode(v.upper()),
        metavar="{" + ",".join(m.value for m in SynchronousMode) + "}",
        default=settings.synchronous,
        help="PRAGMA synchronous for both connections",
    )
    parser.add_argument(
        "--journal-mode",
        type=lambda v: JournalMode(v.upper()),
        metavar="{" + ",".join(m.value for m in JournalMode) + "}",
        default=settings.journal_mode,
        help="PRAGMA journal_mode for the writer",
    )
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=settings.resolved_base_dir(),
        help=f"Parent directory for per-trial stores (default: {settings.resolved_base_dir()})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level,
        help="Logging level",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=settings.json_logs,
        help="Render logs as JSON",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> int:
    options = PoolOptions(
        synchronous=args.synchronous,
        journal_mode=args.journal_mode,
    )
    trial_runner = TrialRunner(
        provisioner=StoreProvisioner(base_dir=args.base_dir),
        options=options,
        highest_id=args.highest_id,
    )
    harness = HarnessRunner(trial_runner)

    try:
        await harness.run(args.trials)
    except CommitRaceError as exc:
        logger.error(
            "Harness aborted",
            error=str(exc),
            error_type=type(exc).__name__,
            completed=harness.completed_count,
        )
        print(str(exc), file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    args = _parse_args(settings, argv)
    configure_logging(args.log_level, json_output=args.json_logs)
    return asyncio.run(_run(args))


if __name__ == "__main__":
    sys.exit(main())
