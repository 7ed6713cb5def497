"""Centralized environment-based settings for CommitRace.

Every value is optional; the defaults reproduce the fixed harness:
1000 trials, keys 0..200, synchronous=NORMAL, rollback journal.

Usage:
    from commitrace.config.settings import get_settings
    settings = get_settings()
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from commitrace.store.pool import JournalMode, SynchronousMode


@dataclass(frozen=True)
class CommitRaceSettings:
    """Immutable harness settings loaded from environment."""

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # Trial shape
    trials: int = 1000
    highest_id: int = 200

    # Durability
    synchronous: SynchronousMode = SynchronousMode.NORMAL
    journal_mode: JournalMode = JournalMode.DELETE

    # Storage
    base_dir: Path | None = None

    def resolved_base_dir(self) -> Path:
        return self.base_dir if self.base_dir is not None else Path(tempfile.gettempdir())


def get_settings() -> CommitRaceSettings:
    """Load settings from environment variables.

    Environment variables (all optional):
        COMMITRACE_LOG_LEVEL: Logging level (default: INFO)
        COMMITRACE_JSON_LOGS: Render logs as JSON (default: false)
        COMMITRACE_TRIALS: Number of sequential trials (default: 1000)
        COMMITRACE_HIGHEST_ID: Highest key seeded into store A (default: 200)
        COMMITRACE_SYNCHRONOUS: OFF, NORMAL, FULL or EXTRA (default: NORMAL)
        COMMITRACE_JOURNAL_MODE: DELETE, TRUNCATE, PERSIST, MEMORY, WAL or OFF
            (default: DELETE)
        COMMITRACE_BASE_DIR: Parent directory for per-trial stores
            (default: system temp dir)
    """
    def _bool(key: str, default: bool = False) -> bool:
        val = os.environ.get(key, "").lower()
        if val in ("1", "true", "yes"):
            return True
        if val in ("0", "false", "no"):
            return False
        return default

    base_dir = os.environ.get("COMMITRACE_BASE_DIR")

    return CommitRaceSettings(
        log_level=os.environ.get("COMMITRACE_LOG_LEVEL", "INFO").upper(),
        json_logs=_bool("COMMITRACE_JSON_LOGS", False),
        trials=int(os.environ.get("COMMITRACE_TRIALS", "1000")),
        highest_id=int(os.environ.get("COMMITRACE_HIGHEST_ID", "200")),
        synchronous=SynchronousMode(
            os.environ.get("COMMITRACE_SYNCHRONOUS", "NORMAL").upper()
        ),
        journal_mode=JournalMode(
            os.environ.get("COMMITRACE_JOURNAL_MODE", "DELETE").upper()
        ),
        base_dir=Path(base_dir) if base_dir else None,
    )
