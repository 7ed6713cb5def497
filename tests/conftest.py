"""Shared test fixtures for CommitRace tests.

Every store is created under pytest's tmp_path so tests never touch
the system temp directory.
"""

from pathlib import Path

import pytest

from commitrace.store.pool import PoolOptions
from commitrace.store.provisioner import StoreProvisioner


# ---------------------------------------------------------------------------
# Store locations
# ---------------------------------------------------------------------------
@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """A database path that does not exist yet."""
    return tmp_path / "stores" / "test.db"


@pytest.fixture
def provisioner(tmp_path: Path) -> StoreProvisioner:
    """Provisioner rooted in the test's temporary directory."""
    return StoreProvisioner(base_dir=tmp_path / "trials")


# ---------------------------------------------------------------------------
# Pool options
# ---------------------------------------------------------------------------
@pytest.fixture
def default_options() -> PoolOptions:
    """synchronous=NORMAL, rollback journal, recursive triggers on."""
    return PoolOptions()
