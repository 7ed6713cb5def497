"""Store provisioning — fresh on-disk locations for each trial.

Every store lives in its own temporary directory, which is removed
together with the database and its journal/WAL/SHM files when the
store is released.
"""

from __future__ import annotations

import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import structlog

from commitrace.exceptions import ProvisioningError
from commitrace.store.pool import PoolOptions, RolePartitionedPool

logger = structlog.get_logger()

DEFAULT_DB_FILENAME = "temp.db"


def prepare_location(path: Path) -> Path:
    """Create parent directories for a database path that must not exist yet.

    Raises:
        ProvisioningError: If the path is already occupied or the parent
            directory cannot be created.
    """
    if path.exists():
        raise ProvisioningError(f"Store location already exists: {path}", path=str(path))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ProvisioningError(
            f"Failed to create directory {path.parent}: {exc}", path=str(path),
        ) from exc
    return path


class StoreProvisioner:
    """Allocates one temporary directory per store and cleans it up."""

    def __init__(
        self,
        base_dir: Path | None = None,
        filename: str = DEFAULT_DB_FILENAME,
    ) -> None:
        self._base_dir = base_dir
        self._filename = filename

    @asynccontextmanager
    async def location(self, label: str) -> AsyncIterator[Path]:
        """Yield a fresh, non-existing database path; remove it afterwards."""
        try:
            if self._base_dir is not None:
                self._base_dir.mkdir(parents=True, exist_ok=True)
            temp_dir = tempfile.TemporaryDirectory(
                prefix=f"commitrace-{label}-",
                dir=self._base_dir,
            )
        except OSError as exc:
            raise ProvisioningError(
                f"Failed to create temporary directory: {exc}",
                path=str(self._base_dir) if self._base_dir else None,
            ) from exc

        try:
            path = prepare_location(Path(temp_dir.name) / self._filename)
            logger.debug("Store location provisioned", label=label, path=str(path))
            yield path
        finally:
            temp_dir.cleanup()
            logger.debug("Store location released", label=label)

    @asynccontextmanager
    async def open_store(
        self,
        label: str,
        options: PoolOptions | None = None,
    ) -> AsyncIterator[RolePartitionedPool]:
        """Provision a location and open a pool on it for the block."""
        async with self.location(label) as path:
            pool = await RolePartitionedPool.create(path, options)
            try:
                yield pool
            finally:
                if not pool.closed:
                    await pool.close()
