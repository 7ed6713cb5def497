"""Role-partitioned connection pool for one SQLite store.

Each store gets two sub-pools of exactly one connection each: a
writable connection that serializes every write, and a read-only
connection that SQLite itself refuses to write through. There is no
growth, queueing policy, timeout, or recycling; a borrower simply
suspends until the single connection of its role is free.
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import structlog
from pydantic import BaseModel, ConfigDict, Field

from commitrace.exceptions import PoolConnectionError
from commitrace.store.transaction import StatementRunner, Transaction

logger = structlog.get_logger()


class SynchronousMode(str, Enum):
    """SQLite ``PRAGMA synchronous`` levels, weakest to strongest."""
    OFF = "OFF"
    NORMAL = "NORMAL"
    FULL = "FULL"
    EXTRA = "EXTRA"


class JournalMode(str, Enum):
    """SQLite ``PRAGMA journal_mode`` values."""
    DELETE = "DELETE"
    TRUNCATE = "TRUNCATE"
    PERSIST = "PERSIST"
    MEMORY = "MEMORY"
    WAL = "WAL"
    OFF = "OFF"


class PoolRole(str, Enum):
    READ = "read"
    WRITE = "write"


class PoolOptions(BaseModel):
    """Connection settings shared by both sub-pools of a store."""

    model_config = ConfigDict(frozen=True)

    synchronous: SynchronousMode = Field(
        default=SynchronousMode.NORMAL,
        description="Flush-on-commit without the strongest sync by default",
    )
    journal_mode: JournalMode = Field(default=JournalMode.DELETE)
    recursive_triggers: bool = Field(default=True)
    busy_timeout_seconds: float = Field(default=5.0, ge=0.0)
    create_if_missing: bool = Field(default=True)


def _connection_uri(path: Path, role: PoolRole, create_if_missing: bool) -> str:
    if role == PoolRole.READ:
        mode = "ro"
    else:
        mode = "rwc" if create_if_missing else "rw"
    return f"{path.absolute().as_uri()}?mode={mode}"


class PooledConnection(StatementRunner):
    """A borrowed connection. Valid only inside its acquire() block."""

    def __init__(self, connection: aiosqlite.Connection, role: PoolRole) -> None:
        self._conn = connection
        self._role = role
        self._transaction: Transaction | None = None
        self._closed = False

    @property
    def role(self) -> PoolRole:
        return self._role

    @property
    def read_only(self) -> bool:
        return self._role == PoolRole.READ

    def _check_usable(self) -> None:
        if self._closed:
            raise PoolConnectionError("Connection is closed", role=self._role.value)

    async def begin(self) -> Transaction:
        """Start a transaction on this connection."""
        self._check_usable()
        if self._transaction is not None and not self._transaction.is_finished:
            raise PoolConnectionError(
                "A transaction is already open on this connection",
                role=self._role.value,
            )
        self._transaction = Transaction(self._conn, role=self._role.value)
        return await self._transaction.begin()

    async def reset(self) -> None:
        """Discard any transaction left open by the previous borrower."""
        tx = self._transaction
        self._transaction = None
        abandoned = tx is not None and not tx.is_finished
        # BEGIN may also have been issued directly through execute()
        if not abandoned and not self._conn.in_transaction:
            return
        try:
            # sqlite3 rollback is a no-op when no transaction is open
            await self._conn.rollback()
        except sqlite3.Error as exc:
            raise PoolConnectionError(
                f"Failed to discard abandoned transaction: {exc}",
                role=self._role.value,
            ) from exc
        if abandoned:
            tx.mark_abandoned()
        logger.debug("Abandoned transaction discarded", role=self._role.value)

    async def close(self) -> None:
        self._closed = True
        try:
            await self._conn.close()
        except sqlite3.Error as exc:
            raise PoolConnectionError(
                f"Failed to close connection: {exc}", role=self._role.value,
            ) from exc


class SingleConnectionPool:
    """A pool holding exactly one connection for one role.

    acquire() suspends while the connection is borrowed elsewhere and
    returns immediately when it is free.
    """

    def __init__(self, connection: PooledConnection, path: Path) -> None:
        self._connection = connection
        self._path = path
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def open(
        cls,
        path: Path,
        role: PoolRole,
        options: PoolOptions | None = None,
    ) -> SingleConnectionPool:
        """Open the pool's only connection and apply pragmas."""
        options = options or PoolOptions()
        uri = _connection_uri(path, role, options.create_if_missing)
        try:
            conn = await aiosqlite.connect(
                uri,
                uri=True,
                timeout=options.busy_timeout_seconds,
                isolation_level=None,
            )
        except sqlite3.Error as exc:
            raise PoolConnectionError(
                f"Failed to open {path}: {exc}", role=role.value,
            ) from exc

        conn.row_factory = sqlite3.Row
        try:
            if role == PoolRole.WRITE:
                await conn.execute_fetchall(f"PRAGMA journal_mode = {options.journal_mode.value}")
            await conn.execute_fetchall(f"PRAGMA synchronous = {options.synchronous.value}")
            await conn.execute_fetchall(
                f"PRAGMA recursive_triggers = {'ON' if options.recursive_triggers else 'OFF'}"
            )
        except sqlite3.Error as exc:
            await conn.close()
            raise PoolConnectionError(
                f"Failed to apply pragmas on {path}: {exc}", role=role.value,
            ) from exc

        logger.debug(
            "Sub-pool opened",
            path=str(path),
            role=role.value,
            synchronous=options.synchronous.value,
        )
        return cls(PooledConnection(conn, role), path)

    @property
    def role(self) -> PoolRole:
        return self._connection.role

    @property
    def in_use(self) -> bool:
        return self._lock.locked()

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[PooledConnection]:
        """Borrow the connection for the duration of the block."""
        self._check_open()
        async with self._lock:
            self._check_open()
            try:
                yield self._connection
            finally:
                await self._connection.reset()

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[Transaction]:
        """Borrow the connection and start a transaction on it.

        The caller must commit inside the block. A transaction still
        open when the block exits is rolled back on release.
        """
        async with self.acquire() as conn:
            yield await conn.begin()

    async def close(self) -> None:
        """Close the connection. Must not race with outstanding borrows."""
        self._check_open()
        async with self._lock:
            self._closed = True
            await self._connection.close()
        logger.debug("Sub-pool closed", path=str(self._path), role=self.role.value)

    def _check_open(self) -> None:
        if self._closed:
            raise PoolConnectionError("Pool is closed", role=self._connection.role.value)


class RolePartitionedPool:
    """One write sub-pool and one read-only sub-pool against one store."""

    def __init__(
        self,
        path: Path,
        write: SingleConnectionPool,
        reads: SingleConnectionPool,
    ) -> None:
        self._path = path
        self.write = write
        self.reads = reads

    @classmethod
    async def create(
        cls,
        path: Path,
        options: PoolOptions | None = None,
    ) -> RolePartitionedPool:
        """Open the store at ``path``, creating the file if absent.

        The writer is opened first so that the file exists before the
        read-only connection attaches to it.
        """
        options = options or PoolOptions()
        write = await SingleConnectionPool.open(path, PoolRole.WRITE, options)
        try:
            reads = await SingleConnectionPool.open(path, PoolRole.READ, options)
        except PoolConnectionError:
            await write.close()
            raise
        logger.info(
            "Pool created",
            path=str(path),
            synchronous=options.synchronous.value,
            journal_mode=options.journal_mode.value,
        )
        return cls(path, write=write, reads=reads)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self.write.closed and self.reads.closed

    def acquire_write(self) -> AbstractAsyncContextManager[PooledConnection]:
        return self.write.acquire()

    def acquire_read(self) -> AbstractAsyncContextManager[PooledConnection]:
        return self.reads.acquire()

    async def close(self) -> None:
        """Close both sub-pools. Not retryable.

        The read sub-pool is closed even if closing the writer fails;
        the first error is then re-raised.
        """
        first_error: PoolConnectionError | None = None
        try:
            await self.write.close()
        except PoolConnectionError as exc:
            first_error = exc
        try:
            await self.reads.close()
        except PoolConnectionError as exc:
            if first_error is None:
                raise
            logger.error("Read sub-pool close failed", path=str(self._path), error=str(exc))
        if first_error is not None:
            raise first_error
        logger.info("Pool closed", path=str(self._path))
