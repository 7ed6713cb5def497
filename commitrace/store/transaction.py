"""Transaction executor — statements and explicit BEGIN/COMMIT on one connection.

A Transaction is exclusively owned by the caller that began it. It must
be committed or rolled back before the connection is released; if it is
abandoned instead (for example because the owning task was cancelled),
the pool rolls it back on release so nothing uncommitted survives.
"""

import sqlite3
from enum import Enum
from typing import Any, AsyncIterator, Sequence

import aiosqlite
import structlog

from commitrace.exceptions import TransactionError

logger = structlog.get_logger()

Params = Sequence[Any]


class TransactionState(str, Enum):
    """Lifecycle of a single transaction handle."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMMITTED = "COMMITTED"
    ROLLED_BACK = "ROLLED_BACK"


class StatementRunner:
    """Statement helpers shared by transactions and pooled connections.

    Subclasses provide the raw aiosqlite connection and a guard that
    runs before every statement. All sqlite3 errors surface as
    TransactionError.
    """

    _conn: aiosqlite.Connection

    def _check_usable(self) -> None:
        raise NotImplementedError

    async def execute(self, sql: str, params: Params = ()) -> int:
        """Run one statement and return the number of rows it changed.

        The cursor is closed before returning; use fetch_one, fetch_all
        or stream for statements that produce rows.
        """
        self._check_usable()
        try:
            async with self._conn.execute(sql, params) as cursor:
                return cursor.rowcount
        except sqlite3.Error as exc:
            raise TransactionError(f"Statement failed: {exc}", statement=sql) from exc

    async def fetch_one(self, sql: str, params: Params = ()) -> sqlite3.Row | None:
        """Run one statement and return its first row, if any."""
        self._check_usable()
        try:
            async with self._conn.execute(sql, params) as cursor:
                return await cursor.fetchone()
        except sqlite3.Error as exc:
            raise TransactionError(f"Statement failed: {exc}", statement=sql) from exc

    async def fetch_all(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        """Run one statement and collect every row it returns."""
        self._check_usable()
        try:
            async with self._conn.execute(sql, params) as cursor:
                return list(await cursor.fetchall())
        except sqlite3.Error as exc:
            raise TransactionError(f"Statement failed: {exc}", statement=sql) from exc

    async def stream(self, sql: str, params: Params = ()) -> AsyncIterator[sqlite3.Row]:
        """Run one statement and yield its rows lazily."""
        self._check_usable()
        try:
            async with self._conn.execute(sql, params) as cursor:
                async for row in cursor:
                    yield row
        except sqlite3.Error as exc:
            raise TransactionError(f"Statement failed: {exc}", statement=sql) from exc


class Transaction(StatementRunner):
    """An explicit transaction on a single connection.

    Statements issued between begin() and commit() apply together or
    not at all.
    """

    def __init__(self, connection: aiosqlite.Connection, role: str = "write") -> None:
        self._conn = connection
        self._role = role
        self._state = TransactionState.PENDING

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == TransactionState.ACTIVE

    @property
    def is_finished(self) -> bool:
        return self._state in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)

    def _check_usable(self) -> None:
        if self._state != TransactionState.ACTIVE:
            raise TransactionError(
                f"Transaction is {self._state.value}, not ACTIVE"
            )

    async def begin(self) -> "Transaction":
        if self._state != TransactionState.PENDING:
            raise TransactionError("Transaction already started", statement="BEGIN")
        # Marked active before the await so that a cancelled BEGIN is
        # still treated as an open transaction by the pool.
        self._state = TransactionState.ACTIVE
        try:
            await self._conn.execute("BEGIN")
        except sqlite3.Error as exc:
            self._state = TransactionState.ROLLED_BACK
            raise TransactionError(f"BEGIN failed: {exc}", statement="BEGIN") from exc
        logger.debug("Transaction started", role=self._role)
        return self

    async def commit(self) -> None:
        """Durably finalize every statement issued since begin()."""
        self._check_usable()
        try:
            await self._conn.commit()
        except sqlite3.Error as exc:
            raise TransactionError(f"COMMIT failed: {exc}", statement="COMMIT") from exc
        self._state = TransactionState.COMMITTED
        logger.debug("Transaction committed", role=self._role)

    async def rollback(self) -> None:
        self._check_usable()
        try:
            await self._conn.rollback()
        except sqlite3.Error as exc:
            raise TransactionError(
                f"ROLLBACK failed: {exc}", statement="ROLLBACK",
            ) from exc
        self._state = TransactionState.ROLLED_BACK
        logger.debug("Transaction rolled back", role=self._role)

    def mark_abandoned(self) -> None:
        """Record that the pool discarded this transaction without commit."""
        self._state = TransactionState.ROLLED_BACK
