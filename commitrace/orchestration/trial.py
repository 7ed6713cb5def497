"""TrialRunner — one full provision/seed/race/assert/teardown cycle.

A trial opens two fresh stores A and B, seeds A with keys
0..highest_id in one committed transaction, then races an endless
delete loop on B against a single read of ``highest_id`` through A's
read-only connection. The read must see the committed row.

Phases run strictly in order:
  PROVISIONING -> SCHEMA_INIT -> SEEDING -> RACING -> ASSERTING
  -> TEARING_DOWN -> DONE
"""

import re
import time
from contextlib import AsyncExitStack, aclosing
from datetime import datetime, timezone
from typing import NoReturn

import structlog

from commitrace.exceptions import ConsistencyViolation, TransactionError
from commitrace.orchestration.models import TrialPhase, TrialResult
from commitrace.orchestration.race import race
from commitrace.store.pool import PoolOptions, RolePartitionedPool
from commitrace.store.provisioner import StoreProvisioner
from commitrace.utils.logging import get_logger

DEFAULT_HIGHEST_ID = 200
A_TABLE = "a_table"
B_TABLE = "b_table"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _table(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


async def create_table(pool: RolePartitionedPool, table: str) -> None:
    """Create ``table(id INTEGER PRIMARY KEY)`` in its own transaction."""
    async with pool.write.begin() as tx:
        await tx.execute(f"CREATE TABLE {_table(table)} (id INTEGER PRIMARY KEY)")
        await tx.commit()


async def seed_rows(pool: RolePartitionedPool, table: str, highest_id: int) -> int:
    """Insert ids 0..highest_id ascending as a single committed transaction.

    Each insert reads back its id through RETURNING.

    Returns:
        Number of rows inserted.
    """
    sql = f"INSERT INTO {_table(table)} (id) VALUES (?) RETURNING id"
    inserted = 0
    async with pool.write.begin() as tx:
        for i in range(highest_id + 1):
            row = await tx.fetch_one(sql, (i,))
            if row is None or row[0] != i:
                raise TransactionError(
                    f"Insert of id {i} returned {None if row is None else row[0]}",
                    statement=sql,
                )
            inserted += 1
        await tx.commit()
    return inserted


async def read_key(pool: RolePartitionedPool, table: str, key: int) -> list[int]:
    """Read rows with ``id = key`` through the read-only connection."""
    sql = f"SELECT id FROM {_table(table)} WHERE id = ?"
    async with pool.acquire_read() as conn:
        async with aclosing(conn.stream(sql, (key,))) as rows:
            return [row[0] async for row in rows]


class WriteLoad:
    """Endless stream of delete transactions against one table.

    Exists only to put unrelated write pressure on a store; it never
    returns and ends when its task is cancelled. Any failure
    propagates.
    """

    def __init__(self, pool: RolePartitionedPool, table: str) -> None:
        self._pool = pool
        self._sql = f"DELETE FROM {_table(table)}"
        self._iterations = 0

    @property
    def iterations(self) -> int:
        """Number of committed delete transactions so far."""
        return self._iterations

    async def run(self) -> NoReturn:
        while True:
            async with self._pool.write.begin() as tx:
                await tx.execute(self._sql)
                await tx.commit()
            self._iterations += 1


def assert_observed(trial_index: int, observed: list[int]) -> None:
    """Raise ConsistencyViolation if the read came back empty."""
    if not observed:
        raise ConsistencyViolation(trial_index)


class TrialRunner:
    """Runs single trials against freshly provisioned store pairs."""

    def __init__(
        self,
        provisioner: StoreProvisioner | None = None,
        options: PoolOptions | None = None,
        highest_id: int = DEFAULT_HIGHEST_ID,
    ) -> None:
        if highest_id < 0:
            raise ValueError("highest_id must be non-negative")
        self._provisioner = provisioner or StoreProvisioner()
        self._options = options or PoolOptions()
        self._highest_id = highest_id
        self._phase = TrialPhase.DONE

    @property
    def phase(self) -> TrialPhase:
        return self._phase

    @property
    def highest_id(self) -> int:
        return self._highest_id

    def _enter(self, phase: TrialPhase, log: structlog.BoundLogger) -> None:
        self._phase = phase
        log.debug("Trial phase", phase=phase.value)

    async def run(self, trial_index: int) -> TrialResult:
        """Execute one trial.

        Args:
            trial_index: Position of this trial in the outer run; named
                in the failure message.

        Returns:
            A passing TrialResult.

        Raises:
            ConsistencyViolation: The committed row was not visible to
                the read-only connection.
            ProvisioningError, PoolConnectionError, TransactionError:
                Setup or write-load failures; never retried.
        """
        log = get_logger("trial", trial_index=trial_index)
        log.info("Trial starting")
        started_at = datetime.now(timezone.utc)
        start_time = time.monotonic()

        async with AsyncExitStack() as stack:
            self._enter(TrialPhase.PROVISIONING, log)
            a_pool = await stack.enter_async_context(
                self._provisioner.open_store("a", self._options)
            )
            b_pool = await stack.enter_async_context(
                self._provisioner.open_store("b", self._options)
            )

            self._enter(TrialPhase.SCHEMA_INIT, log)
            await create_table(a_pool, A_TABLE)
            await create_table(b_pool, B_TABLE)

            self._enter(TrialPhase.SEEDING, log)
            await seed_rows(a_pool, A_TABLE, self._highest_id)

            self._enter(TrialPhase.RACING, log)
            load = WriteLoad(b_pool, B_TABLE)
            outcome = await race(
                load.run(),
                read_key(a_pool, A_TABLE, self._highest_id),
                names=("writer", "reader"),
            )

            self._enter(TrialPhase.ASSERTING, log)
            observed = outcome.value
            if not observed:
                log.error(
                    "Committed row not visible",
                    expected=self._highest_id,
                    observed=observed,
                    writer_iterations=load.iterations,
                )
            assert_observed(trial_index, observed)

            self._enter(TrialPhase.TEARING_DOWN, log)

        self._enter(TrialPhase.DONE, log)
        duration_ms = (time.monotonic() - start_time) * 1000.0
        log.info(
            "Trial passed",
            writer_iterations=load.iterations,
            duration_ms=round(duration_ms, 1),
        )
        return TrialResult(
            trial_index=trial_index,
            highest_id=self._highest_id,
            observed_ids=observed,
            writer_iterations=load.iterations,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            duration_ms=round(duration_ms, 2),
        )
