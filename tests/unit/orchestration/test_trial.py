"""Tests for TrialRunner and its building blocks.

Tests cover:
  - Schema creation and bulk seeding
  - Keyed reads through the read-only connection
  - The endless write load
  - Visibility assertion, including a stale-snapshot reader
  - Full trial runs and phase tracking
"""

import asyncio

import pytest

from commitrace.exceptions import ConsistencyViolation, PoolConnectionError, TransactionError
from commitrace.orchestration.models import TrialPhase
from commitrace.orchestration.trial import (
    TrialRunner,
    WriteLoad,
    assert_observed,
    create_table,
    read_key,
    seed_rows,
)
from commitrace.store.pool import JournalMode, PoolOptions


# ===========================================================================
# Building Blocks
# ===========================================================================

class TestSeeding:
    @pytest.mark.asyncio
    async def test_seed_inserts_exact_key_range(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await create_table(pool, "a_table")
            inserted = await seed_rows(pool, "a_table", 200)
            async with pool.acquire_read() as conn:
                rows = await conn.fetch_all("SELECT id FROM a_table ORDER BY id")
        assert inserted == 201
        assert [r[0] for r in rows] == list(range(201))

    @pytest.mark.asyncio
    async def test_seed_zero(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await create_table(pool, "a_table")
            assert await seed_rows(pool, "a_table", 0) == 1
            assert await read_key(pool, "a_table", 0) == [0]

    @pytest.mark.asyncio
    async def test_seed_into_populated_table_commits_nothing(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await create_table(pool, "a_table")
            async with pool.write.begin() as tx:
                await tx.execute("INSERT INTO a_table (id) VALUES (150)")
                await tx.commit()
            with pytest.raises(TransactionError):
                await seed_rows(pool, "a_table", 200)
            async with pool.acquire_read() as conn:
                rows = await conn.fetch_all("SELECT id FROM a_table")
        assert [r[0] for r in rows] == [150]

    @pytest.mark.asyncio
    async def test_create_table_twice_raises(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await create_table(pool, "a_table")
            with pytest.raises(TransactionError):
                await create_table(pool, "a_table")

    @pytest.mark.asyncio
    async def test_invalid_table_name_rejected(self, provisioner):
        async with provisioner.open_store("a") as pool:
            with pytest.raises(ValueError):
                await create_table(pool, "a_table; DROP TABLE x")


class TestReadKey:
    @pytest.mark.asyncio
    async def test_missing_key_returns_empty(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await create_table(pool, "a_table")
            await seed_rows(pool, "a_table", 10)
            assert await read_key(pool, "a_table", 11) == []
            assert await read_key(pool, "a_table", 10) == [10]


    @pytest.mark.asyncio
    async def test_cancelled_read_leaves_reader_reusable(self, provisioner):
        async with provisioner.open_store("a") as pool:
            await create_table(pool, "a_table")
            await seed_rows(pool, "a_table", 200)
            for steps in range(6):
                task = asyncio.create_task(
                    read_key(pool, "a_table", 200)
                )
                for _ in range(steps):
                    await asyncio.sleep(0)
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                assert not pool.reads.in_use
                assert await read_key(pool, "a_table", 200) == [200]
        assert pool.closed


class TestWriteLoad:
    @pytest.mark.asyncio
    async def test_runs_until_cancelled(self, provisioner):
        async with provisioner.open_store("b") as pool:
            await create_table(pool, "b_table")
            load = WriteLoad(pool, "b_table")
            task = asyncio.create_task(load.run())
            while load.iterations < 3:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert not pool.write.in_use

    @pytest.mark.asyncio
    async def test_failure_propagates(self, provisioner):
        async with provisioner.open_store("b") as pool:
            load = WriteLoad(pool, "missing_table")
            with pytest.raises(TransactionError):
                await load.run()
            assert load.iterations == 0


# ===========================================================================
# Visibility Assertion
# ===========================================================================

class TestAssertObserved:
    def test_non_empty_passes(self):
        assert_observed(3, [200])

    def test_empty_raises_with_index(self):
        with pytest.raises(ConsistencyViolation) as exc_info:
            assert_observed(17, [])
        assert exc_info.value.trial_index == 17
        assert "17" in str(exc_info.value)

    def test_violation_is_an_assertion(self):
        with pytest.raises(AssertionError):
            assert_observed(0, [])

    @pytest.mark.asyncio
    async def test_reader_snapshot_taken_before_seeding_is_flagged(self, provisioner):
        options = PoolOptions(journal_mode=JournalMode.WAL)
        async with provisioner.open_store("a", options) as pool:
            await create_table(pool, "a_table")
            async with pool.reads.begin() as stale:
                # Pin the reader's snapshot before the seeding commit.
                assert await stale.fetch_all("SELECT id FROM a_table") == []
                await seed_rows(pool, "a_table", 200)
                observed = [
                    row[0]
                    async for row in stale.stream(
                        "SELECT id FROM a_table WHERE id = ?", (200,),
                    )
                ]
                await stale.commit()
            assert observed == []
            with pytest.raises(ConsistencyViolation, match="5"):
                assert_observed(5, observed)
            # A fresh read after the snapshot is released sees the row.
            assert await read_key(pool, "a_table", 200) == [200]


# ===========================================================================
# Full Trials
# ===========================================================================

class TestTrialRunner:
    @pytest.mark.asyncio
    async def test_trial_passes(self, provisioner):
        runner = TrialRunner(provisioner=provisioner)
        result = await runner.run(0)
        assert result.passed is True
        assert result.trial_index == 0
        assert result.highest_id == 200
        assert result.observed_ids == [200]
        assert result.finished_at >= result.started_at
        assert runner.phase == TrialPhase.DONE

    @pytest.mark.asyncio
    async def test_trial_cleans_up_stores(self, provisioner, tmp_path):
        runner = TrialRunner(provisioner=provisioner, highest_id=20)
        await runner.run(1)
        assert list((tmp_path / "trials").iterdir()) == []

    @pytest.mark.asyncio
    async def test_custom_highest_id(self, provisioner):
        runner = TrialRunner(provisioner=provisioner, highest_id=5)
        result = await runner.run(2)
        assert result.observed_ids == [5]

    def test_negative_highest_id_rejected(self):
        with pytest.raises(ValueError):
            TrialRunner(highest_id=-1)

    @pytest.mark.asyncio
    async def test_empty_read_raises_violation(self, provisioner, monkeypatch):
        async def _empty_read(pool, table, key):
            return []

        monkeypatch.setattr("commitrace.orchestration.trial.read_key", _empty_read)
        runner = TrialRunner(provisioner=provisioner, highest_id=10)
        with pytest.raises(ConsistencyViolation) as exc_info:
            await runner.run(42)
        assert exc_info.value.trial_index == 42
        assert runner.phase == TrialPhase.ASSERTING

    @pytest.mark.asyncio
    async def test_setup_failure_propagates(self, provisioner):
        runner = TrialRunner(
            provisioner=provisioner,
            options=PoolOptions(create_if_missing=False),
        )
        with pytest.raises(PoolConnectionError):
            await runner.run(0)
        assert runner.phase == TrialPhase.PROVISIONING
