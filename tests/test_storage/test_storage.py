"""
Tests for Storage Module

Tests for palette/storage/run_repository.py and credits.py. The Supabase
classes run against a small stand-in for the client's query builder.
"""

from types import SimpleNamespace

import pytest

from palette.core.constants import RunStatus
from palette.core.exceptions import CreditError
from palette.storage.credits import InMemoryCreditLedger, SupabaseCreditLedger
from palette.storage.run_repository import InMemoryRunRepository, SupabaseRunRepository
from palette.storage.supabase_client import get_supabase_client
from palette.storyboard.models import InputDocument, PipelineRun


class FakeQuery:
    """Records builder calls and serves rows from a FakeSupabase table."""

    def __init__(self, store, table):
        self.store = store
        self.table = table
        self.filters = {}
        self.pending = None

    def upsert(self, row, on_conflict=None):
        self.pending = (row, on_conflict)
        return self

    def select(self, columns):
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def order(self, column, desc=False):
        return self

    def limit(self, count):
        return self

    def execute(self):
        rows = self.store.tables.setdefault(self.table, {})
        if self.pending is not None:
            row, key = self.pending
            rows[row[key]] = row
            return SimpleNamespace(data=[row])
        matches = [
            row for row in rows.values()
            if all(row[column] == value for column, value in self.filters.items())
        ]
        matches.sort(key=lambda row: row["updated_at"], reverse=True)
        return SimpleNamespace(data=[{"data": row["data"]} for row in matches])


class FakeSupabase:
    def __init__(self, rpc_result=True, rpc_error=None):
        self.tables = {}
        self.rpc_calls = []
        self.rpc_result = rpc_result
        self.rpc_error = rpc_error

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        self.rpc_calls.append((name, params))
        if self.rpc_error:
            raise self.rpc_error
        return SimpleNamespace(execute=lambda: SimpleNamespace(data=self.rpc_result))


def make_run(project_id="proj-1", updated_at="2026-01-01T00:00:00"):
    run = PipelineRun(project_id, InputDocument("Chapter 1\nText."))
    run.updated_at = updated_at
    return run


class TestInMemoryRunRepository:
    """Tests for InMemoryRunRepository."""

    @pytest.mark.asyncio
    async def test_save_and_get(self):
        repository = InMemoryRunRepository()
        run = make_run()

        await repository.save(run)
        stored = await repository.get(run.run_id)

        assert stored.run_id == run.run_id
        assert stored is not run

    @pytest.mark.asyncio
    async def test_stored_copy_is_detached(self):
        repository = InMemoryRunRepository()
        run = make_run()
        await repository.save(run)

        run.status = RunStatus.COMPLETE

        assert (await repository.get(run.run_id)).status == RunStatus.PENDING

    @pytest.mark.asyncio
    async def test_load_latest_for_project(self):
        repository = InMemoryRunRepository()
        first, second = make_run(), make_run()
        await repository.save(first)
        await repository.save(second)

        assert (await repository.load("proj-1")).run_id == second.run_id
        assert await repository.load("proj-2") is None
        assert await repository.get("run_missing") is None


class TestSupabaseRunRepository:
    """Tests for SupabaseRunRepository."""

    @pytest.mark.asyncio
    async def test_upsert_row(self):
        client = FakeSupabase()
        repository = SupabaseRunRepository(client)
        run = make_run()

        await repository.save(run)
        run.status = RunStatus.COMPLETE
        await repository.save(run)

        rows = client.tables["palette_runs"]
        assert list(rows) == [run.run_id]
        assert rows[run.run_id]["status"] == "complete"
        assert rows[run.run_id]["data"]["project_id"] == "proj-1"

    @pytest.mark.asyncio
    async def test_get_and_load(self):
        client = FakeSupabase()
        repository = SupabaseRunRepository(client, table="runs")
        older = make_run(updated_at="2026-01-01T00:00:00")
        newer = make_run(updated_at="2026-02-01T00:00:00")
        await repository.save(newer)
        await repository.save(older)

        assert (await repository.get(older.run_id)).run_id == older.run_id
        assert (await repository.load("proj-1")).run_id == newer.run_id
        assert await repository.load("proj-2") is None


class TestCreditLedgers:
    """Tests for credit ledgers."""

    @pytest.mark.asyncio
    async def test_in_memory_reserve(self):
        ledger = InMemoryCreditLedger(balance=10)

        assert await ledger.check_and_reserve(6)
        assert not await ledger.check_and_reserve(6)
        assert ledger.balance == 4
        assert ledger.reserved == 6

    @pytest.mark.asyncio
    async def test_negative_cost_rejected(self):
        with pytest.raises(CreditError):
            await InMemoryCreditLedger(balance=10).check_and_reserve(-1)

    @pytest.mark.asyncio
    async def test_supabase_rpc(self):
        client = FakeSupabase(rpc_result=True)

        allowed = await SupabaseCreditLedger(client, "user-1").check_and_reserve(12)

        assert allowed
        assert client.rpc_calls == [("reserve_credits", {"p_user_id": "user-1", "p_amount": 12})]

    @pytest.mark.asyncio
    async def test_supabase_refusal(self):
        client = FakeSupabase(rpc_result=False)

        assert not await SupabaseCreditLedger(client, "user-1").check_and_reserve(12)

    @pytest.mark.asyncio
    async def test_supabase_error_wrapped(self):
        client = FakeSupabase(rpc_error=RuntimeError("connection reset"))

        with pytest.raises(CreditError) as exc_info:
            await SupabaseCreditLedger(client, "user-1").check_and_reserve(12)

        assert "connection reset" in str(exc_info.value)


class TestSupabaseClient:
    def test_unconfigured_returns_none(self):
        assert get_supabase_client("", "") is None
