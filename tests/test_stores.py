"""Contract tests for the TableStore backends.

- MemoryTableStore: direct
- RestTableStore: httpx.MockTransport standing in for PostgREST
- SqlTableStore: sqlite+aiosqlite file database in tmp_path
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.dialects import postgresql
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from src.dealdesk.errors import StoreError
from src.dealdesk.records.schemas import Collection, Deal, Workflow
from src.dealdesk.store.adapter import TableStore
from src.dealdesk.store.database import Base, init_db
from src.dealdesk.store.memory import MemoryTableStore
from src.dealdesk.store.rest import RestTableStore
from src.dealdesk.store.sql import SqlTableStore, sequence_reset
from src.dealdesk.sync.cache import SyncCache


class TestTableStoreABC:
    def test_abstract_methods(self):
        assert TableStore.__abstractmethods__ == {
            "select_all",
            "insert_one",
            "update_by_id",
            "delete_by_id",
            "delete_all",
            "insert_many",
        }

    def test_cannot_instantiate(self):
        with pytest.raises(TypeError, match="abstract"):
            TableStore()


# ── Memory ─────────────────────────────────────────────────────────────────


class TestMemoryTableStore:
    async def test_assigns_sequential_ids_and_timestamps(self):
        store = MemoryTableStore()

        first = await store.insert_one("deals", {"company_name": "Acme"})
        second = await store.insert_one("deals", {"company_name": "Globex"})

        assert (first["id"], second["id"]) == (1, 2)
        assert first["created_at"]

    async def test_explicit_id_advances_sequence(self):
        store = MemoryTableStore()
        await store.insert_many("deals", [{"id": 10, "company_name": "Acme"}])

        row = await store.insert_one("deals", {"company_name": "Globex"})

        assert row["id"] == 11

    async def test_duplicate_id_rejected(self):
        store = MemoryTableStore()
        await store.insert_one("deals", {"id": 1, "company_name": "Acme"})

        with pytest.raises(StoreError, match="duplicate"):
            await store.insert_one("deals", {"id": 1, "company_name": "Globex"})

    async def test_returned_rows_are_copies(self):
        store = MemoryTableStore()
        row = await store.insert_one("quotes", {"items": [{"price": 1}]})
        row["items"].append({"price": 2})

        (stored,) = await store.select_all("quotes")
        assert stored["items"] == [{"price": 1}]

    async def test_update_missing_row_raises(self):
        with pytest.raises(StoreError):
            await MemoryTableStore().update_by_id("deals", 1, {"stage": "proposal"})

    async def test_unknown_table_raises(self):
        with pytest.raises(StoreError, match="does not exist"):
            await MemoryTableStore(tables=["deals"]).select_all("nope")


# ── REST (PostgREST) ───────────────────────────────────────────────────────


class FakePostgrest:
    """Minimal PostgREST behaviour for one table, recording every request."""

    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.next_id = 1

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            rows = sorted(self.rows, key=lambda r: r["id"], reverse=True)
            return httpx.Response(200, json=rows)
        if request.method == "POST":
            body = json.loads(request.content)
            created = []
            for row in body if isinstance(body, list) else [body]:
                row = {"id": self.next_id, "created_at": "2026-10-19T00:00:00+00:00", **row}
                self.next_id = max(self.next_id, row["id"]) + 1
                self.rows.append(row)
                created.append(row)
            return httpx.Response(201, json=created)
        if request.method == "PATCH":
            record_id = int(request.url.params["id"].removeprefix("eq."))
            patch = json.loads(request.content)
            matched = [r for r in self.rows if r["id"] == record_id]
            for row in matched:
                row.update(patch)
            return httpx.Response(200, json=matched)
        if request.method == "DELETE":
            expr = request.url.params["id"]
            if expr == "neq.0":
                self.rows = [r for r in self.rows if r["id"] == 0]
            else:
                record_id = int(expr.removeprefix("eq."))
                self.rows = [r for r in self.rows if r["id"] != record_id]
            return httpx.Response(204)
        return httpx.Response(405)


@pytest_asyncio.fixture
async def postgrest():
    server = FakePostgrest()
    store = RestTableStore(
        "https://demo.supabase.co/", "anon-key", transport=httpx.MockTransport(server)
    )
    yield server, store
    await store.close()


class TestRestTableStore:
    async def test_select_request_shape(self, postgrest):
        server, store = postgrest

        assert await store.select_all("deals") == []

        request = server.requests[0]
        assert request.url.path == "/rest/v1/deals"
        assert request.url.params["select"] == "*"
        assert request.url.params["order"] == "id.desc"
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["authorization"] == "Bearer anon-key"

    async def test_insert_returns_representation(self, postgrest):
        server, store = postgrest

        row = await store.insert_one("deals", {"company_name": "Acme"})

        assert row["id"] == 1
        assert server.requests[0].headers["prefer"] == "return=representation"

    async def test_update_and_delete_by_id(self, postgrest):
        server, store = postgrest
        row = await store.insert_one("deals", {"company_name": "Acme"})

        updated = await store.update_by_id("deals", row["id"], {"stage": "proposal"})
        await store.delete_by_id("deals", row["id"])

        assert updated["stage"] == "proposal"
        assert server.requests[1].url.params["id"] == "eq.1"
        assert server.rows == []

    async def test_update_missing_row_raises(self, postgrest):
        _, store = postgrest

        with pytest.raises(StoreError, match="no row"):
            await store.update_by_id("deals", 9, {"stage": "proposal"})

    async def test_delete_all_uses_filter(self, postgrest):
        server, store = postgrest
        await store.insert_many("deals", [{"company_name": "A"}, {"company_name": "B"}])

        await store.delete_all("deals")

        assert server.requests[-1].url.params["id"] == "neq.0"
        assert server.rows == []

    async def test_insert_many_empty_skips_request(self, postgrest):
        server, store = postgrest

        assert await store.insert_many("deals", []) == []
        assert server.requests == []

    async def test_error_status_raises_store_error(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                404, json={"message": 'relation "public.deals" does not exist'}
            )
        )
        store = RestTableStore("https://demo.supabase.co", "k", transport=transport)

        with pytest.raises(StoreError, match="HTTP 404: relation") as excinfo:
            await store.select_all("deals")

        assert excinfo.value.table == "deals"
        assert excinfo.value.operation == "select"
        await store.close()

    async def test_transport_error_raises_store_error(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = RestTableStore(
            "https://demo.supabase.co", "k", transport=httpx.MockTransport(refuse)
        )

        with pytest.raises(StoreError, match="connection refused"):
            await store.insert_one("deals", {"company_name": "Acme"})
        await store.close()

    async def test_non_json_body_raises_store_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        store = RestTableStore("https://demo.supabase.co", "k", transport=transport)

        with pytest.raises(StoreError, match="not JSON") as excinfo:
            await store.select_all("deals")

        assert excinfo.value.operation == "select"
        await store.close()

    async def test_cache_keeps_snapshot_on_non_json_body(self):
        responses = [
            httpx.Response(200, json=[{"id": 1, "company_name": "Acme"}]),
            httpx.Response(200, text="<html>"),
        ]
        store = RestTableStore(
            "https://demo.supabase.co",
            "k",
            transport=httpx.MockTransport(lambda request: responses.pop(0)),
        )
        cache = SyncCache(store, collections=[Collection.DEALS])
        assert await cache.refresh(Collection.DEALS) is True
        before = cache.read(Collection.DEALS)

        assert await cache.refresh(Collection.DEALS) is False
        assert cache.read(Collection.DEALS) is before
        await store.close()

    async def test_cache_over_rest(self, postgrest):
        _, store = postgrest
        cache = SyncCache(store, collections=[Collection.DEALS])

        deal = await cache.create(Collection.DEALS, Deal(company_name="Acme"))

        assert cache.read(Collection.DEALS) == (deal,)


# ── SQL (sqlite+aiosqlite) ─────────────────────────────────────────────────


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dealdesk.db'}")
    await init_db(engine)

    async def session_factory():
        async with AsyncSession(engine, expire_on_commit=False) as session:
            yield session

    yield SqlTableStore(session_factory)
    await engine.dispose()


class TestSqlTableStore:
    async def test_insert_assigns_identity_and_timestamp(self, sql_store):
        row = await sql_store.insert_one("deals", {"company_name": "Acme", "value": 10.0})

        assert row["id"] == 1
        assert row["created_at"] is not None

    async def test_select_newest_first(self, sql_store):
        for name in ("A", "B", "C"):
            await sql_store.insert_one("deals", {"company_name": name})

        rows = await sql_store.select_all("deals")

        assert [r["company_name"] for r in rows] == ["C", "B", "A"]

    async def test_update_by_id(self, sql_store):
        row = await sql_store.insert_one("deals", {"company_name": "Acme"})

        updated = await sql_store.update_by_id("deals", row["id"], {"stage": "proposal"})

        assert updated["stage"] == "proposal"
        assert updated["id"] == row["id"]

    async def test_update_missing_row_raises(self, sql_store):
        with pytest.raises(StoreError, match="no row"):
            await sql_store.update_by_id("deals", 5, {"stage": "proposal"})

    async def test_insert_many_keeps_ids_and_order(self, sql_store):
        rows = await sql_store.insert_many(
            "deals",
            [
                {"id": 7, "company_name": "A", "created_at": "2026-01-01T00:00:00+00:00"},
                {"id": 3, "company_name": "B"},
            ],
        )

        assert [r["id"] for r in rows] == [7, 3]

    async def test_delete_by_id_and_delete_all(self, sql_store):
        a = await sql_store.insert_one("deals", {"company_name": "A"})
        await sql_store.insert_one("deals", {"company_name": "B"})

        await sql_store.delete_by_id("deals", a["id"])
        assert [r["company_name"] for r in await sql_store.select_all("deals")] == ["B"]

        await sql_store.delete_all("deals")
        assert await sql_store.select_all("deals") == []

    async def test_unknown_table_and_column(self, sql_store):
        with pytest.raises(StoreError, match="does not exist"):
            await sql_store.select_all("nope")
        with pytest.raises(StoreError, match="column"):
            await sql_store.insert_one("deals", {"company_name": "A", "owner": "me"})

    async def test_constraint_violation_becomes_store_error(self, sql_store):
        with pytest.raises(StoreError):
            await sql_store.insert_one("deals", {"contact_name": "No company"})

    async def test_json_columns_round_trip_through_cache(self, sql_store):
        cache = SyncCache(sql_store, collections=[Collection.DEALS, Collection.WORKFLOWS])
        deal = await cache.create(Collection.DEALS, Deal(company_name="Acme"))
        workflow = await cache.create(
            Collection.WORKFLOWS,
            Workflow(deal_id=deal.id, steps=[{"name": "Quote Sent", "completed": True}]),
        )

        updated = await cache.update_by_id(
            Collection.WORKFLOWS,
            workflow.id,
            {"steps": [{"name": "Quote Sent", "completed": True, "date": None}], "status": "in_progress"},
        )

        assert updated.steps[0].name == "Quote Sent"
        assert updated.status == "in_progress"
        assert cache.find(Collection.WORKFLOWS, workflow.id).steps[0].completed is True


def _unreachable_session_factory():
    """Session factory whose connection is refused on first execute (asyncpg)."""
    sessions: list[AsyncMock] = []

    async def factory():
        session = AsyncMock(spec=AsyncSession)
        session.execute.side_effect = ConnectionRefusedError(111, "Connect call failed")
        sessions.append(session)
        yield session

    return factory, sessions


def _postgres_session_factory(rows: list[dict]):
    """Session factory reporting the postgresql dialect and echoing inserted rows."""
    session = AsyncMock(spec=AsyncSession)
    session.get_bind.return_value.dialect.name = "postgresql"
    results = []
    for row in rows:
        result = MagicMock()
        result.one.return_value._mapping = row
        results.append(result)
    session.execute.side_effect = [*results, MagicMock()]

    async def factory():
        yield session

    return factory, session


class TestSqlConnectionFailures:
    async def test_refused_connection_becomes_store_error(self):
        factory, sessions = _unreachable_session_factory()
        store = SqlTableStore(factory)

        with pytest.raises(StoreError, match="Connect call failed"):
            await store.select_all("deals")
        with pytest.raises(StoreError, match="Connect call failed"):
            await store.insert_one("deals", {"company_name": "Acme"})

        sessions[-1].rollback.assert_awaited_once()

    async def test_cache_survives_refused_connection(self):
        factory, _ = _unreachable_session_factory()
        cache = SyncCache(SqlTableStore(factory), collections=[Collection.DEALS])

        results = await cache.refresh_all()

        assert results == {Collection.DEALS: False}
        assert cache.ready is True
        assert cache.read(Collection.DEALS) == ()
        assert await cache.create(Collection.DEALS, Deal(company_name="Acme")) is None


class TestSequenceReset:
    def test_statement_moves_sequence_past_max_id(self):
        statement = sequence_reset(Base.metadata.tables["deals"])
        sql = str(statement.compile(dialect=postgresql.dialect()))

        assert "setval(pg_get_serial_sequence(" in sql
        assert "coalesce(max(deals.id)" in sql
        assert "FROM deals" in sql

    async def test_explicit_ids_on_postgres_reset_sequence(self):
        rows = [{"id": 7, "company_name": "A"}, {"id": 3, "company_name": "B"}]
        factory, session = _postgres_session_factory(rows)

        stored = await SqlTableStore(factory).insert_many("deals", rows)

        assert [r["id"] for r in stored] == [7, 3]
        assert session.execute.await_count == 3
        last_statement = session.execute.await_args_list[-1].args[0]
        assert "setval" in str(last_statement.compile(dialect=postgresql.dialect()))
        session.commit.assert_awaited_once()

    async def test_generated_ids_skip_sequence_reset(self):
        rows = [{"company_name": "A"}]
        factory, session = _postgres_session_factory([{"id": 1, "company_name": "A"}])

        await SqlTableStore(factory).insert_many("deals", rows)

        assert session.execute.await_count == 1

    async def test_create_after_import_gets_fresh_id(self, sql_store):
        await sql_store.insert_many(
            "deals", [{"id": 7, "company_name": "A"}, {"id": 3, "company_name": "B"}]
        )

        row = await sql_store.insert_one("deals", {"company_name": "C"})

        assert row["id"] == 8
