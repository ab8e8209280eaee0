"""Shared fixtures for the deal desk test suite.

Provides:
- MemoryTableStore-backed SyncCache (no network)
- FlakyStore: memory store that fails chosen (operation, table) pairs
- LocalStorage in a temp directory and a SelectionContext over it
- A fully wired DealDeskApp with zero-latency generators
- seeded_deal: a deal created through the pipeline and selected
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from src.dealdesk.app import DealDeskApp
from src.dealdesk.config import Settings, StoreBackend
from src.dealdesk.errors import StoreError
from src.dealdesk.records.schemas import Collection, Deal
from src.dealdesk.store.memory import MemoryTableStore
from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import LocalStorage, SelectionContext


class FlakyStore(MemoryTableStore):
    """Memory store whose calls fail for configured (operation, table) pairs."""

    def __init__(self) -> None:
        super().__init__(tables=[c.value for c in Collection])
        self.failing: set[tuple[str, str]] = set()
        self.calls: list[tuple[str, str]] = []

    def fail(self, operation: str, table: str) -> None:
        self.failing.add((operation, table))

    def heal(self) -> None:
        self.failing.clear()

    def _check(self, operation: str, table: str) -> None:
        self.calls.append((operation, table))
        if (operation, table) in self.failing:
            raise StoreError(table, operation, "simulated outage")

    async def select_all(self, table):
        self._check("select", table)
        return await super().select_all(table)

    async def insert_one(self, table, row):
        self._check("insert", table)
        return await super().insert_one(table, row)

    async def update_by_id(self, table, record_id, patch):
        self._check("update", table)
        return await super().update_by_id(table, record_id, patch)

    async def delete_by_id(self, table, record_id):
        self._check("delete", table)
        return await super().delete_by_id(table, record_id)

    async def delete_all(self, table):
        self._check("delete_all", table)
        return await super().delete_all(table)

    async def insert_many(self, table, rows):
        self._check("insert_many", table)
        return await super().insert_many(table, rows)


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def cache(store: FlakyStore) -> SyncCache:
    return SyncCache(store)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "state" / "local_storage.json")


@pytest.fixture
def selection(cache: SyncCache, storage: LocalStorage) -> SelectionContext:
    return SelectionContext(cache, storage)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        STORE_BACKEND=StoreBackend.memory,
        STATE_DIR=str(tmp_path / "state"),
        RESEARCH_LATENCY_SECONDS=0,
        SOW_DRAFT_LATENCY_SECONDS=0,
    )


@pytest.fixture
def rendered() -> list[tuple[str, object]]:
    """Display sink log: every (view name, model) pushed by the app."""
    return []


@pytest_asyncio.fixture
async def app(store, storage, settings, rendered):
    application = DealDeskApp(
        store=store,
        storage=storage,
        settings=settings,
        sink=lambda name, model: rendered.append((name, model)),
    )
    await application.startup()
    yield application
    await application.close()


@pytest_asyncio.fixture
async def seeded_deal(app: DealDeskApp) -> Deal:
    """A deal created (and therefore selected) through the pipeline."""
    return await app.deals.create_deal(
        company_name="Acme",
        contact_name="Wile E. Coyote",
        contact_email="wile@acme.test",
        value=1250000,
        stage="proposal",
    )
