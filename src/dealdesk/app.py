"""Process composition root.

DealDeskApp wires one TableStore, one SyncCache, one SelectionContext, the
ordered view registry, and the pipeline services. startup() loads every
collection before anything renders; restart() repeats it after an import.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from src.dealdesk.config import Settings, StoreBackend, get_settings
from src.dealdesk.pipeline.catalog import CatalogService
from src.dealdesk.pipeline.deals import DealService
from src.dealdesk.pipeline.quotes import QuoteService
from src.dealdesk.pipeline.roi import RoiService
from src.dealdesk.pipeline.sow import SowService
from src.dealdesk.records.schemas import Collection
from src.dealdesk.services.generators import MockResearchGenerator, MockSowGenerator
from src.dealdesk.store.adapter import TableStore
from src.dealdesk.sync import views as v
from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import LocalStorage, SelectionContext
from src.dealdesk.sync.views import View, ViewRegistry
from src.dealdesk.transfer import DataTransfer

logger = structlog.get_logger(__name__)

# Views refreshed, in this order, whenever the selected deal changes.
SELECTION_VIEWS = ("deal_selector", "dashboard", "form_defaults")


def build_store(settings: Settings) -> TableStore:
    """Instantiate the backend named by STORE_BACKEND."""
    if settings.STORE_BACKEND == StoreBackend.rest:
        from src.dealdesk.store.rest import RestTableStore

        if not settings.SUPABASE_URL:
            raise ValueError("SUPABASE_URL must be set when STORE_BACKEND=rest")
        return RestTableStore(
            settings.SUPABASE_URL,
            settings.SUPABASE_KEY,
            timeout=settings.STORE_TIMEOUT,
        )
    if settings.STORE_BACKEND == StoreBackend.sql:
        from src.dealdesk.store.database import get_session
        from src.dealdesk.store.sql import SqlTableStore

        return SqlTableStore(session_factory=get_session)

    from src.dealdesk.store.memory import MemoryTableStore

    return MemoryTableStore(tables=[c.value for c in Collection])


def build_views(
    cache: SyncCache,
    selection: SelectionContext,
    sink: Callable[[str, Any], None] | None = None,
) -> ViewRegistry:
    """Register every derived view; selection-driven ones come first."""
    def deal_id() -> int | None:
        return selection.deal_id

    return ViewRegistry(
        [
            View("deal_selector", lambda: v.deal_options(cache, deal_id()), sink),
            View("dashboard", lambda: v.dashboard(cache, deal_id()), sink),
            View("form_defaults", lambda: v.form_defaults(selection.current()), sink),
            View("meetings", lambda: v.deal_records(cache, Collection.MEETINGS, deal_id()), sink),
            View("meeting_options", lambda: v.meeting_options(cache, deal_id()), sink),
            View("quotes", lambda: v.deal_records(cache, Collection.QUOTES, deal_id()), sink),
            View("workflows", lambda: v.workflow_cards(cache, deal_id()), sink),
            View("sows", lambda: v.deal_records(cache, Collection.SOWS, deal_id()), sink),
            View("stakeholders", lambda: v.stakeholder_map(cache, deal_id()), sink),
            View("approval_path", lambda: v.approval_path(cache, deal_id()), sink),
            View(
                "scenarios",
                lambda: v.deal_records(cache, Collection.ROI_SCENARIOS, deal_id()),
                sink,
            ),
            View(
                "order_sessions",
                lambda: v.deal_records(cache, Collection.ORDER_SESSIONS, deal_id()),
                sink,
            ),
            View("offerings", lambda: list(cache.read(Collection.SERVICE_OFFERINGS)), sink),
            View("templates", lambda: list(cache.read(Collection.SOW_TEMPLATES)), sink),
        ]
    )


class DealDeskApp:
    """Everything one running client needs, constructed once.

    Args:
        store: TableStore backend.
        storage: Durable slot for the selected deal.
        settings: Application settings.
        sink: Optional display callback receiving ``(view_name, model)``.
    """

    def __init__(
        self,
        store: TableStore,
        storage: LocalStorage,
        settings: Settings | None = None,
        sink: Callable[[str, Any], None] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.cache = SyncCache(store)
        self.selection = SelectionContext(self.cache, storage, key=self.settings.SELECTION_KEY)
        self.views = build_views(self.cache, self.selection, sink)
        for name in SELECTION_VIEWS:
            self.selection.add_listener(self.views[name].refresh)

        self.deals = DealService(
            self.cache,
            self.selection,
            self.views,
            research_generator=MockResearchGenerator(self.settings.RESEARCH_LATENCY_SECONDS),
        )
        self.quotes = QuoteService(self.cache, self.selection, self.views)
        self.sows = SowService(
            self.cache,
            self.selection,
            self.views,
            draft_generator=MockSowGenerator(self.settings.SOW_DRAFT_LATENCY_SECONDS),
        )
        self.catalog = CatalogService(self.cache, self.selection, self.views)
        self.roi = RoiService(self.cache, self.selection, self.views)
        self.transfer = DataTransfer(self.cache, self.selection, restart=self.restart)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        sink: Callable[[str, Any], None] | None = None,
    ) -> DealDeskApp:
        """Build the app from settings (backend, state directory)."""
        settings = settings or get_settings()
        return cls(
            store=build_store(settings),
            storage=LocalStorage(settings.get_state_path()),
            settings=settings,
            sink=sink,
        )

    async def startup(self) -> None:
        """Load every collection, then render every view."""
        logger.info("app.loading", backend=type(self.cache.store).__name__)
        if self.settings.STORE_BACKEND == StoreBackend.sql:
            from src.dealdesk.store.database import init_db

            await init_db()
        results = await self.cache.refresh_all()
        self.views.refresh_all()
        logger.info(
            "app.ready",
            collections=len(results),
            failed=[c.value for c, ok in results.items() if not ok],
            deal_id=self.selection.deal_id,
        )

    async def restart(self) -> None:
        """Re-derive all state from the store, as after a full reload."""
        self.selection.reload()
        await self.startup()

    async def close(self) -> None:
        await self.cache.store.close()
        if self.settings.STORE_BACKEND == StoreBackend.sql:
            from src.dealdesk.store.database import close_db

            await close_db()
