"""Deal lifecycle handlers -- deals, meeting notes, ORDER sessions, stakeholders, research."""

from __future__ import annotations

import datetime as dt
from typing import Any

import structlog

from src.dealdesk.errors import ValidationError, WriteFailedError
from src.dealdesk.pipeline.base import PipelineService, require_text
from src.dealdesk.records.schemas import (
    Collection,
    Deal,
    DealStage,
    Meeting,
    OrderSession,
    Stakeholder,
)
from src.dealdesk.services.generators import MockResearchGenerator, TextGenerator
from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import SelectionContext
from src.dealdesk.sync.views import ViewRegistry

logger = structlog.get_logger(__name__)

_STAKEHOLDER_FIELDS = ("name", "title", "role", "influence", "support", "email", "criteria", "notes")


class DealService(PipelineService):
    """Handlers for deal creation and the deal-scoped capture forms.

    Args:
        cache: SyncCache shared by the whole process.
        selection: Current-selection context.
        views: Registry refreshed after writes.
        research_generator: Produces pre-call research briefs.
    """

    def __init__(
        self,
        cache: SyncCache,
        selection: SelectionContext,
        views: ViewRegistry | None = None,
        research_generator: TextGenerator | None = None,
    ) -> None:
        super().__init__(cache, selection, views)
        self._research = research_generator or MockResearchGenerator()

    # ── Deals ───────────────────────────────────────────────────────────────

    async def create_deal(
        self,
        company_name: str,
        contact_name: str | None = None,
        contact_email: str | None = None,
        value: float | None = None,
        stage: str = DealStage.PROSPECTING.value,
    ) -> Deal:
        """Create a deal and make it the active selection."""
        company = require_text(company_name, "Company name")
        try:
            deal_stage = DealStage(stage)
        except ValueError:
            raise ValidationError(f"Unknown deal stage: {stage}") from None
        if value is not None and value < 0:
            raise ValidationError("Deal value cannot be negative")

        deal = await self._cache.create(
            Collection.DEALS,
            Deal(
                company_name=company,
                contact_name=contact_name or None,
                contact_email=contact_email or None,
                value=value or 0.0,
                stage=deal_stage,
            ),
        )
        if deal is None:
            raise WriteFailedError("Create deal")

        self._selection.select(deal.id)
        logger.info("deals.deal_created", deal_id=deal.id, company=company)
        return deal

    # ── Meetings ────────────────────────────────────────────────────────────

    async def save_meeting(
        self,
        date: dt.date | str,
        notes: str,
        company: str | None = None,
    ) -> Meeting:
        """Record meeting notes against the active deal."""
        deal = self._require_deal()
        meeting_date = _parse_date(date)
        text = require_text(notes, "Meeting notes")

        meeting = await self._cache.create(
            Collection.MEETINGS,
            Meeting(
                deal_id=deal.id,
                company=company or deal.company_name,
                date=meeting_date,
                notes=text,
            ),
        )
        if meeting is None:
            raise WriteFailedError("Save meeting notes")

        self._refresh_views("meetings", "meeting_options", "dashboard")
        return meeting

    # ── ORDER Framework ─────────────────────────────────────────────────────

    async def save_order_session(
        self,
        opening: str = "",
        root: str = "",
        deep: str = "",
        enablement: str = "",
        resources: str = "",
        checked_questions: list[str] | None = None,
    ) -> OrderSession:
        """Append an ORDER framework snapshot for the active deal."""
        deal = self._require_deal()
        session = await self._cache.create(
            Collection.ORDER_SESSIONS,
            OrderSession(
                deal_id=deal.id,
                opening=opening,
                root=root,
                deep=deep,
                enablement=enablement,
                resources=resources,
                checked_questions=list(checked_questions or []),
            ),
        )
        if session is None:
            raise WriteFailedError("Save ORDER framework notes")

        self._refresh_views("order_sessions")
        return session

    # ── Stakeholders ────────────────────────────────────────────────────────

    async def add_stakeholder(self, name: str, **fields: str | None) -> Stakeholder:
        deal = self._require_deal()
        unknown = set(fields) - set(_STAKEHOLDER_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown stakeholder fields: {', '.join(sorted(unknown))}")

        stakeholder = await self._cache.create(
            Collection.STAKEHOLDERS,
            Stakeholder(deal_id=deal.id, name=require_text(name, "Stakeholder name"), **fields),
        )
        if stakeholder is None:
            raise WriteFailedError("Add stakeholder")

        self._refresh_views("stakeholders", "approval_path")
        return stakeholder

    async def edit_stakeholder(self, stakeholder_id: int, **changes: Any) -> Stakeholder | None:
        """Replace a stakeholder with an edited copy (delete, then recreate).

        Returns:
            The recreated stakeholder, or None if it no longer exists.
        """
        existing = self._cache.find(Collection.STAKEHOLDERS, stakeholder_id)
        if existing is None:
            logger.info("deals.stakeholder_not_found", stakeholder_id=stakeholder_id)
            return None

        fields = {k: getattr(existing, k) for k in _STAKEHOLDER_FIELDS}
        fields.update(changes)
        name = require_text(fields.pop("name"), "Stakeholder name")

        if not await self._cache.delete_by_id(Collection.STAKEHOLDERS, stakeholder_id):
            raise WriteFailedError("Edit stakeholder")
        replacement = await self._cache.create(
            Collection.STAKEHOLDERS,
            Stakeholder(deal_id=existing.deal_id, name=name, **fields),
        )
        if replacement is None:
            raise WriteFailedError("Edit stakeholder")

        self._refresh_views("stakeholders", "approval_path")
        return replacement

    async def delete_stakeholder(self, stakeholder_id: int) -> bool:
        deleted = await self._cache.delete_by_id(Collection.STAKEHOLDERS, stakeholder_id)
        if deleted:
            self._refresh_views("stakeholders", "approval_path")
        return deleted

    # ── Research ────────────────────────────────────────────────────────────

    async def prepare_research(self, company: str, leader: str | None = None) -> str:
        """Generate a pre-call research brief (not persisted)."""
        return await self._research.generate(
            company=require_text(company, "Company name"), leader=leader or ""
        )


def _parse_date(value: dt.date | str) -> dt.date:
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat((value or "").strip())
    except ValueError:
        raise ValidationError(f"Invalid meeting date: {value!r}") from None
