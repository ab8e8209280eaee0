"""Statement-of-work generation from templates and meeting notes.

Templates carry ``{{TOKEN}}`` placeholders. Every occurrence of a recognized
token is replaced with the matching deal or meeting field (empty string when
the field is missing); unrecognized tokens pass through verbatim.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Callable

import structlog

from src.dealdesk.errors import ValidationError, WriteFailedError
from src.dealdesk.pipeline.base import PipelineService
from src.dealdesk.records.schemas import Collection, Deal, Meeting, Sow, SowTemplate
from src.dealdesk.services.generators import MockSowGenerator, TextGenerator
from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import SelectionContext
from src.dealdesk.sync.views import ViewRegistry

logger = structlog.get_logger(__name__)


def format_date(value: dt.date | None) -> str:
    """US short date (``1/15/2026``); empty for None."""
    if value is None:
        return ""
    return f"{value.month}/{value.day}/{value.year}"


def format_money(value: float | None) -> str:
    """Currency with thousands separators (``$1,250,000``); empty for 0/None."""
    if not value:
        return ""
    if float(value).is_integer():
        return f"${value:,.0f}"
    return f"${value:,.2f}"


PLACEHOLDERS: dict[str, Callable[[Deal | None, Meeting, dt.date], str]] = {
    "{{COMPANY_NAME}}": lambda deal, meeting, today: (
        (deal.company_name if deal else None) or meeting.company or ""
    ),
    "{{CONTACT_NAME}}": lambda deal, meeting, today: (deal.contact_name if deal else None) or "",
    "{{CONTACT_EMAIL}}": lambda deal, meeting, today: (deal.contact_email if deal else None) or "",
    "{{DEAL_VALUE}}": lambda deal, meeting, today: format_money(deal.value if deal else None),
    "{{CURRENT_DATE}}": lambda deal, meeting, today: format_date(today),
    "{{MEETING_DATE}}": lambda deal, meeting, today: format_date(meeting.date),
    "{{MEETING_NOTES}}": lambda deal, meeting, today: meeting.notes or "",
}


def render_template(
    content: str,
    deal: Deal | None,
    meeting: Meeting,
    today: dt.date | None = None,
) -> str:
    """Substitute every recognized placeholder in ``content``."""
    today = today or dt.date.today()
    for token, resolve in PLACEHOLDERS.items():
        if token in content:
            content = content.replace(token, resolve(deal, meeting, today))
    return content


class SowService(PipelineService):
    """Generates, drafts, and edits statements of work for the active deal.

    Args:
        cache: SyncCache shared by the whole process.
        selection: Current-selection context.
        views: Registry refreshed after writes.
        draft_generator: Produces a SoW when no template is chosen.
    """

    def __init__(
        self,
        cache: SyncCache,
        selection: SelectionContext,
        views: ViewRegistry | None = None,
        draft_generator: TextGenerator | None = None,
    ) -> None:
        super().__init__(cache, selection, views)
        self._drafts = draft_generator or MockSowGenerator()

    def _meeting(self, meeting_id: int | None) -> Meeting:
        meeting = self._cache.find(Collection.MEETINGS, meeting_id)
        if meeting is None:
            raise ValidationError("Choose a meeting to generate the SoW from")
        return meeting

    async def generate_sow(
        self,
        meeting_id: int,
        template_id: int,
        today: dt.date | None = None,
    ) -> Sow:
        """Render a template against a meeting and store the result."""
        deal = self._require_deal()
        meeting = self._meeting(meeting_id)
        template = self._cache.find(Collection.SOW_TEMPLATES, template_id)
        if not isinstance(template, SowTemplate):
            raise ValidationError("Choose a template to generate the SoW from")

        content = render_template(template.content, deal, meeting, today)
        return await self._store_sow(deal, meeting, content, template.id)

    async def draft_sow(self, meeting_id: int) -> Sow:
        """Have the draft generator write a SoW for a meeting and store it."""
        deal = self._require_deal()
        meeting = self._meeting(meeting_id)
        content = await self._drafts.generate(company=meeting.company, meeting_date=meeting.date)
        return await self._store_sow(deal, meeting, content, None)

    async def _store_sow(
        self, deal: Deal, meeting: Meeting, content: str, template_id: int | None
    ) -> Sow:
        sow = await self._cache.create(
            Collection.SOWS,
            Sow(
                deal_id=deal.id,
                company=meeting.company,
                meeting_id=meeting.id,
                template_id=template_id,
                content=content,
            ),
        )
        if sow is None:
            raise WriteFailedError("Generate SoW")

        self._refresh_views("sows", "dashboard")
        logger.info("sow.generated", sow_id=sow.id, meeting_id=meeting.id, template_id=template_id)
        return sow

    async def save_sow_edit(self, sow_id: int, content: str) -> Sow | None:
        """Persist edited SoW text; None if the SoW no longer exists."""
        if self._cache.find(Collection.SOWS, sow_id) is None:
            logger.info("sow.not_found", sow_id=sow_id)
            return None

        updated = await self._cache.update_by_id(Collection.SOWS, sow_id, {"content": content})
        if updated is None:
            raise WriteFailedError("Save SoW changes")

        self._refresh_views("sows")
        return updated
