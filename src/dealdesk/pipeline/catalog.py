"""Global catalog management -- service offerings and SoW templates.

Catalog rows are not deal-scoped, so none of these handlers consult the
current selection. Template edits are true single-row updates.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.dealdesk.errors import ValidationError, WriteFailedError
from src.dealdesk.pipeline.base import PipelineService, require_text
from src.dealdesk.records.schemas import Collection, ServiceOffering, SowTemplate

logger = structlog.get_logger(__name__)

_TEMPLATE_FIELDS = {"name", "category", "content"}


class CatalogService(PipelineService):
    """Handlers for the service catalog and the SoW template library."""

    # ── Service Offerings ───────────────────────────────────────────────────

    async def add_offering(
        self,
        name: str,
        default_price: float,
        category: str | None = None,
        description: str | None = None,
        default_cost: float | None = None,
    ) -> ServiceOffering:
        if default_price is None or default_price < 0:
            raise ValidationError("Default price is required and cannot be negative")
        if default_cost is not None and default_cost < 0:
            raise ValidationError("Default cost cannot be negative")

        offering = await self._cache.create(
            Collection.SERVICE_OFFERINGS,
            ServiceOffering(
                name=require_text(name, "Offering name"),
                category=category,
                description=description,
                default_cost=default_cost or 0.0,
                default_price=default_price,
            ),
        )
        if offering is None:
            raise WriteFailedError("Add service offering")

        self._refresh_views("offerings")
        return offering

    async def delete_offering(self, offering_id: int) -> bool:
        deleted = await self._cache.delete_by_id(Collection.SERVICE_OFFERINGS, offering_id)
        if deleted:
            self._refresh_views("offerings")
        return deleted

    # ── SoW Templates ───────────────────────────────────────────────────────

    async def add_template(
        self, name: str, content: str, category: str | None = None
    ) -> SowTemplate:
        template = await self._cache.create(
            Collection.SOW_TEMPLATES,
            SowTemplate(
                name=require_text(name, "Template name"),
                category=category,
                content=require_text(content, "Template content"),
            ),
        )
        if template is None:
            raise WriteFailedError("Save SoW template")

        self._refresh_views("templates")
        return template

    async def update_template(self, template_id: int, **changes: Any) -> SowTemplate | None:
        """Patch name/category/content of one template in place.

        Returns:
            The updated template, or None if it no longer exists.
        """
        unknown = set(changes) - _TEMPLATE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown template fields: {', '.join(sorted(unknown))}")
        for field in ("name", "content"):
            if field in changes:
                changes[field] = require_text(changes[field], f"Template {field}")

        if self._cache.find(Collection.SOW_TEMPLATES, template_id) is None:
            logger.info("catalog.template_not_found", template_id=template_id)
            return None

        updated = await self._cache.update_by_id(Collection.SOW_TEMPLATES, template_id, changes)
        if updated is None:
            raise WriteFailedError("Update SoW template")

        self._refresh_views("templates")
        return updated

    async def delete_template(self, template_id: int) -> bool:
        deleted = await self._cache.delete_by_id(Collection.SOW_TEMPLATES, template_id)
        if deleted:
            self._refresh_views("templates")
        return deleted
