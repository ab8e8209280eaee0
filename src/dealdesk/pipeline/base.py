"""Shared plumbing for pipeline services."""

from __future__ import annotations

from src.dealdesk.errors import ValidationError
from src.dealdesk.records.schemas import Deal
from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import SelectionContext
from src.dealdesk.sync.views import ViewRegistry


class PipelineService:
    """Base for services that write through the cache and refresh views.

    Args:
        cache: SyncCache shared by the whole process.
        selection: Current-selection context scoping deal-bound writes.
        views: Registry refreshed after successful writes (optional).
    """

    def __init__(
        self,
        cache: SyncCache,
        selection: SelectionContext,
        views: ViewRegistry | None = None,
    ) -> None:
        self._cache = cache
        self._selection = selection
        self._views = views or ViewRegistry()

    def _require_deal(self) -> Deal:
        return self._selection.require()

    def _refresh_views(self, *names: str) -> None:
        self._views.refresh(*names)


def require_text(value: str | None, field: str) -> str:
    """Return ``value`` stripped, or raise ValidationError if it is blank."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text
