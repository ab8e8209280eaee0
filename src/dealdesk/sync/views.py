"""Derived view builders -- pure functions over cache snapshots.

Each builder reads SyncCache snapshots (never the network) scoped by the
active deal and returns a pydantic view model for the display layer. View
wraps a builder with its last result and an optional display sink;
ViewRegistry is the explicit, ordered list of views that selection changes
and writes refresh.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, Field

from src.dealdesk.records.schemas import (
    Collection,
    Deal,
    Meeting,
    Quote,
    Sow,
    Stakeholder,
    Workflow,
    WorkflowStatus,
)
from src.dealdesk.sync.cache import SyncCache

logger = structlog.get_logger(__name__)

_SUPPORTIVE = {"strong-supporter", "supporter"}
_INFLUENCE_ORDER = {"high": 3, "medium": 2, "low": 1}
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ── View Models ─────────────────────────────────────────────────────────────


class DealOption(BaseModel):
    deal_id: int
    label: str
    selected: bool = False


class ActivityItem(BaseModel):
    kind: str
    title: str
    record_id: int | None = None
    created_at: datetime | None = None


class Dashboard(BaseModel):
    """Per-deal counters and the five most recent activities."""

    deal_id: int | None = None
    meetings: int = 0
    sows: int = 0
    quotes: int = 0
    active_workflows: int = 0
    recent_activity: list[ActivityItem] = Field(default_factory=list)


class FormDefaults(BaseModel):
    """Values pre-filled into capture forms from the active deal."""

    research_company: str = ""
    research_leader: str = ""
    meeting_company: str = ""
    quote_client: str = ""


class WorkflowCard(BaseModel):
    workflow_id: int | None
    quote_id: int | None
    client: str | None
    status: str
    completed_steps: int
    total_steps: int
    progress: int
    next_step: str | None = None


# ── Builders ────────────────────────────────────────────────────────────────


def deal_options(cache: SyncCache, selected_id: int | None) -> list[DealOption]:
    """Deal selector entries: ``"<company> - <contact>"`` newest first."""
    return [
        DealOption(
            deal_id=deal.id,
            label=f"{deal.company_name} - {deal.contact_name or 'No contact'}",
            selected=deal.id == selected_id,
        )
        for deal in cache.read(Collection.DEALS)
    ]


def dashboard(cache: SyncCache, deal_id: int | None) -> Dashboard:
    if deal_id is None:
        return Dashboard()

    meetings = cache.for_deal(Collection.MEETINGS, deal_id)
    sows = cache.for_deal(Collection.SOWS, deal_id)
    quotes = cache.for_deal(Collection.QUOTES, deal_id)
    workflows = cache.for_deal(Collection.WORKFLOWS, deal_id)

    activity = [_activity("meeting", m) for m in meetings]
    activity += [_activity("quote", q) for q in quotes]
    activity += [_activity("sow", s) for s in sows]
    activity.sort(key=lambda item: _sort_time(item.created_at), reverse=True)

    return Dashboard(
        deal_id=deal_id,
        meetings=len(meetings),
        sows=len(sows),
        quotes=len(quotes),
        active_workflows=sum(1 for w in workflows if w.status != WorkflowStatus.COMPLETED),
        recent_activity=activity[:5],
    )


def form_defaults(deal: Deal | None) -> FormDefaults:
    if deal is None:
        return FormDefaults()
    return FormDefaults(
        research_company=deal.company_name or "",
        research_leader=deal.contact_name or "",
        meeting_company=deal.company_name or "",
        quote_client=deal.company_name or "",
    )


def deal_records(cache: SyncCache, collection: Collection, deal_id: int | None) -> list[Any]:
    """Deal-scoped rows in insertion order (oldest first), as the lists display them."""
    return list(reversed(cache.for_deal(collection, deal_id)))


def workflow_cards(cache: SyncCache, deal_id: int | None) -> list[WorkflowCard]:
    cards = []
    for workflow in deal_records(cache, Collection.WORKFLOWS, deal_id):
        next_step = next((s.name for s in workflow.steps if not s.completed), None)
        cards.append(
            WorkflowCard(
                workflow_id=workflow.id,
                quote_id=workflow.quote_id,
                client=workflow.client,
                status=workflow.status,
                completed_steps=workflow.completed_steps,
                total_steps=len(workflow.steps),
                progress=workflow.progress,
                next_step=next_step,
            )
        )
    return cards


def stakeholder_quadrant(stakeholder: Stakeholder) -> str:
    """Place a stakeholder on the influence/support grid."""
    supportive = stakeholder.support in _SUPPORTIVE
    if stakeholder.influence == "high" and supportive:
        return "champion"
    if stakeholder.influence == "high":
        return "key"
    if supportive:
        return "supporter"
    return "monitor"


def stakeholder_map(cache: SyncCache, deal_id: int | None) -> dict[str, list[Stakeholder]]:
    quadrants: dict[str, list[Stakeholder]] = {
        "champion": [],
        "key": [],
        "supporter": [],
        "monitor": [],
    }
    for stakeholder in cache.for_deal(Collection.STAKEHOLDERS, deal_id):
        quadrants[stakeholder_quadrant(stakeholder)].append(stakeholder)
    return quadrants


def approval_path(cache: SyncCache, deal_id: int | None) -> list[Stakeholder]:
    """Decision-makers and champions, highest influence first."""
    signers = [
        s
        for s in cache.for_deal(Collection.STAKEHOLDERS, deal_id)
        if s.role in ("decision-maker", "champion")
    ]
    return sorted(signers, key=lambda s: _INFLUENCE_ORDER.get(s.influence or "", 0), reverse=True)


def meeting_options(cache: SyncCache, deal_id: int | None) -> list[tuple[int, str]]:
    """(meeting id, label) pairs for the SoW meeting picker."""
    options = []
    for meeting in cache.for_deal(Collection.MEETINGS, deal_id):
        when = meeting.date.isoformat() if meeting.date else "undated"
        options.append((meeting.id, f"{meeting.company} - {when}"))
    return options


def _activity(kind: str, record: Meeting | Quote | Sow) -> ActivityItem:
    if kind == "meeting":
        title = f"Meeting with {record.company}"
    elif kind == "quote":
        title = f"Quote for {record.client}"
    else:
        title = f"SoW generated for {record.company}"
    return ActivityItem(kind=kind, title=title, record_id=record.id, created_at=record.created_at)


def _sort_time(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ── Registry ────────────────────────────────────────────────────────────────


class View:
    """A named builder plus its most recent model.

    Args:
        name: Registry key (e.g. ``dashboard``).
        build: Zero-argument callable producing the view model.
        sink: Optional display callback receiving ``(name, model)``.
    """

    def __init__(
        self,
        name: str,
        build: Callable[[], Any],
        sink: Callable[[str, Any], None] | None = None,
    ) -> None:
        self.name = name
        self._build = build
        self._sink = sink
        self.model: Any = None

    def refresh(self) -> Any:
        self.model = self._build()
        if self._sink is not None:
            self._sink(self.name, self.model)
        return self.model


class ViewRegistry:
    """Ordered collection of views refreshed explicitly by name."""

    def __init__(self, views: Iterable[View] = ()) -> None:
        self._views: dict[str, View] = {}
        for view in views:
            self.register(view)

    def register(self, view: View) -> View:
        self._views[view.name] = view
        return view

    def __getitem__(self, name: str) -> View:
        return self._views[name]

    def __contains__(self, name: object) -> bool:
        return name in self._views

    def __len__(self) -> int:
        return len(self._views)

    @property
    def names(self) -> list[str]:
        return list(self._views)

    def refresh(self, *names: str) -> None:
        """Rebuild the named views in the order given; unknown names are skipped.

        Runs after writes have committed, so a view that fails to build or
        render is logged and the remaining views still refresh.
        """
        for name in names:
            view = self._views.get(name)
            if view is None:
                logger.debug("views.unknown_view", view=name)
                continue
            _refresh_one(view)

    def refresh_all(self) -> None:
        for view in self._views.values():
            _refresh_one(view)


def _refresh_one(view: View) -> None:
    try:
        view.refresh()
    except Exception:
        logger.exception("views.refresh_failed", view=view.name)
