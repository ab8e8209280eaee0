"""Pydantic schemas for every collection the deal desk mirrors.

Defines:
- Enums: Collection, DealStage, QuoteStatus, WorkflowStatus
- Base rows: Record (identity + timestamp), DealScopedRecord (adds deal_id)
- Entities: Deal, Meeting, Sow, Quote, Workflow, Stakeholder, RoiScenario,
  ServiceOffering, SowTemplate, OrderSession
- Nested values: QuoteItem, WorkflowStep
- COLLECTION_MODELS registry used by the cache to validate raw store rows
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── Enums ───────────────────────────────────────────────────────────────────


class Collection(str, Enum):
    """Remote table names, in the order they are loaded at startup."""

    DEALS = "deals"
    MEETINGS = "meetings"
    ORDER_SESSIONS = "order_sessions"
    STAKEHOLDERS = "stakeholders"
    ROI_SCENARIOS = "roi_scenarios"
    SERVICE_OFFERINGS = "service_offerings"
    SOW_TEMPLATES = "sow_templates"
    SOWS = "sows"
    QUOTES = "quotes"
    WORKFLOWS = "workflows"


class DealStage(str, Enum):
    PROSPECTING = "prospecting"
    QUALIFICATION = "qualification"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSED_WON = "closed-won"
    CLOSED_LOST = "closed-lost"


class QuoteStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    COMPLETED = "completed"


class WorkflowStatus(str, Enum):
    """Post-signature workflow state, derived from completed step count."""

    PENDING_SIGNATURE = "pending_signature"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ── Base Rows ───────────────────────────────────────────────────────────────


class Record(BaseModel):
    """A stored row. id and created_at are assigned by the store."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True, frozen=True)

    id: int | None = None
    created_at: dt.datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize user-supplied fields for an insert (store assigns the rest)."""
        return self.model_dump(mode="json", exclude={"id", "created_at"})


class DealScopedRecord(Record):
    """Row that belongs to exactly one deal."""

    deal_id: int | None = None


# ── Entities ────────────────────────────────────────────────────────────────


class Deal(Record):
    company_name: str
    contact_name: str | None = None
    contact_email: str | None = None
    value: float = 0.0
    stage: DealStage = DealStage.PROSPECTING
    updated_at: dt.datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})


class Meeting(DealScopedRecord):
    company: str | None = None
    date: dt.date | None = None
    notes: str = ""


class Sow(DealScopedRecord):
    """Statement of work generated from a meeting (optionally via a template)."""

    company: str | None = None
    meeting_id: int | None = None
    template_id: int | None = None
    content: str = ""


class QuoteItem(BaseModel):
    description: str = ""
    cost: float = 0.0
    price: float = 0.0


class Quote(DealScopedRecord):
    client: str | None = None
    items: list[QuoteItem] = Field(default_factory=list)
    total_cost: float = 0.0
    total_price: float = 0.0
    profit: float = 0.0
    margin: str = "0.0%"
    status: QuoteStatus = QuoteStatus.PENDING


class WorkflowStep(BaseModel):
    name: str
    completed: bool = False
    date: dt.datetime | None = None


class Workflow(DealScopedRecord):
    quote_id: int | None = None
    client: str | None = None
    status: WorkflowStatus = WorkflowStatus.PENDING_SIGNATURE
    steps: list[WorkflowStep] = Field(default_factory=list)

    @property
    def completed_steps(self) -> int:
        return sum(1 for step in self.steps if step.completed)

    @property
    def progress(self) -> int:
        """Completion percentage rounded to a whole number (0 for no steps)."""
        if not self.steps:
            return 0
        return round(self.completed_steps / len(self.steps) * 100)


class Stakeholder(DealScopedRecord):
    name: str
    title: str | None = None
    role: str | None = None
    influence: str | None = None
    support: str | None = None
    email: str | None = None
    criteria: str | None = None
    notes: str | None = None


class RoiScenario(DealScopedRecord):
    """Immutable snapshot of an ROI calculation (inputs plus formatted results)."""

    name: str | None = None
    team_size: int = 0
    avg_salary: float = 0.0
    hours_per_week: float = 0.0
    current_output: float = 0.0
    time_reduction: float = 0.0
    output_increase: float = 0.0
    cost_reduction: float = 0.0
    implementation_cost: float = 0.0
    results: dict[str, str] = Field(default_factory=dict)


class ServiceOffering(Record):
    name: str
    category: str | None = None
    description: str | None = None
    default_cost: float = 0.0
    default_price: float = 0.0


class SowTemplate(Record):
    name: str
    category: str | None = None
    content: str = ""


class OrderSession(DealScopedRecord):
    """ORDER framework discovery notes captured during a call."""

    opening: str = ""
    root: str = ""
    deep: str = ""
    enablement: str = ""
    resources: str = ""
    checked_questions: list[str] = Field(default_factory=list)


# ── Registry ────────────────────────────────────────────────────────────────

COLLECTION_MODELS: dict[Collection, type[Record]] = {
    Collection.DEALS: Deal,
    Collection.MEETINGS: Meeting,
    Collection.ORDER_SESSIONS: OrderSession,
    Collection.STAKEHOLDERS: Stakeholder,
    Collection.ROI_SCENARIOS: RoiScenario,
    Collection.SERVICE_OFFERINGS: ServiceOffering,
    Collection.SOW_TEMPLATES: SowTemplate,
    Collection.SOWS: Sow,
    Collection.QUOTES: Quote,
    Collection.WORKFLOWS: Workflow,
}
