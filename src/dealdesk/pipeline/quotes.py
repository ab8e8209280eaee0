"""Quote builder and post-signature workflow tracker.

A quote submission is a two-record write: the quote, then the workflow that
tracks it through signature and kickoff. Both records are built and
validated before either write. If the workflow write fails the quote is
deleted again, and the caller gets one CascadeError describing the combined
outcome (including an orphaned quote when the compensating delete fails too).

Workflow status is a function of the completed step count and only moves
forward: pending_signature (0-1) -> in_progress (2-5) -> completed (all).
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel

from src.dealdesk.errors import CascadeError, ValidationError, WriteFailedError
from src.dealdesk.pipeline.base import PipelineService
from src.dealdesk.records.schemas import (
    Collection,
    Quote,
    QuoteItem,
    QuoteStatus,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
)

logger = structlog.get_logger(__name__)

WORKFLOW_STEPS: tuple[str, ...] = (
    "Quote Sent",
    "Signature Received",
    "Routed to AR",
    "Routed to Engineers",
    "50% Down Payment",
    "Project Kickoff",
)

_STATUS_RANK = {
    WorkflowStatus.PENDING_SIGNATURE: 0,
    WorkflowStatus.IN_PROGRESS: 1,
    WorkflowStatus.COMPLETED: 2,
}


class QuoteTotals(BaseModel):
    total_cost: float
    total_price: float
    profit: float
    margin: str


class QuoteSubmission(BaseModel):
    quote: Quote
    workflow: Workflow


def compute_totals(items: Iterable[QuoteItem]) -> QuoteTotals:
    """Sum an item list and derive profit and margin.

    Margin is profit / total price as a one-decimal percentage string; a
    zero total price yields ``"0.0%"`` instead of dividing by zero.
    """
    items = list(items)
    total_cost = sum(item.cost for item in items)
    total_price = sum(item.price for item in items)
    profit = total_price - total_cost
    margin = profit / total_price * 100 if total_price > 0 else 0.0
    return QuoteTotals(
        total_cost=total_cost,
        total_price=total_price,
        profit=profit,
        margin=f"{margin:.1f}%",
    )


def workflow_status_for(completed: int, total: int = len(WORKFLOW_STEPS)) -> WorkflowStatus:
    if total and completed >= total:
        return WorkflowStatus.COMPLETED
    if completed > 1:
        return WorkflowStatus.IN_PROGRESS
    return WorkflowStatus.PENDING_SIGNATURE


def new_workflow(deal_id: int, client: str | None, sent_at: datetime) -> Workflow:
    """Fresh checklist: "Quote Sent" stamped complete, the rest open."""
    steps = [WorkflowStep(name=WORKFLOW_STEPS[0], completed=True, date=sent_at)]
    steps += [WorkflowStep(name=name) for name in WORKFLOW_STEPS[1:]]
    return Workflow(
        deal_id=deal_id,
        client=client,
        status=WorkflowStatus.PENDING_SIGNATURE,
        steps=steps,
    )


class QuoteService(PipelineService):
    """Quote submission, workflow advancement, and quote status."""

    async def submit_quote(
        self,
        items: Iterable[QuoteItem | dict],
        client: str | None = None,
    ) -> QuoteSubmission:
        """Create a quote for the active deal together with its workflow.

        Raises:
            NoActiveDealError: No deal selected.
            ValidationError: No items, or an item with a negative amount.
            WriteFailedError: The quote itself could not be stored.
            CascadeError: The quote was stored but its workflow was not.
        """
        deal = self._require_deal()
        line_items = [QuoteItem.model_validate(item) for item in items]
        if not line_items:
            raise ValidationError("A quote needs at least one line item")
        if any(item.cost < 0 or item.price < 0 for item in line_items):
            raise ValidationError("Line item cost and price cannot be negative")

        client = client or deal.company_name
        totals = compute_totals(line_items)
        staged_quote = Quote(
            deal_id=deal.id,
            client=client,
            items=line_items,
            status=QuoteStatus.PENDING,
            **totals.model_dump(),
        )
        staged_workflow = new_workflow(deal.id, client, datetime.now(timezone.utc))

        quote = await self._cache.create(Collection.QUOTES, staged_quote)
        if quote is None:
            raise WriteFailedError("Generate quote")

        workflow = await self._cache.create(
            Collection.WORKFLOWS, staged_workflow.model_copy(update={"quote_id": quote.id})
        )
        if workflow is None:
            await self._roll_back_quote(quote)

        self._refresh_views("quotes", "workflows", "dashboard")
        logger.info(
            "quotes.submitted",
            deal_id=deal.id,
            quote_id=quote.id,
            workflow_id=workflow.id,
            margin=quote.margin,
        )
        return QuoteSubmission(quote=quote, workflow=workflow)

    async def _roll_back_quote(self, quote: Quote) -> None:
        if await self._cache.delete_by_id(Collection.QUOTES, quote.id):
            logger.warning("quotes.rolled_back", quote_id=quote.id)
            self._refresh_views("quotes", "dashboard")
            raise CascadeError(
                "Quote was not saved: its workflow could not be created, "
                "so the quote was rolled back."
            )
        logger.error("quotes.orphaned", quote_id=quote.id)
        self._refresh_views("quotes", "dashboard")
        raise CascadeError(
            f"Quote {quote.id} was saved but its workflow could not be created, "
            "and removing the quote also failed; the quote has no workflow.",
            orphaned=quote.id,
        )

    async def advance_workflow(
        self, workflow_id: int, now: datetime | None = None
    ) -> Workflow | None:
        """Complete the first open step of a workflow.

        Returns:
            The updated workflow, or None when the workflow is gone or
            already complete (no write is made).
        """
        workflow = self._cache.find(Collection.WORKFLOWS, workflow_id)
        if workflow is None:
            logger.info("quotes.workflow_not_found", workflow_id=workflow_id)
            return None

        index = next((i for i, s in enumerate(workflow.steps) if not s.completed), None)
        if index is None:
            logger.info("quotes.workflow_already_complete", workflow_id=workflow_id)
            return None

        stamp = now or datetime.now(timezone.utc)
        steps = [step.model_copy() for step in workflow.steps]
        steps[index] = steps[index].model_copy(update={"completed": True, "date": stamp})

        derived = workflow_status_for(sum(1 for s in steps if s.completed), len(steps))
        current = WorkflowStatus(workflow.status)
        status = max(current, derived, key=_STATUS_RANK.__getitem__)

        updated = await self._cache.update_by_id(
            Collection.WORKFLOWS,
            workflow_id,
            {"steps": [s.model_dump(mode="json") for s in steps], "status": status.value},
        )
        if updated is None:
            raise WriteFailedError("Complete next workflow step")

        self._refresh_views("workflows", "dashboard")
        logger.info(
            "quotes.workflow_advanced",
            workflow_id=workflow_id,
            step=steps[index].name,
            status=status.value,
        )
        return updated

    async def set_quote_status(self, quote_id: int, status: str) -> Quote | None:
        """Record a quote's commercial status (never derived automatically)."""
        try:
            quote_status = QuoteStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown quote status: {status}") from None

        if self._cache.find(Collection.QUOTES, quote_id) is None:
            logger.info("quotes.quote_not_found", quote_id=quote_id)
            return None

        updated = await self._cache.update_by_id(
            Collection.QUOTES, quote_id, {"status": quote_status.value}
        )
        if updated is None:
            raise WriteFailedError("Update quote status")

        self._refresh_views("quotes")
        return updated
