"""Tests for derived view builders and the view registry."""

from __future__ import annotations

from datetime import date, datetime, timezone

from src.dealdesk.records.schemas import (
    Collection,
    Deal,
    Meeting,
    Quote,
    Sow,
    Stakeholder,
    Workflow,
    WorkflowStep,
)
from src.dealdesk.sync import views as v
from src.dealdesk.sync.views import View, ViewRegistry


def _stakeholder(name: str, **fields) -> Stakeholder:
    return Stakeholder(deal_id=1, name=name, **fields)


# ── Builders ───────────────────────────────────────────────────────────────


class TestDealOptions:
    async def test_labels_and_selection_flag(self, cache):
        acme = await cache.create(
            Collection.DEALS, Deal(company_name="Acme", contact_name="Wile")
        )
        globex = await cache.create(Collection.DEALS, Deal(company_name="Globex"))

        options = v.deal_options(cache, acme.id)

        assert [o.label for o in options] == ["Globex - No contact", "Acme - Wile"]
        assert [o.selected for o in options] == [False, True]
        assert options[0].deal_id == globex.id


class TestDashboard:
    def test_no_selection_gives_empty_dashboard(self, cache):
        board = v.dashboard(cache, None)

        assert board.deal_id is None
        assert board.meetings == 0
        assert board.recent_activity == []

    async def test_counts_are_scoped_to_deal(self, cache):
        await cache.create(Collection.MEETINGS, Meeting(deal_id=1, company="Acme"))
        await cache.create(Collection.MEETINGS, Meeting(deal_id=2, company="Globex"))
        await cache.create(Collection.SOWS, Sow(deal_id=1, company="Acme"))
        await cache.create(Collection.QUOTES, Quote(deal_id=1, client="Acme"))
        await cache.create(
            Collection.WORKFLOWS, Workflow(deal_id=1, status="in_progress")
        )
        await cache.create(Collection.WORKFLOWS, Workflow(deal_id=1, status="completed"))

        board = v.dashboard(cache, 1)

        assert board.meetings == 1
        assert board.sows == 1
        assert board.quotes == 1
        assert board.active_workflows == 1

    async def test_recent_activity_is_newest_five(self, store, cache):
        for day in range(1, 8):
            await store.insert_one(
                "meetings",
                {
                    "deal_id": 1,
                    "company": f"Day {day}",
                    "created_at": datetime(2026, 3, day, tzinfo=timezone.utc).isoformat(),
                },
            )
        await store.insert_one(
            "quotes",
            {"deal_id": 1, "client": "Acme", "created_at": "2026-03-10T00:00:00"},
        )
        await cache.refresh_all()

        activity = v.dashboard(cache, 1).recent_activity

        assert len(activity) == 5
        assert activity[0].title == "Quote for Acme"
        assert [a.title for a in activity[1:]] == [
            "Meeting with Day 7",
            "Meeting with Day 6",
            "Meeting with Day 5",
            "Meeting with Day 4",
        ]


class TestFormDefaults:
    def test_blank_without_deal(self):
        assert v.form_defaults(None).quote_client == ""

    def test_filled_from_deal(self):
        defaults = v.form_defaults(Deal(company_name="Acme", contact_name="Wile"))

        assert defaults.research_company == "Acme"
        assert defaults.research_leader == "Wile"
        assert defaults.meeting_company == "Acme"
        assert defaults.quote_client == "Acme"


class TestDealRecords:
    async def test_oldest_first(self, cache):
        for note in ("one", "two", "three"):
            await cache.create(Collection.MEETINGS, Meeting(deal_id=1, notes=note))

        notes = [m.notes for m in v.deal_records(cache, Collection.MEETINGS, 1)]

        assert notes == ["one", "two", "three"]

    async def test_meeting_options(self, cache):
        await cache.create(
            Collection.MEETINGS, Meeting(deal_id=1, company="Acme", date=date(2026, 1, 15))
        )
        await cache.create(Collection.MEETINGS, Meeting(deal_id=1, company="Acme"))

        labels = [label for _, label in v.meeting_options(cache, 1)]

        assert labels == ["Acme - undated", "Acme - 2026-01-15"]


class TestWorkflowCards:
    async def test_card_progress_and_next_step(self, cache):
        steps = [
            WorkflowStep(name="Quote Sent", completed=True),
            WorkflowStep(name="Signature Received", completed=True),
            WorkflowStep(name="Routed to AR"),
        ]
        await cache.create(
            Collection.WORKFLOWS,
            Workflow(deal_id=1, quote_id=4, client="Acme", status="in_progress", steps=steps),
        )

        (card,) = v.workflow_cards(cache, 1)

        assert card.completed_steps == 2
        assert card.total_steps == 3
        assert card.progress == 67
        assert card.next_step == "Routed to AR"
        assert card.quote_id == 4


class TestStakeholders:
    def test_quadrants(self):
        assert v.stakeholder_quadrant(
            _stakeholder("A", influence="high", support="strong-supporter")
        ) == "champion"
        assert v.stakeholder_quadrant(_stakeholder("B", influence="high", support="neutral")) == "key"
        assert v.stakeholder_quadrant(_stakeholder("C", influence="low", support="supporter")) == "supporter"
        assert v.stakeholder_quadrant(_stakeholder("D")) == "monitor"

    async def test_map_and_approval_path(self, cache):
        await cache.create(
            Collection.STAKEHOLDERS,
            _stakeholder("Low DM", role="decision-maker", influence="low", support="neutral"),
        )
        await cache.create(
            Collection.STAKEHOLDERS,
            _stakeholder("Exec", role="decision-maker", influence="high", support="supporter"),
        )
        await cache.create(
            Collection.STAKEHOLDERS,
            _stakeholder("User", role="end-user", influence="medium", support="supporter"),
        )

        board = v.stakeholder_map(cache, 1)
        path = v.approval_path(cache, 1)

        assert [s.name for s in board["champion"]] == ["Exec"]
        assert [s.name for s in board["supporter"]] == ["User"]
        assert [s.name for s in board["monitor"]] == ["Low DM"]
        assert [s.name for s in path] == ["Exec", "Low DM"]


# ── Registry ───────────────────────────────────────────────────────────────


class TestViewRegistry:
    def test_refresh_pushes_to_sink(self):
        pushed: list[tuple[str, object]] = []
        view = View("counter", lambda: 3, sink=lambda name, model: pushed.append((name, model)))

        assert view.refresh() == 3
        assert view.model == 3
        assert pushed == [("counter", 3)]

    def test_refresh_named_views_in_order(self):
        order: list[str] = []
        registry = ViewRegistry(
            [
                View("a", lambda: order.append("a")),
                View("b", lambda: order.append("b")),
                View("c", lambda: order.append("c")),
            ]
        )

        registry.refresh("c", "a", "missing")

        assert order == ["c", "a"]

    def test_refresh_all_uses_registration_order(self):
        order: list[str] = []
        registry = ViewRegistry()
        registry.register(View("x", lambda: order.append("x")))
        registry.register(View("y", lambda: order.append("y")))

        registry.refresh_all()

        assert order == ["x", "y"]
        assert registry.names == ["x", "y"]
        assert "x" in registry
        assert len(registry) == 2

    def test_failing_view_does_not_stop_the_rest(self):
        order: list[str] = []

        def broken():
            raise RuntimeError("render failed")

        registry = ViewRegistry(
            [
                View("a", lambda: order.append("a")),
                View("b", broken),
                View("c", lambda: order.append("c")),
            ]
        )

        registry.refresh("a", "b", "c")
        registry.refresh_all()

        assert order == ["a", "c", "a", "c"]
