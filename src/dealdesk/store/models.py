"""Table definitions for the SQL backend -- one table per collection.

Mirrors the hosted schema: BIGSERIAL identities, created_at defaulting to
now(), deal-scoped tables referencing deals(id) ON DELETE CASCADE, and JSON
columns for the composite fields (quote items, workflow steps, ROI results,
checked ORDER questions).
"""

from __future__ import annotations

import datetime as dt

from sqlalchemy import JSON, BigInteger, Date, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from src.dealdesk.store.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_IdType = BigInteger().with_variant(Integer(), "sqlite")


def _deal_fk() -> Mapped[int | None]:
    return mapped_column(
        BigInteger, ForeignKey("deals.id", ondelete="CASCADE"), index=True, nullable=True
    )


class _Row:
    id: Mapped[int] = mapped_column(_IdType, primary_key=True, autoincrement=True)
    created_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class DealTable(_Row, Base):
    __tablename__ = "deals"

    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_name: Mapped[str | None] = mapped_column(Text)
    contact_email: Mapped[str | None] = mapped_column(Text)
    value: Mapped[float | None] = mapped_column(Float)
    stage: Mapped[str | None] = mapped_column(String(32))
    updated_at: Mapped[dt.datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class MeetingTable(_Row, Base):
    __tablename__ = "meetings"

    deal_id: Mapped[int | None] = _deal_fk()
    company: Mapped[str | None] = mapped_column(Text)
    date: Mapped[dt.date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)


class OrderSessionTable(_Row, Base):
    __tablename__ = "order_sessions"

    deal_id: Mapped[int | None] = _deal_fk()
    opening: Mapped[str | None] = mapped_column(Text)
    root: Mapped[str | None] = mapped_column(Text)
    deep: Mapped[str | None] = mapped_column(Text)
    enablement: Mapped[str | None] = mapped_column(Text)
    resources: Mapped[str | None] = mapped_column(Text)
    checked_questions: Mapped[list | None] = mapped_column(JSON)


class StakeholderTable(_Row, Base):
    __tablename__ = "stakeholders"

    deal_id: Mapped[int | None] = _deal_fk()
    name: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str | None] = mapped_column(Text)
    role: Mapped[str | None] = mapped_column(Text)
    influence: Mapped[str | None] = mapped_column(Text)
    support: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    criteria: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)


class RoiScenarioTable(_Row, Base):
    __tablename__ = "roi_scenarios"

    deal_id: Mapped[int | None] = _deal_fk()
    name: Mapped[str | None] = mapped_column(Text)
    team_size: Mapped[int | None] = mapped_column(Integer)
    avg_salary: Mapped[float | None] = mapped_column(Float)
    hours_per_week: Mapped[float | None] = mapped_column(Float)
    current_output: Mapped[float | None] = mapped_column(Float)
    time_reduction: Mapped[float | None] = mapped_column(Float)
    output_increase: Mapped[float | None] = mapped_column(Float)
    cost_reduction: Mapped[float | None] = mapped_column(Float)
    implementation_cost: Mapped[float | None] = mapped_column(Float)
    results: Mapped[dict | None] = mapped_column(JSON)


class ServiceOfferingTable(_Row, Base):
    __tablename__ = "service_offerings"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    default_cost: Mapped[float | None] = mapped_column(Float)
    default_price: Mapped[float | None] = mapped_column(Float)


class SowTemplateTable(_Row, Base):
    __tablename__ = "sow_templates"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str | None] = mapped_column(Text)


class SowTable(_Row, Base):
    __tablename__ = "sows"

    deal_id: Mapped[int | None] = _deal_fk()
    company: Mapped[str | None] = mapped_column(Text)
    meeting_id: Mapped[int | None] = mapped_column(BigInteger)
    template_id: Mapped[int | None] = mapped_column(BigInteger)
    content: Mapped[str | None] = mapped_column(Text)


class QuoteTable(_Row, Base):
    __tablename__ = "quotes"

    deal_id: Mapped[int | None] = _deal_fk()
    client: Mapped[str | None] = mapped_column(Text)
    items: Mapped[list | None] = mapped_column(JSON)
    total_cost: Mapped[float | None] = mapped_column(Float)
    total_price: Mapped[float | None] = mapped_column(Float)
    profit: Mapped[float | None] = mapped_column(Float)
    margin: Mapped[str | None] = mapped_column(String(16))
    status: Mapped[str | None] = mapped_column(String(32))


class WorkflowTable(_Row, Base):
    __tablename__ = "workflows"

    deal_id: Mapped[int | None] = _deal_fk()
    quote_id: Mapped[int | None] = mapped_column(BigInteger)
    client: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(String(32))
    steps: Mapped[list | None] = mapped_column(JSON)
