"""SQLAlchemy table store -- the TableStore contract over an async engine.

Uses the session_factory callable pattern: the store is handed an async
generator function yielding AsyncSession instances (get_session in
production, a sqlite-backed factory in tests). Statements are built against
Base.metadata so every collection shares one code path.

Connection failures surface from the driver as OSError (asyncpg raises
ConnectionRefusedError on first execute); they are reported as StoreError
together with SQLAlchemy's own errors.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import AsyncGenerator, AsyncIterator, Callable
from contextlib import aclosing, asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import Date, DateTime, Table, delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.dealdesk.errors import StoreError
from src.dealdesk.store import models  # noqa: F401 -- registers tables
from src.dealdesk.store.adapter import Row, TableStore
from src.dealdesk.store.database import Base

logger = structlog.get_logger(__name__)

_DB_ERRORS = (SQLAlchemyError, OSError)


class SqlTableStore(TableStore):
    """Table store backed by SQLAlchemy async sessions.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        """Take the first session from the factory and close it on exit."""
        async with aclosing(self._session_factory()) as sessions:
            async for session in sessions:
                yield session
                return
        raise RuntimeError("session factory yielded no session")

    def _table(self, name: str, operation: str) -> Table:
        try:
            return Base.metadata.tables[name]
        except KeyError:
            raise StoreError(name, operation, f'relation "{name}" does not exist') from None

    async def select_all(self, table: str) -> list[Row]:
        tbl = self._table(table, "select")
        async with self._session() as session:
            try:
                result = await session.execute(select(tbl).order_by(tbl.c.id.desc()))
            except _DB_ERRORS as exc:
                raise StoreError(table, "select", _describe(exc)) from exc
            return [dict(row._mapping) for row in result]

    async def insert_one(self, table: str, row: Row) -> Row:
        tbl = self._table(table, "insert")
        values = _coerce(tbl, row, "insert")
        async with self._session() as session:
            try:
                result = await session.execute(insert(tbl).values(**values).returning(*tbl.c))
                stored = dict(result.one()._mapping)
                await session.commit()
            except _DB_ERRORS as exc:
                await _rollback(session)
                raise StoreError(table, "insert", _describe(exc)) from exc
        return stored

    async def update_by_id(self, table: str, record_id: int, patch: Row) -> Row:
        tbl = self._table(table, "update")
        values = _coerce(tbl, {k: v for k, v in patch.items() if k != "id"}, "update")
        async with self._session() as session:
            try:
                result = await session.execute(
                    update(tbl).where(tbl.c.id == record_id).values(**values).returning(*tbl.c)
                )
                stored = result.one_or_none()
                await session.commit()
            except _DB_ERRORS as exc:
                await _rollback(session)
                raise StoreError(table, "update", _describe(exc)) from exc
        if stored is None:
            raise StoreError(table, "update", f"no row with id={record_id}")
        return dict(stored._mapping)

    async def delete_by_id(self, table: str, record_id: int) -> None:
        tbl = self._table(table, "delete")
        await self._execute(table, "delete", delete(tbl).where(tbl.c.id == record_id))

    async def delete_all(self, table: str) -> None:
        tbl = self._table(table, "delete")
        await self._execute(table, "delete", delete(tbl).where(tbl.c.id != 0))

    async def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        tbl = self._table(table, "insert")
        values = [_coerce(tbl, row, "insert") for row in rows]
        explicit_ids = any("id" in value for value in values)
        stored: list[Row] = []
        # Rows may carry different key sets, so each gets its own INSERT in one transaction
        async with self._session() as session:
            try:
                for value in values:
                    result = await session.execute(insert(tbl).values(**value).returning(*tbl.c))
                    stored.append(dict(result.one()._mapping))
                if explicit_ids and _dialect_name(session) == "postgresql":
                    await session.execute(sequence_reset(tbl))
                await session.commit()
            except _DB_ERRORS as exc:
                await _rollback(session)
                raise StoreError(table, "insert", _describe(exc)) from exc
        return stored

    async def _execute(self, table: str, operation: str, statement: Any) -> None:
        async with self._session() as session:
            try:
                await session.execute(statement)
                await session.commit()
            except _DB_ERRORS as exc:
                await _rollback(session)
                raise StoreError(table, operation, _describe(exc)) from exc
        logger.debug("sql_store.executed", table=table, operation=operation)


def sequence_reset(tbl: Table) -> Any:
    """Move the id sequence of ``tbl`` past its highest stored id (PostgreSQL).

    Explicit ids bypass nextval(), so without this the next default id would
    collide with a re-inserted row.
    """
    next_id = func.coalesce(func.max(tbl.c.id), 0) + 1
    return select(
        func.setval(func.pg_get_serial_sequence(tbl.name, "id"), next_id, False)
    ).select_from(tbl)


def _dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


async def _rollback(session: AsyncSession) -> None:
    """Roll back after a failed statement; a dead connection has nothing to undo."""
    try:
        await session.rollback()
    except _DB_ERRORS as exc:
        logger.warning("sql_store.rollback_failed", error=_describe(exc))


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _coerce(tbl: Table, row: Row, operation: str) -> Row:
    """Validate column names and parse ISO strings for date/time columns."""
    values: Row = {}
    for key, value in row.items():
        if key not in tbl.c:
            raise StoreError(tbl.name, operation, f'column "{key}" does not exist')
        column_type = tbl.c[key].type
        if isinstance(value, str) and isinstance(column_type, DateTime):
            value = dt.datetime.fromisoformat(value)
        elif isinstance(value, str) and isinstance(column_type, Date):
            value = dt.date.fromisoformat(value[:10])
        values[key] = value
    return values
