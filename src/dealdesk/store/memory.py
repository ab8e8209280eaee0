"""In-process table store -- same contract as the remote backends.

Used for offline runs (STORE_BACKEND=memory) and as the backing service in
tests. Identities follow BIGSERIAL semantics: a caller-supplied id is kept
and advances the sequence, otherwise the next value is assigned.
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from datetime import datetime, timezone

import structlog

from src.dealdesk.errors import StoreError
from src.dealdesk.store.adapter import Row, TableStore

logger = structlog.get_logger(__name__)


class MemoryTableStore(TableStore):
    """Tables held in process memory.

    Args:
        tables: Optional allow-list of table names; unknown tables raise
            StoreError the way a missing relation does remotely.
        latency: Seconds every call suspends for, to surface interleavings.
    """

    def __init__(self, tables: list[str] | None = None, latency: float = 0.0) -> None:
        self._allowed = set(tables) if tables is not None else None
        self._latency = latency
        self._rows: dict[str, list[Row]] = defaultdict(list)
        self._sequences: dict[str, int] = defaultdict(int)

    async def _tick(self, table: str, operation: str) -> None:
        if self._allowed is not None and table not in self._allowed:
            raise StoreError(table, operation, f'relation "{table}" does not exist')
        await asyncio.sleep(self._latency)

    def _stamp(self, table: str, row: Row) -> Row:
        stored = copy.deepcopy(row)
        if stored.get("id") is None:
            self._sequences[table] += 1
            stored["id"] = self._sequences[table]
        else:
            if any(r["id"] == stored["id"] for r in self._rows[table]):
                raise StoreError(table, "insert", f"duplicate key id={stored['id']}")
            self._sequences[table] = max(self._sequences[table], stored["id"])
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self._rows[table].append(stored)
        return copy.deepcopy(stored)

    async def select_all(self, table: str) -> list[Row]:
        await self._tick(table, "select")
        rows = sorted(self._rows[table], key=lambda r: r["id"], reverse=True)
        return copy.deepcopy(rows)

    async def insert_one(self, table: str, row: Row) -> Row:
        await self._tick(table, "insert")
        return self._stamp(table, row)

    async def update_by_id(self, table: str, record_id: int, patch: Row) -> Row:
        await self._tick(table, "update")
        for stored in self._rows[table]:
            if stored["id"] == record_id:
                stored.update(copy.deepcopy({k: v for k, v in patch.items() if k != "id"}))
                return copy.deepcopy(stored)
        raise StoreError(table, "update", f"no row with id={record_id}")

    async def delete_by_id(self, table: str, record_id: int) -> None:
        await self._tick(table, "delete")
        self._rows[table] = [r for r in self._rows[table] if r["id"] != record_id]

    async def delete_all(self, table: str) -> None:
        await self._tick(table, "delete")
        self._rows[table] = [r for r in self._rows[table] if r["id"] == 0]

    async def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        await self._tick(table, "insert")
        return [self._stamp(table, row) for row in rows]
