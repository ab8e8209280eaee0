"""Read-through snapshot cache over the remote table store.

Keeps one immutable snapshot (a tuple of frozen records, newest first) per
collection. Reads are synchronous and never touch the network. Mutations
write through to the store, then re-pull the affected collection before
returning, so the issuing caller always reads its own writes.

Failure policy:
- A failed refresh logs and keeps the previous snapshot (stale reads).
- If the refresh after a successful write fails, the stored row is applied to
  the kept snapshot instead, so the write is still visible to readers.
- A failed write logs and returns None/False; nothing is retried.
- Snapshots are replaced by a single assignment, so readers never observe a
  partially loaded collection.
- Concurrent refreshes of one collection are last-completed-wins; there is no
  merge or conflict detection.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
from typing import Any

import pydantic
import structlog
from pydantic_core import to_jsonable_python

from src.dealdesk.errors import StoreError
from src.dealdesk.records.schemas import COLLECTION_MODELS, Collection, Record
from src.dealdesk.store.adapter import Row, TableStore

logger = structlog.get_logger(__name__)

_SERVER_FIELDS = ("id", "created_at", "updated_at")


class SyncCache:
    """In-memory mirror of the remote collections.

    Constructed once at process start and passed to every consumer.

    Args:
        store: Backend implementing the TableStore contract.
        collections: Collections to mirror (default: all ten).
    """

    def __init__(
        self,
        store: TableStore,
        collections: Iterable[Collection] = tuple(Collection),
    ) -> None:
        self._store = store
        self._snapshots: dict[Collection, tuple[Record, ...]] = {
            collection: () for collection in collections
        }
        self._ready = False

    @property
    def store(self) -> TableStore:
        return self._store

    @property
    def collections(self) -> list[Collection]:
        return list(self._snapshots)

    @property
    def ready(self) -> bool:
        """True once refresh_all has settled for every collection."""
        return self._ready

    # ── Reads ───────────────────────────────────────────────────────────────

    def read(self, collection: Collection) -> tuple[Record, ...]:
        """Return the last-known snapshot of ``collection`` (newest first)."""
        return self._snapshots[Collection(collection)]

    def find(self, collection: Collection, record_id: int | None) -> Record | None:
        """Return the record with ``record_id`` from the snapshot, or None."""
        if record_id is None:
            return None
        for record in self.read(collection):
            if record.id == record_id:
                return record
        return None

    def for_deal(self, collection: Collection, deal_id: int | None) -> list[Record]:
        """Return the snapshot rows whose deal_id equals ``deal_id``."""
        if deal_id is None:
            return []
        return [r for r in self.read(collection) if getattr(r, "deal_id", None) == deal_id]

    # ── Refresh ─────────────────────────────────────────────────────────────

    async def refresh(self, collection: Collection) -> bool:
        """Re-pull ``collection`` and swap in the new snapshot.

        Returns:
            True if the snapshot was replaced, False if the previous one was kept.
        """
        collection = Collection(collection)
        try:
            rows = await self._store.select_all(collection.value)
        except StoreError as exc:
            logger.error("sync.refresh_failed", collection=collection.value, error=str(exc))
            return False

        model = COLLECTION_MODELS[collection]
        try:
            snapshot = tuple(model.model_validate(row) for row in rows)
        except pydantic.ValidationError as exc:
            logger.error(
                "sync.refresh_invalid_rows",
                collection=collection.value,
                error=str(exc),
            )
            return False

        self._snapshots[collection] = snapshot
        logger.debug("sync.refreshed", collection=collection.value, rows=len(snapshot))
        return True

    async def refresh_all(self) -> dict[Collection, bool]:
        """Refresh every collection concurrently; the cache is ready afterwards."""
        collections = self.collections
        outcomes = await asyncio.gather(*(self.refresh(c) for c in collections))
        self._ready = True

        results = dict(zip(collections, outcomes))
        failed = [c.value for c, ok in results.items() if not ok]
        logger.info(
            "sync.refresh_all_complete",
            collections=len(results),
            failed=failed,
        )
        return results

    # ── Mutations ───────────────────────────────────────────────────────────

    async def create(self, collection: Collection, record: Record) -> Record | None:
        """Insert ``record``, refresh the collection, return the stored record.

        Returns:
            The stored record (with id and created_at), or None on failure.
        """
        collection = Collection(collection)
        try:
            stored = await self._store.insert_one(collection.value, record.to_payload())
        except StoreError as exc:
            logger.error("sync.create_failed", collection=collection.value, error=str(exc))
            return None

        created = COLLECTION_MODELS[collection].model_validate(stored)
        if not await self.refresh(collection):
            self._patch(
                collection,
                lambda snapshot: (created, *(r for r in snapshot if r.id != created.id)),
            )
        logger.info("sync.created", collection=collection.value, record_id=created.id)
        return created

    async def update_by_id(
        self, collection: Collection, record_id: int, patch: dict[str, Any]
    ) -> Record | None:
        """Patch one row by identity, refresh the collection, return the stored record."""
        collection = Collection(collection)
        try:
            stored = await self._store.update_by_id(
                collection.value, record_id, to_jsonable_python(patch)
            )
        except StoreError as exc:
            logger.error(
                "sync.update_failed",
                collection=collection.value,
                record_id=record_id,
                error=str(exc),
            )
            return None

        updated = COLLECTION_MODELS[collection].model_validate(stored)
        if not await self.refresh(collection):
            self._patch(
                collection,
                lambda snapshot: tuple(updated if r.id == record_id else r for r in snapshot),
            )
        logger.info("sync.updated", collection=collection.value, record_id=record_id)
        return updated

    async def delete_by_id(self, collection: Collection, record_id: int) -> bool:
        """Delete one row by identity and refresh the collection."""
        collection = Collection(collection)
        try:
            await self._store.delete_by_id(collection.value, record_id)
        except StoreError as exc:
            logger.error(
                "sync.delete_failed",
                collection=collection.value,
                record_id=record_id,
                error=str(exc),
            )
            return False

        if not await self.refresh(collection):
            self._patch(
                collection,
                lambda snapshot: tuple(r for r in snapshot if r.id != record_id),
            )
        logger.info("sync.deleted", collection=collection.value, record_id=record_id)
        return True

    def _patch(
        self,
        collection: Collection,
        change: Callable[[tuple[Record, ...]], tuple[Record, ...]],
    ) -> None:
        """Apply a committed write to the current snapshot when re-pulling failed."""
        self._snapshots[collection] = change(self._snapshots[collection])
        logger.warning("sync.snapshot_patched", collection=collection.value)

    async def replace_all(
        self, collection: Collection, records: Sequence[Record | Row]
    ) -> bool:
        """Replace the whole collection: delete every row, then insert ``records``.

        Not atomic. If the insert fails after the delete succeeded the remote
        collection is left empty; the refresh that follows mirrors that. Only
        bulk import uses this path; single-row edits go through update_by_id.
        """
        collection = Collection(collection)
        rows = [_replacement_row(record) for record in records]
        try:
            await self._store.delete_all(collection.value)
        except StoreError as exc:
            logger.error("sync.replace_clear_failed", collection=collection.value, error=str(exc))
            await self.refresh(collection)
            return False

        try:
            await self._store.insert_many(collection.value, rows)
        except StoreError as exc:
            logger.error(
                "sync.replace_insert_failed",
                collection=collection.value,
                rows=len(rows),
                error=str(exc),
            )
            await self.refresh(collection)
            return False

        await self.refresh(collection)
        logger.info("sync.replaced", collection=collection.value, rows=len(rows))
        return True


def _replacement_row(record: Record | Row) -> Row:
    """Serialize a record for reinsertion, keeping identities it already has."""
    if isinstance(record, Record):
        row = record.model_dump(mode="json")
    else:
        row = to_jsonable_python(dict(record))
    for key in _SERVER_FIELDS:
        if key in row and row[key] is None:
            del row[key]
    return row
