"""Bulk export and import of every collection.

The export document is one JSON object: a key per collection holding its
rows, plus the selected deal identity (``currentDealId``) and the export
timestamp (``exportDate``). Import validates the whole document first, asks
for confirmation, then replaces each collection in load order, restores the
selection, and restarts the process state so every view is re-derived.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pydantic
import structlog
from pydantic import BaseModel, ConfigDict, Field

from src.dealdesk.errors import ImportDocumentError
from src.dealdesk.records.schemas import COLLECTION_MODELS, Collection, Record
from src.dealdesk.sync.cache import SyncCache
from src.dealdesk.sync.selection import SelectionContext

logger = structlog.get_logger(__name__)


class DataSnapshot(BaseModel):
    """Full backup document."""

    model_config = ConfigDict(populate_by_name=True)

    deals: list[dict[str, Any]] = Field(default_factory=list)
    meetings: list[dict[str, Any]] = Field(default_factory=list)
    order_sessions: list[dict[str, Any]] = Field(default_factory=list)
    stakeholders: list[dict[str, Any]] = Field(default_factory=list)
    roi_scenarios: list[dict[str, Any]] = Field(default_factory=list)
    service_offerings: list[dict[str, Any]] = Field(default_factory=list)
    sow_templates: list[dict[str, Any]] = Field(default_factory=list)
    sows: list[dict[str, Any]] = Field(default_factory=list)
    quotes: list[dict[str, Any]] = Field(default_factory=list)
    workflows: list[dict[str, Any]] = Field(default_factory=list)
    current_deal_id: str | None = Field(default=None, alias="currentDealId")
    export_date: datetime | None = Field(default=None, alias="exportDate")

    def rows(self, collection: Collection) -> list[dict[str, Any]]:
        return getattr(self, collection.value)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class ImportResult(BaseModel):
    imported: bool = False
    collections: int = 0
    rows: int = 0
    failed: list[str] = Field(default_factory=list)


def snapshot_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"sales-app-backup-{now.date().isoformat()}.json"


def load_snapshot(document: str | bytes) -> DataSnapshot:
    """Parse and validate an export document.

    Raises:
        ImportDocumentError: Not JSON, not an object, or a row that does not
            match its collection's schema.
    """
    try:
        raw = json.loads(document)
    except ValueError as exc:
        raise ImportDocumentError(f"Import file is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ImportDocumentError("Import file must contain a JSON object")

    if raw.get("currentDealId") is not None:
        raw["currentDealId"] = str(raw["currentDealId"])
    try:
        snapshot = DataSnapshot.model_validate(raw)
        for collection in Collection:
            model = COLLECTION_MODELS[collection]
            for row in snapshot.rows(collection):
                model.model_validate(row)
    except pydantic.ValidationError as exc:
        raise ImportDocumentError(f"Import file does not match the export format: {exc}") from exc
    return snapshot


class DataTransfer:
    """Export/import against the live cache.

    Args:
        cache: SyncCache holding the snapshots to export / replace.
        selection: Current-selection context (exported and restored).
        restart: Coroutine re-running startup after an import.
    """

    def __init__(
        self,
        cache: SyncCache,
        selection: SelectionContext,
        restart: Callable[[], Awaitable[None]],
    ) -> None:
        self._cache = cache
        self._selection = selection
        self._restart = restart

    def export_snapshot(self, now: datetime | None = None) -> DataSnapshot:
        """Capture every collection's last-known snapshot."""
        data: dict[str, Any] = {
            collection.value: [r.model_dump(mode="json") for r in self._cache.read(collection)]
            for collection in self._cache.collections
        }
        deal_id = self._selection.deal_id
        data["current_deal_id"] = None if deal_id is None else str(deal_id)
        data["export_date"] = now or datetime.now(timezone.utc)
        return DataSnapshot(**data)

    def write_snapshot(self, directory: str | Path, now: datetime | None = None) -> Path:
        """Export to ``directory/sales-app-backup-YYYY-MM-DD.json``."""
        snapshot = self.export_snapshot(now)
        path = Path(directory) / snapshot_filename(snapshot.export_date)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(snapshot.to_json(), encoding="utf-8")
        logger.info("transfer.exported", path=str(path))
        return path

    async def import_snapshot(
        self, snapshot: DataSnapshot, confirm: Callable[[], bool]
    ) -> ImportResult:
        """Replace all data with ``snapshot`` once ``confirm()`` agrees."""
        if not confirm():
            logger.info("transfer.import_declined")
            return ImportResult()

        result = ImportResult(imported=True)
        for collection in self._cache.collections:
            model = COLLECTION_MODELS[collection]
            records: list[Record] = [model.model_validate(r) for r in snapshot.rows(collection)]
            if await self._cache.replace_all(collection, records):
                result.collections += 1
                result.rows += len(records)
            else:
                result.failed.append(collection.value)

        if snapshot.current_deal_id:
            self._selection.persist(snapshot.current_deal_id)

        logger.info(
            "transfer.imported",
            collections=result.collections,
            rows=result.rows,
            failed=result.failed,
        )
        await self._restart()
        return result
