"""Table store abstract base class -- the contract every backend implements.

The store is an opaque per-table CRUD service: rows are plain dicts keyed by
column name, identities are server-assigned integers, and select returns the
newest row first. Backends never retry; a failed call raises StoreError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]


class TableStore(ABC):
    """Abstract interface for remote table operations.

    Methods:
        select_all: Every row of a table ordered by id descending.
        insert_one: Insert a row, return the stored row (with id, created_at).
        update_by_id: Patch the row with the given id, return the stored row.
        delete_by_id: Delete the row with the given id.
        delete_all: Bulk clear a table (everything except the sentinel id 0).
        insert_many: Insert rows in order, return the stored rows.
    """

    @abstractmethod
    async def select_all(self, table: str) -> list[Row]:
        """Return all rows of ``table`` ordered by id descending."""
        ...

    @abstractmethod
    async def insert_one(self, table: str, row: Row) -> Row:
        """Insert one row and return it as stored."""
        ...

    @abstractmethod
    async def update_by_id(self, table: str, record_id: int, patch: Row) -> Row:
        """Apply ``patch`` to the row with ``record_id`` and return it as stored."""
        ...

    @abstractmethod
    async def delete_by_id(self, table: str, record_id: int) -> None:
        """Delete the row with ``record_id``."""
        ...

    @abstractmethod
    async def delete_all(self, table: str) -> None:
        """Delete every row except the sentinel id 0."""
        ...

    @abstractmethod
    async def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        """Insert ``rows`` and return them as stored."""
        ...

    async def close(self) -> None:
        """Release network resources held by the backend."""
        return None
