"""Supabase table store -- PostgREST over httpx.

Maps the TableStore contract onto the PostgREST row API exposed at
``{SUPABASE_URL}/rest/v1``:

- select_all:   GET    /{table}?select=*&order=id.desc
- insert_one:   POST   /{table}            (Prefer: return=representation)
- insert_many:  POST   /{table}  [rows]    (Prefer: return=representation)
- update_by_id: PATCH  /{table}?id=eq.{id} (Prefer: return=representation)
- delete_by_id: DELETE /{table}?id=eq.{id}
- delete_all:   DELETE /{table}?id=neq.0   (PostgREST refuses unfiltered deletes)

Calls are never retried: every failure is terminal for the call and
surfaces as StoreError.

PostgREST cannot move an identity sequence. After insert_many re-inserts
explicit ids (bulk import), the project must run
``SELECT setval(pg_get_serial_sequence('<table>', 'id'), MAX(id)) FROM <table>``
for each table (SQL editor or an RPC) before new rows are created.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.dealdesk.errors import StoreError
from src.dealdesk.store.adapter import Row, TableStore

logger = structlog.get_logger(__name__)


class RestTableStore(TableStore):
    """PostgREST-backed table store.

    Holds one httpx.AsyncClient for the lifetime of the store; call close()
    on shutdown.

    Args:
        url: Supabase project URL (e.g. https://abc.supabase.co).
        key: Supabase anon or service key, sent as apikey and bearer token.
        timeout: Per-request timeout in seconds; 0 or None disables it.
        transport: Optional httpx transport (tests inject httpx.MockTransport).
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = f"{url.rstrip('/')}/rest/v1"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout or None),
            transport=transport,
        )

    async def _request(
        self,
        table: str,
        operation: str,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        returning: bool = False,
    ) -> Any:
        headers = {"Prefer": "return=representation"} if returning else {}
        try:
            response = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            raise StoreError(table, operation, str(exc) or type(exc).__name__) from exc

        if response.is_error:
            raise StoreError(table, operation, _error_detail(response))

        logger.debug(
            "rest_store.request",
            table=table,
            operation=operation,
            status_code=response.status_code,
        )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise StoreError(
                table, operation, f"HTTP {response.status_code}: response body is not JSON"
            ) from exc

    async def select_all(self, table: str) -> list[Row]:
        data = await self._request(
            table, "select", "GET", params={"select": "*", "order": "id.desc"}
        )
        return data or []

    async def insert_one(self, table: str, row: Row) -> Row:
        data = await self._request(table, "insert", "POST", json=row, returning=True)
        if not data:
            raise StoreError(table, "insert", "no row returned")
        return data[0]

    async def update_by_id(self, table: str, record_id: int, patch: Row) -> Row:
        data = await self._request(
            table,
            "update",
            "PATCH",
            params={"id": f"eq.{record_id}"},
            json=patch,
            returning=True,
        )
        if not data:
            raise StoreError(table, "update", f"no row with id={record_id}")
        return data[0]

    async def delete_by_id(self, table: str, record_id: int) -> None:
        await self._request(table, "delete", "DELETE", params={"id": f"eq.{record_id}"})

    async def delete_all(self, table: str) -> None:
        await self._request(table, "delete", "DELETE", params={"id": "neq.0"})

    async def insert_many(self, table: str, rows: list[Row]) -> list[Row]:
        if not rows:
            return []
        data = await self._request(table, "insert", "POST", json=rows, returning=True)
        if any("id" in row for row in rows):
            logger.warning("rest_store.sequence_not_reset", table=table, rows=len(rows))
        return data or []

    async def close(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> str:
    """Extract the PostgREST error message, falling back to the status line."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return f"HTTP {response.status_code}: {body['message']}"
    return f"HTTP {response.status_code}"
