"""Record store backed by a Supabase / PostgREST REST endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ejibaya.core.errors import StorageError
from ejibaya.storage.base import ACTIVITY_LOG_TABLE, RECORDS_TABLE, SNAPSHOT_TABLES, RecordStore

logger = logging.getLogger(__name__)


def _quote_value(value: Any) -> str:
    text = str(value)
    if any(ch in text for ch in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text


class SupabaseStore(RecordStore):
    """Client for the PostgREST API exposed by Supabase.

    Example:
        >>> async with SupabaseStore(url, api_key) as store:
        ...     rows = await store.list_all("users")
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 30.0,
        page_size: int = 1000,
        client: httpx.AsyncClient | None = None,
    ):
        if not url or not api_key:
            raise ValueError("Supabase URL and API key are required")

        self.base_url = url.rstrip("/") + "/rest/v1"
        self.page_size = page_size
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer

        try:
            response = await self.client.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise StorageError(
                f"{method} {table} failed: {exc.response.status_code} {exc.response.text}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.RequestError as exc:
            raise StorageError(f"{method} {table} request failed: {exc}") from exc

        if not response.content:
            return None
        return response.json()

    async def insert_records(
        self, rows: list[dict[str, Any]], table: str = RECORDS_TABLE
    ) -> list[dict[str, Any]]:
        if not rows:
            return []
        data = await self._request(
            "POST", table, json=rows, prefer="return=representation"
        )
        return data or []

    async def find_record(
        self, account_number: str, meter_number: str, table: str = RECORDS_TABLE
    ) -> dict[str, Any] | None:
        data = await self._request(
            "GET",
            table,
            params={
                "select": "*",
                "account_number": f"eq.{account_number}",
                "meter_number": f"eq.{meter_number}",
                "limit": 1,
            },
        )
        return data[0] if data else None

    async def list_all(self, table: str) -> list[dict[str, Any]]:
        """Page through a table with limit/offset until a short page."""
        rows: list[dict[str, Any]] = []
        offset = 0

        while True:
            page = await self._request(
                "GET",
                table,
                params={"select": "*", "limit": self.page_size, "offset": offset},
            )
            if not page:
                break
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size

        logger.debug(f"Fetched {len(rows)} rows from {table}")
        return rows

    async def append_activity_log(self, entry: dict[str, Any]) -> None:
        await self._request("POST", ACTIVITY_LOG_TABLE, json=entry, prefer="return=minimal")

    async def delete_where(self, table: str, column: str, values: list[Any]) -> int:
        if not values:
            return 0
        in_list = ",".join(_quote_value(v) for v in values)
        data = await self._request(
            "DELETE",
            table,
            params={column: f"in.({in_list})"},
            prefer="return=representation",
        )
        return len(data or [])

    async def apply_snapshot(self, tables: dict[str, list[dict[str, Any]]]) -> None:
        """Upsert every table in dependency order, one page per request."""
        for table in SNAPSHOT_TABLES:
            rows = tables.get(table) or []
            for start in range(0, len(rows), self.page_size):
                chunk = rows[start:start + self.page_size]
                await self._request(
                    "POST",
                    table,
                    json=chunk,
                    prefer="resolution=merge-duplicates,return=minimal",
                )
            logger.info(f"Restored {len(rows)} rows into {table}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
