"""Unit tests for the Supabase record store and activity logging."""

from __future__ import annotations

import json

import httpx
import pytest

from ejibaya.core.audit_logger import log_action
from ejibaya.core.errors import StorageError
from ejibaya.storage.supabase import SupabaseStore

BASE = "https://abc.supabase.co"


def _store(handler, page_size: int = 1000) -> SupabaseStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SupabaseStore(BASE, "secret", page_size=page_size, client=client)


class TestSupabaseStore:
    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            SupabaseStore("", "key")

    @pytest.mark.asyncio
    async def test_insert_sends_auth_and_rows(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json=[{"id": "r1", "account_number": "345123456789"}])

        async with _store(handler) as store:
            inserted = await store.insert_records([{"account_number": "345123456789"}])

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/rest/v1/collection_records"
        assert request.headers["apikey"] == "secret"
        assert request.headers["Authorization"] == "Bearer secret"
        assert request.headers["Prefer"] == "return=representation"
        assert json.loads(request.content) == [{"account_number": "345123456789"}]
        assert inserted[0]["id"] == "r1"

    @pytest.mark.asyncio
    async def test_insert_empty_is_noop(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _store(handler) as store:
            assert await store.insert_records([]) == []

    @pytest.mark.asyncio
    async def test_find_record_filters(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        async with _store(handler) as store:
            assert await store.find_record("345123456789", "55012") is None

        params = seen[0].url.params
        assert params["account_number"] == "eq.345123456789"
        assert params["meter_number"] == "eq.55012"
        assert params["limit"] == "1"

    @pytest.mark.asyncio
    async def test_list_all_pages_until_short_page(self):
        rows = [{"id": i} for i in range(5)]
        offsets = []

        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            offsets.append(offset)
            return httpx.Response(200, json=rows[offset:offset + limit])

        async with _store(handler, page_size=2) as store:
            result = await store.list_all("users")

        assert result == rows
        assert offsets == [0, 2, 4]

    @pytest.mark.asyncio
    async def test_delete_where_uses_in_filter(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "a"}, {"id": "b"}])

        async with _store(handler) as store:
            deleted = await store.delete_where("record_photos", "record_id", ["a", "b,c"])

        assert deleted == 2
        assert seen[0].method == "DELETE"
        assert seen[0].url.params["record_id"] == 'in.(a,"b,c")'

    @pytest.mark.asyncio
    async def test_apply_snapshot_in_dependency_order(self):
        tables_seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            tables_seen.append(request.url.path.rsplit("/", 1)[-1])
            assert "merge-duplicates" in request.headers["Prefer"]
            return httpx.Response(201)

        async with _store(handler) as store:
            await store.apply_snapshot(
                {
                    "record_photos": [{"id": 1}],
                    "collection_records": [{"id": "r1"}],
                    "users": [{"id": "u1"}],
                }
            )

        assert tables_seen == ["users", "collection_records", "record_photos"]

    @pytest.mark.asyncio
    async def test_http_error_becomes_storage_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text="invalid api key")

        async with _store(handler) as store:
            with pytest.raises(StorageError) as exc_info:
                await store.list_all("users")

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_transport_error_becomes_storage_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        async with _store(handler) as store:
            with pytest.raises(StorageError):
                await store.find_record("1", "2")


class TestLogAction:
    @pytest.mark.asyncio
    async def test_writes_entry(self, store):
        written = await log_action(
            store, "backup_data", "u-1", target_type="backup", details={"total_photos": 2}
        )

        assert written
        assert store.tables["activity_logs"] == [
            {
                "user_id": "u-1",
                "action": "backup_data",
                "target_type": "backup",
                "target_name": None,
                "details": {"total_photos": 2},
            }
        ]

    @pytest.mark.asyncio
    async def test_skipped_without_user(self, store):
        assert not await log_action(store, "backup_data", None)
        assert store.tables["activity_logs"] == []

    @pytest.mark.asyncio
    async def test_storage_failure_is_swallowed(self, make_store):
        store = make_store(fail_activity_log=True)

        assert not await log_action(store, "import_records", "u-1")
