"""
Azure Updates API Client Tests

Requests are served by httpx.MockTransport; no network.
"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from azure_updates.api_client import (
    AzureUpdatesClient,
    convert_availability,
    convert_record,
    html_to_markdown,
)
from azure_updates.errors import UpstreamError
from azure_updates.models import Availability
from azure_updates.retry import RetryOptions

ENDPOINT = "https://updates.example.test/api/v2/azure"


def raw_record(record_id, modified="2025-01-01T00:00:00.0000000Z", **extra):
    record = {
        "id": record_id,
        "title": f"Update {record_id}",
        "description": "<p>Hello <strong>world</strong></p>",
        "status": "Launched",
        "locale": "en-US",
        "created": "2024-12-01T00:00:00.0000000Z",
        "modified": modified,
        "tags": ["Security"],
        "productCategories": ["Compute"],
        "products": ["Virtual Machines"],
        "availabilities": [{"ring": "Retirement", "year": 2026, "month": "March"}],
    }
    record.update(extra)
    return record


def make_client(handler, **kwargs) -> AzureUpdatesClient:
    kwargs.setdefault("retry_options", RetryOptions(
        max_retries=2, retryable_errors=["network", "timeout", "connection", "503", "429"]
    ))
    return AzureUpdatesClient(ENDPOINT, transport=httpx.MockTransport(handler), **kwargs)


@pytest.fixture
def no_sleep():
    with patch("azure_updates.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


class TestConversion:

    def test_html_to_markdown(self):
        assert html_to_markdown("<p>Hello <strong>world</strong></p>") == "Hello **world**"
        assert html_to_markdown("") == ""

    def test_availability_month_name(self):
        availability = convert_availability({"ring": "Preview", "year": 2025, "month": "July"})
        assert availability.ring == "Preview"
        assert availability.date == "2025-07-01"

    def test_availability_without_date(self):
        availability = convert_availability({"ring": "General Availability", "year": None, "month": None})
        assert availability.date is None

    def test_record(self):
        update = convert_record(raw_record("r1"))
        assert update.id == "r1"
        assert update.description == "<p>Hello <strong>world</strong></p>"
        assert update.description_markdown == "Hello **world**"
        assert update.product_categories == ["Compute"]
        assert update.availabilities == [Availability(ring="Retirement", date="2026-03-01")]

    def test_missing_lists_become_empty(self):
        update = convert_record(raw_record(
            "r2", tags=None, productCategories=None, products=None, availabilities=None
        ))
        assert update.tags == []
        assert update.products == []
        assert update.availabilities == []


class TestQueryUrl:

    def test_differential_filter(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        url = httpx.URL(client.build_query_url(modified_since="2025-01-01T00:00:00.000Z"))

        assert url.params["$filter"] == "modified ge 2025-01-01T00:00:00.000Z"
        assert url.params["$orderby"] == "modified desc"
        assert url.params["$top"] == "100"
        assert "$skip" not in url.params

    def test_full_fetch_has_no_filter(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        url = httpx.URL(client.build_query_url(skip=200, include_count=True))

        assert "$filter" not in url.params
        assert url.params["$skip"] == "200"
        assert url.params["$count"] == "true"


class TestPaging:

    @pytest.mark.asyncio
    async def test_follows_next_link(self):
        requested = []

        def handler(request):
            requested.append(str(request.url))
            if "page=2" in str(request.url):
                return httpx.Response(200, json={"value": [raw_record("c")]})
            return httpx.Response(200, json={
                "value": [raw_record("a"), raw_record("b")],
                "@odata.nextLink": f"{ENDPOINT}?page=2",
            })

        async with make_client(handler) as client:
            pages = [page async for page in client.iter_pages()]

        assert [[u.id for u in page] for page in pages] == [["a", "b"], ["c"]]
        assert len(requested) == 2

    @pytest.mark.asyncio
    async def test_skip_fallback_when_page_is_full(self):
        def handler(request):
            skip = int(request.url.params.get("$skip", "0"))
            records = [raw_record(f"r{i}") for i in range(skip, min(skip + 2, 3))]
            return httpx.Response(200, json={"value": records})

        async with make_client(handler, page_size=2) as client:
            pages = [page async for page in client.iter_pages(modified_since="2025-01-01")]

        assert [[u.id for u in page] for page in pages] == [["r0", "r1"], ["r2"]]

    @pytest.mark.asyncio
    async def test_empty_feed(self):
        async with make_client(lambda request: httpx.Response(200, json={"value": []})) as client:
            pages = [page async for page in client.iter_pages()]

        assert pages == []

    @pytest.mark.asyncio
    async def test_fetch_page_returns_cursor(self):
        def handler(request):
            return httpx.Response(200, json={
                "value": [raw_record("a")],
                "@odata.nextLink": f"{ENDPOINT}?$skip=1",
            })

        async with make_client(handler) as client:
            records, cursor = await client.fetch_page()

        assert [r.id for r in records] == ["a"]
        assert cursor == f"{ENDPOINT}?$skip=1"


class TestErrors:

    @pytest.mark.asyncio
    async def test_http_error_is_not_retried(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.fetch_page()

        assert str(exc_info.value) == "HTTP 404: Not Found"
        assert exc_info.value.status_code == 404
        assert len(calls) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_503_is_retried(self, no_sleep):
        responses = [httpx.Response(503), httpx.Response(200, json={"value": [raw_record("a")]})]

        async with make_client(lambda request: responses.pop(0)) as client:
            records, _ = await client.fetch_page()

        assert [r.id for r in records] == ["a"]
        assert no_sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_network_error_after_retries(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError) as exc_info:
                await client.fetch_page()

        assert "Network error" in str(exc_info.value)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_invalid_json(self, no_sleep):
        handler = lambda request: httpx.Response(200, content=b"<html>oops</html>")

        async with make_client(handler) as client:
            with pytest.raises(UpstreamError):
                await client.fetch_page()


class TestUpdateCount:

    @pytest.mark.asyncio
    async def test_count(self):
        def handler(request):
            assert request.url.params["$count"] == "true"
            return httpx.Response(200, json={"@odata.count": 1234, "value": []})

        async with make_client(handler) as client:
            assert await client.fetch_update_count() == 1234

    @pytest.mark.asyncio
    async def test_count_failure_is_zero(self, no_sleep):
        async with make_client(lambda request: httpx.Response(500)) as client:
            assert await client.fetch_update_count() == 0
