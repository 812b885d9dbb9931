"""Tests for the per-request log record emitted by the proxy handler."""

import json
import logging

import httpx
import pytest

from gcs_proxy.core.config import Settings
from gcs_proxy.core.logging import setup_logging
from gcs_proxy.main import create_app

ACCESS_LOGGER = "gcs_proxy.access"


@pytest.fixture(autouse=True)
def structured_logging():
    """Configure structlog the way the application does at startup."""
    setup_logging("INFO", "json")


def make_client(handler, **overrides) -> httpx.AsyncClient:
    options = {"BUCKET_NAME": "my-bucket", "PROXY_ENDPOINT": "gcs-test"}
    options.update(overrides)
    upstream = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    app = create_app(Settings(**options), upstream)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")


def access_records(caplog):
    return [
        json.loads(record.getMessage())
        for record in caplog.records
        if record.name == ACCESS_LOGGER
    ]


def ok(request):
    return httpx.Response(200, content=b"data")


class TestRequestLogging:
    """Test log severity and fields."""

    @pytest.mark.asyncio
    async def test_success_logged_at_debug(self, caplog):
        caplog.set_level(logging.DEBUG, logger=ACCESS_LOGGER)
        async with make_client(ok, LOG_HEADERS=["X-Request-Id", "X-Missing"]) as client:
            await client.get("/a/b.txt?x=1", headers={"X-Request-Id": "req-1"})

        records = access_records(caplog)
        assert len(records) == 1
        entry = records[0]
        assert entry["event"] == "finished handling request"
        assert entry["level"] == "debug"
        assert entry["method"] == "GET"
        assert entry["path"] == "/a/b.txt?x=1"
        assert entry["proxy_endpoint"] == "gcs-test"
        assert entry["response"] == 200
        assert entry["elapsed_ms"] >= 0
        assert entry["req_header/X-Request-Id"] == "req-1"
        assert "req_header/X-Missing" not in entry

    @pytest.mark.asyncio
    async def test_success_not_logged_above_debug(self, caplog):
        caplog.set_level(logging.INFO, logger=ACCESS_LOGGER)
        async with make_client(ok) as client:
            resp = await client.get("/a.txt")

        assert resp.status_code == 200
        assert access_records(caplog) == []

    @pytest.mark.asyncio
    async def test_failure_logged_at_error(self, caplog):
        caplog.set_level(logging.INFO, logger=ACCESS_LOGGER)

        def broken(request):
            raise httpx.ConnectError("connection refused")

        async with make_client(broken) as client:
            resp = await client.get("/a.txt")

        assert resp.status_code == 500
        records = access_records(caplog)
        assert len(records) == 1
        entry = records[0]
        assert entry["level"] == "error"
        assert entry["event"] == "failed to handle request"
        assert entry["response"] == 500
        assert entry["error_code"] == "upstream_execution_error"
        assert entry["error_type"] == "UpstreamExecutionError"
        assert entry["url"] == "https://my-bucket.storage.googleapis.com/a.txt"
        assert "connection refused" in entry["error"]

    @pytest.mark.asyncio
    async def test_rejected_method_records_status(self, caplog):
        caplog.set_level(logging.DEBUG, logger=ACCESS_LOGGER)
        async with make_client(ok) as client:
            await client.post("/a.txt")

        records = access_records(caplog)
        assert records[-1]["response"] == 405
        assert records[-1]["method"] == "POST"
        assert "error" not in records[-1]

    @pytest.mark.asyncio
    async def test_fallback_attempt_logged(self, caplog):
        caplog.set_level(logging.DEBUG, logger=ACCESS_LOGGER)

        def handler(request):
            if request.url.path.endswith("index.html"):
                return httpx.Response(200, content=b"hello")
            return httpx.Response(404)

        async with make_client(handler, INDEX_FILENAME="index.html") as client:
            await client.get("/dir/")

        events = [entry["event"] for entry in access_records(caplog)]
        assert events == [
            "file not found; trying https://my-bucket.storage.googleapis.com/dir/index.html",
            "finished handling request",
        ]
