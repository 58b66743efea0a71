"""
Tests for the HTTP health responder.
"""

import pytest
import pytest_asyncio
from aiohttp import test_utils

from firstly_health import HealthProbe, create_health_app


def make_probe(ready=True, guilds=3, rss=1024):
    probe = HealthProbe(is_ready=lambda: ready, guild_count=lambda: guilds)
    probe.rss_bytes = lambda: rss
    return probe


@pytest_asyncio.fixture
async def client():
    async with test_utils.TestClient(test_utils.TestServer(create_health_app(make_probe()))) as test_client:
        yield test_client


class TestHealthEndpoints:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/health"])
    async def test_liveness(self, client, path):
        resp = await client.get(path)
        assert resp.status == 200
        assert await resp.text() == "OK"

    @pytest.mark.asyncio
    async def test_status_json(self, client):
        resp = await client.get("/status")
        assert resp.status == 200
        body = await resp.json()
        assert body["status"] == "ok"
        assert body["bot_ready"] is True
        assert body["guilds_cached"] == 3
        assert body["mem_rss"] == 1024
        assert isinstance(body["uptime_seconds"], int)
        assert isinstance(body["timestamp"], int)
        assert body["python_version"].count(".") == 2

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        resp = await client.get("/metrics")
        assert resp.status == 200
        text = await resp.text()
        assert "discord_guilds_cached 3.0" in text
        assert "process_memory_rss_bytes 1024.0" in text
        assert "process_uptime_seconds" in text

    @pytest.mark.asyncio
    async def test_unknown_path(self, client):
        resp = await client.get("/nope")
        assert resp.status == 404
        assert await resp.text() == "Not Found"

    @pytest.mark.asyncio
    async def test_wrong_method_is_not_found(self, client):
        resp = await client.post("/health")
        assert resp.status == 404
        assert await resp.text() == "Not Found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/", "/health", "/status", "/metrics"])
    async def test_head_is_not_found(self, client, path):
        resp = await client.head(path)
        assert resp.status == 404


class TestHealthFailures:
    @pytest.mark.asyncio
    async def test_probe_error_returns_500(self):
        def broken():
            raise RuntimeError("gateway gone")

        probe = HealthProbe(is_ready=broken, guild_count=lambda: 0)
        async with test_utils.TestClient(test_utils.TestServer(create_health_app(probe))) as test_client:
            resp = await test_client.get("/status")
            assert resp.status == 500
            assert await resp.text() == "Internal Server Error"
            assert (await test_client.get("/health")).status == 200

    @pytest.mark.unit
    def test_probe_for_client(self):
        class FakeClient:
            guilds = [object(), object()]

            def is_ready(self):
                return False

        probe = HealthProbe.for_client(FakeClient())
        assert probe.guild_count() == 2
        assert probe.is_ready() is False
        assert probe.rss_bytes() > 0
