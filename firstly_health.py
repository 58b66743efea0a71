import logging
import platform
import time
from dataclasses import dataclass, field
from typing import Callable

import psutil
from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

logger = logging.getLogger("firstlybot.health")


@dataclass
class HealthProbe:
    """Read-only view of process and gateway state for the HTTP responder."""

    is_ready: Callable[[], bool]
    guild_count: Callable[[], int]
    started_at: float = field(default_factory=time.monotonic)
    process: psutil.Process = field(default_factory=psutil.Process)

    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def rss_bytes(self) -> int:
        return self.process.memory_info().rss

    @classmethod
    def for_client(cls, client) -> "HealthProbe":
        return cls(is_ready=client.is_ready, guild_count=lambda: len(client.guilds))


PROBE_KEY = web.AppKey("probe", HealthProbe)
REGISTRY_KEY = web.AppKey("registry", CollectorRegistry)


def build_registry(probe: HealthProbe) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=True)
    Gauge(
        "process_uptime_seconds", "Process uptime in seconds", registry=registry
    ).set_function(probe.uptime_seconds)
    Gauge(
        "process_memory_rss_bytes", "RSS memory in bytes", registry=registry
    ).set_function(probe.rss_bytes)
    Gauge(
        "discord_guilds_cached", "Number of guilds cached by the bot", registry=registry
    ).set_function(probe.guild_count)
    return registry


@web.middleware
async def plaintext_errors(request: web.Request, handler):
    try:
        return await handler(request)
    except (web.HTTPNotFound, web.HTTPMethodNotAllowed):
        return web.Response(status=404, text="Not Found")
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("http_request_failed method=%s path=%s", request.method, request.path)
        return web.Response(status=500, text="Internal Server Error")


async def handle_ok(request: web.Request) -> web.Response:
    return web.Response(text="OK")


async def handle_status(request: web.Request) -> web.Response:
    probe = request.app[PROBE_KEY]
    return web.json_response({
        "status": "ok",
        "uptime_seconds": int(probe.uptime_seconds()),
        "python_version": platform.python_version(),
        "mem_rss": probe.rss_bytes(),
        "bot_ready": bool(probe.is_ready()),
        "guilds_cached": probe.guild_count(),
        "timestamp": int(time.time() * 1000),
    })


async def handle_metrics(request: web.Request) -> web.Response:
    body = generate_latest(request.app[REGISTRY_KEY])
    return web.Response(body=body, headers={"Content-Type": CONTENT_TYPE_LATEST})


def create_health_app(probe: HealthProbe) -> web.Application:
    app = web.Application(middlewares=[plaintext_errors])
    app[PROBE_KEY] = probe
    app[REGISTRY_KEY] = build_registry(probe)
    app.router.add_get("/", handle_ok, allow_head=False)
    app.router.add_get("/health", handle_ok, allow_head=False)
    app.router.add_get("/status", handle_status, allow_head=False)
    app.router.add_get("/metrics", handle_metrics, allow_head=False)
    return app


async def start_health_server(probe: HealthProbe, port: int, host: str = "0.0.0.0") -> web.AppRunner:
    runner = web.AppRunner(create_health_app(probe), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("http_server_listening host=%s port=%s", host, port)
    return runner
