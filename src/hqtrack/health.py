"""HTTP health and counters surface (``GET /health``, ``GET /stats``)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from aiohttp import web

from hqtrack.config import TrackerConfig
from hqtrack.models._base import format_utc
from hqtrack.stats import ServiceStats

_logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", TrackerConfig)
STATS_KEY = web.AppKey("stats", ServiceStats)


async def _health(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    stats = request.app[STATS_KEY]
    return web.json_response(
        {
            "status": "OK",
            "service": "TCP GPS Forwarder",
            "tcp_port": config.tcp_port,
            "target": config.forward_url,
            "stats": stats.as_dict(),
            "timestamp": format_utc(datetime.now(UTC)),
        }
    )


async def _stats(request: web.Request) -> web.Response:
    return web.json_response(request.app[STATS_KEY].as_dict())


def create_health_app(config: TrackerConfig, stats: ServiceStats) -> web.Application:
    app = web.Application()
    app[CONFIG_KEY] = config
    app[STATS_KEY] = stats
    app.router.add_get("/health", _health)
    app.router.add_get("/stats", _stats)
    return app


async def start_health_server(config: TrackerConfig, stats: ServiceStats) -> web.AppRunner | None:
    """Serve the health app on ``config.effective_health_port``; ``None`` when disabled."""
    port = config.effective_health_port
    if port is None:
        _logger.info("Health surface disabled (port would collide with the TCP port)")
        return None
    runner = web.AppRunner(create_health_app(config, stats), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host=config.tcp_host, port=port)
    await site.start()
    _logger.info("Health check available at port %d/health", port)
    return runner
