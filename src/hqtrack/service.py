"""Wiring of the ingestion service: forwarder, pipeline, TCP and health servers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from aiohttp import web

from hqtrack.config import TrackerConfig
from hqtrack.forwarder import Forwarder, SinkTransport
from hqtrack.health import start_health_server
from hqtrack.pipeline import IngestPipeline
from hqtrack.server import TrackerServer
from hqtrack.stats import ServiceStats
from hqtrack.storage.base import Storage
from hqtrack.storage.memory import InMemoryStorage

_logger = logging.getLogger(__name__)


class TrackerService:
    """Run the complete ingestion service.

    Usage::

        async with TrackerService(config) as service:
            await service.wait_stopped()
    """

    def __init__(
        self,
        config: TrackerConfig,
        *,
        storage: Storage | None = None,
        transport: SinkTransport | None = None,
        health: bool = True,
    ) -> None:
        self._config = config
        self._storage: Storage = storage if storage is not None else InMemoryStorage()
        self._stats = ServiceStats()
        self._forwarder = Forwarder(config, self._stats, transport=transport)
        self._pipeline = IngestPipeline(config, storage=self._storage, forwarder=self._forwarder, stats=self._stats)
        self._server = TrackerServer(config, self._pipeline)
        self._health_enabled = health
        self._health_runner: web.AppRunner | None = None
        self._stopped = asyncio.Event()

    @property
    def stats(self) -> ServiceStats:
        return self._stats

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def pipeline(self) -> IngestPipeline:
        return self._pipeline

    @property
    def tcp_port(self) -> int:
        return self._server.port

    async def __aenter__(self) -> TrackerService:
        await self._forwarder.__aenter__()
        try:
            await self._server.start()
            if self._health_enabled:
                self._health_runner = await start_health_server(self._config, self._stats)
        except BaseException:
            await self.close()
            raise
        _logger.info("Forwarding decoded fixes to %s", self._forwarder.url)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def request_stop(self) -> None:
        self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def close(self) -> None:
        _logger.info("Shutting down TCP GPS service")
        await self._server.stop()
        await self._pipeline.drain(timeout=self._config.forward_timeout)
        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None
        await self._forwarder.close()
        self._stopped.set()
