"""Tracker-facing TCP server: one task per connection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from typing import Any

from hqtrack.config import TrackerConfig
from hqtrack.pipeline import IngestPipeline

_logger = logging.getLogger(__name__)

_KEEPALIVE_IDLE_S = 30


def _format_peer(peername: Any) -> str:
    if isinstance(peername, tuple) and len(peername) >= 2:
        return f"{peername[0]}:{peername[1]}"
    return str(peername or "unknown")


def _enable_keepalive(writer: asyncio.StreamWriter) -> None:
    sock = writer.get_extra_info("socket")
    if sock is None:
        return
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if hasattr(socket, "TCP_KEEPIDLE"):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, _KEEPALIVE_IDLE_S)
    except OSError:
        _logger.debug("Could not enable TCP keepalive", exc_info=True)


class TrackerServer:
    """Accept tracker connections and feed their reads into the pipeline.

    Chunks of one connection are processed strictly in order; connections
    are independent and a failure in one never affects another.
    """

    def __init__(self, config: TrackerConfig, pipeline: IngestPipeline) -> None:
        self._config = config
        self._pipeline = pipeline
        self._server: asyncio.Server | None = None
        self._writers: set[asyncio.StreamWriter] = set()

    @property
    def port(self) -> int:
        """Bound port (useful when configured with port 0)."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Server not started")
        return int(self._server.sockets[0].getsockname()[1])

    @property
    def active_connections(self) -> int:
        return len(self._writers)

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_connection,
            host=self._config.tcp_host,
            port=self._config.tcp_port,
        )
        _logger.info("TCP GPS service listening on %s:%d", self._config.tcp_host, self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        if self._server is None:
            raise RuntimeError("Server was stopped while starting")
        await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting, close open connections and wait for them to finish."""
        server = self._server
        self._server = None
        if server is None:
            return
        server.close()
        for writer in list(self._writers):
            writer.close()
        await server.wait_closed()
        _logger.info("TCP server closed")

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        stats = self._pipeline.stats
        stats.connections_total += 1
        stats.connections_open += 1
        peer = _format_peer(writer.get_extra_info("peername"))
        if self._config.keepalive:
            _enable_keepalive(writer)
        self._writers.add(writer)
        session = self._pipeline.open_session(peer)
        _logger.info("GPS tracker connected from %s (connection #%d)", peer, stats.connections_total)

        try:
            while True:
                chunk = await reader.read(self._config.read_size)
                if not chunk:
                    break
                result = await self._pipeline.process_chunk(session, chunk)
                if result.ack is not None:
                    writer.write(result.ack)
                    await writer.drain()
        except (ConnectionError, OSError) as exc:
            stats.errors += 1
            _logger.warning("TCP socket error from %s: %s", peer, exc)
        except Exception:
            stats.errors += 1
            _logger.exception("Unexpected failure handling connection from %s", peer)
        finally:
            stats.connections_open -= 1
            self._writers.discard(writer)
            _logger.info(
                "GPS tracker %s disconnected: %d packets, %d fixes in %dms",
                peer,
                session.packets,
                session.fixes,
                session.duration_ms,
            )
            writer.close()
            with contextlib.suppress(ConnectionError, OSError):
                await writer.wait_closed()
