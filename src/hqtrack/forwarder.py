"""Delivery of decoded fixes and diagnostic records to the ingestion sink."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from hqtrack._constants import DEFAULT_FORWARD_TIMEOUT, LOG_PREVIEW_CHARS
from hqtrack.config import TrackerConfig
from hqtrack.exceptions import TrackerTransportError
from hqtrack.models.record import SinkRecord
from hqtrack.stats import ServiceStats

_logger = logging.getLogger(__name__)


def _user_agent() -> str:
    from hqtrack import __version__

    return f"hqtrack/{__version__}"


class ForwardOutcome(enum.Enum):
    DELIVERED = "delivered"
    FAILED = "failed"


class SinkTransport(Protocol):
    """Structural transport interface used by :class:`Forwarder`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`HttpSinkTransport`) concrete.
    """

    async def post_json(self, url: str, payload: Mapping[str, Any], *, timeout: float) -> int:
        ...


class HttpSinkTransport:
    """aiohttp transport: POST a JSON body and return the status code.

    Raises :class:`TrackerTransportError` for timeouts, connection failures
    and non-2xx responses.
    """

    def __init__(self, http_session: aiohttp.ClientSession, *, user_agent: str | None = None) -> None:
        self._http = http_session
        self._user_agent = user_agent or _user_agent()

    async def post_json(self, url: str, payload: Mapping[str, Any], *, timeout: float) -> int:
        body = json.dumps(payload, separators=(",", ":"))
        headers = {
            "content-type": "application/json",
            "user-agent": self._user_agent,
        }

        _logger.debug("POST %s", url)

        try:
            async with self._http.post(
                url,
                data=body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise TrackerTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        url=url,
                    )
                return resp.status
        except TrackerTransportError:
            raise
        except asyncio.TimeoutError as exc:
            raise TrackerTransportError(f"Timeout after {timeout}s posting to {url}", url=url) from exc
        except aiohttp.ClientError as exc:
            raise TrackerTransportError(f"Request to {url} failed: {exc}", url=url) from exc


class Forwarder:
    """Send :class:`SinkRecord` payloads to the sink, counting outcomes.

    Delivery is at-most-once unless ``retries`` is set, in which case a failed
    attempt is repeated up to ``retries`` times with exponential backoff.
    Failures are logged and counted, never raised.

    Usage::

        async with Forwarder(config, stats) as forwarder:
            await forwarder.forward(record)
    """

    def __init__(
        self,
        config: TrackerConfig,
        stats: ServiceStats | None = None,
        *,
        transport: SinkTransport | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = config.forward_url
        self._timeout = config.forward_timeout or DEFAULT_FORWARD_TIMEOUT
        self._retries = config.forward_retries
        self._backoff = config.forward_backoff
        self._stats = stats if stats is not None else ServiceStats()
        self._transport = transport
        self._external_session = session is not None
        self._http_session = session

    @property
    def url(self) -> str:
        return self._url

    @property
    def stats(self) -> ServiceStats:
        return self._stats

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Forwarder:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpSinkTransport(self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._transport = None

    def _require_transport(self) -> SinkTransport:
        if self._transport is None:
            raise TrackerTransportError("Forwarder not started. Use 'async with Forwarder(...)'", url=self._url)
        return self._transport

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def forward(self, record: SinkRecord) -> ForwardOutcome:
        """Deliver one record; returns the outcome instead of raising."""
        transport = self._require_transport()
        payload = record.to_payload()
        attempts = 1 + max(self._retries, 0)
        for attempt in range(1, attempts + 1):
            try:
                status = await transport.post_json(self._url, payload, timeout=self._timeout)
            except TrackerTransportError as exc:
                if attempt < attempts:
                    delay = self._backoff * (2 ** (attempt - 1))
                    _logger.debug("Forward attempt %d/%d failed (%s); retrying in %.2fs", attempt, attempts, exc, delay)
                    if delay > 0:
                        await asyncio.sleep(delay)
                    continue
                self._stats.errors += 1
                _logger.warning(
                    "Error forwarding %s record to %s: %s",
                    "diagnostic" if record.is_diagnostic else "fix",
                    self._url,
                    exc,
                )
                return ForwardOutcome.FAILED
            self._stats.packets_forwarded += 1
            _logger.debug(
                "Forwarded to sink status=%d imei=%s raw=%r",
                status,
                record.imei,
                (record.raw or "")[:LOG_PREVIEW_CHARS],
            )
            return ForwardOutcome.DELIVERED
        return ForwardOutcome.FAILED
