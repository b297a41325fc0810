"""Service configuration for hqtrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any
from urllib.parse import urlsplit

from hqtrack._constants import DEFAULT_FORWARD_TIMEOUT, DEFAULT_MAX_FRAME_LENGTH, DEFAULT_RIDE_GAP_SECONDS
from hqtrack.exceptions import TrackerConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Ingestion service configuration.

    Parameters
    ----------
    tcp_host : str
        Interface the tracker-facing TCP server binds to.
    tcp_port : int
        TCP port trackers connect to.
    health_port : int or None
        Port of the ``/health`` and ``/stats`` HTTP surface. ``None``
        means ``tcp_port + 1``. The surface is disabled when it would
        collide with ``tcp_port``.
    sink_url : str
        Base URL of the downstream ingestion API.
    sink_path : str
        Path of the write route on the sink.
    forward_timeout : float
        Total timeout in seconds for one delivery attempt.
    forward_retries : int
        Extra delivery attempts after a failure. ``0`` keeps delivery
        at-most-once.
    forward_backoff : float
        Base delay in seconds between retries; doubles per attempt.
    ride_gap_seconds : float
        Inactivity gap after which the next fix opens a new ride.
    max_frame_length : int
        Longest partial frame kept while waiting for its terminator.
    read_size : int
        Bytes requested per socket read.
    keepalive : bool
        Enable TCP keepalive on accepted tracker sockets.
    max_tracked_vehicles : int
        Upper bound of per-vehicle segmenter state kept in memory.
    resolver_cache_size : int
        Upper bound of cached ``imei -> vehicle id`` mappings.
    log_level : str
        Root log level used by the command line entry point.
    """

    tcp_host: str = "0.0.0.0"
    tcp_port: int = 7000
    health_port: int | None = None
    sink_url: str = "http://127.0.0.1:3000"
    sink_path: str = "/ping"
    forward_timeout: float = DEFAULT_FORWARD_TIMEOUT
    forward_retries: int = 0
    forward_backoff: float = 0.5
    ride_gap_seconds: float = DEFAULT_RIDE_GAP_SECONDS
    max_frame_length: int = DEFAULT_MAX_FRAME_LENGTH
    read_size: int = 4096
    keepalive: bool = True
    max_tracked_vehicles: int = 10_000
    resolver_cache_size: int = 10_000
    log_level: str = "INFO"

    @property
    def effective_health_port(self) -> int | None:
        """Port of the health surface, or ``None`` when it is disabled."""
        port = self.health_port if self.health_port is not None else self.tcp_port + 1
        if port == self.tcp_port or port <= 0:
            return None
        return port

    @property
    def forward_url(self) -> str:
        return f"{self.sink_url.rstrip('/')}/{self.sink_path.lstrip('/')}"

    def validate(self) -> TrackerConfig:
        """Check value ranges, raising :class:`TrackerConfigError` on the first problem."""
        if not 0 <= self.tcp_port <= 65535:
            raise TrackerConfigError(f"tcp_port out of range: {self.tcp_port}")
        if self.health_port is not None and not 0 <= self.health_port <= 65535:
            raise TrackerConfigError(f"health_port out of range: {self.health_port}")
        parts = urlsplit(self.sink_url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise TrackerConfigError(f"sink_url must be an http(s) URL, got {self.sink_url!r}")
        if self.forward_timeout <= 0:
            raise TrackerConfigError("forward_timeout must be positive")
        if self.forward_retries < 0:
            raise TrackerConfigError("forward_retries must not be negative")
        if self.ride_gap_seconds <= 0:
            raise TrackerConfigError("ride_gap_seconds must be positive")
        if self.max_frame_length < 16:
            raise TrackerConfigError("max_frame_length is too small to hold a frame")
        if self.read_size <= 0:
            raise TrackerConfigError("read_size must be positive")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads ``HQTRACK_*`` variables. ``PORT`` and ``HTTP_SERVICE_URL`` are
        honoured as fallbacks so existing deployments keep working.
        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated, validated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "HQTRACK_TCP_HOST": "tcp_host",
            "HQTRACK_SINK_PATH": "sink_path",
            "HQTRACK_LOG_LEVEL": "log_level",
        }
        _ENV_INT_MAP = {
            "HQTRACK_FORWARD_RETRIES": "forward_retries",
            "HQTRACK_MAX_FRAME_LENGTH": "max_frame_length",
            "HQTRACK_READ_SIZE": "read_size",
            "HQTRACK_MAX_TRACKED_VEHICLES": "max_tracked_vehicles",
            "HQTRACK_RESOLVER_CACHE_SIZE": "resolver_cache_size",
        }
        _ENV_FLOAT_MAP = {
            "HQTRACK_FORWARD_TIMEOUT": "forward_timeout",
            "HQTRACK_FORWARD_BACKOFF": "forward_backoff",
            "HQTRACK_RIDE_GAP_SECONDS": "ride_gap_seconds",
        }

        config_kwargs: dict[str, Any] = {}
        try:
            for env_key, field_name in _ENV_STR_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = val
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = int(val)
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None:
                    config_kwargs[field_name] = float(val)

            port_env = env.get("HQTRACK_TCP_PORT") or env.get("PORT")
            if port_env is not None:
                config_kwargs["tcp_port"] = int(port_env)

            health_env = env.get("HQTRACK_HEALTH_PORT")
            if health_env is not None:
                config_kwargs["health_port"] = int(health_env)
        except ValueError as exc:
            raise TrackerConfigError(f"Invalid numeric environment value: {exc}") from exc

        sink_env = env.get("HQTRACK_SINK_URL") or env.get("HTTP_SERVICE_URL")
        if sink_env is not None:
            config_kwargs["sink_url"] = sink_env

        if "keepalive" not in overrides:
            config_kwargs["keepalive"] = _env_bool(env.get("HQTRACK_KEEPALIVE"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs).validate()
