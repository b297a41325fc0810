"""Command line entry point: ``hqtrack`` / ``python -m hqtrack``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

from hqtrack.config import TrackerConfig
from hqtrack.exceptions import TrackerConfigError
from hqtrack.service import TrackerService

_LOG = logging.getLogger("hqtrack")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hqtrack",
        description="Receive HQ/NMEA GPS tracker frames over TCP and forward decoded fixes.",
    )
    parser.add_argument("--host", dest="tcp_host", help="Interface to bind (default 0.0.0.0)")
    parser.add_argument("--port", dest="tcp_port", type=int, help="Tracker TCP port (default 7000)")
    parser.add_argument("--health-port", dest="health_port", type=int, help="Health/stats HTTP port")
    parser.add_argument("--sink-url", dest="sink_url", help="Base URL of the ingestion API")
    parser.add_argument("--sink-path", dest="sink_path", help="Write route on the sink (default /ping)")
    parser.add_argument("--forward-timeout", dest="forward_timeout", type=float, help="Seconds per delivery")
    parser.add_argument("--forward-retries", dest="forward_retries", type=int, help="Retries after a failure")
    parser.add_argument("--ride-gap", dest="ride_gap_seconds", type=float, help="Seconds of silence ending a ride")
    parser.add_argument("--log-level", dest="log_level", help="DEBUG, INFO, WARNING, ...")
    return parser


def config_from_args(args: argparse.Namespace) -> TrackerConfig:
    overrides: dict[str, Any] = {key: value for key, value in vars(args).items() if value is not None}
    return TrackerConfig.from_env(**overrides)


async def run(config: TrackerConfig) -> None:
    async with TrackerService(config) as service:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, service.request_stop)
        await service.wait_stopped()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except TrackerConfigError as exc:
        print(f"hqtrack: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    _LOG.info("TCP GPS service starting on port %d", config.tcp_port)
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass
    return 0
