from __future__ import annotations

import pytest
from helpers import FakeTransport

from hqtrack.config import TrackerConfig


@pytest.fixture
def config() -> TrackerConfig:
    return TrackerConfig(
        tcp_host="127.0.0.1",
        tcp_port=0,
        health_port=0,
        sink_url="http://sink.example.com",
        forward_backoff=0.0,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
