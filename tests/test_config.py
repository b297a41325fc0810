from __future__ import annotations

import pytest

from hqtrack.cli import build_parser, config_from_args
from hqtrack.config import TrackerConfig
from hqtrack.exceptions import TrackerConfigError

_ENV_KEYS = (
    "PORT",
    "HTTP_SERVICE_URL",
    "HQTRACK_TCP_HOST",
    "HQTRACK_TCP_PORT",
    "HQTRACK_HEALTH_PORT",
    "HQTRACK_SINK_URL",
    "HQTRACK_SINK_PATH",
    "HQTRACK_FORWARD_TIMEOUT",
    "HQTRACK_FORWARD_RETRIES",
    "HQTRACK_RIDE_GAP_SECONDS",
    "HQTRACK_KEEPALIVE",
    "HQTRACK_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    config = TrackerConfig.from_env()

    assert config.tcp_port == 7000
    assert config.sink_url == "http://127.0.0.1:3000"
    assert config.forward_url == "http://127.0.0.1:3000/ping"
    assert config.ride_gap_seconds == 600
    assert config.forward_retries == 0
    assert config.keepalive is True


def test_legacy_variables_are_honoured(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("HTTP_SERVICE_URL", "http://ingest:8080/")

    config = TrackerConfig.from_env()

    assert config.tcp_port == 9000
    assert config.effective_health_port == 9001
    assert config.forward_url == "http://ingest:8080/ping"


def test_prefixed_variables_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("HQTRACK_TCP_PORT", "7100")
    monkeypatch.setenv("HQTRACK_RIDE_GAP_SECONDS", "300")
    monkeypatch.setenv("HQTRACK_KEEPALIVE", "off")

    config = TrackerConfig.from_env()

    assert config.tcp_port == 7100
    assert config.ride_gap_seconds == 300.0
    assert config.keepalive is False


def test_overrides_beat_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HQTRACK_TCP_PORT", "7100")
    assert TrackerConfig.from_env(tcp_port=7200).tcp_port == 7200


def test_invalid_number_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "seven")
    with pytest.raises(TrackerConfigError):
        TrackerConfig.from_env()


@pytest.mark.parametrize(
    "overrides",
    [
        {"tcp_port": 70000},
        {"sink_url": "ftp://sink"},
        {"sink_url": "not a url"},
        {"forward_timeout": 0},
        {"forward_retries": -1},
        {"ride_gap_seconds": 0},
    ],
)
def test_validation_rejects_bad_values(overrides: dict[str, object]) -> None:
    with pytest.raises(TrackerConfigError):
        TrackerConfig.from_env(**overrides)


def test_cli_arguments_override_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PORT", "9000")
    args = build_parser().parse_args(["--port", "7300", "--sink-url", "http://sink:3000", "--forward-retries", "2"])

    config = config_from_args(args)

    assert config.tcp_port == 7300
    assert config.sink_url == "http://sink:3000"
    assert config.forward_retries == 2
    assert config.tcp_host == "0.0.0.0"
