"""Tests for environment-driven configuration."""

from pathlib import Path

import pytest

from overlay_gateway import config_loader
from overlay_gateway.app import GatewayConfig

ENV_VARS = [
    "PUBLIC_DIR",
    "BATCH_CONCURRENCY",
    "TRANSFORM_WORKERS",
    "TRANSFORM_QUEUE_SIZE",
    "FFMPEG_BINARY",
    "TRANSFORM_TIMEOUT",
    "LABEL_COLOR",
    "LABEL_FONT_SCALE",
    "WEBHOOK_TIMEOUT_MS",
    "HOST",
    "PORT",
    "LOG_LEVEL",
    "JWT_SECRET",
    "JWT_ALGORITHM",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr(config_loader, "load_dotenv", lambda: None)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults_match_gateway_config():
    config = config_loader.load_config_from_env()
    assert config == GatewayConfig()
    assert config.webhook_timeout == 10.0
    assert config.transform_workers is None


def test_values_are_read_from_environment(monkeypatch):
    monkeypatch.setenv("PUBLIC_DIR", "/srv/overlay")
    monkeypatch.setenv("BATCH_CONCURRENCY", "3")
    monkeypatch.setenv("TRANSFORM_WORKERS", "6")
    monkeypatch.setenv("FFMPEG_BINARY", "/opt/ffmpeg/bin/ffmpeg")
    monkeypatch.setenv("TRANSFORM_TIMEOUT", "45")
    monkeypatch.setenv("LABEL_COLOR", "white")
    monkeypatch.setenv("WEBHOOK_TIMEOUT_MS", "2500")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("JWT_SECRET", "s3cret")

    config = config_loader.load_config_from_env()

    assert config.public_dir == Path("/srv/overlay")
    assert config.batch_concurrency == 3
    assert config.transform_workers == 6
    assert config.transform_queue_size is None
    assert config.ffmpeg_binary == "/opt/ffmpeg/bin/ffmpeg"
    assert config.transform_timeout == 45.0
    assert config.label_color == "white"
    assert config.webhook_timeout == 2.5
    assert config.port == 8080
    assert config.jwt_secret == "s3cret"
    assert config.jwt_algorithm == "HS256"


def test_zero_webhook_timeout_disables_it(monkeypatch):
    monkeypatch.setenv("WEBHOOK_TIMEOUT_MS", "0")
    assert config_loader.load_config_from_env().webhook_timeout is None


def test_build_dispatcher_uses_transform_settings(tmp_path):
    config = GatewayConfig(public_dir=tmp_path, transform_workers=4, transform_queue_size=3)
    dispatcher = config.build_dispatcher()
    assert dispatcher.workers == 4
    assert dispatcher.queue_size == 3
    assert dispatcher.transform.keywords["ffmpeg_binary"] == "ffmpeg"
    assert dispatcher.transform.keywords["style"].color == "red"
