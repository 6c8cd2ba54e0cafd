"""Tests for generation client and polling configuration loading."""

import os

import pytest
from pydantic import ValidationError

from novelforge_generation import (
    GenerationConfigError,
    GenerationServiceConfig,
    GenerationServiceFactory,
    HttpGenerationService,
    InMemoryGenerationService,
    PollingSettings,
    load_generation_config,
    load_polling_settings,
)
from novelforge_generation.config import BACKEND_ENV_VAR, DEFAULT_BACKEND


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("NOVELFORGE_"):
            monkeypatch.delenv(key, raising=False)


def test_defaults_use_memory_backend() -> None:
    cfg = load_generation_config()
    assert cfg.backend == DEFAULT_BACKEND
    assert cfg.base_url is None
    assert cfg.timeout_seconds == 30.0


def test_load_http_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(BACKEND_ENV_VAR, "HTTP")
    monkeypatch.setenv("NOVELFORGE_API_URL", "http://backend.test")
    monkeypatch.setenv("NOVELFORGE_API_TOKEN", " token ")
    monkeypatch.setenv("NOVELFORGE_API_TIMEOUT", "12.5")
    cfg = load_generation_config()
    assert cfg.backend == "http"
    assert cfg.api_token == "token"
    assert cfg.timeout_seconds == 12.5
    assert "token" not in repr(cfg)


def test_http_without_url_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(BACKEND_ENV_VAR, "http")
    with pytest.raises(ValidationError):
        load_generation_config()


def test_polling_defaults_and_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    settings = load_polling_settings()
    assert settings.interval_seconds == 10
    assert settings.deadline_seconds == 300
    assert settings.max_ticks == 30

    monkeypatch.setenv("NOVELFORGE_POLL_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("NOVELFORGE_JOB_DEADLINE_SECONDS", "60")
    assert load_polling_settings().max_ticks == 12


@pytest.mark.parametrize(
    "interval,deadline",
    [("0", "300"), ("-1", "300"), ("30", "10"), ("soon", "300")],
)
def test_invalid_polling_settings_raise(monkeypatch: pytest.MonkeyPatch, interval: str, deadline: str) -> None:
    monkeypatch.setenv("NOVELFORGE_POLL_INTERVAL_SECONDS", interval)
    monkeypatch.setenv("NOVELFORGE_JOB_DEADLINE_SECONDS", deadline)
    with pytest.raises(ValidationError):
        load_polling_settings()


def test_factory_builds_configured_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    assert isinstance(GenerationServiceFactory.create(), InMemoryGenerationService)
    http_cfg = GenerationServiceConfig(backend="http", base_url="http://backend.test")
    assert isinstance(GenerationServiceFactory.create(http_cfg), HttpGenerationService)


def test_factory_rejects_unknown_backend() -> None:
    with pytest.raises(GenerationConfigError):
        GenerationServiceFactory.create(GenerationServiceConfig(backend="carrier-pigeon"))


def test_polling_settings_are_frozen() -> None:
    settings = PollingSettings()
    with pytest.raises(ValidationError):
        settings.interval_seconds = 1  # type: ignore[misc]
