"""Configuration models for the Generation Service client and job polling."""

from __future__ import annotations

import os
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

BACKEND_ENV_VAR = "NOVELFORGE_GENERATION_BACKEND"
DEFAULT_BACKEND = "memory"
ENV_PREFIX = "NOVELFORGE"

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_JOB_DEADLINE_SECONDS = 300.0


class PollingSettings(BaseModel):
    """Cadence of status polls and the local deadline for one job."""

    model_config = ConfigDict(frozen=True)

    interval_seconds: float = Field(DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    deadline_seconds: float = Field(DEFAULT_JOB_DEADLINE_SECONDS, gt=0)

    @model_validator(mode="after")
    def check_interval_fits_deadline(self) -> "PollingSettings":
        if self.interval_seconds > self.deadline_seconds:
            raise ValueError("Poll interval must not exceed the job deadline")
        return self

    @property
    def max_ticks(self) -> int:
        return int(self.deadline_seconds // self.interval_seconds)


class GenerationServiceConfig(BaseModel):
    """Where and how to reach the Generation Service."""

    model_config = ConfigDict(frozen=True)

    backend: str = DEFAULT_BACKEND
    base_url: Optional[str] = None
    api_token: Optional[str] = Field(None, repr=False)
    timeout_seconds: float = Field(30.0, gt=0)

    @model_validator(mode="after")
    def check_http_has_url(self) -> "GenerationServiceConfig":
        if self.backend == "http" and not self.base_url:
            raise ValueError("NOVELFORGE_API_URL is required for the http backend")
        return self


def _read_env(key: str, default: Any | None = None) -> Any:
    return os.getenv(f"{ENV_PREFIX}_{key}", default)


def load_polling_settings() -> PollingSettings:
    """Load poll cadence from ``NOVELFORGE_POLL_INTERVAL_SECONDS`` and
    ``NOVELFORGE_JOB_DEADLINE_SECONDS``.

    Raises:
        ValidationError: If a value is not a positive number or the interval
            exceeds the deadline.
    """

    return PollingSettings(
        interval_seconds=_read_env("POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS),
        deadline_seconds=_read_env("JOB_DEADLINE_SECONDS", DEFAULT_JOB_DEADLINE_SECONDS),
    )


def load_generation_config() -> GenerationServiceConfig:
    """Load the Generation Service configuration from environment variables.

    Environment variables used:
        NOVELFORGE_GENERATION_BACKEND (``memory`` or ``http``; default ``memory``)
        NOVELFORGE_API_URL (required for ``http``)
        NOVELFORGE_API_TOKEN (optional bearer token)
        NOVELFORGE_API_TIMEOUT (optional, seconds)

    Raises:
        ValidationError: If required variables are missing or invalid.
    """

    backend = os.getenv(BACKEND_ENV_VAR, DEFAULT_BACKEND).strip().lower() or DEFAULT_BACKEND
    timeout_raw = _read_env("API_TIMEOUT", "")
    try:
        timeout = float(timeout_raw) if str(timeout_raw).strip() else 30.0
    except ValueError as exc:  # pragma: no cover - environment misconfiguration
        raise ValidationError.from_exception_data(
            "GenerationServiceConfig",
            [
                {
                    "type": "float_parsing",
                    "loc": ("timeout_seconds",),
                    "input": timeout_raw,
                }
            ],
        ) from exc

    token = _read_env("API_TOKEN")
    return GenerationServiceConfig(
        backend=backend,
        base_url=_read_env("API_URL") or None,
        api_token=token.strip() if isinstance(token, str) and token.strip() else None,
        timeout_seconds=timeout,
    )
