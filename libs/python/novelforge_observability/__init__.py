"""Shared observability helpers used across NovelForge workflow services."""

from .logging import current_log_context, log_context, setup_logging
from .metrics import (
    observe_gate_decision,
    observe_job_duration,
    observe_job_transition,
    observe_poll_tick,
    setup_fastapi_metrics,
)

__all__ = [
    "setup_logging",
    "log_context",
    "current_log_context",
    "setup_fastapi_metrics",
    "observe_gate_decision",
    "observe_job_duration",
    "observe_job_transition",
    "observe_poll_tick",
]
