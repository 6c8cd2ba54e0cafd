"""Prometheus metrics for the workflow gate, job lifecycle and HTTP surface."""

from __future__ import annotations

from time import perf_counter

from fastapi import FastAPI, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


_HTTP_REQUEST_COUNT = Counter(
    "novelforge_http_requests_total",
    "Total HTTP requests processed by service",
    labelnames=("service", "method", "route", "status"),
)

_HTTP_REQUEST_LATENCY = Histogram(
    "novelforge_http_request_duration_seconds",
    "Latency of HTTP requests",
    labelnames=("service", "method", "route"),
)

_JOB_TRANSITIONS = Counter(
    "novelforge_job_transitions_total",
    "Generation job lifecycle transitions by target state",
    labelnames=("kind", "state"),
)

_POLL_TICKS = Counter(
    "novelforge_job_poll_ticks_total",
    "Status poll ticks by outcome",
    labelnames=("kind", "outcome"),
)

_JOB_DURATION = Histogram(
    "novelforge_job_duration_seconds",
    "Time from submission to a terminal lifecycle state",
    labelnames=("kind", "state"),
    buckets=(1, 5, 10, 30, 60, 120, 180, 240, 300, 600),
)

_GATE_DECISIONS = Counter(
    "novelforge_gate_decisions_total",
    "Workflow gate access decisions",
    labelnames=("step", "outcome"),
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for FastAPI services."""

    def __init__(self, app: FastAPI, service_name: str) -> None:
        super().__init__(app)
        self.service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start = perf_counter()
        response = await call_next(request)
        elapsed = perf_counter() - start

        route = request.scope.get("route")
        route_template = getattr(route, "path", None) or request.url.path
        status = getattr(response, "status_code", 500)

        _HTTP_REQUEST_COUNT.labels(self.service_name, request.method, route_template, str(status)).inc()
        _HTTP_REQUEST_LATENCY.labels(self.service_name, request.method, route_template).observe(elapsed)
        return response


def setup_fastapi_metrics(app: FastAPI, service_name: str, endpoint: str = "/metrics") -> None:
    """Register Prometheus middleware and metrics endpoint for a FastAPI app."""

    if getattr(app.state, "metrics_configured", False):
        return

    app.add_middleware(PrometheusMiddleware, service_name=service_name)

    @app.get(endpoint, include_in_schema=False)
    async def _metrics_endpoint() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.state.metrics_configured = True


def observe_job_transition(kind: str, state: str) -> None:
    _JOB_TRANSITIONS.labels(kind, state).inc()


def observe_poll_tick(kind: str, outcome: str) -> None:
    _POLL_TICKS.labels(kind, outcome).inc()


def observe_job_duration(kind: str, state: str, duration_seconds: float) -> None:
    """Record how long a job took to reach ``state`` (a terminal lifecycle state)."""

    _JOB_DURATION.labels(kind, state).observe(max(duration_seconds, 0.0))


def observe_gate_decision(step: str, allowed: bool) -> None:
    _GATE_DECISIONS.labels(step, "allowed" if allowed else "locked").inc()
