"""Generation Service client speaking to the NovelForge backend over HTTP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from novelforge_schemas import JobKind, JobStatus, JobStatusReport, SubmitReceipt

from .base import GenerationService
from .config import GenerationServiceConfig
from .exceptions import JobNotFoundError, NetworkError, ServerRejectedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobRoutes:
    status: str
    submit: str


_GENERIC_ROUTES = JobRoutes(
    status="/api/generation/{kind}/{scope_id}",
    submit="/api/generation/{kind}/{scope_id}",
)

JOB_ROUTES: dict[JobKind, JobRoutes] = {
    JobKind.COHERENCE: JobRoutes(
        status="/api/projects/{scope_id}/coherence-check",
        submit="/api/projects/{scope_id}/coherence-check",
    ),
    JobKind.ORIGINALITY: JobRoutes(
        status="/api/projects/{scope_id}/originality-check",
        submit="/api/projects/{scope_id}/originality-check",
    ),
    JobKind.OUTLINE_REVIEW: JobRoutes(
        status="/api/projects/{scope_id}/outline-editorial/status",
        submit="/api/projects/{scope_id}/outline-editorial/submit",
    ),
    JobKind.EDITORIAL_REPORT: JobRoutes(
        status="/api/projects/{scope_id}/veb/status",
        submit="/api/projects/{scope_id}/veb/submit",
    ),
    JobKind.FOLLOW_UP: JobRoutes(
        status="/api/completion/book/{scope_id}/follow-up",
        submit="/api/completion/book/{scope_id}/follow-up/generate",
    ),
}

# Backend endpoints predate the shared vocabulary and report their own status names.
STATUS_ALIASES: dict[str, JobStatus] = {
    "pending": JobStatus.PENDING,
    "queued": JobStatus.PENDING,
    "processing": JobStatus.PROCESSING,
    "running": JobStatus.PROCESSING,
    "generating": JobStatus.PROCESSING,
    "in_progress": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "complete": JobStatus.COMPLETED,
    "succeeded": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "error": JobStatus.FAILED,
}

NOT_FOUND_STATUSES = {"none", "not_found"}

_ENVELOPE_KEYS = {"status", "jobId", "job_id", "progress", "error", "message", "result"}


class HttpGenerationService(GenerationService):
    """Talks to the backend's per-kind job endpoints."""

    name = "http"

    def __init__(
        self,
        config: GenerationServiceConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if config.api_token:
            headers["Authorization"] = f"Bearer {config.api_token}"
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
            headers=headers,
            transport=transport,
        )

    async def submit_job(
        self, kind: JobKind, scope_id: str, params: Mapping[str, Any] | None = None
    ) -> SubmitReceipt:
        path = self._path(kind, scope_id, submit=True)
        try:
            response = await self._client.post(path, json=dict(params or {}))
        except httpx.HTTPError as exc:
            raise NetworkError(f"Generation service request failed: {exc}") from exc

        payload = _json_or_empty(response)
        if response.is_error:
            raise ServerRejectedError(
                _error_message(payload) or f"Failed to start {kind.value} generation",
                status_code=response.status_code,
            )
        job_id = payload.get("jobId") or payload.get("job_id") or payload.get("id")
        if not job_id:
            raise ServerRejectedError(
                _error_message(payload) or f"Generation service did not return a job id for {kind.value}",
                status_code=response.status_code,
            )
        return SubmitReceipt(job_id=str(job_id), message=payload.get("message"))

    async def get_job_status(self, kind: JobKind, scope_id: str) -> JobStatusReport:
        path = self._path(kind, scope_id, submit=False)
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Generation service request failed: {exc}") from exc

        if response.status_code == 404:
            raise JobNotFoundError(f"No {kind.value} job for {scope_id}")
        if response.is_error:
            raise NetworkError(
                f"Status request for {kind.value} returned HTTP {response.status_code}"
            )

        payload = _json_or_empty(response)
        raw_status = str(payload.get("status") or "").strip().lower()
        if raw_status in NOT_FOUND_STATUSES:
            raise JobNotFoundError(f"No {kind.value} job for {scope_id}")
        status = STATUS_ALIASES.get(raw_status)
        if status is None:
            logger.warning(
                "Unrecognised job status treated as processing",
                extra={"job_kind": kind.value, "scope_id": scope_id, "raw_status": raw_status},
            )
            status = JobStatus.PROCESSING

        result = payload.get("result")
        if result is None and status is JobStatus.COMPLETED:
            result = {key: value for key, value in payload.items() if key not in _ENVELOPE_KEYS}
        return JobStatusReport(
            status=status,
            job_id=payload.get("jobId") or payload.get("job_id"),
            progress=_coerce_progress(payload.get("progress")),
            result=result,
            error=_error_message(payload) if status is JobStatus.FAILED else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _path(kind: JobKind, scope_id: str, *, submit: bool) -> str:
        routes = JOB_ROUTES.get(kind, _GENERIC_ROUTES)
        template = routes.submit if submit else routes.status
        return template.format(kind=kind.value, scope_id=scope_id)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _error_message(payload: Mapping[str, Any]) -> str | None:
    error = payload.get("error")
    if isinstance(error, Mapping):
        error = error.get("message")
    message = error or payload.get("message") or payload.get("detail")
    return str(message) if message else None


def _coerce_progress(value: Any) -> float | None:
    if isinstance(value, Mapping):
        value = value.get("percent") or value.get("percentage")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None
