"""In-process Generation Service for tests and offline development."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, List, Mapping, Tuple
from uuid import uuid4

from novelforge_schemas import JobKind, JobStatus, JobStatusReport, SubmitReceipt

from .base import GenerationService
from .exceptions import JobNotFoundError, NetworkError, ServerRejectedError

_Key = Tuple[JobKind, str]


@dataclass
class _ServerJob:
    id: str
    kind: JobKind
    scope_id: str
    params: Dict[str, Any]
    status: JobStatus = JobStatus.PENDING
    progress: float | None = None
    result: Any = None
    error: str | None = None
    polls: int = 0
    script: Deque[JobStatusReport] = field(default_factory=deque)

    def report(self) -> JobStatusReport:
        return JobStatusReport(
            status=self.status,
            job_id=self.id,
            progress=self.progress,
            result=self.result,
            error=self.error,
        )


class InMemoryGenerationService(GenerationService):
    """Deterministic stand-in for the generation backend.

    Jobs stay ``pending`` until they are advanced by :meth:`update_job`, by a
    script of reports consumed one per poll (:meth:`script`), or automatically
    after ``auto_complete_after`` polls. At most one active job exists per
    ``(kind, scope_id)``; duplicate submissions acknowledge the active job.
    """

    name = "memory"

    def __init__(self, *, auto_complete_after: int | None = None) -> None:
        self._auto_complete_after = auto_complete_after
        self._jobs: Dict[_Key, List[_ServerJob]] = defaultdict(list)
        self._rejections: Dict[JobKind, str] = {}
        self._submit_failures = 0
        self._status_failures: Dict[_Key, int] = defaultdict(int)
        self._pending_scripts: Dict[_Key, Deque[JobStatusReport]] = {}
        self.submit_calls: List[_Key] = []
        self.status_calls: List[_Key] = []

    # -- fault and progress injection -------------------------------------------------

    def reject(self, kind: JobKind, message: str) -> None:
        self._rejections[kind] = message

    def fail_next_submit(self, times: int = 1) -> None:
        self._submit_failures += times

    def fail_next_status(self, kind: JobKind, scope_id: str, times: int = 1) -> None:
        self._status_failures[(kind, scope_id)] += times

    def script(self, kind: JobKind, scope_id: str, reports: Iterable[JobStatusReport]) -> None:
        """Queue reports applied one per poll to the next (or current) job for the scope."""

        key = (kind, scope_id)
        active = self._active(key)
        if active is not None:
            active.script.extend(reports)
        else:
            self._pending_scripts[key] = deque(reports)

    def update_job(
        self,
        kind: JobKind,
        scope_id: str,
        status: JobStatus,
        *,
        progress: float | None = None,
        result: Any = None,
        error: str | None = None,
    ) -> None:
        job = self._latest((kind, scope_id))
        if job is None:
            raise JobNotFoundError(f"No {kind.value} job for {scope_id}")
        self._apply(job, JobStatusReport(status=status, progress=progress, result=result, error=error))

    def jobs_for(self, kind: JobKind, scope_id: str) -> List[str]:
        return [job.id for job in self._jobs.get((kind, scope_id), [])]

    # -- GenerationService ------------------------------------------------------------

    async def submit_job(
        self, kind: JobKind, scope_id: str, params: Mapping[str, Any] | None = None
    ) -> SubmitReceipt:
        await asyncio.sleep(0)
        key = (kind, scope_id)
        self.submit_calls.append(key)
        if self._submit_failures:
            self._submit_failures -= 1
            raise NetworkError("Generation service unreachable")
        if kind in self._rejections:
            raise ServerRejectedError(self._rejections[kind], status_code=400)

        active = self._active(key)
        if active is not None:
            return SubmitReceipt(job_id=active.id, message=f"{kind.value} already in progress")

        job = _ServerJob(id=str(uuid4()), kind=kind, scope_id=scope_id, params=dict(params or {}))
        job.script = self._pending_scripts.pop(key, deque())
        self._jobs[key].append(job)
        return SubmitReceipt(job_id=job.id, message=f"{kind.value} queued")

    async def get_job_status(self, kind: JobKind, scope_id: str) -> JobStatusReport:
        await asyncio.sleep(0)
        key = (kind, scope_id)
        self.status_calls.append(key)
        if self._status_failures[key]:
            self._status_failures[key] -= 1
            raise NetworkError("Generation service unreachable")
        job = self._latest(key)
        if job is None:
            raise JobNotFoundError(f"No {kind.value} job for {scope_id}")

        if not job.status.is_terminal:
            job.polls += 1
            if job.script:
                self._apply(job, job.script.popleft())
            elif self._auto_complete_after is not None and job.polls >= self._auto_complete_after:
                self._apply(
                    job,
                    JobStatusReport(
                        status=JobStatus.COMPLETED,
                        result={"kind": kind.value, "scope_id": scope_id, "params": job.params},
                    ),
                )
            elif self._auto_complete_after is not None:
                progress = round(100.0 * job.polls / self._auto_complete_after, 1)
                self._apply(job, JobStatusReport(status=JobStatus.PROCESSING, progress=progress))
        return job.report()

    # -- helpers ----------------------------------------------------------------------

    def _latest(self, key: _Key) -> _ServerJob | None:
        jobs = self._jobs.get(key)
        return jobs[-1] if jobs else None

    def _active(self, key: _Key) -> _ServerJob | None:
        job = self._latest(key)
        if job is not None and not job.status.is_terminal:
            return job
        return None

    @staticmethod
    def _apply(job: _ServerJob, report: JobStatusReport) -> None:
        if job.status.is_terminal:
            return
        job.status = report.status
        if report.progress is not None:
            job.progress = report.progress
        if report.status is JobStatus.COMPLETED:
            job.result = report.result
            job.progress = 100.0
        elif report.status is JobStatus.FAILED:
            job.error = report.error or "Generation failed"
