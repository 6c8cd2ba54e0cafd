"""Generation job records exchanged with the Generation Service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..enums import JobKind, JobStatus, LifecycleState


def _clamp_progress(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return min(max(float(value), 0.0), 100.0)


class SubmitReceipt(BaseModel):
    """Acknowledgement returned when the service accepts a submission."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(..., min_length=1)
    message: Optional[str] = None


class JobStatusReport(BaseModel):
    """One answer to a status poll.

    The service is idempotent: repeated polls for the same job return the
    same report until the job advances.
    """

    model_config = ConfigDict(frozen=True)

    status: JobStatus
    job_id: Optional[str] = None
    progress: Optional[float] = Field(None, description="Percent complete, 0-100")
    result: Optional[Any] = None
    error: Optional[str] = None

    @field_validator("progress")
    @classmethod
    def clamp_progress(cls, value: Optional[float]) -> Optional[float]:
        return _clamp_progress(value)


class GenerationJob(BaseModel):
    """Client-side record of a submitted job.

    Updates go through :meth:`advance`, which returns a new record and refuses
    to move a terminal job anywhere else.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: JobKind
    status: JobStatus = JobStatus.PENDING
    progress: Optional[float] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def advance(self, report: JobStatusReport, *, at: datetime) -> "GenerationJob":
        if self.status.is_terminal:
            raise ValueError(f"Job {self.id} is already {self.status.value}")
        update: dict[str, Any] = {"status": report.status}
        if report.progress is not None:
            update["progress"] = report.progress
        if report.status is JobStatus.COMPLETED:
            update.update(result=report.result, progress=100.0, completed_at=at)
        elif report.status is JobStatus.FAILED:
            update.update(error=report.error or "Generation failed", completed_at=at)
        return self.model_copy(update=update)


class JobObserverState(BaseModel):
    """What a UI observer sees for one (caller, job kind) pair."""

    model_config = ConfigDict(frozen=True)

    kind: JobKind
    state: LifecycleState
    status: Optional[JobStatus] = None
    job_id: Optional[str] = None
    progress: Optional[float] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    tick_count: int = 0
