"""Pydantic models for the workflow API and pipeline flow."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from novelforge_schemas import (
    JobKind,
    JobObserverState,
    LifecycleState,
    PrerequisiteCheckResult,
    StepAccessDecision,
    WorkflowStep,
)


class WorkflowStatusResponse(BaseModel):
    project_id: str
    book_id: Optional[str] = None
    current_step: WorkflowStep
    next_step: Optional[WorkflowStep] = None
    is_ready_for_generation: bool
    completion_percentage: int = Field(..., ge=0, le=100)
    prerequisites: Dict[WorkflowStep, PrerequisiteCheckResult]
    steps: List[StepAccessDecision]


class JobSubmitRequest(BaseModel):
    params: Dict[str, Any] = Field(default_factory=dict)


class JobSubmitResponse(BaseModel):
    accepted: bool
    job: JobObserverState


class PipelineRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    caller_id: str = Field("pipeline", min_length=1)
    kinds: List[JobKind] = Field(default_factory=list)
    params: Dict[JobKind, Dict[str, Any]] = Field(default_factory=dict)


class PipelineStepResult(BaseModel):
    kind: JobKind
    outcome: str = Field(
        ..., description="completed, failed, timed_out, cancelled or locked"
    )
    job_id: Optional[str] = None
    result: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def from_state(cls, state: JobObserverState) -> "PipelineStepResult":
        outcome = state.state.value if state.state is not LifecycleState.IDLE else "failed"
        return cls(
            kind=state.kind,
            outcome=outcome,
            job_id=state.job_id,
            result=state.result,
            error=state.error,
        )


class PipelineResponse(BaseModel):
    project_id: str
    results: List[PipelineStepResult]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
