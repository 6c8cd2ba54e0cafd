"""Enum definitions shared across the workflow gate and job orchestration."""

from __future__ import annotations

from enum import Enum


class WorkflowStep(str, Enum):
    CONCEPT = "concept"
    CHARACTERS = "characters"
    WORLD = "world"
    PLOTS = "plots"
    COHERENCE = "coherence"
    ORIGINALITY = "originality"
    OUTLINE = "outline"
    OUTLINE_REVIEW = "outline-review"
    CHAPTERS = "chapters"
    ANALYTICS = "analytics"
    EDITORIAL_REPORT = "editorial-report"
    FOLLOW_UP = "follow-up"

    @property
    def display_name(self) -> str:
        return STEP_DISPLAY_NAMES[self]

    @property
    def position(self) -> int:
        return WORKFLOW_ORDER.index(self)


# Canonical pipeline order; definition order of the enum is the source of truth.
WORKFLOW_ORDER: tuple[WorkflowStep, ...] = tuple(WorkflowStep)

STEP_DISPLAY_NAMES: dict[WorkflowStep, str] = {
    WorkflowStep.CONCEPT: "Story Concept",
    WorkflowStep.CHARACTERS: "Characters",
    WorkflowStep.WORLD: "World Building",
    WorkflowStep.PLOTS: "Plot Structure",
    WorkflowStep.COHERENCE: "Coherence Check",
    WorkflowStep.ORIGINALITY: "Originality Check",
    WorkflowStep.OUTLINE: "Outline",
    WorkflowStep.OUTLINE_REVIEW: "Outline Review",
    WorkflowStep.CHAPTERS: "Chapters",
    WorkflowStep.ANALYTICS: "Analytics",
    WorkflowStep.EDITORIAL_REPORT: "Editorial Report",
    WorkflowStep.FOLLOW_UP: "Follow-Up Ideas",
}


class TabStatus(str, Enum):
    ACTIVE = "active"
    LOCKED = "locked"
    COMPLETED = "completed"
    REQUIRED = "required"
    OPTIONAL = "optional"


class JobStatus(str, Enum):
    """Status vocabulary reported by the Generation Service."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobScope(str, Enum):
    PROJECT = "project"
    BOOK = "book"


class JobKind(str, Enum):
    OUTLINE = "outline"
    OUTLINE_ACT = "outline-act"
    CHAPTERS = "chapters"
    COHERENCE = "coherence"
    ORIGINALITY = "originality"
    OUTLINE_REVIEW = "outline-review"
    ANALYTICS = "analytics"
    EDITORIAL_REPORT = "editorial-report"
    FOLLOW_UP = "follow-up"

    @property
    def step(self) -> WorkflowStep:
        """Workflow step whose gate must be open before this kind may run."""

        return JOB_KIND_STEPS[self]

    @property
    def scope(self) -> JobScope:
        return JOB_KIND_SCOPES[self]


JOB_KIND_STEPS: dict[JobKind, WorkflowStep] = {
    JobKind.OUTLINE: WorkflowStep.OUTLINE,
    JobKind.OUTLINE_ACT: WorkflowStep.OUTLINE,
    JobKind.CHAPTERS: WorkflowStep.CHAPTERS,
    JobKind.COHERENCE: WorkflowStep.COHERENCE,
    JobKind.ORIGINALITY: WorkflowStep.ORIGINALITY,
    JobKind.OUTLINE_REVIEW: WorkflowStep.OUTLINE_REVIEW,
    JobKind.ANALYTICS: WorkflowStep.ANALYTICS,
    JobKind.EDITORIAL_REPORT: WorkflowStep.EDITORIAL_REPORT,
    JobKind.FOLLOW_UP: WorkflowStep.FOLLOW_UP,
}

JOB_KIND_SCOPES: dict[JobKind, JobScope] = {
    JobKind.OUTLINE: JobScope.PROJECT,
    JobKind.OUTLINE_ACT: JobScope.PROJECT,
    JobKind.CHAPTERS: JobScope.BOOK,
    JobKind.COHERENCE: JobScope.PROJECT,
    JobKind.ORIGINALITY: JobScope.PROJECT,
    JobKind.OUTLINE_REVIEW: JobScope.PROJECT,
    JobKind.ANALYTICS: JobScope.BOOK,
    JobKind.EDITORIAL_REPORT: JobScope.PROJECT,
    JobKind.FOLLOW_UP: JobScope.BOOK,
}


class LifecycleState(str, Enum):
    """Client-side lifecycle of one generation job."""

    IDLE = "idle"
    SUBMITTING = "submitting"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (LifecycleState.SUBMITTING, LifecycleState.POLLING)

    @property
    def is_terminal(self) -> bool:
        return self in (
            LifecycleState.COMPLETED,
            LifecycleState.FAILED,
            LifecycleState.TIMED_OUT,
            LifecycleState.CANCELLED,
        )
