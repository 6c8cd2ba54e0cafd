"""Shared enums and immutable models for the NovelForge workflow services."""

from .enums import (
    JOB_KIND_SCOPES,
    JOB_KIND_STEPS,
    STEP_DISPLAY_NAMES,
    WORKFLOW_ORDER,
    JobKind,
    JobScope,
    JobStatus,
    LifecycleState,
    TabStatus,
    WorkflowStep,
)
from .models.jobs import GenerationJob, JobObserverState, JobStatusReport, SubmitReceipt
from .models.project import (
    ChapterSnapshot,
    Character,
    CompletionCounters,
    OutlineAct,
    OutlineSnapshot,
    PlotLayer,
    ProjectSnapshot,
    StoryBible,
    WorldElement,
)
from .models.workflow import PrerequisiteCheckResult, StepAccessDecision

__all__ = [
    "JOB_KIND_SCOPES",
    "JOB_KIND_STEPS",
    "STEP_DISPLAY_NAMES",
    "WORKFLOW_ORDER",
    "JobKind",
    "JobScope",
    "JobStatus",
    "LifecycleState",
    "TabStatus",
    "WorkflowStep",
    "GenerationJob",
    "JobObserverState",
    "JobStatusReport",
    "SubmitReceipt",
    "ChapterSnapshot",
    "Character",
    "CompletionCounters",
    "OutlineAct",
    "OutlineSnapshot",
    "PlotLayer",
    "ProjectSnapshot",
    "StoryBible",
    "WorldElement",
    "PrerequisiteCheckResult",
    "StepAccessDecision",
]
