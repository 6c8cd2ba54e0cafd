"""Smoke tests for the shared enums and Pydantic models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from novelforge_schemas import (
    WORKFLOW_ORDER,
    GenerationJob,
    JobKind,
    JobScope,
    JobStatus,
    JobStatusReport,
    LifecycleState,
    ProjectSnapshot,
    WorkflowStep,
)


def test_workflow_order_matches_pipeline() -> None:
    assert [step.value for step in WORKFLOW_ORDER] == [
        "concept",
        "characters",
        "world",
        "plots",
        "coherence",
        "originality",
        "outline",
        "outline-review",
        "chapters",
        "analytics",
        "editorial-report",
        "follow-up",
    ]
    assert WorkflowStep.CHAPTERS.position == 8
    assert WorkflowStep.CONCEPT.display_name == "Story Concept"


def test_every_job_kind_maps_to_a_step_and_scope() -> None:
    for kind in JobKind:
        assert isinstance(kind.step, WorkflowStep)
        assert isinstance(kind.scope, JobScope)
    assert JobKind.OUTLINE_ACT.step is WorkflowStep.OUTLINE
    assert JobKind.FOLLOW_UP.scope is JobScope.BOOK
    assert JobKind.COHERENCE.scope is JobScope.PROJECT


def test_lifecycle_state_classification() -> None:
    assert {state for state in LifecycleState if state.is_active} == {
        LifecycleState.SUBMITTING,
        LifecycleState.POLLING,
    }
    assert not LifecycleState.IDLE.is_terminal
    assert LifecycleState.TIMED_OUT.is_terminal


def test_status_report_clamps_progress() -> None:
    assert JobStatusReport(status=JobStatus.PROCESSING, progress=140).progress == 100.0
    assert JobStatusReport(status=JobStatus.PROCESSING, progress=-3).progress == 0.0
    assert JobStatusReport(status=JobStatus.PENDING).progress is None


def test_generation_job_advance_records_completion() -> None:
    at = datetime(2024, 1, 1, 12, 0)
    job = GenerationJob(id="job-1", kind=JobKind.OUTLINE)
    running = job.advance(JobStatusReport(status=JobStatus.PROCESSING, progress=40), at=at)
    assert running.progress == 40
    assert running.completed_at is None

    done = running.advance(JobStatusReport(status=JobStatus.COMPLETED, result={"acts": 3}), at=at)
    assert done.status is JobStatus.COMPLETED
    assert done.result == {"acts": 3}
    assert done.progress == 100.0
    assert done.completed_at == at
    assert job.status is JobStatus.PENDING


def test_generation_job_failure_defaults_message() -> None:
    job = GenerationJob(id="job-1", kind=JobKind.CHAPTERS)
    failed = job.advance(JobStatusReport(status=JobStatus.FAILED), at=datetime(2024, 1, 1))
    assert failed.error == "Generation failed"


def test_generation_job_created_at_is_timezone_aware() -> None:
    job = GenerationJob(id="job-1", kind=JobKind.ANALYTICS)
    assert job.created_at.tzinfo is not None
    assert job.created_at.utcoffset().total_seconds() == 0


def test_terminal_job_cannot_advance() -> None:
    job = GenerationJob(id="job-1", kind=JobKind.CHAPTERS, status=JobStatus.COMPLETED)
    with pytest.raises(ValueError):
        job.advance(JobStatusReport(status=JobStatus.PROCESSING), at=datetime(2024, 1, 1))


def test_snapshot_is_immutable() -> None:
    snapshot = ProjectSnapshot(project_id="p")
    with pytest.raises(ValidationError):
        snapshot.title = "Changed"  # type: ignore[misc]
    assert snapshot.written_chapter_numbers == frozenset()
