"""Tests for the prerequisite graph."""

import pytest

from novelforge_schemas import WORKFLOW_ORDER, WorkflowStep

from services.workflow.app import prerequisites as graph
from services.workflow.app.prerequisites import PREDECESSORS, PROJECT_NOT_LOADED, RULES, evaluate
from tests.utils.records import STAGES, snapshot_at

S = WorkflowStep


def test_rule_table_is_exhaustive() -> None:
    assert set(RULES) == set(WorkflowStep)


def test_evaluate_without_snapshot_marks_everything_incomplete() -> None:
    results = evaluate(None)
    assert set(results) == set(WorkflowStep)
    for check in results.values():
        assert check.is_complete is False
        assert check.is_required is True
        assert check.missing_items == (PROJECT_NOT_LOADED,)


def test_evaluate_is_deterministic() -> None:
    snapshot = snapshot_at("plots")
    assert evaluate(snapshot) == evaluate(snapshot)


def test_concept_needs_title_and_logline() -> None:
    results = evaluate(snapshot_at("empty"))
    assert results[S.CONCEPT].is_complete is False
    assert results[S.CONCEPT].missing_items == ("Project title", "Story logline")


def test_step_never_complete_before_its_dependencies() -> None:
    # Characters exist but the concept is missing.
    snapshot = snapshot_at("characters").model_copy(update={"title": None})
    results = evaluate(snapshot)
    assert results[S.CONCEPT].is_complete is False
    assert results[S.CHARACTERS].is_complete is False


def test_advisory_checks_pass_once_plots_exist() -> None:
    results = evaluate(snapshot_at("plots"))
    assert results[S.COHERENCE].is_complete
    assert results[S.ORIGINALITY].is_complete
    assert results[S.COHERENCE].is_required is False
    assert results[S.OUTLINE].is_complete is False


def test_chapters_complete_only_when_every_outline_chapter_written() -> None:
    partial = evaluate(snapshot_at("outline", chapters_written=2))
    assert partial[S.CHAPTERS].is_complete is False
    assert partial[S.CHAPTERS].missing_items == ("1 of 3 chapters still need content",)

    full = evaluate(snapshot_at("chapters"))
    assert full[S.CHAPTERS].is_complete


def test_post_writing_steps_need_their_artifacts() -> None:
    results = evaluate(snapshot_at("chapters", artifacts={S.ANALYTICS}))
    assert results[S.ANALYTICS].is_complete
    assert results[S.EDITORIAL_REPORT].is_complete is False
    assert results[S.FOLLOW_UP].missing_items == ("Follow-up recommendations",)


def test_siblings_only_depend_on_chapters() -> None:
    for step in (S.ANALYTICS, S.EDITORIAL_REPORT, S.FOLLOW_UP):
        assert RULES[step].requires == (S.CHAPTERS,)
        assert S.ANALYTICS not in PREDECESSORS[S.FOLLOW_UP]


def test_predecessors_are_in_canonical_order() -> None:
    for step, predecessors in PREDECESSORS.items():
        positions = [p.position for p in predecessors]
        assert positions == sorted(positions)
        assert all(position < step.position for position in positions)
    assert PREDECESSORS[S.CONCEPT] == ()
    assert S.OUTLINE_REVIEW not in PREDECESSORS[S.CHAPTERS]


@pytest.mark.parametrize("earlier,later", list(zip(STAGES, STAGES[1:])))
def test_completion_is_monotonic(earlier: str, later: str) -> None:
    before = evaluate(snapshot_at(earlier))
    after = evaluate(snapshot_at(later))
    for step in WORKFLOW_ORDER:
        if before[step].is_complete:
            assert after[step].is_complete


def test_current_and_next_step() -> None:
    results = evaluate(snapshot_at("plots"))
    assert graph.current_step(results) is S.OUTLINE
    assert graph.next_step(results) is S.OUTLINE_REVIEW

    finished = evaluate(snapshot_at("chapters", artifacts=set(WorkflowStep)))
    assert graph.current_step(finished) is S.ANALYTICS
    assert graph.next_step(finished) is None


def test_readiness_and_percentage() -> None:
    assert graph.is_ready_for_generation(evaluate(snapshot_at("plots"))) is False
    assert graph.is_ready_for_generation(evaluate(snapshot_at("outline")))
    assert graph.completion_percentage(evaluate(snapshot_at("empty"))) == 0
    # Six required steps; concept through plots done.
    assert graph.completion_percentage(evaluate(snapshot_at("plots"))) == 67
    assert graph.completion_percentage(evaluate(snapshot_at("chapters"))) == 100
