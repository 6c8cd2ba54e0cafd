"""Prerequisite graph: which workflow steps a snapshot has completed.

Every :class:`WorkflowStep` has exactly one :class:`StepRule`. A rule lists the
steps it directly depends on, whether the step is required, a completion
predicate over the snapshot, and a function describing what is missing.
:func:`evaluate` walks the steps in canonical order and only marks a step
complete when its own predicate holds *and* every dependency is complete, so a
step can never be complete while something it depends on is not.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from novelforge_schemas import (
    WORKFLOW_ORDER,
    PrerequisiteCheckResult,
    ProjectSnapshot,
    WorkflowStep,
)

Predicate = Callable[[ProjectSnapshot], bool]
MissingItems = Callable[[ProjectSnapshot], tuple[str, ...]]

PROJECT_NOT_LOADED = "Project data not loaded"


@dataclass(frozen=True)
class StepRule:
    requires: tuple[WorkflowStep, ...]
    required: bool
    predicate: Predicate
    missing: MissingItems


# -- predicates -------------------------------------------------------------------------


def _has_concept(snapshot: ProjectSnapshot) -> bool:
    return bool(snapshot.title and snapshot.logline)


def _concept_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    missing = []
    if not snapshot.title:
        missing.append("Project title")
    if not snapshot.logline:
        missing.append("Story logline")
    return tuple(missing)


def _has_characters(snapshot: ProjectSnapshot) -> bool:
    return len(snapshot.story_bible.characters) > 0


def _characters_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    characters = snapshot.story_bible.characters
    if not characters:
        return ("At least one character",)
    if not any(character.is_protagonist for character in characters):
        return ("Protagonist character",)
    return ()


def _has_world(snapshot: ProjectSnapshot) -> bool:
    return len(snapshot.story_bible.world) > 0


def _world_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    if _has_world(snapshot):
        return ()
    return ("At least one world element (location, faction, or system)",)


def _has_plots(snapshot: ProjectSnapshot) -> bool:
    return len(snapshot.plot_layers) > 0


def _plots_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    if not snapshot.plot_layers:
        return ("At least one plot layer",)
    if not any(layer.type == "main" for layer in snapshot.plot_layers):
        return ("Main plot layer",)
    return ()


def _has_outline(snapshot: ProjectSnapshot) -> bool:
    outline = snapshot.outline
    return outline is not None and len(outline.acts) > 0 and outline.total_chapters > 0


def _outline_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    return () if _has_outline(snapshot) else ("Story outline with chapters",)


def _all_chapters_written(snapshot: ProjectSnapshot) -> bool:
    if snapshot.outline is None or snapshot.outline.total_chapters == 0:
        return False
    written = snapshot.written_chapter_numbers
    return all(number in written for number in range(1, snapshot.outline.total_chapters + 1))


def _chapters_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    if snapshot.outline is None or snapshot.outline.total_chapters == 0:
        return ("Complete outline",)
    written = snapshot.written_chapter_numbers
    outstanding = [n for n in range(1, snapshot.outline.total_chapters + 1) if n not in written]
    if not outstanding:
        return ()
    return (f"{len(outstanding)} of {snapshot.outline.total_chapters} chapters still need content",)


def _pass_through(snapshot: ProjectSnapshot) -> bool:
    # Advisory checks may be skipped; they complete as soon as they are reachable.
    return True


def _nothing_missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
    return ()


def _artifact(step: WorkflowStep, label: str) -> tuple[Predicate, MissingItems]:
    def predicate(snapshot: ProjectSnapshot) -> bool:
        return snapshot.has_artifact(step)

    def missing(snapshot: ProjectSnapshot) -> tuple[str, ...]:
        return () if snapshot.has_artifact(step) else (label,)

    return predicate, missing


_analytics = _artifact(WorkflowStep.ANALYTICS, "Analytics report")
_editorial = _artifact(WorkflowStep.EDITORIAL_REPORT, "Editorial report")
_follow_up = _artifact(WorkflowStep.FOLLOW_UP, "Follow-up recommendations")

S = WorkflowStep

RULES: Mapping[WorkflowStep, StepRule] = {
    S.CONCEPT: StepRule((), True, _has_concept, _concept_missing),
    S.CHARACTERS: StepRule((S.CONCEPT,), True, _has_characters, _characters_missing),
    S.WORLD: StepRule((S.CHARACTERS,), True, _has_world, _world_missing),
    S.PLOTS: StepRule((S.WORLD,), True, _has_plots, _plots_missing),
    S.COHERENCE: StepRule((S.PLOTS,), False, _pass_through, _nothing_missing),
    S.ORIGINALITY: StepRule((S.COHERENCE,), False, _pass_through, _nothing_missing),
    S.OUTLINE: StepRule((S.ORIGINALITY,), True, _has_outline, _outline_missing),
    S.OUTLINE_REVIEW: StepRule((S.OUTLINE,), False, _pass_through, _nothing_missing),
    S.CHAPTERS: StepRule((S.OUTLINE,), True, _all_chapters_written, _chapters_missing),
    S.ANALYTICS: StepRule((S.CHAPTERS,), False, *_analytics),
    S.EDITORIAL_REPORT: StepRule((S.CHAPTERS,), False, *_editorial),
    S.FOLLOW_UP: StepRule((S.CHAPTERS,), False, *_follow_up),
}


def _check_rule_table() -> None:
    missing = set(WorkflowStep) - set(RULES)
    if missing:
        raise RuntimeError(f"No prerequisite rule for: {sorted(step.value for step in missing)}")
    for step, rule in RULES.items():
        for dependency in rule.requires:
            if dependency.position >= step.position:
                raise RuntimeError(f"{step.value} cannot depend on later step {dependency.value}")


_check_rule_table()


def _closure(step: WorkflowStep) -> tuple[WorkflowStep, ...]:
    seen: set[WorkflowStep] = set()
    pending = list(RULES[step].requires)
    while pending:
        dependency = pending.pop()
        if dependency not in seen:
            seen.add(dependency)
            pending.extend(RULES[dependency].requires)
    return tuple(s for s in WORKFLOW_ORDER if s in seen)


# Transitive dependencies of each step in canonical order.
PREDECESSORS: Mapping[WorkflowStep, tuple[WorkflowStep, ...]] = {
    step: _closure(step) for step in WORKFLOW_ORDER
}


def evaluate(snapshot: Optional[ProjectSnapshot]) -> dict[WorkflowStep, PrerequisiteCheckResult]:
    """Map every workflow step to its completion facts.

    Pure and deterministic. With no snapshot every step is incomplete and
    treated as required.
    """

    if snapshot is None:
        return {
            step: PrerequisiteCheckResult(
                is_complete=False,
                is_required=True,
                requires=RULES[step].requires,
                missing_items=(PROJECT_NOT_LOADED,),
            )
            for step in WORKFLOW_ORDER
        }

    results: dict[WorkflowStep, PrerequisiteCheckResult] = {}
    for step in WORKFLOW_ORDER:
        rule = RULES[step]
        dependencies_met = all(results[dependency].is_complete for dependency in rule.requires)
        results[step] = PrerequisiteCheckResult(
            is_complete=dependencies_met and rule.predicate(snapshot),
            is_required=rule.required,
            requires=rule.requires,
            missing_items=rule.missing(snapshot),
        )
    return results


def current_step(results: Mapping[WorkflowStep, PrerequisiteCheckResult]) -> WorkflowStep:
    """First required step that is not complete; ``analytics`` once all are done."""

    for step in WORKFLOW_ORDER:
        check = results[step]
        if check.is_required and not check.is_complete:
            return step
    return WorkflowStep.ANALYTICS


def next_step(results: Mapping[WorkflowStep, PrerequisiteCheckResult]) -> WorkflowStep | None:
    current = current_step(results)
    for step in WORKFLOW_ORDER[current.position + 1 :]:
        if not results[step].is_complete:
            return step
    return None


def is_ready_for_generation(results: Mapping[WorkflowStep, PrerequisiteCheckResult]) -> bool:
    return all(
        results[step].is_complete
        for step in (S.CONCEPT, S.CHARACTERS, S.WORLD, S.PLOTS, S.OUTLINE)
    )


def completion_percentage(results: Mapping[WorkflowStep, PrerequisiteCheckResult]) -> int:
    required = [step for step in WORKFLOW_ORDER if results[step].is_required]
    if not required:
        return 0
    done = sum(1 for step in required if results[step].is_complete)
    return round(done * 100 / len(required))
