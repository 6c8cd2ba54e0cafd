"""Access decisions derived from the prerequisite graph."""

from __future__ import annotations

from typing import Mapping, Optional

from novelforge_schemas import (
    WORKFLOW_ORDER,
    PrerequisiteCheckResult,
    ProjectSnapshot,
    StepAccessDecision,
    TabStatus,
    WorkflowStep,
)

from . import prerequisites as graph
from .prerequisites import PREDECESSORS, RULES


def _as_step(step: WorkflowStep | str) -> WorkflowStep | None:
    if isinstance(step, WorkflowStep):
        return step
    try:
        return WorkflowStep(step)
    except ValueError:
        return None


class WorkflowGate:
    """Read-only lock/unlock queries over one snapshot.

    A gate never changes after construction; build a new one when the
    snapshot changes. With no project loaded every step is accessible (the
    empty state), while :attr:`prerequisites` still reports every step as
    incomplete.
    """

    def __init__(self, snapshot: Optional[ProjectSnapshot]) -> None:
        self._snapshot = snapshot
        self._loaded = snapshot is not None
        self._results = graph.evaluate(snapshot)

    @classmethod
    def from_results(
        cls, results: Mapping[WorkflowStep, PrerequisiteCheckResult]
    ) -> "WorkflowGate":
        """Build a gate over already evaluated results for a loaded project."""

        missing = set(WORKFLOW_ORDER) - set(results)
        if missing:
            raise ValueError(f"Results missing steps: {sorted(step.value for step in missing)}")
        gate = cls.__new__(cls)
        gate._snapshot = None
        gate._loaded = True
        gate._results = dict(results)
        return gate

    @property
    def snapshot(self) -> Optional[ProjectSnapshot]:
        return self._snapshot

    @property
    def project_loaded(self) -> bool:
        return self._loaded

    @property
    def prerequisites(self) -> Mapping[WorkflowStep, PrerequisiteCheckResult]:
        return dict(self._results)

    def first_incomplete_predecessor(self, step: WorkflowStep | str) -> WorkflowStep | None:
        resolved = _as_step(step)
        if resolved is None:
            return None
        for predecessor in PREDECESSORS[resolved]:
            if not self._results[predecessor].is_complete:
                return predecessor
        return None

    def can_access(self, step: WorkflowStep | str) -> bool:
        resolved = _as_step(step)
        if resolved is None:
            return False
        if not self.project_loaded:
            return True
        return self.first_incomplete_predecessor(resolved) is None

    def get_blocking_reason(self, step: WorkflowStep | str) -> str | None:
        resolved = _as_step(step)
        if resolved is None:
            return f"Unknown workflow step: {step}"
        if self.can_access(resolved):
            return None
        blocker = self.first_incomplete_predecessor(resolved)
        if blocker is None:  # pragma: no cover - can_access returned False for a reason
            return None
        missing = self._results[blocker].missing_items
        if missing:
            return f"Complete {blocker.display_name} first. Missing: {', '.join(missing)}"
        return f"Complete {blocker.display_name} before accessing this step"

    def missing_items(self, step: WorkflowStep | str) -> tuple[str, ...]:
        resolved = _as_step(step)
        if resolved is None:
            return ()
        return self._results[resolved].missing_items

    def tab_status(
        self, step: WorkflowStep | str, active: WorkflowStep | None = None
    ) -> TabStatus:
        resolved = _as_step(step)
        if resolved is None:
            return TabStatus.LOCKED
        if active is not None and resolved is active:
            return TabStatus.ACTIVE
        if not self.can_access(resolved):
            return TabStatus.LOCKED
        if self._results[resolved].is_complete:
            return TabStatus.COMPLETED
        return TabStatus.REQUIRED if RULES[resolved].required else TabStatus.OPTIONAL

    def decision(
        self, step: WorkflowStep | str, active: WorkflowStep | None = None
    ) -> StepAccessDecision | None:
        resolved = _as_step(step)
        if resolved is None:
            return None
        return StepAccessDecision(
            step=resolved,
            label=resolved.display_name,
            can_access=self.can_access(resolved),
            blocking_reason=self.get_blocking_reason(resolved),
            tab_status=self.tab_status(resolved, active),
        )

    def decisions(self, active: WorkflowStep | None = None) -> list[StepAccessDecision]:
        return [self.decision(step, active) for step in WORKFLOW_ORDER]  # type: ignore[misc]

    @property
    def current_step(self) -> WorkflowStep:
        return graph.current_step(self._results)

    @property
    def next_step(self) -> WorkflowStep | None:
        return graph.next_step(self._results)

    @property
    def is_ready_for_generation(self) -> bool:
        return graph.is_ready_for_generation(self._results)

    @property
    def completion_percentage(self) -> int:
        return graph.completion_percentage(self._results)

    def accessible_steps(self) -> frozenset[WorkflowStep]:
        return frozenset(step for step in WORKFLOW_ORDER if self.can_access(step))
