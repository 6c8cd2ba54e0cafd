"""Results produced by the prerequisite graph and the workflow gate."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..enums import TabStatus, WorkflowStep


class PrerequisiteCheckResult(BaseModel):
    """Completion facts for a single workflow step."""

    model_config = ConfigDict(frozen=True)

    is_complete: bool
    is_required: bool
    requires: tuple[WorkflowStep, ...] = ()
    missing_items: tuple[str, ...] = ()


class StepAccessDecision(BaseModel):
    """Lock/unlock decision handed to the UI layer for one step."""

    model_config = ConfigDict(frozen=True)

    step: WorkflowStep
    label: str
    can_access: bool
    blocking_reason: Optional[str] = None
    tab_status: TabStatus
