"""FastAPI entrypoint exposing workflow gating and generation jobs to the UI."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status

from novelforge_generation import GenerationError, NetworkError
from novelforge_observability import (
    log_context,
    observe_gate_decision,
    setup_fastapi_metrics,
    setup_logging,
)
from novelforge_schemas import JobKind, JobObserverState, StepAccessDecision, WORKFLOW_ORDER

from .models import JobSubmitRequest, JobSubmitResponse, WorkflowStatusResponse
from .session import SessionRegistry, StepLockedError, WorkflowSession, build_registry

SERVICE_NAME = "workflow"
setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)

DEFAULT_CALLER_ID = "anonymous"


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_caller_id(x_caller_id: Optional[str] = Header(None, alias="X-Caller-Id")) -> str:
    return (x_caller_id or "").strip() or DEFAULT_CALLER_ID


async def _load_session(registry: SessionRegistry, caller_id: str, project_id: str) -> WorkflowSession:
    created = registry.find(caller_id, project_id) is None
    session = registry.get(caller_id, project_id)
    try:
        gate = await session.refresh()
    except NetworkError as exc:
        logger.warning("Project records unavailable: %s", exc)
        if created:
            registry.discard_if_idle(caller_id, project_id)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Project records unavailable") from exc
    if not gate.project_loaded:
        registry.discard_if_idle(caller_id, project_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return session


def _locked(exc: StepLockedError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_423_LOCKED, detail=str(exc))


def create_app(registry: SessionRegistry | None = None) -> FastAPI:
    app = FastAPI(title="NovelForge Workflow", version="0.1.0")
    app.state.registry = registry if registry is not None else build_registry()
    setup_fastapi_metrics(app, service_name=SERVICE_NAME)

    @app.on_event("shutdown")
    async def _close_registry() -> None:
        await app.state.registry.aclose()

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get(
        "/projects/{project_id}/workflow",
        response_model=WorkflowStatusResponse,
        tags=["workflow"],
    )
    async def workflow_status(
        project_id: str,
        registry: SessionRegistry = Depends(get_registry),
        caller_id: str = Depends(get_caller_id),
    ) -> WorkflowStatusResponse:
        with log_context(caller_id=caller_id, project_id=project_id):
            session = await _load_session(registry, caller_id, project_id)
            gate = session.gate
            current = gate.current_step
            return WorkflowStatusResponse(
                project_id=project_id,
                book_id=session.snapshot.book_id if session.snapshot else None,
                current_step=current,
                next_step=gate.next_step,
                is_ready_for_generation=gate.is_ready_for_generation,
                completion_percentage=gate.completion_percentage,
                prerequisites={step: gate.prerequisites[step] for step in WORKFLOW_ORDER},
                steps=gate.decisions(active=current),
            )

    @app.get(
        "/projects/{project_id}/workflow/steps/{step}",
        response_model=StepAccessDecision,
        tags=["workflow"],
    )
    async def step_decision(
        project_id: str,
        step: str,
        registry: SessionRegistry = Depends(get_registry),
        caller_id: str = Depends(get_caller_id),
    ) -> StepAccessDecision:
        with log_context(caller_id=caller_id, project_id=project_id, step=step):
            session = await _load_session(registry, caller_id, project_id)
            decision = session.gate.decision(step)
            if decision is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown workflow step: {step}")
            observe_gate_decision(decision.step.value, decision.can_access)
            return decision

    @app.post(
        "/projects/{project_id}/jobs/{kind}",
        response_model=JobSubmitResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["jobs"],
    )
    async def submit_job(
        project_id: str,
        kind: JobKind,
        payload: JobSubmitRequest | None = None,
        registry: SessionRegistry = Depends(get_registry),
        caller_id: str = Depends(get_caller_id),
    ) -> JobSubmitResponse:
        with log_context(caller_id=caller_id, project_id=project_id, job_kind=kind.value):
            session = await _load_session(registry, caller_id, project_id)
            allowed = session.gate.can_access(kind.step)
            observe_gate_decision(kind.step.value, allowed)
            try:
                accepted = await session.submit(kind, payload.params if payload else None)
            except StepLockedError as exc:
                logger.info("Rejected submit for locked step: %s", exc)
                raise _locked(exc) from exc
            if not accepted:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"A {kind.value} job is already in progress",
                )
            return JobSubmitResponse(accepted=True, job=session.manager(kind).snapshot())

    @app.get(
        "/projects/{project_id}/jobs/{kind}",
        response_model=JobObserverState,
        tags=["jobs"],
    )
    async def job_state(
        project_id: str,
        kind: JobKind,
        registry: SessionRegistry = Depends(get_registry),
        caller_id: str = Depends(get_caller_id),
    ) -> JobObserverState:
        with log_context(caller_id=caller_id, project_id=project_id, job_kind=kind.value):
            session = await _load_session(registry, caller_id, project_id)
            try:
                manager = session.manager(kind)
            except StepLockedError as exc:
                raise _locked(exc) from exc
            try:
                if len(manager.history) == 1:
                    await manager.resume()
            except GenerationError as exc:
                logger.warning("Could not look up existing job: %s", exc)
                raise HTTPException(
                    status_code=status.HTTP_502_BAD_GATEWAY, detail="Generation service unavailable"
                ) from exc
            return manager.snapshot()

    @app.delete(
        "/projects/{project_id}/jobs/{kind}",
        response_model=JobObserverState,
        tags=["jobs"],
    )
    async def cancel_job(
        project_id: str,
        kind: JobKind,
        registry: SessionRegistry = Depends(get_registry),
        caller_id: str = Depends(get_caller_id),
    ) -> JobObserverState:
        with log_context(caller_id=caller_id, project_id=project_id, job_kind=kind.value):
            session = registry.find(caller_id, project_id)
            manager = session.existing_manager(kind) if session is not None else None
            if manager is None or not manager.cancel():
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="No active job to cancel")
            return manager.snapshot()

    @app.post(
        "/projects/{project_id}/jobs/{kind}/dismiss",
        response_model=JobObserverState,
        tags=["jobs"],
    )
    async def dismiss_job(
        project_id: str,
        kind: JobKind,
        registry: SessionRegistry = Depends(get_registry),
        caller_id: str = Depends(get_caller_id),
    ) -> JobObserverState:
        with log_context(caller_id=caller_id, project_id=project_id, job_kind=kind.value):
            session = registry.find(caller_id, project_id)
            manager = session.existing_manager(kind) if session is not None else None
            if manager is None or not manager.dismiss():
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Nothing to dismiss")
            return manager.snapshot()

    return app


app = create_app()
