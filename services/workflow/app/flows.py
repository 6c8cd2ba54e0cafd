"""Prefect flow that drives generation jobs through the workflow gate."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import Optional

from prefect import flow

from novelforge_generation import JobCancelledError, JobFailedError, JobTimedOutError
from novelforge_observability import log_context

from .models import PipelineRequest, PipelineResponse, PipelineStepResult
from .session import SessionRegistry, StepLockedError, build_registry

logger = logging.getLogger(__name__)


@flow(name="novelforge-generation-pipeline", version="0.1.0", validate_parameters=False)
async def run_generation_pipeline(
    request: PipelineRequest, registry: Optional[SessionRegistry] = None
) -> PipelineResponse:
    """Run each requested job kind in order, refreshing the workflow between kinds.

    A locked kind is reported as ``locked`` and skipped; the pipeline carries
    on with the next kind so independent steps still run.
    """

    owns_registry = registry is None
    if registry is None:
        registry = build_registry()
    session = registry.get(request.caller_id, request.project_id)
    results: list[PipelineStepResult] = []

    try:
        with log_context(caller_id=request.caller_id, project_id=request.project_id):
            logger.info("Starting generation pipeline", extra={"kind_count": len(request.kinds)})
            await session.refresh()

            for kind in request.kinds:
                start = perf_counter()
                with log_context(job_kind=kind.value, step=kind.step.value):
                    try:
                        await session.submit(kind, request.params.get(kind))
                    except StepLockedError as exc:
                        logger.info("Skipping locked step: %s", exc)
                        results.append(PipelineStepResult(kind=kind, outcome="locked", error=str(exc)))
                        continue

                    manager = session.manager(kind)
                    try:
                        await manager.wait()
                    except (JobFailedError, JobTimedOutError, JobCancelledError) as exc:
                        logger.warning("Pipeline job did not complete: %s", exc)
                    step_result = PipelineStepResult.from_state(manager.snapshot())
                    results.append(step_result)
                    logger.info(
                        "Pipeline job finished",
                        extra={
                            "outcome": step_result.outcome,
                            "elapsed_seconds": round(perf_counter() - start, 3),
                        },
                    )
                await session.refresh()

            logger.info("Completed generation pipeline", extra={"result_count": len(results)})
    finally:
        if owns_registry:
            await registry.aclose()

    return PipelineResponse(project_id=request.project_id, results=results)
