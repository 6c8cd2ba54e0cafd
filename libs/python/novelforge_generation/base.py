"""Interface of the Generation Service collaborator."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from novelforge_schemas import JobKind, JobStatusReport, SubmitReceipt


class GenerationService(ABC):
    """Server that runs AI generation jobs and reports on them.

    Jobs are addressed by ``(kind, scope_id)`` where the scope is a project or
    book id depending on :attr:`JobKind.scope`. Implementations must keep at
    most one active job per ``(kind, scope_id)``: a second submission while a
    job is pending or processing acknowledges the job already running.
    """

    name: str

    @abstractmethod
    async def submit_job(
        self, kind: JobKind, scope_id: str, params: Mapping[str, Any] | None = None
    ) -> SubmitReceipt:
        """Queue a job.

        Raises:
            ServerRejectedError: If the service refuses the request.
            NetworkError: If the service could not be reached.
        """

    @abstractmethod
    async def get_job_status(self, kind: JobKind, scope_id: str) -> JobStatusReport:
        """Return the latest job for ``(kind, scope_id)``.

        Raises:
            JobNotFoundError: If nothing was ever submitted for the scope.
            NetworkError: If the service could not be reached.
        """

    async def aclose(self) -> None:
        """Release transport resources; a no-op for in-process services."""
