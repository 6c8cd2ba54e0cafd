"""Errors raised while submitting and tracking generation jobs."""

from __future__ import annotations


class GenerationError(RuntimeError):
    """Base error for generation service and job lifecycle failures."""


class GenerationConfigError(GenerationError):
    """Raised when configuration is missing or invalid."""


class NetworkError(GenerationError):
    """Transient transport failure. A poll tick that hits this is retried on the next tick."""


class ServerRejectedError(GenerationError):
    """The service refused a submission; the message is shown to the user verbatim."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class JobNotFoundError(GenerationError):
    """No job has ever been submitted for the requested kind and scope."""


class JobFailedError(GenerationError):
    """The service reported a terminal failure; the message is the server's."""


class JobTimedOutError(GenerationError):
    """The local deadline elapsed before the job reached a terminal status."""


class JobCancelledError(GenerationError):
    """The job was cancelled by its caller before it finished."""
