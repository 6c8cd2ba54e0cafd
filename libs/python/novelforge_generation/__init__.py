"""Client abstraction for the AI Generation Service."""

from .base import GenerationService
from .config import (
    GenerationServiceConfig,
    PollingSettings,
    load_generation_config,
    load_polling_settings,
)
from .exceptions import (
    GenerationConfigError,
    GenerationError,
    JobCancelledError,
    JobFailedError,
    JobNotFoundError,
    JobTimedOutError,
    NetworkError,
    ServerRejectedError,
)
from .factory import GenerationServiceFactory
from .http import HttpGenerationService
from .memory import InMemoryGenerationService

__all__ = [
    "GenerationService",
    "GenerationServiceConfig",
    "PollingSettings",
    "load_generation_config",
    "load_polling_settings",
    "GenerationConfigError",
    "GenerationError",
    "JobCancelledError",
    "JobFailedError",
    "JobNotFoundError",
    "JobTimedOutError",
    "NetworkError",
    "ServerRejectedError",
    "GenerationServiceFactory",
    "HttpGenerationService",
    "InMemoryGenerationService",
]
