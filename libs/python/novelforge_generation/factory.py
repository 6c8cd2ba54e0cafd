"""Factory utilities for instantiating Generation Service clients."""

from __future__ import annotations

from .base import GenerationService
from .config import GenerationServiceConfig, load_generation_config
from .exceptions import GenerationConfigError
from .http import HttpGenerationService
from .memory import InMemoryGenerationService

# Jobs on the offline backend finish after this many polls so the UI has progress to show.
MEMORY_AUTO_COMPLETE_AFTER = 3


class GenerationServiceFactory:
    """Build a Generation Service client from configuration."""

    @staticmethod
    def create(config: GenerationServiceConfig | None = None) -> GenerationService:
        if config is None:
            config = load_generation_config()
        backend = config.backend.lower()
        if backend == "memory":
            return InMemoryGenerationService(auto_complete_after=MEMORY_AUTO_COMPLETE_AFTER)
        if backend == "http":
            return HttpGenerationService(config)
        raise GenerationConfigError(f"Unknown generation backend: {config.backend}")
