"""Fire a job automatically the first time its step becomes ready."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from novelforge_generation import NetworkError
from novelforge_schemas import LifecycleState

from .jobs import JobLifecycleManager

logger = logging.getLogger(__name__)


class OneShotLatch:
    """Opens once per readiness transition."""

    def __init__(self) -> None:
        self._armed = True

    @property
    def armed(self) -> bool:
        return self._armed

    def try_fire(self) -> bool:
        if not self._armed:
            return False
        self._armed = False
        return True

    def rearm(self) -> None:
        self._armed = True


class AutoTrigger:
    """Submits through ``manager`` when ``ready()`` first turns true.

    Each :meth:`evaluate` call submits only if the latch is armed, the manager
    is idle, the service holds no job for the scope and ``ready()`` holds.
    When the service already has a job the manager attaches to it instead.
    The latch re-arms whenever ``ready()`` is observed false.
    """

    def __init__(
        self,
        manager: JobLifecycleManager,
        ready: Callable[[], bool],
        *,
        params: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.manager = manager
        self._ready = ready
        self._params = params
        self._latch = OneShotLatch()

    @property
    def armed(self) -> bool:
        return self._latch.armed

    async def evaluate(self) -> bool:
        """Returns whether this call submitted a new job."""

        if not self._ready():
            self._latch.rearm()
            return False
        if self.manager.state is not LifecycleState.IDLE:
            return False
        if not self._latch.try_fire():
            return False

        try:
            if await self.manager.resume():
                logger.info("Auto-trigger attached to existing %s job", self.manager.kind.value)
                return False
        except NetworkError as exc:
            self._latch.rearm()
            logger.warning("Auto-trigger could not check for an existing job: %s", exc)
            return False

        if self.manager.state is not LifecycleState.IDLE:
            return False
        logger.info("Auto-triggering %s job", self.manager.kind.value)
        return await self.manager.submit(self._params)
