"""Per-caller workflow state: one snapshot, one gate and one job manager per kind."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Mapping, Optional, Tuple

from novelforge_generation import (
    GenerationService,
    GenerationServiceFactory,
    PollingSettings,
    load_generation_config,
    load_polling_settings,
)
from novelforge_observability import log_context
from novelforge_schemas import JobKind, JobScope, ProjectSnapshot, WorkflowStep

from .auto_trigger import AutoTrigger
from .gate import WorkflowGate
from .jobs import JobLifecycleManager
from .prerequisites import PROJECT_NOT_LOADED
from .scheduling import AsyncioScheduler, Scheduler
from .snapshot import RecordStore, SnapshotAdapter, create_record_store

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 256


class StepLockedError(RuntimeError):
    """A job was requested for a workflow step the caller cannot access yet."""

    def __init__(self, step: WorkflowStep, reason: str | None) -> None:
        super().__init__(reason or f"{step.display_name} is locked")
        self.step = step
        self.reason = reason


class WorkflowSession:
    """Everything one caller is doing on one project.

    The gate is rebuilt on every :meth:`refresh`. Managers are created lazily
    and reused, so a caller never has two poll sessions for the same kind.
    """

    def __init__(
        self,
        caller_id: str,
        project_id: str,
        store: RecordStore,
        service: GenerationService,
        scheduler: Scheduler,
        settings: PollingSettings | None = None,
    ) -> None:
        self.caller_id = caller_id
        self.project_id = project_id
        self._adapter = SnapshotAdapter(store)
        self._service = service
        self._scheduler = scheduler
        self._settings = settings or PollingSettings()
        self._gate = WorkflowGate(None)
        self._managers: Dict[JobKind, JobLifecycleManager] = {}
        self._triggers: Dict[JobKind, AutoTrigger] = {}

    @property
    def gate(self) -> WorkflowGate:
        return self._gate

    @property
    def snapshot(self) -> Optional[ProjectSnapshot]:
        return self._gate.snapshot

    @property
    def busy(self) -> bool:
        """Whether any job in this session is still being submitted or polled."""
        return any(manager.state.is_active for manager in self._managers.values())

    async def refresh(self) -> WorkflowGate:
        with log_context(caller_id=self.caller_id, project_id=self.project_id):
            snapshot = await self._adapter.load(self.project_id)
            self._gate = WorkflowGate(snapshot)
            if snapshot is None:
                logger.info("Project not found")
            else:
                logger.debug(
                    "Workflow refreshed",
                    extra={"current_step": self._gate.current_step.value},
                )
        return self._gate

    def scope_id(self, kind: JobKind) -> str:
        if kind.scope is JobScope.PROJECT:
            return self.project_id
        snapshot = self.snapshot
        if snapshot is None or not snapshot.book_id:
            raise StepLockedError(kind.step, "Project has no book yet")
        return snapshot.book_id

    def manager(self, kind: JobKind) -> JobLifecycleManager:
        """The manager for ``kind``, replaced when the scope changed and it is not busy."""

        scope_id = self.scope_id(kind)
        existing = self._managers.get(kind)
        if existing is not None and (existing.scope_id == scope_id or existing.state.is_active):
            return existing
        manager = JobLifecycleManager(
            kind,
            scope_id,
            self._service,
            self._scheduler,
            self._settings,
            caller_id=self.caller_id,
        )
        self._managers[kind] = manager
        self._triggers.pop(kind, None)
        return manager

    def existing_manager(self, kind: JobKind) -> Optional[JobLifecycleManager]:
        return self._managers.get(kind)

    def ensure_accessible(self, step: WorkflowStep) -> None:
        if not self._gate.project_loaded:
            raise StepLockedError(step, PROJECT_NOT_LOADED)
        if not self._gate.can_access(step):
            raise StepLockedError(step, self._gate.get_blocking_reason(step))

    async def submit(self, kind: JobKind, params: Mapping[str, Any] | None = None) -> bool:
        """Submit ``kind`` if its step is unlocked.

        Raises:
            StepLockedError: If the step is locked or the project is not loaded.
        """

        self.ensure_accessible(kind.step)
        return await self.manager(kind).submit(params)

    def auto_trigger(
        self, kind: JobKind, params: Mapping[str, Any] | None = None
    ) -> AutoTrigger:
        """An auto-trigger that fires when ``kind``'s step is unlocked and not yet complete."""

        manager = self.manager(kind)
        trigger = self._triggers.get(kind)
        if trigger is None or trigger.manager is not manager:
            trigger = AutoTrigger(manager, lambda: self._ready(kind.step), params=params)
            self._triggers[kind] = trigger
        return trigger

    def cancel(self, kind: JobKind) -> bool:
        manager = self._managers.get(kind)
        return manager.cancel() if manager is not None else False

    def close(self) -> None:
        for manager in self._managers.values():
            manager.cancel()

    def _ready(self, step: WorkflowStep) -> bool:
        gate = self._gate
        if not gate.project_loaded or not gate.can_access(step):
            return False
        return not gate.prerequisites[step].is_complete


class SessionRegistry:
    """Sessions keyed by ``(caller_id, project_id)``; owned by the application.

    At most ``max_sessions`` are kept. When a new session would exceed the
    limit the least recently used idle sessions are closed; sessions with a
    job still being submitted or polled are never evicted.
    """

    def __init__(
        self,
        store: RecordStore,
        service: GenerationService,
        scheduler: Scheduler,
        settings: PollingSettings | None = None,
        *,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self.store = store
        self.service = service
        self.scheduler = scheduler
        self.settings = settings or PollingSettings()
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[Tuple[str, str], WorkflowSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def find(self, caller_id: str, project_id: str) -> Optional[WorkflowSession]:
        """The existing session for this caller and project, without creating one."""
        key = (caller_id, project_id)
        session = self._sessions.get(key)
        if session is not None:
            self._sessions.move_to_end(key)
        return session

    def get(self, caller_id: str, project_id: str) -> WorkflowSession:
        session = self.find(caller_id, project_id)
        if session is None:
            self._evict_idle(self.max_sessions - 1)
            session = WorkflowSession(
                caller_id,
                project_id,
                self.store,
                self.service,
                self.scheduler,
                self.settings,
            )
            self._sessions[(caller_id, project_id)] = session
        return session

    def close(self, caller_id: str, project_id: str) -> None:
        session = self._sessions.pop((caller_id, project_id), None)
        if session is not None:
            session.close()

    def discard_if_idle(self, caller_id: str, project_id: str) -> bool:
        """Drop a session that has no job in progress. Returns whether it was dropped."""
        session = self._sessions.get((caller_id, project_id))
        if session is None or session.busy:
            return False
        self.close(caller_id, project_id)
        return True

    async def aclose(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        await self.service.aclose()
        await self.store.aclose()

    def _evict_idle(self, limit: int) -> None:
        if len(self._sessions) <= limit:
            return
        for key in [key for key, session in self._sessions.items() if not session.busy]:
            if len(self._sessions) <= limit:
                break
            logger.debug("Evicting idle session for caller %s project %s", *key)
            self.close(*key)


def build_registry(scheduler: Scheduler | None = None) -> SessionRegistry:
    """Wire a registry from environment configuration."""

    config = load_generation_config()
    return SessionRegistry(
        create_record_store(config),
        GenerationServiceFactory.create(config),
        scheduler or AsyncioScheduler(),
        load_polling_settings(),
    )
