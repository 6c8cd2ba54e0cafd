"""Lifecycle of one asynchronous generation job, from submission to a terminal state."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Mapping, Optional

from novelforge_generation import (
    GenerationError,
    GenerationService,
    JobCancelledError,
    JobFailedError,
    JobNotFoundError,
    JobTimedOutError,
    NetworkError,
    PollingSettings,
)
from novelforge_observability import (
    log_context,
    observe_job_duration,
    observe_job_transition,
    observe_poll_tick,
)
from novelforge_schemas import (
    GenerationJob,
    JobKind,
    JobObserverState,
    JobStatus,
    JobStatusReport,
    LifecycleState,
)

from .scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

Listener = Callable[[JobObserverState], None]

_DISMISSIBLE = frozenset(
    {LifecycleState.FAILED, LifecycleState.TIMED_OUT, LifecycleState.CANCELLED}
)


class JobLifecycleManager:
    """Submits one kind of job for one scope and polls it to completion.

    States move ``idle -> submitting -> polling`` and end in ``completed``,
    ``failed``, ``timed_out`` or ``cancelled``. While polling the manager owns
    exactly one poll ticker and one deadline watchdog. Every submission gets a
    new epoch; a request that resolves after its epoch has been replaced is
    discarded, which is how cancellation fences late responses.

    A terminal manager accepts a new :meth:`submit` ("try again" or
    "regenerate"); :meth:`dismiss` returns a failed, timed-out or cancelled
    manager to ``idle`` without submitting.
    """

    def __init__(
        self,
        kind: JobKind,
        scope_id: str,
        service: GenerationService,
        scheduler: Scheduler,
        settings: PollingSettings | None = None,
        *,
        caller_id: str | None = None,
    ) -> None:
        self.kind = kind
        self.scope_id = scope_id
        self.caller_id = caller_id
        self._service = service
        self._scheduler = scheduler
        self._settings = settings or PollingSettings()

        self._state = LifecycleState.IDLE
        self._job: Optional[GenerationJob] = None
        self._error: Optional[str] = None
        self._epoch = 0
        self._in_flight = False
        self._tick_count = 0
        self._started_at: Optional[float] = None
        self._ticker: Optional[TimerHandle] = None
        self._watchdog: Optional[TimerHandle] = None
        self._history: List[LifecycleState] = [LifecycleState.IDLE]
        self._listeners: List[Listener] = []
        self._settled = asyncio.Event()

    # -- observation ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def job(self) -> Optional[GenerationJob]:
        return self._job

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def history(self) -> tuple[LifecycleState, ...]:
        return tuple(self._history)

    @property
    def settings(self) -> PollingSettings:
        return self._settings

    def snapshot(self) -> JobObserverState:
        job = self._job
        return JobObserverState(
            kind=self.kind,
            state=self._state,
            status=job.status if job else None,
            job_id=job.id if job else None,
            progress=job.progress if job else None,
            result=job.result if job else None,
            error=self._error,
            tick_count=self._tick_count,
        )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with a fresh snapshot after every transition and progress report.

        Returns a function that removes the listener again.
        """

        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # -- commands ---------------------------------------------------------------------

    async def submit(self, params: Mapping[str, Any] | None = None) -> bool:
        """Submit a new job.

        Returns ``False`` without touching the service when a job is already
        being submitted or polled. Otherwise returns ``True``; a refused or
        unreachable submission leaves the manager ``failed`` with the error
        message as reported. Any other error also leaves it ``failed`` and is
        re-raised.
        """

        if self._state.is_active:
            with self._log_scope():
                logger.debug("Ignoring submit while %s", self._state.value)
            return False

        epoch = self._begin()
        self._transition(LifecycleState.SUBMITTING)
        try:
            receipt = await self._service.submit_job(self.kind, self.scope_id, params)
        except GenerationError as exc:
            if epoch == self._epoch:
                self._finish(LifecycleState.FAILED, error=str(exc))
            return True
        except Exception as exc:
            if epoch == self._epoch:
                with self._log_scope():
                    logger.exception("Unexpected error while submitting job")
                self._finish(LifecycleState.FAILED, error=f"Submission failed: {exc}")
            raise

        if epoch != self._epoch:
            with self._log_scope(job_id=receipt.job_id):
                logger.debug("Discarding submit acknowledgement after cancellation")
            return True

        self._job = GenerationJob(id=receipt.job_id, kind=self.kind, created_at=self._scheduler.utcnow())
        self._start_polling(epoch)
        return True

    async def resume(self) -> bool:
        """Attach to a job the service already holds for this scope.

        An active job is polled without resubmitting; a finished one is
        adopted as it stands. Returns whether a job exists. A manager that is
        not idle keeps its state and reports whether it tracks a job.
        """

        if self._state is not LifecycleState.IDLE:
            return self._job is not None

        epoch = self._begin()
        try:
            report = await self._service.get_job_status(self.kind, self.scope_id)
        except JobNotFoundError:
            return False
        if epoch != self._epoch or self._state is not LifecycleState.IDLE:
            return self._job is not None

        now = self._scheduler.utcnow()
        job_id = report.job_id or f"{self.kind.value}:{self.scope_id}"
        self._job = GenerationJob(id=job_id, kind=self.kind, created_at=now).advance(report, at=now)
        with self._log_scope():
            logger.info("Resuming existing job in status %s", report.status.value)
        if report.status is JobStatus.COMPLETED:
            self._finish(LifecycleState.COMPLETED)
        elif report.status is JobStatus.FAILED:
            self._finish(LifecycleState.FAILED, error=self._job.error)
        else:
            self._start_polling(epoch)
        return True

    def cancel(self) -> bool:
        """Stop submitting or polling immediately. Returns whether anything was cancelled."""

        if not self._state.is_active:
            return False
        self._epoch += 1
        self._finish(LifecycleState.CANCELLED)
        return True

    def dismiss(self) -> bool:
        if self._state not in _DISMISSIBLE:
            return False
        self._begin()
        self._transition(LifecycleState.IDLE)
        return True

    async def wait(self) -> Any:
        """Wait for the current job to finish and return its result.

        Raises:
            JobNotFoundError: If nothing has been submitted.
            JobFailedError: If the service reported the job failed.
            JobTimedOutError: If the local deadline passed first.
            JobCancelledError: If the job was cancelled.
        """

        while not self._state.is_terminal:
            if self._state is LifecycleState.IDLE:
                raise JobNotFoundError(f"No {self.kind.value} job submitted for {self.scope_id}")
            await self._settled.wait()

        if self._state is LifecycleState.COMPLETED:
            return self._job.result if self._job else None
        if self._state is LifecycleState.FAILED:
            raise JobFailedError(self._error or "Generation failed")
        if self._state is LifecycleState.TIMED_OUT:
            raise JobTimedOutError(self._error or "Generation timed out")
        raise JobCancelledError(f"{self.kind.value} job was cancelled")

    # -- polling ----------------------------------------------------------------------

    def _start_polling(self, epoch: int) -> None:
        self._started_at = self._scheduler.now()
        self._transition(LifecycleState.POLLING)
        # The watchdog is armed first so it wins a tie with the last tick.
        self._watchdog = self._scheduler.call_later(
            self._settings.deadline_seconds, lambda: self._on_deadline(epoch)
        )
        self._ticker = self._scheduler.call_every(
            self._settings.interval_seconds, lambda: self._tick(epoch)
        )

    async def _tick(self, epoch: int) -> None:
        if epoch != self._epoch or self._state is not LifecycleState.POLLING:
            return
        if self._in_flight:
            observe_poll_tick(self.kind.value, "skipped")
            with self._log_scope():
                logger.debug("Skipping poll tick; previous request still in flight")
            return

        self._in_flight = True
        self._tick_count += 1
        try:
            report = await self._service.get_job_status(self.kind, self.scope_id)
        except NetworkError as exc:
            observe_poll_tick(self.kind.value, "network_error")
            with self._log_scope():
                logger.warning("Status poll failed, retrying next tick: %s", exc)
            return
        except JobNotFoundError as exc:
            observe_poll_tick(self.kind.value, "not_found")
            with self._log_scope():
                logger.warning("Job not visible yet, retrying next tick: %s", exc)
            return
        finally:
            if epoch == self._epoch:
                self._in_flight = False

        if epoch != self._epoch or self._state is not LifecycleState.POLLING:
            observe_poll_tick(self.kind.value, "discarded")
            with self._log_scope():
                logger.debug("Discarding status report for a superseded job")
            return

        observe_poll_tick(self.kind.value, "applied")
        self._apply(report)

    def _apply(self, report: JobStatusReport) -> None:
        if self._job is None:
            return
        self._job = self._job.advance(report, at=self._scheduler.utcnow())
        if report.status is JobStatus.COMPLETED:
            self._finish(LifecycleState.COMPLETED)
        elif report.status is JobStatus.FAILED:
            self._finish(LifecycleState.FAILED, error=self._job.error)
        else:
            self._notify()

    async def _on_deadline(self, epoch: int) -> None:
        if epoch != self._epoch or self._state is not LifecycleState.POLLING:
            return
        deadline = self._settings.deadline_seconds
        self._finish(
            LifecycleState.TIMED_OUT,
            error=f"Generation timed out after {deadline:g} seconds",
        )

    # -- state bookkeeping ------------------------------------------------------------

    def _begin(self) -> int:
        self._stop_timers()
        self._epoch += 1
        self._job = None
        self._error = None
        self._in_flight = False
        self._tick_count = 0
        self._started_at = None
        return self._epoch

    def _finish(self, state: LifecycleState, *, error: str | None = None) -> None:
        self._stop_timers()
        self._error = error
        if self._started_at is not None:
            observe_job_duration(
                self.kind.value, state.value, self._scheduler.now() - self._started_at
            )
        self._transition(state)

    def _stop_timers(self) -> None:
        for timer in (self._ticker, self._watchdog):
            if timer is not None:
                timer.cancel()
        self._ticker = None
        self._watchdog = None

    def _transition(self, state: LifecycleState) -> None:
        previous = self._state
        self._state = state
        self._history.append(state)
        observe_job_transition(self.kind.value, state.value)

        with self._log_scope(state=state.value):
            if state is LifecycleState.FAILED or state is LifecycleState.TIMED_OUT:
                logger.warning("Job %s -> %s: %s", previous.value, state.value, self._error)
            else:
                logger.info("Job %s -> %s", previous.value, state.value)

        if state.is_terminal:
            self._settled.set()
        else:
            self._settled.clear()

        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pragma: no cover - listener bugs must not stop polling
                logger.exception("Job listener raised")

    def _log_scope(self, **extra: Any):
        fields: dict[str, Any] = {"job_kind": self.kind.value, "scope_id": self.scope_id}
        if self.caller_id:
            fields["caller_id"] = self.caller_id
        if self._job is not None:
            fields["job_id"] = self._job.id
        fields.update(extra)
        return log_context(**fields)
