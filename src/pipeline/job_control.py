"""Job Control Register: start, heartbeat, stop and finalize long-running jobs.

The register owns every lifecycle rule for :class:`~src.models.job.Job`
records; the :class:`~src.interfaces.job_store.IJobStore` behind it only
saves and loads.

# ─── JOB LIFECYCLE ────────────────────────────────────────────────────
#
#   start_job ──> RUNNING ──request_stop──> STOP_REQUESTED
#                    │                            │
#                    ├── handler returns ──> COMPLETED
#                    ├── handler raises ───> FAILED  (message = str(exc))
#                    └── stop observed ────────────────> STOPPED
#
#   No heartbeat for reap_after_seconds ──> reaped to FAILED
#   ("zombie reaped: ...") or STOPPED when a stop had been requested.
#
#   The first terminal transition wins.  A second finish_job() is a logged
#   no-op; update_progress() on a terminal job raises JobFinalizedError.
# ──────────────────────────────────────────────────────────────────────

Cancellation tokens are plain ``asyncio.Event`` objects looked up by job
id via :meth:`JobControlRegister.cancel_event_for`.  request_stop() sets
the event so in-flight provider calls are interrupted; the pipeline still
calls :meth:`assert_not_stopped` at every checkpoint so stops issued from
another process (visible only through the store) are honoured too.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel

from src.interfaces.job_store import IJobStore
from src.models.job import Job, JobKind, JobProgress, JobStatus, Liveness
from src.utils.errors import (
    JobConflictError,
    JobControlError,
    JobFinalizedError,
    JobNotFoundError,
    JobStoppedError,
    PoolCancelledError,
    StepCancelledError,
)
from src.utils.logging import bind_job_context, get_logger

JobHandler = Callable[[Job], Awaitable[Any]]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class JobControlRegister:
    """Single authority over job records for one process.

    Parameters
    ----------
    store:
        Persistence backend.
    heartbeat_interval_seconds:
        Period of the background keep-alive inside :meth:`heartbeat`.
    stale_after_seconds / reap_after_seconds:
        Heartbeat age at which a non-terminal job is reported STALE, and at
        which it is declared a ZOMBIE and reaped.
    clock:
        Returns the current UTC time (injected in tests).
    """

    def __init__(
        self,
        store: IJobStore,
        *,
        heartbeat_interval_seconds: float = 3.0,
        stale_after_seconds: float = 60.0,
        reap_after_seconds: float = 180.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if reap_after_seconds < stale_after_seconds:
            raise JobControlError("reap_after_seconds must be >= stale_after_seconds")
        self._store = store
        self._heartbeat_interval = heartbeat_interval_seconds
        self._stale_after = stale_after_seconds
        self._reap_after = reap_after_seconds
        self._clock = clock
        self._events: dict[str, asyncio.Event] = {}
        # Serializes read-modify-write cycles so a heartbeat cannot overwrite
        # a concurrent progress update or finalization.
        self._write_lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Creation / lookup
    # ------------------------------------------------------------------

    async def start_job(
        self,
        kind: JobKind,
        category_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> Job:
        """Create a RUNNING job, refusing if the category already has one.

        Raises
        ------
        JobConflictError
            A non-terminal, non-zombie job exists for ``category_id``.
        """
        async with self._start_lock:
            active = await self.get_active_job_for_category(category_id)
            if active is not None:
                raise JobConflictError(
                    f"Job {active.id} ({active.kind.value}) is still {active.status.value} "
                    f"for category {category_id}",
                    active_job_id=active.id,
                )
            now = self._clock()
            job = Job(
                id=f"{kind.value}_{category_id}_{int(now.timestamp() * 1000)}",
                category_id=category_id,
                kind=kind,
                status=JobStatus.RUNNING,
                stage="starting",
                metadata=dict(metadata or {}),
                created_at=now,
                updated_at=now,
            )
            await self._store.save(job)
        self._events[job.id] = asyncio.Event()
        self._logger.info("job_started", job_id=job.id, kind=kind.value, category_id=category_id)
        return job

    async def get_job(self, job_id: str) -> Job | None:
        """Return the job (reaping it first if it is a zombie)."""
        job = await self._store.get(job_id)
        if job is None:
            return None
        return await self.reap_if_zombie(job)

    async def get_active_job_for_category(self, category_id: str) -> Job | None:
        """Return the non-terminal job for the category, reaping zombies on the way."""
        for job in await self._store.list_for_category(category_id):
            if job.is_terminal:
                continue
            job = await self.reap_if_zombie(job)
            if not job.is_terminal:
                return job
        return None

    async def get_latest_job_for_category(self, category_id: str) -> Job | None:
        jobs = await self._store.list_for_category(category_id)
        if not jobs:
            return None
        return await self.reap_if_zombie(jobs[0])

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    async def request_stop(self, job_id: str) -> Job:
        """Flag the job for stopping and fire its cancel token."""
        async with self._write_lock:
            job = await self._require(job_id)
            if job.is_terminal:
                self._logger.info("job_stop_ignored", job_id=job_id, status=job.status.value)
                return job
            job = job.model_copy(
                update={
                    "stop_requested": True,
                    "status": JobStatus.STOP_REQUESTED,
                    "updated_at": self._clock(),
                }
            )
            await self._store.save(job)
        self.cancel_event_for(job_id).set()
        self._logger.info("job_stop_requested", job_id=job_id)
        return job

    async def update_progress(
        self,
        job_id: str,
        processed: int,
        total: int,
        stage: str | None = None,
        message: str | None = None,
    ) -> Job:
        """Record progress; doubles as a heartbeat.

        Raises
        ------
        JobFinalizedError
            If the job already reached a terminal status.
        """
        async with self._write_lock:
            job = await self._require(job_id)
            if job.is_terminal:
                raise JobFinalizedError(f"Job {job_id} is already {job.status.value}")
            update: dict[str, Any] = {
                "progress": JobProgress(processed=processed, total=total),
                "updated_at": self._clock(),
            }
            if stage is not None:
                update["stage"] = stage
            if message is not None:
                update["message"] = message
            job = job.model_copy(update=update)
            await self._store.save(job)
        return job

    async def keep_alive(self, job_id: str, stage: str | None = None) -> Job:
        """Bump ``updated_at`` without touching progress.  No-op once terminal."""
        async with self._write_lock:
            job = await self._require(job_id)
            if job.is_terminal:
                return job
            update: dict[str, Any] = {"updated_at": self._clock()}
            if stage is not None:
                update["stage"] = stage
            job = job.model_copy(update=update)
            await self._store.save(job)
        if job.stop_requested:
            self.cancel_event_for(job_id).set()
        return job

    async def finish_job(
        self,
        job_id: str,
        status: JobStatus,
        message: str | None = None,
        result: dict[str, Any] | None = None,
    ) -> Job:
        """Move the job to a terminal status.  The first call wins."""
        if not status.is_terminal:
            raise JobControlError(f"finish_job requires a terminal status, got {status.value}")
        async with self._write_lock:
            job = await self._require(job_id)
            if job.is_terminal:
                self._logger.info(
                    "job_finalize_ignored",
                    job_id=job_id,
                    status=job.status.value,
                    requested=status.value,
                )
                return job
            now = self._clock()
            update: dict[str, Any] = {
                "status": status,
                "message": message,
                "updated_at": now,
                "finished_at": now,
            }
            if result is not None:
                update["metadata"] = {**job.metadata, "result": result}
            job = job.model_copy(update=update)
            await self._store.save(job)
        self._events.pop(job_id, None)
        self._logger.info("job_finished", job_id=job_id, status=status.value, message=message)
        return job

    # ------------------------------------------------------------------
    # Stop / cancel
    # ------------------------------------------------------------------

    def cancel_event_for(self, job_id: str) -> asyncio.Event:
        """The cancel token for ``job_id`` (created on first use)."""
        event = self._events.get(job_id)
        if event is None:
            event = asyncio.Event()
            self._events[job_id] = event
        return event

    async def assert_not_stopped(self, job_id: str) -> None:
        """Checkpoint: raise JobStoppedError if a stop was requested.

        Checks the local token first, then the store, so a stop issued by
        another process is observed at the next checkpoint.
        """
        event = self._events.get(job_id)
        if event is not None and event.is_set():
            raise JobStoppedError(f"Job {job_id} stop requested")
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        if job.stop_requested or job.status == JobStatus.STOPPED:
            self.cancel_event_for(job_id).set()
            raise JobStoppedError(f"Job {job_id} stop requested")

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------

    def classify(self, job: Job, now: datetime | None = None) -> Liveness:
        if job.is_terminal:
            return Liveness.FINISHED
        age = ((now or self._clock()) - job.updated_at).total_seconds()
        if age > self._reap_after:
            return Liveness.ZOMBIE
        if age > self._stale_after:
            return Liveness.STALE
        return Liveness.ALIVE

    async def reap_if_zombie(self, job: Job) -> Job:
        """Finalize ``job`` if its heartbeat is older than the reap threshold."""
        if self.classify(job) is not Liveness.ZOMBIE:
            return job
        async with self._write_lock:
            current = await self._store.get(job.id)
            if current is None or self.classify(current) is not Liveness.ZOMBIE:
                return current or job
            now = self._clock()
            age = int((now - current.updated_at).total_seconds())
            status = JobStatus.STOPPED if current.stop_requested else JobStatus.FAILED
            reaped = current.model_copy(
                update={
                    "status": status,
                    "message": f"zombie reaped: no heartbeat for {age}s",
                    "updated_at": now,
                    "finished_at": now,
                }
            )
            await self._store.save(reaped)
        self._events.pop(job.id, None)
        self._logger.warning(
            "job_reaped_zombie",
            job_id=job.id,
            category_id=job.category_id,
            age_s=age,
            status=status.value,
        )
        return reaped

    @contextlib.asynccontextmanager
    async def heartbeat(self, job_id: str, stage: str | None = None) -> AsyncIterator[None]:
        """Keep the job alive in the background for the enclosed block."""
        task = asyncio.create_task(self._heartbeat_loop(job_id, stage))
        try:
            yield
        finally:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _heartbeat_loop(self, job_id: str, stage: str | None) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                job = await self.keep_alive(job_id, stage=None)
            except Exception as exc:
                # The next tick retries; the reaper covers a dead store.
                self._logger.warning(
                    "job_heartbeat_failed",
                    job_id=job_id,
                    stage=stage,
                    error=str(exc),
                )
                continue
            if job.is_terminal:
                return

    # ------------------------------------------------------------------
    # Run wrapper
    # ------------------------------------------------------------------

    async def run(
        self,
        kind: JobKind,
        category_id: str,
        handler: JobHandler,
        metadata: dict[str, Any] | None = None,
    ) -> Job:
        """Start a job, run ``handler(job)`` under a heartbeat, always finalize.

        Returns the finalized job.  Handler exceptions are recorded on the
        job (FAILED or STOPPED) rather than re-raised; task cancellation is
        recorded as STOPPED and then re-raised.
        """
        job = await self.start_job(kind, category_id, metadata)
        return await self.execute(job, handler)

    async def execute(self, job: Job, handler: JobHandler) -> Job:
        """Run ``handler`` for an already-started job and finalize it."""
        status = JobStatus.FAILED
        message: str | None = "job did not complete"
        result: dict[str, Any] | None = None

        with bind_job_context(job_id=job.id, category_id=job.category_id, job_kind=job.kind.value):
            try:
                async with self.heartbeat(job.id, stage=job.kind.value.lower()):
                    outcome = await handler(job)
                status, message, result = JobStatus.COMPLETED, "completed", _result_payload(outcome)
            except JobStoppedError as exc:
                status, message = JobStatus.STOPPED, str(exc)
            except (StepCancelledError, PoolCancelledError) as exc:
                stopped = await self._stop_was_requested(job.id)
                status = JobStatus.STOPPED if stopped else JobStatus.FAILED
                message = str(exc)
            except asyncio.CancelledError:
                status, message = JobStatus.STOPPED, "cancelled"
                raise
            except Exception as exc:
                status, message = JobStatus.FAILED, str(exc) or type(exc).__name__
                self._logger.exception("job_handler_failed", job_id=job.id, error=message)
            finally:
                final = await self.finish_job(job.id, status, message, result)
        return final

    async def _stop_was_requested(self, job_id: str) -> bool:
        event = self._events.get(job_id)
        if event is not None and event.is_set():
            return True
        job = await self._store.get(job_id)
        return bool(job and job.stop_requested)

    async def _require(self, job_id: str) -> Job:
        job = await self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job


def _result_payload(outcome: Any) -> dict[str, Any] | None:
    if outcome is None:
        return None
    if isinstance(outcome, BaseModel):
        return outcome.model_dump(mode="json")
    if isinstance(outcome, dict):
        return outcome
    return {"value": str(outcome)}
