"""Central orchestrator: maps job kinds to handlers and runs them as jobs.

Every operator-initiated action (CLI command, API request) goes through
:meth:`CorpusPipeline.submit` or :meth:`CorpusPipeline.start`, which start
a job in the :class:`JobControlRegister` and run the kind's handler under
its heartbeat and ``try/finally`` finalization.

    GROW            -> GrowthEngine.grow
    VALIDATE        -> GrowthEngine.grow(target_valid=0)   (flush pending rows)
    CERTIFY         -> CertificationService.certify(policy=STANDARD)
    EXPAND_ANCHORS  -> AnchorExpansionService.expand + consolidate_low_yield
    REBUILD         -> ensure draft -> reset if certified -> hydrate -> grow
                       -> certify(policy=LEAN_REBUILD) -> VALIDATED_LITE attempt

The handler table is checked against :class:`JobKind` at construction, so
adding a kind without a handler fails at startup rather than at dispatch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import structlog

from src.config.settings import Settings
from src.interfaces.snapshot_store import ISnapshotStore
from src.models.certification import CertificationPolicy, Tier
from src.models.corpus import SnapshotKey
from src.models.job import Job, JobKind, JobStatus
from src.pipeline.certification_gate import CertificationService, reset_for_rebuild
from src.pipeline.growth_engine import GrowthEngine
from src.pipeline.job_control import JobControlRegister
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.snapshot_builder import SnapshotBuilder
from src.services.anchor_expansion import AnchorExpansionService
from src.utils.errors import PipelineError, SnapshotNotFoundError
from src.utils.logging import get_logger

_Handler = Callable[[Job, SnapshotKey, dict[str, Any]], Awaitable[Any]]


def _jsonable(params: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in params.items() if v is not None}


class CorpusPipeline:
    """Dispatches corpus jobs.

    All collaborators are injected; :func:`src.main._build_all` wires the
    production set.
    """

    def __init__(
        self,
        *,
        store: ISnapshotStore,
        jobs: JobControlRegister,
        growth: GrowthEngine,
        certification: CertificationService,
        builder: SnapshotBuilder,
        expansion: AnchorExpansionService,
        progress: ProgressTracker,
        settings: Settings,
    ) -> None:
        self._store = store
        self._jobs = jobs
        self._growth = growth
        self._certification = certification
        self._builder = builder
        self._expansion = expansion
        self._progress = progress
        self._settings = settings
        # Background task -> job id, so unstarted tasks can still be finalized.
        self._background: dict[asyncio.Task, str] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

        self._handlers: dict[JobKind, _Handler] = {
            JobKind.GROW: self._run_grow,
            JobKind.VALIDATE: self._run_validate,
            JobKind.CERTIFY: self._run_certify,
            JobKind.EXPAND_ANCHORS: self._run_expand,
            JobKind.REBUILD: self._run_rebuild,
        }
        missing = [kind.value for kind in JobKind if kind not in self._handlers]
        if missing:
            raise PipelineError(f"no handler registered for job kinds: {', '.join(missing)}")

    @property
    def jobs(self) -> JobControlRegister:
        return self._jobs

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def submit(self, kind: JobKind, category_id: str, **params: Any) -> Job:
        """Run a job to completion and return it finalized.

        Handler failures are recorded on the returned job (FAILED or
        STOPPED), not raised.

        Raises
        ------
        JobConflictError
            If the category already has a live job.
        """
        job = await self._jobs.start_job(kind, category_id, _jsonable(params))
        return await self._jobs.execute(job, self._bind(kind, category_id, params))

    async def start(self, kind: JobKind, category_id: str, **params: Any) -> Job:
        """Start a job and run it as a background task; returns the RUNNING job.

        Raises
        ------
        JobConflictError
            If the category already has a live job.
        """
        job = await self._jobs.start_job(kind, category_id, _jsonable(params))
        task = asyncio.create_task(self._jobs.execute(job, self._bind(kind, category_id, params)))
        self._background[task] = job.id
        task.add_done_callback(self._forget)
        return job

    async def stop(self, job_id: str) -> Job:
        return await self._jobs.request_stop(job_id)

    async def shutdown(self) -> None:
        """Cancel background jobs and finalize each one STOPPED.

        A task cancelled before it ever ran never reaches the register's
        own finalization, so the job is finished here; for tasks that did
        run, the register already finalized them and this is a no-op.
        """
        pending = dict(self._background)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for job_id in pending.values():
            await self._jobs.finish_job(job_id, JobStatus.STOPPED, "cancelled at shutdown")

    def _forget(self, task: asyncio.Task) -> None:
        self._background.pop(task, None)

    def _bind(self, kind: JobKind, category_id: str, params: dict[str, Any]) -> Callable[[Job], Awaitable[Any]]:
        handler = self._handlers[kind]
        key = SnapshotKey(
            category_id=category_id,
            country=params.pop("country", None) or self._settings.default_country,
            language=params.pop("language", None) or self._settings.dfs_language_code,
        )

        async def _run(job: Job) -> Any:
            self._logger.info("job_dispatch", job_id=job.id, kind=kind.value, key=str(key))
            return await handler(job, key, params)

        return _run

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _run_grow(self, job: Job, key: SnapshotKey, params: dict[str, Any]) -> Any:
        snapshot_id = await self._resolve_snapshot_id(key, params)
        return await self._growth.grow(
            key,
            snapshot_id,
            job_id=job.id,
            target_valid=self._target_for(params),
            max_attempts=params.get("max_attempts"),
        )

    async def _run_validate(self, job: Job, key: SnapshotKey, params: dict[str, Any]) -> Any:
        snapshot_id = await self._resolve_snapshot_id(key, params)
        return await self._growth.grow(key, snapshot_id, job_id=job.id, target_valid=0)

    async def _run_certify(self, job: Job, key: SnapshotKey, params: dict[str, Any]) -> Any:
        snapshot_id = await self._resolve_snapshot_id(key, params)
        tier = Tier(params.get("tier") or Tier.FULL)
        report = await self._certification.certify(
            key, snapshot_id, tier, CertificationPolicy.STANDARD
        )
        if not report.passed:
            raise PipelineError(f"certification blocked: {' | '.join(report.reasons)}")
        return report

    async def _run_expand(self, job: Job, key: SnapshotKey, params: dict[str, Any]) -> Any:
        snapshot_id = await self._resolve_snapshot_id(key, params)
        min_anchors = params.get("min_anchors") or self._settings.expansion_min_anchors
        await self._tick(key, job, "expand_anchors")
        expanded = await self._expansion.expand(key, snapshot_id, min_anchors)
        await self._jobs.assert_not_stopped(job.id)
        await self._tick(key, job, "consolidate_anchors")
        consolidated = await self._expansion.consolidate_low_yield(
            key, snapshot_id, self._settings.consolidation_min_valid_per_anchor
        )
        return expanded.model_copy(
            update={
                "anchors_merged": consolidated.anchors_merged,
                "merged_into": consolidated.merged_into,
                "rows_reassigned": consolidated.rows_reassigned,
            }
        )

    async def _run_rebuild(self, job: Job, key: SnapshotKey, params: dict[str, Any]) -> Any:
        tier = Tier(params.get("tier") or Tier.FULL)

        await self._tick(key, job, "rebuild_draft")
        snapshot = await self._builder.ensure_draft(key, params.get("anchor_names"))
        if snapshot.lifecycle.is_certified:
            snapshot = reset_for_rebuild(snapshot)
            await self._store.write_snapshot(snapshot)

        await self._jobs.assert_not_stopped(job.id)
        await self._tick(key, job, "rebuild_hydrate")
        snapshot = await self._builder.hydrate(
            key, snapshot.id, self._settings.hydrate_per_anchor_limit
        )

        growth = await self._growth.grow(
            key,
            snapshot.id,
            job_id=job.id,
            target_valid=self._target_for({"tier": tier, **params}),
            max_attempts=params.get("max_attempts"),
        )

        await self._jobs.assert_not_stopped(job.id)
        await self._tick(key, job, "rebuild_certify")
        report = await self._certification.certify(
            key, snapshot.id, tier, CertificationPolicy.LEAN_REBUILD
        )
        lite_promoted = False
        if not report.passed:
            lite_promoted = await self._certification.attempt_lite_promotion(key, snapshot.id)

        self._logger.info(
            "rebuild_complete",
            key=str(key),
            snapshot_id=snapshot.id,
            growth_outcome=growth.outcome.value,
            certified=report.passed,
            tier=report.tier_achieved.value if report.tier_achieved else None,
            lite_promoted=lite_promoted,
        )
        return {
            "snapshot_id": snapshot.id,
            "growth": growth.model_dump(mode="json"),
            "certification": report.model_dump(mode="json", exclude={"health"}),
            "lite_promoted": lite_promoted,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_snapshot_id(self, key: SnapshotKey, params: dict[str, Any]) -> str:
        snapshot_id = params.get("snapshot_id") or await self._store.get_active_snapshot_id(key)
        if snapshot_id is None:
            raise SnapshotNotFoundError(f"no active snapshot for {key}; run a rebuild first")
        return snapshot_id

    def _target_for(self, params: dict[str, Any]) -> int | None:
        if params.get("target_valid") is not None:
            return int(params["target_valid"])
        if params.get("tier") is not None and Tier(params["tier"]) == Tier.LITE:
            return self._settings.growth_target_valid_lite
        return None

    async def _tick(self, key: SnapshotKey, job: Job, stage: str) -> None:
        await self._jobs.keep_alive(job.id, stage=stage)
        await self._progress.update(key.category_id, job.id, stage)
