"""FastAPI API routes for the demandCorpus pipeline.

Provides REST endpoints to start and stop corpus jobs, poll their
progress, and inspect a category's active snapshot and its health.
Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/categories/{cid}/jobs              POST    Start a job (202)
# /api/v1/categories/{cid}/jobs/active       GET     Live job for a category
# /api/v1/categories/{cid}/snapshots/active  GET     Active snapshot + stats
# /api/v1/categories/{cid}/health            GET     Corpus health report
# /api/v1/jobs/{job_id}                      GET     Poll a job (reaps zombies)
# /api/v1/jobs/{job_id}/stop                 POST    Request a cooperative stop
# /api/v1/health                             GET     Health check + provider status
#
# Jobs run as background tasks owned by CorpusPipeline; every route
# returns immediately.  Application errors raised here (conflicts,
# unknown jobs) are turned into JSON by ErrorHandlingMiddleware.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from src.api.schemas import (
    CorpusHealthResponse,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    SnapshotResponse,
    StartJobRequest,
)
from src.config.settings import Settings
from src.interfaces.snapshot_store import ISnapshotStore
from src.models.corpus import Snapshot, SnapshotKey
from src.pipeline.job_control import JobControlRegister
from src.pipeline.orchestrator import CorpusPipeline
from src.services.corpus_health import compute_health
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_pipeline(request: Request) -> CorpusPipeline:
    """Return the pipeline orchestrator from application state."""
    return request.app.state.pipeline


def _get_jobs(request: Request) -> JobControlRegister:
    """Return the job control register from application state."""
    return request.app.state.jobs


def _get_snapshot_store(request: Request) -> ISnapshotStore:
    return request.app.state.snapshot_store


def _get_settings(request: Request) -> Settings:
    return request.app.state.settings


PipelineDep = Annotated[CorpusPipeline, Depends(_get_pipeline)]
JobsDep = Annotated[JobControlRegister, Depends(_get_jobs)]
SnapshotStoreDep = Annotated[ISnapshotStore, Depends(_get_snapshot_store)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]

CountryQuery = Annotated[str | None, Query(min_length=2, max_length=2)]
LanguageQuery = Annotated[str | None, Query(min_length=2, max_length=5)]


def _key(
    category_id: str,
    settings: Settings,
    country: str | None,
    language: str | None,
) -> SnapshotKey:
    return SnapshotKey(
        category_id=category_id,
        country=country or settings.default_country,
        language=language or settings.dfs_language_code,
    )


async def _active_snapshot(store: ISnapshotStore, key: SnapshotKey) -> Snapshot:
    snapshot_id = await store.get_active_snapshot_id(key)
    snapshot = (
        await store.get_snapshot_by_id(key, snapshot_id) if snapshot_id is not None else None
    )
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No active snapshot for {key}")
    return snapshot


# ---------------------------------------------------------------------------
# Job endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/categories/{category_id}/jobs",
    response_model=JobResponse,
    status_code=202,
    responses={409: {"model": ErrorResponse}},
    summary="Start a corpus job for a category",
)
async def start_job(
    category_id: str,
    body: StartJobRequest,
    pipeline: PipelineDep,
    jobs: JobsDep,
) -> JobResponse:
    """Start ``body.kind`` in the background and return the RUNNING job.

    Returns 409 (via the error middleware) when the category already has
    a live job.
    """
    job = await pipeline.start(body.kind, category_id, **body.job_params())
    _logger.info("job_submitted", job_id=job.id, kind=job.kind.value, category_id=category_id)
    return JobResponse.from_job(job, jobs.classify(job))


@router.post(
    "/jobs/{job_id}/stop",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Request a cooperative stop",
)
async def stop_job(job_id: str, pipeline: PipelineDep, jobs: JobsDep) -> JobResponse:
    """Flag the job for stopping.

    The handler observes the flag at its next checkpoint and the job is
    finalized STOPPED; the returned record may still be STOP_REQUESTED.
    """
    job = await pipeline.stop(job_id)
    return JobResponse.from_job(job, jobs.classify(job))


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Poll a job",
)
async def get_job(job_id: str, jobs: JobsDep) -> JobResponse:
    job = await jobs.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
    return JobResponse.from_job(job, jobs.classify(job))


@router.get(
    "/categories/{category_id}/jobs/active",
    response_model=JobResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Live job for a category",
)
async def get_active_job(category_id: str, jobs: JobsDep) -> JobResponse:
    job = await jobs.get_active_job_for_category(category_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"No active job for {category_id}")
    return JobResponse.from_job(job, jobs.classify(job))


# ---------------------------------------------------------------------------
# Snapshot endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/categories/{category_id}/snapshots/active",
    response_model=SnapshotResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Active snapshot of a category",
)
async def get_active_snapshot(
    category_id: str,
    store: SnapshotStoreDep,
    settings: SettingsDep,
    country: CountryQuery = None,
    language: LanguageQuery = None,
) -> SnapshotResponse:
    key = _key(category_id, settings, country, language)
    return SnapshotResponse.from_snapshot(await _active_snapshot(store, key))


@router.get(
    "/categories/{category_id}/health",
    response_model=CorpusHealthResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Corpus health report",
)
async def get_corpus_health(
    category_id: str,
    store: SnapshotStoreDep,
    settings: SettingsDep,
    country: CountryQuery = None,
    language: LanguageQuery = None,
) -> CorpusHealthResponse:
    """Compute the health report of the category's active snapshot."""
    key = _key(category_id, settings, country, language)
    snapshot = await _active_snapshot(store, key)
    rows = await store.read_all_keyword_rows(key, snapshot.id)
    return CorpusHealthResponse(
        category_id=category_id,
        snapshot_id=snapshot.id,
        lifecycle=snapshot.lifecycle,
        report=compute_health(snapshot, rows),
    )


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability.

    ``unhealthy`` when the keyword-volume provider is not configured;
    the stores are local and always reported.
    """
    providers: dict[str, Any] = {}
    provider = getattr(request.app.state, "provider", None)
    if provider is not None:
        providers[provider.get_provider_name()] = provider.is_available()
    store = getattr(request.app.state, "snapshot_store", None)
    if store is not None:
        providers[store.get_provider_name()] = True

    volume_ok = provider is not None and provider.is_available()
    return HealthResponse(
        status="healthy" if volume_ok else "unhealthy",
        version=_VERSION,
        providers=providers,
    )
