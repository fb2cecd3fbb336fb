"""demandCorpus FastAPI application entry point.

Wires together providers, stores, services and routes via dependency
injection.  Loads configuration from ``.env`` and ``config/config.yaml``
and configures structured logging.

Also exposes :func:`build_pipeline` so the CLI can run jobs in-process
without the web server.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.config.loader import load_config
from src.config.seed_dictionaries import build_seed_catalog
from src.config.settings import Settings
from src.interfaces.job_store import IJobStore
from src.interfaces.keyword_volume_provider import IKeywordVolumeProvider
from src.interfaces.snapshot_store import ISnapshotStore
from src.pipeline.certification_gate import CertificationService
from src.pipeline.growth_engine import GrowthConfig, GrowthEngine
from src.pipeline.job_control import JobControlRegister
from src.pipeline.orchestrator import CorpusPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.rate_gated_client import RateGatedVolumeClient
from src.pipeline.resilient_runner import ResilientTaskRunner
from src.pipeline.snapshot_builder import SnapshotBuilder
from src.providers.cache.memory_volume_cache import MemoryVolumeCache
from src.providers.job.sqlite_job_store import SQLiteJobStore
from src.providers.snapshot.sqlite_snapshot_store import SQLiteSnapshotStore
from src.providers.volume.dataforseo_proxy_provider import DataForSeoProxyProvider
from src.services.anchor_expansion import AnchorExpansionService
from src.services.candidate_generator import CandidateGenerator
from src.services.keyword_guard import KeywordGuard
from src.utils.concurrency import get_rate_gate
from src.utils.logging import configure_logging, get_logger

_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def _build_all(
    app_settings: Settings,
    app_config: dict[str, Any] | None = None,
    *,
    snapshot_store: ISnapshotStore | None = None,
    job_store: IJobStore | None = None,
    provider: IKeywordVolumeProvider | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    Stores and the volume provider can be injected (tests use the
    in-memory implementations).
    """
    app_config = app_config or {}

    # -- Shared resources --
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(app_settings.resilience_timeout_seconds)
    )

    # -- Storage --
    snapshot_store = snapshot_store or SQLiteSnapshotStore(app_settings.corpus_db_path)
    job_store = job_store or SQLiteJobStore(app_settings.corpus_db_path)

    # -- Keyword data --
    provider = provider or DataForSeoProxyProvider(settings=app_settings, client=http_client)
    cache = MemoryVolumeCache(
        max_size=app_settings.volume_cache_max_size,
        ttl=app_settings.volume_cache_ttl_seconds,
    )
    gate = get_rate_gate(
        max_concurrent=app_settings.rate_gate_max_concurrent,
        requests_per_minute=app_settings.rate_gate_requests_per_minute,
    )
    runner = ResilientTaskRunner(app_settings.task_options())
    client = RateGatedVolumeClient(
        provider,
        runner,
        gate,
        cache,
        location_code=app_settings.dfs_location_code,
        language_code=app_settings.dfs_language_code,
        batch_size=app_settings.growth_batch_size,
    )

    # -- Dictionaries --
    catalog = build_seed_catalog(app_config.get("seed_dictionaries"))
    generator = CandidateGenerator(catalog)
    guard = KeywordGuard(catalog)

    # -- Job control & progress --
    jobs = JobControlRegister(
        job_store,
        heartbeat_interval_seconds=app_settings.job_heartbeat_interval_seconds,
        stale_after_seconds=app_settings.job_stale_after_seconds,
        reap_after_seconds=app_settings.job_reap_after_seconds,
    )
    progress_tracker = ProgressTracker()

    # -- Services --
    growth = GrowthEngine(
        snapshot_store,
        client,
        generator=generator,
        guard=guard,
        jobs=jobs,
        progress=progress_tracker,
        config=GrowthConfig.from_settings(app_settings),
    )
    certification = CertificationService(snapshot_store)
    builder = SnapshotBuilder(snapshot_store, generator=generator, guard=guard)
    expansion = AnchorExpansionService(snapshot_store, generator=generator, guard=guard)

    pipeline = CorpusPipeline(
        store=snapshot_store,
        jobs=jobs,
        growth=growth,
        certification=certification,
        builder=builder,
        expansion=expansion,
        progress=progress_tracker,
        settings=app_settings,
    )

    return {
        "http_client": http_client,
        "snapshot_store": snapshot_store,
        "job_store": job_store,
        "provider": provider,
        "volume_client": client,
        "jobs": jobs,
        "progress_tracker": progress_tracker,
        "pipeline": pipeline,
        "settings": app_settings,
    }


async def _initialize_stores(components: dict[str, Any]) -> None:
    for name in ("snapshot_store", "job_store"):
        store = components[name]
        initialize = getattr(store, "initialize", None)
        if initialize is not None:
            await initialize()


async def build_pipeline(custom_settings: Settings | None = None) -> dict[str, Any]:
    """Build and initialize every component for use outside the web server.

    The caller owns the returned ``http_client`` and must close it.
    """
    app_settings = custom_settings or settings
    components = _build_all(app_settings, config)
    await _initialize_stores(components)
    return components


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)
    await _initialize_stores(components)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=_VERSION,
        environment=settings.app_env,
        provider=components["provider"].get_provider_name(),
        provider_available=components["provider"].is_available(),
        snapshot_store=components["snapshot_store"].get_provider_name(),
    )

    yield

    # -- Shutdown: stop background jobs, close shared httpx client --
    pipeline: CorpusPipeline = components["pipeline"]
    await pipeline.shutdown()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="background jobs stopped, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="demandCorpus API",
        version=_VERSION,
        description=(
            "Grow, validate and certify per-category keyword corpora against "
            "a rate-limited keyword-volume API."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
