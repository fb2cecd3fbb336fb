"""Pydantic request/response schemas for the demandCorpus API.

Defines the public contract for the job, snapshot and health endpoints.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These Pydantic models define the *shape* of every HTTP request body
# and response body in the API.  FastAPI uses them for validation of
# incoming JSON (422 on mismatch), serialization of responses
# (response_model=...) and the generated OpenAPI docs at /docs.
#
# Convention: Request schemas end with "Request", response schemas
# end with "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.models.certification import HealthReport, Tier
from src.models.corpus import Anchor, Lifecycle, Snapshot, SnapshotStats
from src.models.job import Job, JobKind, JobStatus, Liveness


class StartJobRequest(BaseModel):
    """Body of ``POST /categories/{category_id}/jobs``.

    Only the fields relevant to ``kind`` are used; the rest are ignored.
    """

    kind: JobKind
    snapshot_id: str | None = None
    country: str | None = Field(default=None, min_length=2, max_length=2)
    language: str | None = Field(default=None, min_length=2, max_length=5)
    tier: Tier | None = None
    target_valid: int | None = Field(default=None, ge=0)
    max_attempts: int | None = Field(default=None, ge=1, le=100)
    min_anchors: int | None = Field(default=None, ge=1, le=50)
    anchor_names: list[str] | None = None

    def job_params(self) -> dict[str, Any]:
        return self.model_dump(exclude={"kind"}, exclude_none=True)


class JobProgressResponse(BaseModel):
    processed: int
    total: int


class JobResponse(BaseModel):
    """A job record plus its liveness classification."""

    job_id: str
    category_id: str
    kind: JobKind
    status: JobStatus
    liveness: Liveness
    stage: str | None = None
    message: str | None = None
    progress: JobProgressResponse
    stop_requested: bool = False
    created_at: datetime
    updated_at: datetime
    finished_at: datetime | None = None
    result: dict[str, Any] | None = None

    @classmethod
    def from_job(cls, job: Job, liveness: Liveness) -> JobResponse:
        return cls(
            job_id=job.id,
            category_id=job.category_id,
            kind=job.kind,
            status=job.status,
            liveness=liveness,
            stage=job.stage,
            message=job.message,
            progress=JobProgressResponse(
                processed=job.progress.processed,
                total=job.progress.total,
            ),
            stop_requested=job.stop_requested,
            created_at=job.created_at,
            updated_at=job.updated_at,
            finished_at=job.finished_at,
            result=job.metadata.get("result"),
        )


class SnapshotResponse(BaseModel):
    """The active snapshot of a category with its stats."""

    snapshot_id: str
    category_id: str
    country: str
    language: str
    lifecycle: Lifecycle
    anchors: list[Anchor]
    stats: SnapshotStats
    certification: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> SnapshotResponse:
        return cls(
            snapshot_id=snapshot.id,
            category_id=snapshot.category_id,
            country=snapshot.country,
            language=snapshot.language,
            lifecycle=snapshot.lifecycle,
            anchors=snapshot.anchors,
            stats=snapshot.stats,
            certification=snapshot.certification,
            created_at=snapshot.created_at,
            updated_at=snapshot.updated_at,
        )


class CorpusHealthResponse(BaseModel):
    category_id: str
    snapshot_id: str
    lifecycle: Lifecycle
    report: HealthReport


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
