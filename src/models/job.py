"""Job control models.

A :class:`Job` is the persisted record of one long-running operation
(grow, certify, rebuild, ...).  It is created RUNNING by the register,
heartbeated while work is in flight, and finalized exactly once into one of
the terminal statuses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobKind(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Closed set of operations the orchestrator can run.

    Each member maps to exactly one handler in
    :class:`~src.pipeline.orchestrator.CorpusPipeline`.
    """

    GROW = "GROW"
    VALIDATE = "VALIDATE"
    CERTIFY = "CERTIFY"
    REBUILD = "REBUILD"
    EXPAND_ANCHORS = "EXPAND_ANCHORS"


class JobStatus(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    STOP_REQUESTED = "STOP_REQUESTED"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.STOPPED, JobStatus.COMPLETED, JobStatus.FAILED)


class Liveness(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Heartbeat-derived health of a non-terminal job."""

    ALIVE = "ALIVE"
    STALE = "STALE"    # slow: heartbeat late but under the reap threshold
    ZOMBIE = "ZOMBIE"  # dead: must be reaped by whoever observes it
    FINISHED = "FINISHED"


class JobProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    processed: int = 0
    total: int = 0


class Job(BaseModel):
    """Persisted record of a long-running operation."""

    model_config = ConfigDict(frozen=True)

    id: str
    category_id: str
    kind: JobKind
    status: JobStatus = JobStatus.RUNNING
    progress: JobProgress = Field(default_factory=JobProgress)
    stop_requested: bool = False
    stage: str = ""
    message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
