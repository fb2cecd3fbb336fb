"""demandCorpus API layer: routes, schemas and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    CorpusHealthResponse,
    ErrorResponse,
    HealthResponse,
    JobResponse,
    SnapshotResponse,
    StartJobRequest,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "CorpusHealthResponse",
    "ErrorResponse",
    "HealthResponse",
    "JobResponse",
    "SnapshotResponse",
    "StartJobRequest",
]
