"""Custom exception hierarchy for demandCorpus.

All application exceptions inherit from :class:`DemandCorpusError`, which
carries an optional ``provider_name`` so error handlers can identify which
external surface (e.g. "dataforseo", "sqlite_snapshot_store") caused the
failure.

The hierarchy is organized by pipeline layer:

    DemandCorpusError  (base -- catch-all for any demandCorpus error)
    +-- ProviderCallError         (keyword-volume API call failed; carries ErrorClass)
    |   +-- RateLimitError        (HTTP 429 / provider quota exceeded)
    |   +-- ResponseParseError    (payload could not be decoded)
    |   +-- ProviderUnavailableError (explicit "offline" signal, credentials missing)
    +-- StepCancelledError        (cancel token fired during a step)
    +-- EmptyResultError          (provider returned nothing twice in a row)
    +-- PoolCancelledError        (bounded task pool aborted)
    +-- GrowthStalledError        (growth pass made no measurable progress)
    +-- LifecycleError            (illegal lifecycle transition)
    +-- SnapshotNotFoundError     (snapshot id unknown to the store)
    +-- JobControlError           (job register misuse)
    |   +-- JobConflictError      (another job is active for the category)
    |   +-- JobStoppedError       (operator requested a stop)
    |   +-- JobFinalizedError     (write attempted on a terminal job)
    |   +-- JobNotFoundError
    +-- PipelineError             (orchestration failures)
    +-- ConfigurationError        (startup / missing config)

Transient vs terminal is decided by :class:`~src.models.resilience.ErrorClass`
inside the resilient runner, not by the exception type alone -- a
``ProviderCallError`` with ``ErrorClass.HTTP_5XX`` is retried, the same type
with ``ErrorClass.HTTP_4XX`` is not.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.models.resilience import ErrorClass


class DemandCorpusError(Exception):
    """Base exception for all demandCorpus errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  ``__str__`` prefixes the provider name in brackets for log
    scanning, e.g. ``[dataforseo] Proxy HTTP 502``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# External keyword-volume API errors
# ---------------------------------------------------------------------------


class ProviderCallError(DemandCorpusError):
    """Raised when a call to the keyword-volume API fails.

    ``error_class`` is the resilient runner's classification of the failure;
    ``status_code`` is the HTTP status or provider task status when known.
    """

    def __init__(
        self,
        message: str = "Keyword volume provider call failed",
        provider_name: str | None = None,
        error_class: ErrorClass | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._error_class = error_class
        self._status_code = status_code

    @property
    def error_class(self) -> ErrorClass | None:
        return self._error_class

    @property
    def status_code(self) -> int | None:
        return self._status_code


class RateLimitError(ProviderCallError):
    """Raised when the provider answers 429 or an equivalent quota status."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
        status_code: int | None = 429,
    ) -> None:
        from src.models.resilience import ErrorClass

        super().__init__(
            message=message,
            provider_name=provider_name,
            error_class=ErrorClass.HTTP_429,
            status_code=status_code,
        )


class ResponseParseError(ProviderCallError):
    """Raised when a provider response body cannot be decoded."""

    def __init__(
        self,
        message: str = "Provider response could not be parsed",
        provider_name: str | None = None,
    ) -> None:
        from src.models.resilience import ErrorClass

        super().__init__(
            message=message,
            provider_name=provider_name,
            error_class=ErrorClass.PARSE_ERROR,
        )


class ProviderUnavailableError(ProviderCallError):
    """Raised when the provider is explicitly offline or not configured.

    Never retried: the condition will not clear within a backoff window.
    """

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        from src.models.resilience import ErrorClass

        super().__init__(
            message=message,
            provider_name=provider_name,
            error_class=ErrorClass.OFFLINE,
        )


# ---------------------------------------------------------------------------
# Execution control errors
# ---------------------------------------------------------------------------


class StepCancelledError(DemandCorpusError):
    """Raised inside the resilient runner when the cancel token fires."""

    def __init__(
        self,
        message: str = "Step cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PoolCancelledError(DemandCorpusError):
    """Raised by the bounded task pool when its cancel token fired."""

    def __init__(
        self,
        message: str = "Task pool aborted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyResultError(DemandCorpusError):
    """Raised when the volume provider returns no rows for consecutive batches."""

    def __init__(
        self,
        message: str = "Provider returned no rows for consecutive batches",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Corpus errors
# ---------------------------------------------------------------------------


class GrowthStalledError(DemandCorpusError):
    """Raised when a growth pass generated candidates but nothing moved."""

    def __init__(
        self,
        message: str = "Growth pass produced no new rows and no validity gain",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LifecycleError(DemandCorpusError):
    """Raised on an operation that is illegal for the snapshot's lifecycle."""

    def __init__(
        self,
        message: str = "Illegal snapshot lifecycle transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class SnapshotNotFoundError(DemandCorpusError):
    """Raised when a snapshot id cannot be resolved by the store."""

    def __init__(
        self,
        message: str = "Snapshot not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Job control errors
# ---------------------------------------------------------------------------


class JobControlError(DemandCorpusError):
    """Base class for job register errors."""

    def __init__(
        self,
        message: str = "Job control error",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobConflictError(JobControlError):
    """Raised when a category already has a non-terminal job."""

    def __init__(
        self,
        message: str = "Another job is already active for this category",
        provider_name: str | None = None,
        active_job_id: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._active_job_id = active_job_id

    @property
    def active_job_id(self) -> str | None:
        return self._active_job_id


class JobStoppedError(JobControlError):
    """Raised at a checkpoint when the operator requested a stop."""

    def __init__(
        self,
        message: str = "Job stopped by operator",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobFinalizedError(JobControlError):
    """Raised when progress is written to a job that already reached a terminal state."""

    def __init__(
        self,
        message: str = "Job is already finalized",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobNotFoundError(JobControlError):
    """Raised when a job id is unknown to the register."""

    def __init__(
        self,
        message: str = "Job not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------


class PipelineError(DemandCorpusError):
    """Raised when orchestration fails (unknown job kind, missing params)."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DemandCorpusError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
