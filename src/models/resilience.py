"""Models for the resilient call layer.

Defines the failure taxonomy (:class:`ErrorClass`), per-step results and the
aggregate task outcome produced by :class:`~src.pipeline.resilient_runner.ResilientTaskRunner`.

The aggregate outcome is deliberately a pure function of the per-step result
list (:func:`summarize_outcome`) so that anything holding the list -- an API
response, a persisted job record -- can recompute it without access to the
runner.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class ErrorClass(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Classification of a failed attempt.

    Transient classes are retried with backoff; terminal classes end the
    attempt loop immediately.
    """

    TIMEOUT = "TIMEOUT"
    NETWORK = "NETWORK"
    HTTP_5XX = "5XX"
    HTTP_429 = "429"
    HTTP_4XX = "4XX"
    CANCELLED = "CANCELLED"
    PARSE_ERROR = "PARSE_ERROR"
    OFFLINE = "OFFLINE"

    @property
    def is_transient(self) -> bool:
        return self in _TRANSIENT


_TRANSIENT = frozenset(
    {ErrorClass.TIMEOUT, ErrorClass.NETWORK, ErrorClass.HTTP_5XX, ErrorClass.HTTP_429}
)


class StepStatus(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    SUCCESS = "Success"
    FAILED = "Failed"


class TaskOutcome(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    SUCCESS = "Success"
    PARTIAL = "Partial"
    FAILED = "Failed"


@dataclass(frozen=True)
class TaskOptions:
    """Options shared by every step of one resilient task."""

    timeout_seconds: float = 120.0
    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_jitter_seconds: float = 0.5
    abort_on_chain_failure: bool = True

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_floor(self, attempt: int) -> float:
        """Delay before ``attempt`` (1-based) without jitter; 0 for the first."""
        if attempt <= 1:
            return 0.0
        return self.base_delay_seconds * (2 ** (attempt - 2))


@dataclass(frozen=True)
class Step:
    """A named external operation.  ``call`` is invoked once per attempt."""

    id: str
    call: Callable[[], Awaitable[Any]]


class StepResult(BaseModel):
    """Outcome of one step after all its attempts."""

    model_config = ConfigDict(frozen=True)

    id: str
    status: StepStatus
    data: Any = None
    error: ErrorClass | None = None
    message: str = ""
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.SUCCESS


def summarize_outcome(results: list[StepResult]) -> TaskOutcome:
    """Aggregate per-step results: all ok, all failed, or a mix.

    An empty list (nothing ran) counts as SUCCESS.
    """
    succeeded = sum(1 for r in results if r.ok)
    if succeeded == len(results):
        return TaskOutcome.SUCCESS
    if succeeded == 0:
        return TaskOutcome.FAILED
    return TaskOutcome.PARTIAL
