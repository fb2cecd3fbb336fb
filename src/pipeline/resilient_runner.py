"""Resilient execution of external calls: timeout, cancel, classify, retry.

Every call to the keyword-volume API is wrapped in a :class:`Step` and run
by :class:`ResilientTaskRunner`.  Per attempt the call is raced against a
hard timeout and the job's cancel token; whichever finishes first wins and
the loser is cancelled.  Failures are classified into an
:class:`~src.models.resilience.ErrorClass`; transient classes are retried
with exponential backoff plus jitter, terminal classes end the step.

# ─── ATTEMPT TIMELINE ─────────────────────────────────────────────────
#
#   attempt 1 ──fail(transient)──> sleep base·2^0 + jitter
#   attempt 2 ──fail(transient)──> sleep base·2^1 + jitter
#   attempt 3 ──fail──> StepResult(FAILED, attempts=3)
#
#   The backoff sleep itself is raced against the cancel token, so a stop
#   request never waits out a long backoff.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx
import structlog

from src.models.resilience import (
    ErrorClass,
    Step,
    StepResult,
    StepStatus,
    TaskOptions,
    summarize_outcome,
)
from src.utils.errors import ProviderCallError, StepCancelledError
from src.utils.logging import get_logger


def classify_error(exc: BaseException) -> ErrorClass:
    """Map an exception raised by a step to an :class:`ErrorClass`.

    Anything unrecognised is treated as a network failure (transient).
    """
    if isinstance(exc, ProviderCallError) and exc.error_class is not None:
        return exc.error_class
    if isinstance(exc, StepCancelledError):
        return ErrorClass.CANCELLED
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        return ErrorClass.TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return ErrorClass.HTTP_429
        if status in (408, 504):
            return ErrorClass.TIMEOUT
        return ErrorClass.HTTP_5XX if status >= 500 else ErrorClass.HTTP_4XX
    if isinstance(exc, json.JSONDecodeError):
        return ErrorClass.PARSE_ERROR
    return ErrorClass.NETWORK


def _default_jitter(upper: float) -> float:
    return random.uniform(0.0, upper) if upper > 0 else 0.0


class ResilientTaskRunner:
    """Runs ordered steps with per-attempt timeout, cancellation and retry.

    Parameters
    ----------
    options:
        Shared timeout / retry / backoff settings.
    sleep:
        Awaitable sleep used for backoff (injected in tests to record delays).
    jitter:
        ``jitter(max_jitter) -> seconds``; uniform in ``[0, max_jitter]`` by
        default.
    """

    def __init__(
        self,
        options: TaskOptions | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float], float] = _default_jitter,
    ) -> None:
        self._options = options or TaskOptions()
        self._sleep = sleep
        self._jitter = jitter
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def options(self) -> TaskOptions:
        return self._options

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        steps: Sequence[Step],
        cancel_event: asyncio.Event | None = None,
        *,
        stage: str = "task",
        category_id: str = "unknown",
    ) -> list[StepResult]:
        """Run ``steps`` in order and return one result per executed step.

        With ``abort_on_chain_failure`` the first failed step ends the chain:
        later steps are skipped and produce no result record.
        """
        results: list[StepResult] = []
        for index, step in enumerate(steps):
            result = await self.run_step(step, cancel_event, stage=stage, category_id=category_id)
            results.append(result)
            if not result.ok and self._options.abort_on_chain_failure:
                skipped = len(steps) - index - 1
                if skipped:
                    self._logger.warning(
                        "step_chain_aborted",
                        stage=stage,
                        category_id=category_id,
                        failed_step=step.id,
                        skipped=skipped,
                    )
                break
        self._logger.debug(
            "task_chain_done",
            stage=stage,
            category_id=category_id,
            steps=len(results),
            outcome=summarize_outcome(results).value,
        )
        return results

    async def run_step(
        self,
        step: Step,
        cancel_event: asyncio.Event | None = None,
        *,
        stage: str = "task",
        category_id: str = "unknown",
    ) -> StepResult:
        """Run a single step through the attempt loop."""
        last_error = ErrorClass.NETWORK
        last_message = ""
        attempts = 0

        for attempt in range(1, self._options.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                return self._cancelled(step, attempts, "cancelled before attempt")

            if attempt > 1:
                delay = self._options.backoff_floor(attempt) + self._jitter(
                    self._options.max_jitter_seconds
                )
                if await self._interruptible_sleep(delay, cancel_event):
                    return self._cancelled(step, attempts, "cancelled during backoff")

            attempts = attempt
            started = time.monotonic()
            try:
                data = await self._race(step, cancel_event)
            except Exception as exc:
                last_error = classify_error(exc)
                last_message = str(exc) or type(exc).__name__
                self._logger.warning(
                    "step_attempt_failed",
                    stage=stage,
                    category_id=category_id,
                    step=step.id,
                    attempt=attempt,
                    error_class=last_error.value,
                    transient=last_error.is_transient,
                    duration_ms=round((time.monotonic() - started) * 1000),
                    error=last_message,
                )
                if not last_error.is_transient:
                    break
                continue

            self._logger.info(
                "step_attempt_succeeded",
                stage=stage,
                category_id=category_id,
                step=step.id,
                attempt=attempt,
                duration_ms=round((time.monotonic() - started) * 1000),
            )
            return StepResult(id=step.id, status=StepStatus.SUCCESS, data=data, attempts=attempt)

        return StepResult(
            id=step.id,
            status=StepStatus.FAILED,
            error=last_error,
            message=last_message,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _cancelled(step: Step, attempts: int, message: str) -> StepResult:
        return StepResult(
            id=step.id,
            status=StepStatus.FAILED,
            error=ErrorClass.CANCELLED,
            message=message,
            attempts=attempts,
        )

    async def _race(self, step: Step, cancel_event: asyncio.Event | None) -> Any:
        """Await ``step.call()`` against the timeout and the cancel token."""
        call_task = asyncio.ensure_future(step.call())
        waiters: set[asyncio.Future[Any]] = {call_task}
        cancel_task: asyncio.Future[Any] | None = None
        if cancel_event is not None:
            cancel_task = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, pending = await asyncio.wait(
                waiters,
                timeout=self._options.timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            for task in waiters:
                task.cancel()
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if call_task in done:
            return call_task.result()
        if cancel_task is not None and cancel_task in done:
            raise StepCancelledError(f"Step {step.id} cancelled")
        raise asyncio.TimeoutError(
            f"Step {step.id} exceeded {self._options.timeout_seconds}s"
        )

    async def _interruptible_sleep(
        self,
        delay: float,
        cancel_event: asyncio.Event | None,
    ) -> bool:
        """Sleep ``delay`` seconds; return True if the cancel token fired first."""
        if cancel_event is None:
            await self._sleep(delay)
            return False
        if cancel_event.is_set():
            return True

        sleep_task = asyncio.ensure_future(self._sleep(delay))
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, pending = await asyncio.wait(
                {sleep_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            sleep_task.cancel()
            cancel_task.cancel()
            raise
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        return cancel_task in done
