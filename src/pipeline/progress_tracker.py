"""Job progress tracking with callback-based listener notification.

Tracks the latest stage and progress for each running job and broadcasts
updates to listener callbacks registered per category.  Listeners are
keyed by category id so an operator watching one category never sees
another category's ticks.

# ─── HOW PROGRESS TRACKING WORKS ──────────────────────────────────────
#
# Observer pattern:
#
#   GrowthEngine ──update()──→ ProgressTracker ──callback()──→ CLI printer
#                                                          ──→ (any other listener)
#
#   1. The growth engine calls tracker.update(category_id, job_id, stage, ...)
#      at each pass and batch boundary
#   2. ProgressTracker stores the latest event and calls all listeners
#      registered for that category
#   3. Listener errors are logged and skipped
#   4. Both sync and async callbacks are supported
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from src.utils.logging import get_logger


@dataclass(frozen=True)
class ProgressEvent:
    """One progress tick for a job."""

    category_id: str
    job_id: str | None
    stage: str
    processed: int = 0
    total: int = 0
    message: str = ""

    @property
    def percent(self) -> float:
        if self.total <= 0:
            return 0.0
        return max(0.0, min(100.0, self.processed / self.total * 100.0))


class ProgressTracker:
    """Tracks and broadcasts job progress via callbacks.

    External consumers (the CLI's live printer, tests) register callbacks
    for a category; they are invoked with a :class:`ProgressEvent` whenever
    :meth:`update` is called for that category.
    """

    def __init__(self) -> None:
        # Latest event per category
        self._latest: dict[str, ProgressEvent] = {}
        # Per-category list of listener callbacks
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def update(
        self,
        category_id: str,
        job_id: str | None,
        stage: str,
        processed: int = 0,
        total: int = 0,
        message: str = "",
    ) -> None:
        """Record a progress tick and notify the category's listeners.

        Parameters
        ----------
        category_id:
            Category whose job is reporting.
        job_id:
            Reporting job; ``None`` for direct (job-less) runs.
        stage:
            Stage label, e.g. ``"grow_pass_2/12"``.
        processed, total:
            Units of work done out of the known total.
        message:
            Human-readable status message.
        """
        event = ProgressEvent(
            category_id=category_id,
            job_id=job_id,
            stage=stage,
            processed=processed,
            total=total,
            message=message,
        )
        self._latest[category_id] = event

        self._logger.debug(
            "progress_update",
            category_id=category_id,
            job_id=job_id,
            stage=stage,
            percent=round(event.percent, 1),
        )

        await self._notify_listeners(event)

    def register_listener(self, category_id: str, callback: Callable) -> None:
        """Register a sync or async ``callback(event)`` for a category."""
        listeners = self._listeners.setdefault(category_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                category_id=category_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, category_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(category_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                category_id=category_id,
                remaining_listeners=len(listeners),
            )

    def get_status(self, category_id: str) -> ProgressEvent | None:
        """Return the latest event for a category, or ``None``."""
        return self._latest.get(category_id)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, event: ProgressEvent) -> None:
        """Invoke every listener for the event's category.

        A listener that raises is logged and skipped; the remaining
        listeners still run.
        """
        for callback in list(self._listeners.get(event.category_id, [])):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    category_id=event.category_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
