"""Shared concurrency primitives for the corpus pipeline.

Two patterns are exposed:

1. **RateGate** -- the single process-wide limiter in front of the
   keyword-volume API.  A semaphore caps in-flight calls and a lock-guarded
   "next slot" timestamp enforces a minimum spacing derived from the
   provider's requests-per-minute quota.  Every category and snapshot
   shares the same gate; the ``(surface, category, snapshot)`` key passed to
   :meth:`RateGate.slot` is used for logging and counters only, never for
   separate budgets.

2. **run_bounded** -- a fan-out executor with a fixed number of workers
   pulling from a shared index.  It honours a cancel token before each new
   item, lets in-flight items drain instead of abandoning them mid-write,
   and fails fast: the first error stops new starts and is re-raised once
   the workers are idle.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import TypeVar

import structlog

from src.utils.errors import PoolCancelledError
from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Global rate gate
# ---------------------------------------------------------------------------


class RateGate:
    """Concurrency + request-spacing limiter for one external quota.

    Parameters
    ----------
    max_concurrent:
        Maximum number of calls in flight at once.
    requests_per_minute:
        Provider quota; calls are spaced at least ``60 / rpm`` seconds apart.
        ``0`` disables spacing.
    clock / sleep:
        Injected for tests.
    """

    def __init__(
        self,
        max_concurrent: int = 2,
        requests_per_minute: int = 10,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_concurrent = max(1, max_concurrent)
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._min_interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._spacing_lock = asyncio.Lock()
        self._next_slot = 0.0
        self._clock = clock
        self._sleep = sleep
        self._in_flight = 0
        self._calls_by_key: Counter[tuple[str, str, str]] = Counter()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def min_interval(self) -> float:
        return self._min_interval

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def calls_for(self, surface: str, category_id: str, snapshot_id: str) -> int:
        """Number of calls that passed the gate for one observability key."""
        return self._calls_by_key[(surface, category_id, snapshot_id)]

    async def _wait_for_spacing(self) -> float:
        if self._min_interval <= 0:
            return 0.0
        async with self._spacing_lock:
            now = self._clock()
            wait = max(0.0, self._next_slot - now)
            self._next_slot = max(now, self._next_slot) + self._min_interval
        if wait > 0:
            await self._sleep(wait)
        return wait

    @asynccontextmanager
    async def slot(
        self,
        surface: str,
        category_id: str = "unknown",
        snapshot_id: str = "unknown",
    ) -> AsyncIterator[None]:
        """Hold one provider slot for the duration of the ``async with`` block."""
        key = (surface, category_id, snapshot_id)
        async with self._semaphore:
            waited = await self._wait_for_spacing()
            self._in_flight += 1
            self._calls_by_key[key] += 1
            _logger.debug(
                "rate_gate_acquired",
                surface=surface,
                category_id=category_id,
                snapshot_id=snapshot_id,
                waited_s=round(waited, 3),
                in_flight=self._in_flight,
            )
            try:
                yield
            finally:
                self._in_flight -= 1


_DEFAULT_GATE: RateGate | None = None


def get_rate_gate(max_concurrent: int = 2, requests_per_minute: int = 10) -> RateGate:
    """Return the process-wide gate, creating it on first use.

    Later calls return the same instance regardless of arguments so that
    every client in the process shares one quota.
    """
    global _DEFAULT_GATE
    if _DEFAULT_GATE is None:
        _DEFAULT_GATE = RateGate(
            max_concurrent=max_concurrent,
            requests_per_minute=requests_per_minute,
        )
    return _DEFAULT_GATE


# ---------------------------------------------------------------------------
# Bounded task pool
# ---------------------------------------------------------------------------


async def run_bounded(
    factories: Sequence[Callable[[], Awaitable[_T]]],
    *,
    concurrency: int = 3,
    cancel_event: asyncio.Event | None = None,
) -> list[_T]:
    """Run coroutine factories with at most ``concurrency`` in flight.

    Parameters
    ----------
    factories:
        Zero-argument callables returning awaitables.  A factory is only
        invoked once a worker picks it up, so nothing external happens for
        items that are never started.
    concurrency:
        Worker count (clamped to ``1..len(factories)``).
    cancel_event:
        Checked before each new item.  Once set, no further items start;
        items already running are awaited to completion.

    Returns
    -------
    list
        Results in input order.

    Raises
    ------
    PoolCancelledError
        If the cancel token fired before every item started.
    Exception
        The first error raised by any item (after in-flight items drain).
    """
    total = len(factories)
    if total == 0:
        return []

    results: list[_T | None] = [None] * total
    next_index = 0
    first_error: BaseException | None = None
    cancelled = False

    async def _worker(worker_id: int) -> None:
        nonlocal next_index, first_error, cancelled
        while True:
            if first_error is not None:
                return
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                return
            if next_index >= total:
                return
            index = next_index
            next_index += 1
            try:
                results[index] = await factories[index]()
            except Exception as exc:
                if first_error is None:
                    first_error = exc
                    _logger.warning(
                        "pool_item_failed",
                        worker=worker_id,
                        index=index,
                        error=str(exc),
                    )
                return

    workers = max(1, min(concurrency, total))
    await asyncio.gather(*(_worker(i) for i in range(workers)))

    if first_error is not None:
        raise first_error
    if cancelled and next_index < total:
        raise PoolCancelledError(f"Task pool aborted after {next_index}/{total} items started")
    if cancelled:
        # Every item had started before the token fired; they all drained.
        _logger.info("pool_cancel_after_drain", started=next_index, total=total)
    return results  # type: ignore[return-value]
