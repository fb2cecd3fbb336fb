"""Batching, caching and rate-gated access to the keyword-volume provider.

:class:`RateGatedVolumeClient` is the only path from the pipeline to an
:class:`~src.interfaces.keyword_volume_provider.IKeywordVolumeProvider`.
For each provider call it:

1. serves what it can from the volume cache,
2. wraps the remaining keywords in a :class:`Step` run by the
   :class:`ResilientTaskRunner` (timeout, cancel, retry),
3. acquires a slot on the process-wide :class:`RateGate` for every attempt,
4. stores fresh answers back in the cache.

Validation iterates batches in order with ``before_batch`` / ``after_batch``
hooks so the caller can check for stop requests and checkpoint rows between
batches.  Two consecutive empty batches abort with EmptyResultError rather
than letting the caller mark everything ZERO.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

import structlog

from src.interfaces.keyword_volume_provider import IKeywordVolumeProvider, KeywordVolume
from src.interfaces.volume_cache_provider import IVolumeCacheProvider
from src.models.resilience import ErrorClass, Step
from src.pipeline.resilient_runner import ResilientTaskRunner
from src.utils.concurrency import RateGate, get_rate_gate
from src.utils.errors import EmptyResultError, ProviderCallError, StepCancelledError
from src.utils.logging import get_logger
from src.utils.text_normalizer import normalize_keyword

MAX_BATCH_SIZE = 700
DEFAULT_BATCH_SIZE = 500

SURFACE_PRIMARY = "primary"
SURFACE_SECONDARY = "secondary"
SURFACE_RELATED = "related"

BeforeBatchHook = Callable[[int, int], Awaitable[None]]
AfterBatchHook = Callable[[int, dict[str, KeywordVolume]], Awaitable[None]]

_ProviderFetch = Callable[[list[str], int, str], Awaitable[list[KeywordVolume]]]


def chunk(items: Sequence[str], size: int) -> list[list[str]]:
    """Split ``items`` into consecutive lists of at most ``size`` elements."""
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class RateGatedVolumeClient:
    """Rate-gated, cached, retrying facade over a keyword-volume provider.

    Parameters
    ----------
    provider:
        The keyword-volume adapter.
    runner:
        Resilient runner applied to every provider call.
    gate:
        Shared limiter; the process-wide gate when omitted.
    cache:
        Optional per-keyword cache for the primary and secondary surfaces.
    location_code / language_code:
        Market passed to every call.
    batch_size:
        Keywords per provider call, capped at 700.
    """

    def __init__(
        self,
        provider: IKeywordVolumeProvider,
        runner: ResilientTaskRunner,
        gate: RateGate | None = None,
        cache: IVolumeCacheProvider | None = None,
        *,
        location_code: int = 2356,
        language_code: str = "en",
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._provider = provider
        self._runner = runner
        self._gate = gate or get_rate_gate()
        self._cache = cache
        self._location_code = location_code
        self._language_code = language_code
        self._batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def provider_name(self) -> str:
        return self._provider.get_provider_name()

    # ------------------------------------------------------------------
    # Single calls
    # ------------------------------------------------------------------

    async def fetch_batch(
        self,
        keywords: list[str],
        *,
        category_id: str = "unknown",
        snapshot_id: str = "unknown",
        cancel_event: asyncio.Event | None = None,
    ) -> list[KeywordVolume]:
        """Primary volume for one batch (at most ``batch_size`` keywords).

        Raises
        ------
        ProviderCallError
            When the runner gives up; ``error_class`` carries the reason.
        StepCancelledError
            When the cancel token fired.
        """
        return await self._call(
            SURFACE_PRIMARY,
            self._provider.fetch_search_volume,
            keywords[: self._batch_size],
            category_id=category_id,
            snapshot_id=snapshot_id,
            cancel_event=cancel_event,
        )

    async def fetch_secondary(
        self,
        keywords: list[str],
        *,
        category_id: str = "unknown",
        snapshot_id: str = "unknown",
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, KeywordVolume]:
        """Marketplace volume for any number of keywords, keyed by normalized text."""
        found: dict[str, KeywordVolume] = {}
        for batch in chunk(keywords, self._batch_size):
            volumes = await self._call(
                SURFACE_SECONDARY,
                self._provider.fetch_secondary_volume,
                batch,
                category_id=category_id,
                snapshot_id=snapshot_id,
                cancel_event=cancel_event,
            )
            found.update({normalize_keyword(v.keyword): v for v in volumes})
        return found

    async def discover_related(
        self,
        seeds: list[str],
        *,
        category_id: str = "unknown",
        snapshot_id: str = "unknown",
        cancel_event: asyncio.Event | None = None,
    ) -> list[KeywordVolume]:
        """Related terms (with attached volume) for a list of seed phrases."""
        if not seeds:
            return []
        return await self._call(
            SURFACE_RELATED,
            self._provider.fetch_related_keywords,
            seeds,
            category_id=category_id,
            snapshot_id=snapshot_id,
            cancel_event=cancel_event,
            use_cache=False,
        )

    # ------------------------------------------------------------------
    # Batched validation
    # ------------------------------------------------------------------

    async def validate_keywords(
        self,
        keywords: list[str],
        *,
        category_id: str = "unknown",
        snapshot_id: str = "unknown",
        cancel_event: asyncio.Event | None = None,
        before_batch: BeforeBatchHook | None = None,
        after_batch: AfterBatchHook | None = None,
    ) -> dict[str, KeywordVolume]:
        """Fetch primary volume for every keyword, batch by batch.

        Keywords the provider leaves out of a response are absent from the
        returned map; the caller decides what absence means.

        Raises
        ------
        EmptyResultError
            On the second consecutive batch that came back with no rows.
        """
        batches = chunk(keywords, self._batch_size)
        found: dict[str, KeywordVolume] = {}
        consecutive_empty = 0

        for index, batch in enumerate(batches):
            if before_batch is not None:
                await before_batch(index, len(batches))

            volumes = await self.fetch_batch(
                batch,
                category_id=category_id,
                snapshot_id=snapshot_id,
                cancel_event=cancel_event,
            )
            batch_map = {normalize_keyword(v.keyword): v for v in volumes}

            if batch_map:
                consecutive_empty = 0
            else:
                consecutive_empty += 1
                self._logger.warning(
                    "validation_batch_empty",
                    category_id=category_id,
                    snapshot_id=snapshot_id,
                    batch=index,
                    sent=len(batch),
                    consecutive=consecutive_empty,
                )
                if consecutive_empty >= 2:
                    raise EmptyResultError(
                        f"{consecutive_empty} consecutive empty batches "
                        f"for {category_id}/{snapshot_id}",
                        provider_name=self.provider_name,
                    )

            found.update(batch_map)
            if after_batch is not None:
                await after_batch(index, batch_map)

        self._logger.info(
            "validation_complete",
            category_id=category_id,
            snapshot_id=snapshot_id,
            sent=len(keywords),
            received=len(found),
            batches=len(batches),
        )
        return found

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _call(
        self,
        surface: str,
        fetch: _ProviderFetch,
        keywords: list[str],
        *,
        category_id: str,
        snapshot_id: str,
        cancel_event: asyncio.Event | None,
        use_cache: bool = True,
    ) -> list[KeywordVolume]:
        cached: dict[str, KeywordVolume] = {}
        if use_cache and self._cache is not None:
            cached = await self._cache.get_many(
                surface, self._location_code, self._language_code, keywords
            )
        missing = [k for k in keywords if k not in cached]
        if not missing:
            return list(cached.values())

        async def _invoke() -> list[KeywordVolume]:
            async with self._gate.slot(surface, category_id, snapshot_id):
                return await fetch(missing, self._location_code, self._language_code)

        step = Step(id=f"{surface}:{len(missing)}", call=_invoke)
        result = await self._runner.run_step(
            step, cancel_event, stage=surface, category_id=category_id
        )
        if not result.ok:
            if result.error is ErrorClass.CANCELLED:
                raise StepCancelledError(
                    f"{surface} call cancelled: {result.message}",
                    provider_name=self.provider_name,
                )
            raise ProviderCallError(
                message=f"{surface} call failed after {result.attempts} attempt(s): {result.message}",
                provider_name=self.provider_name,
                error_class=result.error,
            )

        fetched: list[KeywordVolume] = result.data or []
        if use_cache and self._cache is not None and fetched:
            await self._cache.set_many(
                surface,
                self._location_code,
                self._language_code,
                {normalize_keyword(v.keyword): v for v in fetched},
            )
        return [*cached.values(), *fetched]
