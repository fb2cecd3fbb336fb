"""Unit tests for RateGatedVolumeClient batching, caching and failure paths."""

from __future__ import annotations

import asyncio

import pytest

from src.interfaces.keyword_volume_provider import KeywordVolume
from src.models.resilience import ErrorClass, TaskOptions
from src.pipeline.rate_gated_client import MAX_BATCH_SIZE, RateGatedVolumeClient, chunk
from src.pipeline.resilient_runner import ResilientTaskRunner
from src.providers.cache.memory_volume_cache import MemoryVolumeCache
from src.utils.concurrency import RateGate
from src.utils.errors import (
    EmptyResultError,
    ProviderCallError,
    RateLimitError,
    StepCancelledError,
)


# ======================================================================
# chunk
# ======================================================================


class TestChunk:
    def test_splits_into_consecutive_batches(self) -> None:
        assert chunk(["a", "b", "c", "d", "e"], 2) == [["a", "b"], ["c", "d"], ["e"]]

    def test_empty(self) -> None:
        assert chunk([], 3) == []


# ======================================================================
# Single calls
# ======================================================================


class TestFetchBatch:
    @pytest.mark.asyncio
    async def test_returns_provider_volumes(self, volume_client, fake_provider) -> None:
        fake_provider.volumes = {"gillette razor": 1200}
        volumes = await volume_client.fetch_batch(["gillette razor", "razor blade"])

        by_keyword = {v.keyword: v.volume for v in volumes}
        assert by_keyword == {"gillette razor": 1200, "razor blade": 0}

    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider(self, volume_client, fake_provider) -> None:
        fake_provider.default_volume = 10
        await volume_client.fetch_batch(["gillette razor"])
        volumes = await volume_client.fetch_batch(["gillette razor"])

        assert len(fake_provider.primary_calls) == 1
        assert volumes[0].volume == 10

    @pytest.mark.asyncio
    async def test_partial_cache_hit_fetches_only_missing(self, volume_client, fake_provider) -> None:
        fake_provider.default_volume = 10
        await volume_client.fetch_batch(["gillette razor"])
        volumes = await volume_client.fetch_batch(["gillette razor", "philips trimmer"])

        assert fake_provider.primary_calls[-1] == ["philips trimmer"]
        assert {v.keyword for v in volumes} == {"gillette razor", "philips trimmer"}

    def test_batch_size_capped(self, fake_provider, fast_runner, rate_gate) -> None:
        client = RateGatedVolumeClient(fake_provider, fast_runner, rate_gate, batch_size=5000)
        assert client.batch_size == MAX_BATCH_SIZE

    @pytest.mark.asyncio
    async def test_every_attempt_passes_the_gate(self, volume_client, fake_provider, rate_gate) -> None:
        fake_provider.errors = [RateLimitError(), RateLimitError()]
        await volume_client.fetch_batch(["gillette razor"], category_id="shaving", snapshot_id="s1")

        assert len(fake_provider.primary_calls) == 3
        assert rate_gate.calls_for("primary", "shaving", "s1") == 3

    @pytest.mark.asyncio
    async def test_terminal_failure_raises_provider_error(self, volume_client, fake_provider) -> None:
        fake_provider.errors = [ProviderCallError("bad request", error_class=ErrorClass.HTTP_4XX)]
        with pytest.raises(ProviderCallError) as excinfo:
            await volume_client.fetch_batch(["gillette razor"])

        assert excinfo.value.error_class == ErrorClass.HTTP_4XX
        assert len(fake_provider.primary_calls) == 1

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_with_last_class(self, volume_client, fake_provider) -> None:
        fake_provider.errors = [RateLimitError() for _ in range(3)]
        with pytest.raises(ProviderCallError) as excinfo:
            await volume_client.fetch_batch(["gillette razor"])
        assert excinfo.value.error_class == ErrorClass.HTTP_429

    @pytest.mark.asyncio
    async def test_cancel_raises_step_cancelled(self, volume_client, fake_provider) -> None:
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(StepCancelledError):
            await volume_client.fetch_batch(["gillette razor"], cancel_event=cancel)
        assert fake_provider.primary_calls == []


class TestSecondaryAndRelated:
    @pytest.mark.asyncio
    async def test_secondary_keyed_by_normalized_text(self, volume_client, fake_provider) -> None:
        fake_provider.secondary = {"Gillette Razor": 30}
        found = await volume_client.fetch_secondary(["Gillette Razor", "razor blade"])

        assert set(found) == {"gillette razor"}
        assert found["gillette razor"].secondary_volume == 30

    @pytest.mark.asyncio
    async def test_related_not_cached(self, volume_client, fake_provider) -> None:
        fake_provider.related = [KeywordVolume(keyword="gillette mach3", volume=900)]
        await volume_client.discover_related(["gillette"])
        related = await volume_client.discover_related(["gillette"])

        assert len(fake_provider.related_calls) == 2
        assert related[0].keyword == "gillette mach3"

    @pytest.mark.asyncio
    async def test_related_with_no_seeds_makes_no_call(self, volume_client, fake_provider) -> None:
        assert await volume_client.discover_related([]) == []
        assert fake_provider.related_calls == []


# ======================================================================
# validate_keywords
# ======================================================================


class TestValidateKeywords:
    @pytest.fixture()
    def small_batch_client(self, fake_provider, fast_runner) -> RateGatedVolumeClient:
        return RateGatedVolumeClient(
            fake_provider,
            fast_runner,
            RateGate(max_concurrent=1, requests_per_minute=0),
            MemoryVolumeCache(max_size=100, ttl=60),
            batch_size=2,
        )

    @pytest.mark.asyncio
    async def test_hooks_run_around_each_batch(self, small_batch_client, fake_provider) -> None:
        fake_provider.default_volume = 5
        events: list[tuple[str, int, int]] = []

        async def _before(index: int, count: int) -> None:
            events.append(("before", index, count))

        async def _after(index: int, batch_map: dict[str, KeywordVolume]) -> None:
            events.append(("after", index, len(batch_map)))

        found = await small_batch_client.validate_keywords(
            ["a razor", "b razor", "c razor"],
            before_batch=_before,
            after_batch=_after,
        )

        assert len(found) == 3
        assert events == [
            ("before", 0, 2),
            ("after", 0, 2),
            ("before", 1, 2),
            ("after", 1, 1),
        ]

    @pytest.mark.asyncio
    async def test_absent_keywords_are_left_out(self, small_batch_client, fake_provider) -> None:
        fake_provider.volumes = {"a razor": 10}
        fake_provider.default_volume = None
        found = await small_batch_client.validate_keywords(["a razor", "b razor"])
        assert set(found) == {"a razor"}

    @pytest.mark.asyncio
    async def test_single_empty_batch_tolerated(self, small_batch_client, fake_provider) -> None:
        fake_provider.volumes = {"c razor": 10}
        fake_provider.default_volume = None
        found = await small_batch_client.validate_keywords(["a razor", "b razor", "c razor"])
        assert set(found) == {"c razor"}

    @pytest.mark.asyncio
    async def test_two_consecutive_empty_batches_raise(self, small_batch_client, fake_provider) -> None:
        fake_provider.default_volume = None
        after_calls: list[int] = []

        async def _after(index: int, _batch_map: dict[str, KeywordVolume]) -> None:
            after_calls.append(index)

        with pytest.raises(EmptyResultError):
            await small_batch_client.validate_keywords(
                ["a razor", "b razor", "c razor", "d razor"],
                after_batch=_after,
            )
        assert after_calls == [0]

    @pytest.mark.asyncio
    async def test_before_hook_can_abort(self, small_batch_client, fake_provider) -> None:
        async def _before(index: int, _count: int) -> None:
            if index == 1:
                raise RuntimeError("stop here")

        with pytest.raises(RuntimeError, match="stop here"):
            await small_batch_client.validate_keywords(
                ["a razor", "b razor", "c razor"],
                before_batch=_before,
            )
        assert len(fake_provider.primary_calls) == 1


class TestRetryThroughClient:
    @pytest.mark.asyncio
    async def test_transient_server_error_recovers(self, fake_provider, rate_gate) -> None:
        delays: list[float] = []

        async def _sleep(delay: float) -> None:
            delays.append(delay)

        runner = ResilientTaskRunner(
            TaskOptions(base_delay_seconds=1.0, max_retries=2),
            sleep=_sleep,
            jitter=lambda _upper: 0.0,
        )
        client = RateGatedVolumeClient(fake_provider, runner, rate_gate)
        fake_provider.default_volume = 7
        fake_provider.errors = [ProviderCallError("upstream 503", error_class=ErrorClass.HTTP_5XX)]

        volumes = await client.fetch_batch(["gillette razor"])

        assert volumes[0].volume == 7
        assert delays == [1.0]
