"""Unit tests for MemoryVolumeCache and ProgressTracker."""

from __future__ import annotations

import pytest

from src.interfaces.keyword_volume_provider import KeywordVolume
from src.pipeline.progress_tracker import ProgressEvent, ProgressTracker
from src.providers.cache.memory_volume_cache import MemoryVolumeCache


# ======================================================================
# MemoryVolumeCache
# ======================================================================


class TestMemoryVolumeCache:
    @pytest.fixture()
    def cache(self) -> MemoryVolumeCache:
        return MemoryVolumeCache(max_size=100, ttl=3600)

    @pytest.mark.asyncio
    async def test_missing_keywords_are_not_returned(self, cache: MemoryVolumeCache) -> None:
        assert await cache.get_many("google", 2356, "en", ["razor"]) == {}

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache: MemoryVolumeCache) -> None:
        value = KeywordVolume(keyword="razor", volume=100)
        await cache.set_many("google", 2356, "en", {"razor": value})

        hits = await cache.get_many("google", 2356, "en", ["razor", "blade"])
        assert hits == {"razor": value}
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_keyed_by_surface_and_market(self, cache: MemoryVolumeCache) -> None:
        await cache.set_many("google", 2356, "en", {"razor": KeywordVolume(keyword="razor", volume=1)})

        assert await cache.get_many("amazon", 2356, "en", ["razor"]) == {}
        assert await cache.get_many("google", 2840, "en", ["razor"]) == {}
        assert await cache.get_many("google", 2356, "hi", ["razor"]) == {}

    @pytest.mark.asyncio
    async def test_overwrite(self, cache: MemoryVolumeCache) -> None:
        await cache.set_many("google", 2356, "en", {"razor": KeywordVolume(keyword="razor", volume=1)})
        await cache.set_many("google", 2356, "en", {"razor": KeywordVolume(keyword="razor", volume=2)})
        hits = await cache.get_many("google", 2356, "en", ["razor"])
        assert hits["razor"].volume == 2

    @pytest.mark.asyncio
    async def test_clear(self, cache: MemoryVolumeCache) -> None:
        await cache.set_many("google", 2356, "en", {"razor": KeywordVolume(keyword="razor")})
        await cache.clear()
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_max_size_evicts(self) -> None:
        cache = MemoryVolumeCache(max_size=2, ttl=3600)
        values = {k: KeywordVolume(keyword=k) for k in ("a", "b", "c")}
        await cache.set_many("google", 2356, "en", values)
        assert len(cache) == 2


# ======================================================================
# ProgressTracker
# ======================================================================


class TestProgressEvent:
    @pytest.mark.parametrize(
        ("processed", "total", "percent"),
        [(0, 0, 0.0), (1, 4, 25.0), (5, 4, 100.0), (3, -1, 0.0)],
    )
    def test_percent(self, processed, total, percent) -> None:
        event = ProgressEvent(category_id="shaving", job_id=None, stage="x", processed=processed, total=total)
        assert event.percent == percent


class TestProgressTracker:
    @pytest.fixture()
    def tracker(self) -> ProgressTracker:
        return ProgressTracker()

    @pytest.mark.asyncio
    async def test_latest_status_recorded(self, tracker: ProgressTracker) -> None:
        assert tracker.get_status("shaving") is None
        await tracker.update("shaving", "GROW_shaving_1", "grow_pass_1/4", 1, 4)
        await tracker.update("shaving", "GROW_shaving_1", "grow_pass_2/4", 2, 4, "half way")

        status = tracker.get_status("shaving")
        assert status.stage == "grow_pass_2/4"
        assert status.message == "half way"
        assert status.percent == 50.0

    @pytest.mark.asyncio
    async def test_sync_and_async_listeners(self, tracker: ProgressTracker) -> None:
        seen: list[str] = []

        def sync_listener(event: ProgressEvent) -> None:
            seen.append(f"sync:{event.stage}")

        async def async_listener(event: ProgressEvent) -> None:
            seen.append(f"async:{event.stage}")

        tracker.register_listener("shaving", sync_listener)
        tracker.register_listener("shaving", async_listener)
        await tracker.update("shaving", None, "hydrate")

        assert seen == ["sync:hydrate", "async:hydrate"]

    @pytest.mark.asyncio
    async def test_duplicate_registration_ignored(self, tracker: ProgressTracker) -> None:
        seen: list[ProgressEvent] = []
        tracker.register_listener("shaving", seen.append)
        tracker.register_listener("shaving", seen.append)
        await tracker.update("shaving", None, "hydrate")
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_failing_listener_skipped(self, tracker: ProgressTracker) -> None:
        seen: list[ProgressEvent] = []

        def broken(event: ProgressEvent) -> None:
            raise RuntimeError("boom")

        tracker.register_listener("shaving", broken)
        tracker.register_listener("shaving", seen.append)
        await tracker.update("shaving", None, "hydrate")

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_listeners_scoped_to_category(self, tracker: ProgressTracker) -> None:
        seen: list[ProgressEvent] = []
        tracker.register_listener("beard", seen.append)
        await tracker.update("shaving", None, "hydrate")
        assert seen == []

    @pytest.mark.asyncio
    async def test_unregister(self, tracker: ProgressTracker) -> None:
        seen: list[ProgressEvent] = []
        tracker.register_listener("shaving", seen.append)
        tracker.unregister_listener("shaving", seen.append)
        tracker.unregister_listener("beard", seen.append)
        await tracker.update("shaving", None, "hydrate")
        assert seen == []
