"""Shared pytest fixtures for the demandCorpus test suite."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.config.settings import Settings
from src.interfaces.keyword_volume_provider import IKeywordVolumeProvider, KeywordVolume
from src.models.corpus import (
    Anchor,
    AnchorSource,
    KeywordRow,
    Lifecycle,
    RowStatus,
    Snapshot,
    SnapshotKey,
    SnapshotStats,
)
from src.models.resilience import TaskOptions
from src.pipeline.rate_gated_client import RateGatedVolumeClient
from src.pipeline.resilient_runner import ResilientTaskRunner
from src.providers.cache.memory_volume_cache import MemoryVolumeCache
from src.providers.job.memory_job_store import MemoryJobStore
from src.providers.snapshot.memory_snapshot_store import MemorySnapshotStore
from src.utils.concurrency import RateGate
from src.utils.text_normalizer import keyword_row_id, normalize_keyword

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeVolumeProvider(IKeywordVolumeProvider):
    """Scriptable keyword-volume provider.

    ``volumes`` answers the primary surface; keywords missing from it get
    ``default_volume`` (or are omitted from the response when that is
    ``None``).  ``errors`` is consumed one exception per primary call.
    """

    def __init__(
        self,
        volumes: dict[str, int] | None = None,
        *,
        default_volume: int | None = 0,
        secondary: dict[str, int] | None = None,
        related: list[KeywordVolume] | None = None,
        available: bool = True,
    ) -> None:
        self.volumes = dict(volumes or {})
        self.default_volume = default_volume
        self.secondary = dict(secondary or {})
        self.related = list(related or [])
        self.available = available
        self.errors: list[Exception] = []
        self.related_errors: list[Exception] = []
        self.secondary_errors: list[Exception] = []
        self.primary_calls: list[list[str]] = []
        self.secondary_calls: list[list[str]] = []
        self.related_calls: list[list[str]] = []
        self.on_primary: Callable[[list[str]], Awaitable[None]] | None = None

    async def fetch_search_volume(
        self,
        keywords: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        self.primary_calls.append(list(keywords))
        if self.on_primary is not None:
            await self.on_primary(keywords)
        if self.errors:
            raise self.errors.pop(0)
        found: list[KeywordVolume] = []
        for keyword in keywords:
            volume = self.volumes.get(normalize_keyword(keyword), self.default_volume)
            if volume is not None:
                found.append(KeywordVolume(keyword=keyword, volume=volume))
        return found

    async def fetch_secondary_volume(
        self,
        keywords: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        self.secondary_calls.append(list(keywords))
        if self.secondary_errors:
            raise self.secondary_errors.pop(0)
        return [
            KeywordVolume(keyword=k, secondary_volume=self.secondary[k])
            for k in keywords
            if k in self.secondary
        ]

    async def fetch_related_keywords(
        self,
        seeds: list[str],
        location_code: int,
        language_code: str,
    ) -> list[KeywordVolume]:
        self.related_calls.append(list(seeds))
        if self.related_errors:
            raise self.related_errors.pop(0)
        return list(self.related)

    def get_provider_name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return self.available


class FakeClock:
    """Mutable UTC clock for job liveness tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)  # noqa: UP017

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


async def _no_sleep(_delay: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def key() -> SnapshotKey:
    return SnapshotKey(category_id="shaving", country="IN", language="en")


@pytest.fixture
def snapshot_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def job_store() -> MemoryJobStore:
    return MemoryJobStore()


@pytest.fixture
def fake_provider() -> FakeVolumeProvider:
    return FakeVolumeProvider()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_runner() -> ResilientTaskRunner:
    """Runner with real timeouts but no backoff sleeps or jitter."""
    return ResilientTaskRunner(
        TaskOptions(timeout_seconds=5.0, max_retries=2, base_delay_seconds=0.0),
        sleep=_no_sleep,
        jitter=lambda _upper: 0.0,
    )


@pytest.fixture
def rate_gate() -> RateGate:
    return RateGate(max_concurrent=2, requests_per_minute=0)


@pytest.fixture
def volume_client(
    fake_provider: FakeVolumeProvider,
    fast_runner: ResilientTaskRunner,
    rate_gate: RateGate,
) -> RateGatedVolumeClient:
    return RateGatedVolumeClient(
        fake_provider,
        fast_runner,
        rate_gate,
        MemoryVolumeCache(max_size=1000, ttl=60),
        batch_size=100,
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with no provider credentials and a throwaway database."""
    return Settings(
        dfs_proxy_url="",
        dfs_login="",
        dfs_password="",
        dfs_proxy_api_key="",
        corpus_db_path=str(tmp_path / "corpus.db"),
        app_env="test",
        rate_gate_requests_per_minute=0,
        resilience_base_delay_seconds=0.0,
        resilience_max_jitter_seconds=0.0,
    )


@pytest.fixture
def make_row() -> Callable[..., KeywordRow]:
    """Factory for keyword rows; ``volume`` picks the status when omitted."""

    def _make(
        text: str,
        anchor_id: str = "Razor",
        volume: int | None = None,
        *,
        category_id: str = "shaving",
        **overrides: Any,
    ) -> KeywordRow:
        norm = normalize_keyword(text)
        if "status" not in overrides:
            if volume is None:
                overrides["status"] = RowStatus.UNVERIFIED
            elif volume > 0:
                overrides["status"] = RowStatus.VALID
            else:
                overrides["status"] = RowStatus.ZERO
        if "active" not in overrides and volume == 0:
            overrides["active"] = False
        return KeywordRow(
            id=keyword_row_id(norm, category_id),
            text=norm,
            anchor_id=anchor_id,
            volume=volume,
            **overrides,
        )

    return _make


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Factory for snapshots with SCAN anchors."""

    def _make(
        anchors: list[str] | None = None,
        *,
        snapshot_id: str = "snap_shaving_test",
        key: SnapshotKey | None = None,
        lifecycle: Lifecycle = Lifecycle.HYDRATED,
        rows: list[KeywordRow] | None = None,
    ) -> Snapshot:
        key = key or SnapshotKey(category_id="shaving", country="IN", language="en")
        names = anchors if anchors is not None else ["Razor", "Trimmer"]
        return Snapshot(
            id=snapshot_id,
            category_id=key.category_id,
            country=key.country,
            language=key.language,
            lifecycle=lifecycle,
            anchors=[
                Anchor(id=name, order=order, source=AnchorSource.SCAN)
                for order, name in enumerate(names)
            ],
            stats=SnapshotStats.from_rows(rows or []),
        )

    return _make


@pytest.fixture
def seed_store(
    snapshot_store: MemorySnapshotStore,
) -> Callable[[Snapshot, list[KeywordRow]], Awaitable[Snapshot]]:
    """Write a snapshot and its rows into the memory store and mark it active."""

    async def _seed(snapshot: Snapshot, rows: list[KeywordRow]) -> Snapshot:
        snapshot = snapshot.model_copy(update={"stats": SnapshotStats.from_rows(rows)})
        await snapshot_store.write_snapshot(snapshot)
        await snapshot_store.write_keyword_rows(snapshot.key, snapshot.id, rows)
        await snapshot_store.set_active_snapshot_id(snapshot.key, snapshot.id)
        return snapshot

    return _seed
