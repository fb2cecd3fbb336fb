"""Unit tests for CorpusPipeline job dispatch.

Components are wired through ``src.main._build_all`` with in-memory
stores and a scripted volume provider, so every job kind runs end to end
without a network or database.
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from src.models.corpus import Lifecycle, RowStatus, SnapshotKey
from src.models.job import JobKind, JobStatus
from src.utils import concurrency
from src.utils.concurrency import RateGate
from src.utils.errors import JobConflictError


@pytest_asyncio.fixture
async def components(monkeypatch, test_settings, snapshot_store, job_store, fake_provider):
    from src.main import _build_all

    monkeypatch.setattr(concurrency, "_DEFAULT_GATE", RateGate(max_concurrent=2, requests_per_minute=0))
    settings = test_settings.model_copy(
        update={
            "growth_target_valid": 40,
            "growth_target_valid_lite": 20,
            "growth_max_attempts": 4,
            "growth_max_candidates_per_pass": 60,
            "growth_discovery_min_candidates": 0,
            "growth_use_secondary_signal": False,
            "hydrate_per_anchor_limit": 10,
        }
    )
    built = _build_all(
        settings,
        {},
        snapshot_store=snapshot_store,
        job_store=job_store,
        provider=fake_provider,
    )
    yield built
    await built["pipeline"].shutdown()
    await built["http_client"].aclose()


@pytest.fixture()
def pipeline(components):
    return components["pipeline"]


def _key() -> SnapshotKey:
    return SnapshotKey(category_id="shaving", country="IN", language="en")


# ======================================================================
# REBUILD
# ======================================================================


class TestRebuild:
    @pytest.mark.asyncio
    async def test_rebuild_certifies_healthy_corpus(self, pipeline, fake_provider, snapshot_store) -> None:
        fake_provider.default_volume = 100

        job = await pipeline.submit(JobKind.REBUILD, "shaving")

        assert job.status == JobStatus.COMPLETED
        result = job.metadata["result"]
        assert result["certification"]["passed"] is True
        assert result["certification"]["tier_achieved"] == "FULL"
        assert result["growth"]["outcome"] == "SUCCESS"
        assert result["lite_promoted"] is False

        snapshot = await snapshot_store.get_snapshot_by_id(_key(), result["snapshot_id"])
        assert snapshot.lifecycle == Lifecycle.CERTIFIED_FULL
        assert await snapshot_store.get_active_snapshot_id(_key()) == snapshot.id

    @pytest.mark.asyncio
    async def test_rebuild_completes_when_certification_fails(self, pipeline, fake_provider) -> None:
        fake_provider.default_volume = 0

        job = await pipeline.submit(JobKind.REBUILD, "shaving", max_attempts=2)

        assert job.status == JobStatus.COMPLETED
        certification = job.metadata["result"]["certification"]
        assert certification["passed"] is False
        assert certification["poisoned"] is True
        assert job.metadata["result"]["lite_promoted"] is False

    @pytest.mark.asyncio
    async def test_rebuild_resets_certified_snapshot(
        self, pipeline, fake_provider, snapshot_store, make_snapshot, make_row, seed_store
    ) -> None:
        fake_provider.default_volume = 100
        rows = [make_row(f"razor keyword {i}", "Razor", 100) for i in range(3)]
        await seed_store(make_snapshot(lifecycle=Lifecycle.CERTIFIED_LITE), rows)

        job = await pipeline.submit(JobKind.REBUILD, "shaving")

        assert job.status == JobStatus.COMPLETED
        assert job.metadata["result"]["snapshot_id"] == "snap_shaving_test"
        assert job.metadata["result"]["certification"]["passed"] is True


# ======================================================================
# Single-step jobs
# ======================================================================


class TestSingleStepJobs:
    @pytest.mark.asyncio
    async def test_certify_blocked_on_poisoned_snapshot(
        self, pipeline, make_snapshot, make_row, seed_store
    ) -> None:
        await seed_store(make_snapshot(), [make_row("razor zero", "Razor", 0)])

        job = await pipeline.submit(JobKind.CERTIFY, "shaving", tier="LITE")

        assert job.status == JobStatus.FAILED
        assert job.message.startswith("certification blocked")

    @pytest.mark.asyncio
    async def test_grow_without_snapshot_fails(self, pipeline) -> None:
        job = await pipeline.submit(JobKind.GROW, "shaving")

        assert job.status == JobStatus.FAILED
        assert "no active snapshot" in job.message

    @pytest.mark.asyncio
    async def test_validate_flushes_pending_rows(
        self, pipeline, fake_provider, snapshot_store, make_snapshot, make_row, seed_store
    ) -> None:
        fake_provider.default_volume = 100
        await seed_store(make_snapshot(), [make_row("gillette razor"), make_row("philips trimmer", "Trimmer")])

        job = await pipeline.submit(JobKind.VALIDATE, "shaving")

        assert job.status == JobStatus.COMPLETED
        rows = await snapshot_store.read_all_keyword_rows(_key(), "snap_shaving_test")
        assert not any(r.status == RowStatus.UNVERIFIED for r in rows)
        assert {"gillette razor", "philips trimmer"} <= {r.text for r in rows if r.status == RowStatus.VALID}

    @pytest.mark.asyncio
    async def test_expand_anchors(self, pipeline, make_snapshot, seed_store) -> None:
        await seed_store(make_snapshot(), [])

        job = await pipeline.submit(JobKind.EXPAND_ANCHORS, "shaving", min_anchors=4)

        assert job.status == JobStatus.COMPLETED
        assert job.metadata["result"]["anchors_added"] == ["Price & Offers", "Best & Top Rated"]


# ======================================================================
# Stop, conflicts and shutdown
# ======================================================================


class TestJobControl:
    @pytest.mark.asyncio
    async def test_stop_during_grow(
        self, pipeline, components, fake_provider, make_snapshot, make_row, seed_store
    ) -> None:
        fake_provider.default_volume = None
        await seed_store(make_snapshot(), [make_row("gillette razor")])
        jobs = components["jobs"]

        async def stop_active(_keywords: list[str]) -> None:
            active = await jobs.get_active_job_for_category("shaving")
            await pipeline.stop(active.id)

        fake_provider.on_primary = stop_active

        job = await pipeline.submit(JobKind.GROW, "shaving")

        assert job.status == JobStatus.STOPPED
        assert job.stop_requested
        assert len(fake_provider.primary_calls) == 1
        assert fake_provider.related_calls == []

    @pytest.mark.asyncio
    async def test_second_job_for_category_conflicts(
        self, pipeline, make_snapshot, seed_store
    ) -> None:
        await seed_store(make_snapshot(), [])
        await pipeline.start(JobKind.GROW, "shaving")

        with pytest.raises(JobConflictError):
            await pipeline.start(JobKind.CERTIFY, "shaving")

    @pytest.mark.asyncio
    async def test_shutdown_finalizes_background_jobs(
        self, pipeline, components, make_snapshot, seed_store
    ) -> None:
        await seed_store(make_snapshot(), [])
        started = await pipeline.start(JobKind.GROW, "shaving")
        assert started.status == JobStatus.RUNNING

        await pipeline.shutdown()

        job = await components["jobs"].get_job(started.id)
        assert job.is_terminal
        assert job.status == JobStatus.STOPPED
        assert await components["jobs"].get_active_job_for_category("shaving") is None
