"""Unit tests for draft creation, hydration and anchor expansion."""

from __future__ import annotations

from collections import Counter

import pytest

from src.models.corpus import AnchorSource, Lifecycle, RowStatus, SnapshotKey
from src.pipeline.snapshot_builder import SnapshotBuilder, new_snapshot_id
from src.services.anchor_expansion import AnchorExpansionService
from src.utils.errors import LifecycleError, PipelineError, SnapshotNotFoundError


# ======================================================================
# SnapshotBuilder
# ======================================================================


class TestEnsureDraft:
    def test_snapshot_id_format(self) -> None:
        snapshot_id = new_snapshot_id("shaving")
        assert snapshot_id.startswith("snap_shaving_")
        assert len(snapshot_id) == len("snap_shaving_") + 12

    @pytest.mark.asyncio
    async def test_creates_active_draft_with_default_anchors(self, snapshot_store, key) -> None:
        snapshot = await SnapshotBuilder(snapshot_store).ensure_draft(key)

        assert snapshot.lifecycle == Lifecycle.DRAFT
        assert [a.id for a in snapshot.anchors] == [
            "Shaving",
            "Shave",
            "Razor",
            "Blade",
            "Cartridge",
            "Trimmer",
        ]
        assert all(a.source == AnchorSource.SCAN for a in snapshot.anchors)
        assert await snapshot_store.get_active_snapshot_id(key) == snapshot.id

    @pytest.mark.asyncio
    async def test_returns_existing_active_snapshot(self, snapshot_store, key) -> None:
        builder = SnapshotBuilder(snapshot_store)
        first = await builder.ensure_draft(key)
        second = await builder.ensure_draft(key, ["Foam"])
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_anchor_names_deduplicated(self, snapshot_store, key) -> None:
        snapshot = await SnapshotBuilder(snapshot_store).ensure_draft(key, ["Razor", "Razor", "Blade"])
        assert [(a.id, a.order) for a in snapshot.anchors] == [("Razor", 0), ("Blade", 1)]

    @pytest.mark.asyncio
    async def test_unknown_category_without_names(self, snapshot_store) -> None:
        with pytest.raises(PipelineError):
            await SnapshotBuilder(snapshot_store).ensure_draft(SnapshotKey(category_id="unknown"))


class TestHydrate:
    @pytest.mark.asyncio
    async def test_seeds_each_anchor(self, snapshot_store, key) -> None:
        builder = SnapshotBuilder(snapshot_store)
        draft = await builder.ensure_draft(key, ["Razor", "Trimmer"])

        hydrated = await builder.hydrate(key, draft.id, per_anchor_limit=5)

        rows = await snapshot_store.read_all_keyword_rows(key, draft.id)
        per_anchor = Counter(r.anchor_id for r in rows)
        assert hydrated.lifecycle == Lifecycle.HYDRATED
        assert hydrated.stats.total == len(rows)
        assert set(per_anchor) == {"Razor", "Trimmer"}
        assert all(count <= 5 for count in per_anchor.values())
        assert all(r.status == RowStatus.UNVERIFIED and r.volume is None for r in rows)
        assert {"razor", "trimmer"} <= {r.text for r in rows}

    @pytest.mark.asyncio
    async def test_rehydrate_adds_no_duplicates(self, snapshot_store, key) -> None:
        builder = SnapshotBuilder(snapshot_store)
        draft = await builder.ensure_draft(key, ["Razor"])
        await builder.hydrate(key, draft.id, per_anchor_limit=5)
        await builder.hydrate(key, draft.id, per_anchor_limit=5)

        rows = await snapshot_store.read_all_keyword_rows(key, draft.id)
        assert len(rows) == len({r.text for r in rows}) == 10

    @pytest.mark.asyncio
    async def test_never_lowers_lifecycle(self, snapshot_store, make_snapshot, seed_store, key) -> None:
        await seed_store(make_snapshot(lifecycle=Lifecycle.VALIDATED), [])
        hydrated = await SnapshotBuilder(snapshot_store).hydrate(key, "snap_shaving_test", 2)
        assert hydrated.lifecycle == Lifecycle.VALIDATED

    @pytest.mark.asyncio
    async def test_certified_refused(self, snapshot_store, make_snapshot, seed_store, key) -> None:
        await seed_store(make_snapshot(lifecycle=Lifecycle.CERTIFIED_FULL), [])
        with pytest.raises(LifecycleError):
            await SnapshotBuilder(snapshot_store).hydrate(key, "snap_shaving_test")

    @pytest.mark.asyncio
    async def test_missing_snapshot(self, snapshot_store, key) -> None:
        with pytest.raises(SnapshotNotFoundError):
            await SnapshotBuilder(snapshot_store).hydrate(key, "snap_missing")


# ======================================================================
# AnchorExpansionService
# ======================================================================


class TestExpand:
    @pytest.mark.asyncio
    async def test_adds_modifier_anchors_until_minimum(
        self, snapshot_store, make_snapshot, seed_store, key
    ) -> None:
        await seed_store(make_snapshot(), [])

        result = await AnchorExpansionService(snapshot_store).expand(key, "snap_shaving_test", min_anchors=4)

        assert result.anchors_added == ["Price & Offers", "Best & Top Rated"]
        assert result.rows_added == 36
        stored = await snapshot_store.get_snapshot_by_id(key, "snap_shaving_test")
        assert [a.id for a in stored.anchors][2:] == ["Price & Offers", "Best & Top Rated"]
        assert stored.anchors[2].source == AnchorSource.EXPANSION
        assert stored.anchors[2].order == 2
        assert stored.stats.unverified == 36

        rows = await snapshot_store.read_all_keyword_rows(key, "snap_shaving_test")
        assert "shaving price offers" in {r.text for r in rows if r.anchor_id == "Price & Offers"}

    @pytest.mark.asyncio
    async def test_nothing_to_do_when_enough_anchors(
        self, snapshot_store, make_snapshot, seed_store, key
    ) -> None:
        await seed_store(make_snapshot(), [])
        result = await AnchorExpansionService(snapshot_store).expand(key, "snap_shaving_test", min_anchors=2)
        assert result.anchors_added == []
        assert result.rows_added == 0

    @pytest.mark.asyncio
    async def test_certified_snapshot_frozen(self, snapshot_store, make_snapshot, seed_store, key) -> None:
        await seed_store(make_snapshot(lifecycle=Lifecycle.CERTIFIED_LITE), [])
        with pytest.raises(LifecycleError):
            await AnchorExpansionService(snapshot_store).expand(key, "snap_shaving_test")


class TestConsolidate:
    @pytest.mark.asyncio
    async def test_merges_weak_anchor_into_strongest(
        self, snapshot_store, make_snapshot, make_row, seed_store, key
    ) -> None:
        rows = [make_row(f"razor keyword {i}", "Razor", 100) for i in range(5)]
        rows.append(make_row("philips trimmer", "Trimmer", 50))
        rows.append(make_row("trimmer zero", "Trimmer", 0))
        rows.append(make_row("blade zero", "Blade", 0))
        await seed_store(make_snapshot(["Razor", "Trimmer", "Blade"]), rows)

        result = await AnchorExpansionService(snapshot_store).consolidate_low_yield(
            key, "snap_shaving_test", min_valid_per_anchor=2
        )

        assert result.anchors_merged == ["Trimmer"]
        assert result.merged_into == "Razor"
        assert result.rows_reassigned == 1

        stored = await snapshot_store.get_snapshot_by_id(key, "snap_shaving_test")
        assert [a.id for a in stored.open_anchors] == ["Razor", "Blade"]
        assert len(stored.anchors) == 3
        moved = {r.text: r.anchor_id for r in await snapshot_store.read_all_keyword_rows(key, "snap_shaving_test")}
        assert moved["philips trimmer"] == "Razor"
        assert moved["trimmer zero"] == "Trimmer"
        assert stored.stats.per_anchor_valid == {"Razor": 6}

    @pytest.mark.asyncio
    async def test_no_merge_without_failing_anchor(
        self, snapshot_store, make_snapshot, make_row, seed_store, key
    ) -> None:
        rows = [make_row(f"razor keyword {i}", "Razor", 100) for i in range(3)]
        await seed_store(make_snapshot(), rows)

        result = await AnchorExpansionService(snapshot_store).consolidate_low_yield(key, "snap_shaving_test")
        assert result.anchors_merged == []
        assert result.merged_into is None
