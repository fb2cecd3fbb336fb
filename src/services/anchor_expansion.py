"""Anchor expansion and low-yield consolidation.

Expansion appends heuristic modifier anchors ("Price & Offers", "For Men"
...) to a snapshot that has too few anchors, seeding each with
guard-passing UNVERIFIED rows.  Nothing is validated here; the next growth
pass picks the new rows up.

Consolidation moves the valid rows of anchors that fell short of a
minimum into the strongest passing anchor and marks the weak anchors
``merged_into`` it.  Anchors are never deleted, so row references stay
resolvable.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

import structlog

from src.config.seed_dictionaries import ANCHOR_MODIFIERS
from src.interfaces.snapshot_store import ISnapshotStore
from src.models.corpus import (
    Anchor,
    AnchorSource,
    KeywordRow,
    Snapshot,
    SnapshotKey,
    SnapshotStats,
)
from src.models.growth import ExpansionResult
from src.services.anchor_assignment import infer_intent
from src.services.candidate_generator import CandidateGenerator
from src.services.keyword_guard import KeywordGuard
from src.utils.errors import LifecycleError, SnapshotNotFoundError
from src.utils.logging import get_logger
from src.utils.text_normalizer import keyword_row_id

_MAX_SEEDS_PER_ANCHOR = 150


class AnchorExpansionService:
    """Adds modifier anchors and merges low-yield ones."""

    def __init__(
        self,
        store: ISnapshotStore,
        *,
        generator: CandidateGenerator | None = None,
        guard: KeywordGuard | None = None,
        modifiers: Sequence[str] = ANCHOR_MODIFIERS,
    ) -> None:
        self._store = store
        self._generator = generator or CandidateGenerator()
        self._guard = guard or KeywordGuard()
        self._modifiers = tuple(modifiers)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def expand(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        min_anchors: int = 6,
    ) -> ExpansionResult:
        """Append modifier anchors until the snapshot has ``min_anchors`` open ones.

        A modifier whose seeds are all rejected by the guard (or already
        present) is skipped, so the target may not be reached for sparse
        categories.
        """
        snapshot, rows = await self._load(key, snapshot_id)
        existing_ids = {a.id for a in snapshot.anchors}
        existing_text = {r.text for r in rows}
        anchors = list(snapshot.anchors)
        open_count = len(snapshot.open_anchors)
        added_ids: list[str] = []
        new_rows: list[KeywordRow] = []

        for modifier in self._modifiers:
            if open_count >= min_anchors:
                break
            if modifier in existing_ids:
                continue
            seeds = [
                s
                for s in self._guard.filter(
                    self._generator.expansion_seeds(key.category_id, modifier), key.category_id
                )
                if s not in existing_text
            ][:_MAX_SEEDS_PER_ANCHOR]
            if not seeds:
                self._logger.debug("expansion_modifier_skipped", modifier=modifier)
                continue

            anchors.append(Anchor(id=modifier, order=len(anchors), source=AnchorSource.EXPANSION))
            existing_ids.add(modifier)
            added_ids.append(modifier)
            open_count += 1
            for text in seeds:
                existing_text.add(text)
                new_rows.append(
                    KeywordRow(
                        id=keyword_row_id(text, key.category_id),
                        text=text,
                        anchor_id=modifier,
                        intent=infer_intent(text),
                    )
                )

        if not added_ids:
            return ExpansionResult(snapshot_id=snapshot_id)

        rows = [*rows, *new_rows]
        await self._store.write_keyword_rows(key, snapshot_id, rows)
        await self._store.write_snapshot(
            snapshot.touched(anchors=anchors, stats=SnapshotStats.from_rows(rows))
        )
        self._logger.info(
            "anchors_expanded",
            key=str(key),
            snapshot_id=snapshot_id,
            anchors_added=added_ids,
            rows_added=len(new_rows),
            open_anchors=open_count,
        )
        return ExpansionResult(
            snapshot_id=snapshot_id,
            anchors_added=added_ids,
            rows_added=len(new_rows),
        )

    async def consolidate_low_yield(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        min_valid_per_anchor: int = 2,
    ) -> ExpansionResult:
        """Merge anchors with some but too few valid rows into the strongest one.

        Anchors with no valid rows at all are left open: they may still be
        waiting on validation.
        """
        snapshot, rows = await self._load(key, snapshot_id)
        valid_counts: Counter[str] = Counter(r.anchor_id for r in rows if r.is_primary_valid)
        open_ids = [a.id for a in snapshot.open_anchors]

        passing = [a for a in open_ids if valid_counts[a] >= min_valid_per_anchor]
        failing = [a for a in open_ids if 0 < valid_counts[a] < min_valid_per_anchor]
        if not passing or not failing:
            return ExpansionResult(snapshot_id=snapshot_id)

        strongest = max(passing, key=lambda a: (valid_counts[a], -open_ids.index(a)))
        failing_set = set(failing)
        reassigned = 0
        updated_rows: list[KeywordRow] = []
        for row in rows:
            if row.anchor_id in failing_set and row.is_primary_valid:
                updated_rows.append(row.model_copy(update={"anchor_id": strongest}))
                reassigned += 1
            else:
                updated_rows.append(row)

        anchors = [
            a.model_copy(update={"merged_into": strongest}) if a.id in failing_set else a
            for a in snapshot.anchors
        ]
        await self._store.write_keyword_rows(key, snapshot_id, updated_rows)
        await self._store.write_snapshot(
            snapshot.touched(anchors=anchors, stats=SnapshotStats.from_rows(updated_rows))
        )
        self._logger.info(
            "anchors_consolidated",
            key=str(key),
            snapshot_id=snapshot_id,
            merged=failing,
            merged_into=strongest,
            rows_reassigned=reassigned,
        )
        return ExpansionResult(
            snapshot_id=snapshot_id,
            anchors_merged=failing,
            merged_into=strongest,
            rows_reassigned=reassigned,
        )

    async def _load(self, key: SnapshotKey, snapshot_id: str) -> tuple[Snapshot, list[KeywordRow]]:
        snapshot = await self._store.get_snapshot_by_id(key, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"snapshot {snapshot_id} not found for {key}")
        if snapshot.lifecycle.is_certified:
            raise LifecycleError(
                f"snapshot {snapshot_id} is {snapshot.lifecycle.value}; anchors are frozen"
            )
        rows = await self._store.read_all_keyword_rows(key, snapshot_id)
        return snapshot, rows
