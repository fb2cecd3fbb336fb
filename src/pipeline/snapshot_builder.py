"""Draft creation and seed hydration for category snapshots."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from src.config.seed_dictionaries import default_anchor_names
from src.interfaces.snapshot_store import ISnapshotStore
from src.models.corpus import (
    Anchor,
    AnchorSource,
    KeywordRow,
    Lifecycle,
    Snapshot,
    SnapshotKey,
    SnapshotStats,
)
from src.services.anchor_assignment import infer_intent
from src.services.candidate_generator import CandidateGenerator
from src.services.keyword_guard import KeywordGuard
from src.utils.errors import LifecycleError, PipelineError, SnapshotNotFoundError
from src.utils.logging import get_logger
from src.utils.text_normalizer import keyword_row_id, normalize_keyword


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def new_snapshot_id(category_id: str) -> str:
    return f"snap_{category_id}_{uuid.uuid4().hex[:12]}"


class SnapshotBuilder:
    """Creates DRAFT snapshots and seeds them up to HYDRATED."""

    def __init__(
        self,
        store: ISnapshotStore,
        *,
        generator: CandidateGenerator | None = None,
        guard: KeywordGuard | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._generator = generator or CandidateGenerator()
        self._guard = guard or KeywordGuard()
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def ensure_draft(
        self,
        key: SnapshotKey,
        anchor_names: list[str] | None = None,
    ) -> Snapshot:
        """Return the active snapshot for ``key``, creating a DRAFT if none.

        A new draft gets one SCAN anchor per name (the category's leading
        head terms when ``anchor_names`` is omitted) and becomes the
        active snapshot.

        Raises
        ------
        PipelineError
            If no anchor names are given and the category has no dictionary.
        """
        active_id = await self._store.get_active_snapshot_id(key)
        if active_id is not None:
            existing = await self._store.get_snapshot_by_id(key, active_id)
            if existing is not None:
                return existing
            self._logger.warning("active_snapshot_missing", key=str(key), snapshot_id=active_id)

        names = list(
            dict.fromkeys(
                anchor_names
                or default_anchor_names(key.category_id, catalog=self._generator.catalog)
            )
        )
        if not names:
            raise PipelineError(f"no anchor names available for category {key.category_id!r}")

        now = self._clock()
        snapshot = Snapshot(
            id=new_snapshot_id(key.category_id),
            category_id=key.category_id,
            country=key.country,
            language=key.language,
            lifecycle=Lifecycle.DRAFT,
            anchors=[
                Anchor(id=name, order=order, source=AnchorSource.SCAN)
                for order, name in enumerate(names)
            ],
            created_at=now,
            updated_at=now,
        )
        await self._store.write_snapshot(snapshot)
        await self._store.set_active_snapshot_id(key, snapshot.id)
        self._logger.info(
            "snapshot_draft_created",
            key=str(key),
            snapshot_id=snapshot.id,
            anchors=len(names),
        )
        return snapshot

    async def hydrate(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        per_anchor_limit: int = 60,
    ) -> Snapshot:
        """Seed each open anchor with up to ``per_anchor_limit`` UNVERIFIED rows.

        Seeds are the anchor's own name (when it passes the guard) followed
        by guard-passing generator candidates not already in the corpus.
        The snapshot ends at least HYDRATED.

        Raises
        ------
        LifecycleError
            If the snapshot is certified.
        """
        snapshot = await self._store.get_snapshot_by_id(key, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"snapshot {snapshot_id} not found for {key}")
        if snapshot.lifecycle.is_certified:
            raise LifecycleError(
                f"snapshot {snapshot_id} is {snapshot.lifecycle.value}; hydration refused"
            )

        rows = await self._store.read_all_keyword_rows(key, snapshot_id)
        existing = {r.text for r in rows}
        new_rows: list[KeywordRow] = []

        for anchor in snapshot.open_anchors:
            pool = [normalize_keyword(anchor.id)]
            pool.extend(self._generator.generate(key.category_id, anchor.id, per_anchor_limit * 4))
            added = 0
            for text in self._guard.filter(pool, key.category_id):
                if added >= per_anchor_limit:
                    break
                if text in existing:
                    continue
                existing.add(text)
                new_rows.append(
                    KeywordRow(
                        id=keyword_row_id(text, key.category_id),
                        text=text,
                        anchor_id=anchor.id,
                        intent=infer_intent(text),
                        created_at=self._clock(),
                    )
                )
                added += 1

        rows = [*rows, *new_rows]
        if new_rows:
            await self._store.write_keyword_rows(key, snapshot_id, rows)

        hydrated = snapshot.touched(
            lifecycle=snapshot.lifecycle.promote(Lifecycle.HYDRATED),
            stats=SnapshotStats.from_rows(rows),
        )
        await self._store.write_snapshot(hydrated)
        self._logger.info(
            "snapshot_hydrated",
            key=str(key),
            snapshot_id=snapshot_id,
            rows_added=len(new_rows),
            total=len(rows),
            lifecycle=hydrated.lifecycle.value,
        )
        return hydrated
