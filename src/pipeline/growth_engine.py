"""Growth engine: grow one snapshot's valid keyword count toward a target.

# ─── ONE GROWTH PASS ──────────────────────────────────────────────────
#
#   checkpoint ─> read rows ─> generate ─> persist UNVERIFIED ─> validate
#        │                       │                                  │
#        │        (discovery when templates run dry)     per batch: stop check,
#        │                                               apply, checkpoint rows
#        │
#   prune ─> recompute stats ─> stall check ─> next pass
#
#   Exits: SUCCESS (target met, nothing pending), PLATEAU (nothing left to
#   try, or max_attempts used up), GrowthStalledError (store not taking
#   writes), EmptyResultError (provider returned nothing twice running).
# ──────────────────────────────────────────────────────────────────────

New rows are written as UNVERIFIED before any validation call, so an
interrupted run leaves the candidates in the store for the next pass to
pick up.  The store is re-read after each write: the row delta that feeds
the stall check is what the store actually holds, not what was sent.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from src.config.settings import Settings
from src.interfaces.keyword_volume_provider import KeywordVolume
from src.interfaces.snapshot_store import ISnapshotStore
from src.models.corpus import (
    KeywordRow,
    Lifecycle,
    RowStatus,
    Snapshot,
    SnapshotKey,
    SnapshotStats,
)
from src.models.growth import GrowthOutcome, GrowthResult, Verification
from src.pipeline.job_control import JobControlRegister
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.rate_gated_client import RateGatedVolumeClient, chunk
from src.services.anchor_assignment import assign_anchor, infer_intent
from src.services.candidate_generator import CandidateGenerator
from src.services.keyword_guard import KeywordGuard
from src.utils.concurrency import run_bounded
from src.utils.errors import (
    EmptyResultError,
    GrowthStalledError,
    LifecycleError,
    ProviderCallError,
    SnapshotNotFoundError,
)
from src.utils.logging import get_logger
from src.utils.text_normalizer import keyword_row_id, normalize_keyword

_MIN_ANCHOR_BATCH = 250
_MAX_ANCHOR_BATCH = 1000
_ANCHOR_BATCH_FACTOR = 6
_EMPTY_ROUNDS_LIMIT = 2


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


@dataclass(frozen=True)
class GrowthConfig:
    """Tunables for :class:`GrowthEngine`; see ``Settings.growth_*``."""

    target_valid: int = 2500
    target_per_anchor: int = 40
    max_attempts: int = 12
    max_candidates_per_pass: int = 5000
    discovery_min_candidates: int = 200
    discovery_max_pass: int = 2
    discovery_seeds_per_pass: int = 20
    discovery_seeds_per_call: int = 5
    max_absent_rounds: int = 3
    use_secondary_signal: bool = True
    pool_concurrency: int = 3

    @classmethod
    def from_settings(cls, settings: Settings) -> GrowthConfig:
        return cls(
            target_valid=settings.growth_target_valid,
            target_per_anchor=settings.growth_target_per_anchor,
            max_attempts=settings.growth_max_attempts,
            max_candidates_per_pass=settings.growth_max_candidates_per_pass,
            discovery_min_candidates=settings.growth_discovery_min_candidates,
            discovery_max_pass=settings.growth_discovery_max_pass,
            discovery_seeds_per_pass=settings.growth_discovery_seeds_per_pass,
            max_absent_rounds=settings.growth_max_absent_rounds,
            use_secondary_signal=settings.growth_use_secondary_signal,
            pool_concurrency=settings.pool_concurrency,
        )


@dataclass(frozen=True)
class _RunContext:
    key: SnapshotKey
    snapshot_id: str
    job_id: str | None
    cancel_event: asyncio.Event | None


def _revise(row: KeywordRow, **update: Any) -> KeywordRow:
    """Copy ``row`` with ``update`` applied, re-running model validation."""
    return KeywordRow.model_validate({**row.model_dump(), **update})


def prune_row(row: KeywordRow) -> KeywordRow:
    """Settle a verified row on its signals.

    Any positive primary or secondary volume -> VALID and active; otherwise
    ZERO and inactive.  UNVERIFIED and ERROR rows are returned unchanged.
    """
    if row.status in (RowStatus.UNVERIFIED, RowStatus.ERROR):
        return row
    if row.has_positive_signal:
        if row.status == RowStatus.VALID and row.active:
            return row
        return _revise(row, status=RowStatus.VALID, active=True)
    if row.status == RowStatus.ZERO and not row.active:
        return row
    return _revise(row, status=RowStatus.ZERO, active=False)


class GrowthEngine:
    """Runs growth passes for one snapshot at a time.

    Parameters
    ----------
    store:
        Snapshot store holding rows and snapshot documents.
    client:
        Rate-gated volume client used for validation and discovery.
    generator, guard:
        Candidate source and category-specificity filter.
    jobs:
        Job register for stop checkpoints and progress; optional so the
        engine can run without a job (tests, one-off scripts).
    progress:
        Optional tracker notified at every checkpoint.
    config:
        Growth tunables.
    """

    def __init__(
        self,
        store: ISnapshotStore,
        client: RateGatedVolumeClient,
        *,
        generator: CandidateGenerator | None = None,
        guard: KeywordGuard | None = None,
        jobs: JobControlRegister | None = None,
        progress: ProgressTracker | None = None,
        config: GrowthConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._client = client
        self._generator = generator or CandidateGenerator()
        self._guard = guard or KeywordGuard()
        self._jobs = jobs
        self._progress = progress
        self._config = config or GrowthConfig()
        self._clock = clock
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def config(self) -> GrowthConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def grow(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        *,
        job_id: str | None = None,
        target_valid: int | None = None,
        max_attempts: int | None = None,
    ) -> GrowthResult:
        """Grow the snapshot until the target is met or nothing is left to try.

        Parameters
        ----------
        key, snapshot_id:
            The snapshot to grow.
        job_id:
            Owning job; enables stop checkpoints and progress updates.
        target_valid:
            Valid-row target; ``0`` only flushes pending rows.
        max_attempts:
            Pass limit; defaults to the configured value.

        Raises
        ------
        LifecycleError
            If the snapshot is certified or has no open anchors.
        GrowthStalledError
            If a pass produced candidates but the store gained no rows.
        EmptyResultError
            If validation came back empty twice running.
        JobStoppedError
            At the first checkpoint after a stop request.
        """
        target = self._config.target_valid if target_valid is None else target_valid
        attempts = max_attempts or self._config.max_attempts

        snapshot = await self._load(key, snapshot_id)
        if snapshot.lifecycle.is_certified:
            raise LifecycleError(
                f"snapshot {snapshot_id} is {snapshot.lifecycle.value}; "
                "reset it for rebuild before growing"
            )
        if not snapshot.open_anchors:
            raise LifecycleError(f"snapshot {snapshot_id} has no open anchors")

        cancel_event = (
            self._jobs.cancel_event_for(job_id) if self._jobs is not None and job_id else None
        )
        ctx = _RunContext(key=key, snapshot_id=snapshot_id, job_id=job_id, cancel_event=cancel_event)

        outcome: GrowthOutcome | None = None
        reason = ""
        passes = 0
        rows_added = 0
        empty_rounds = 0

        for pass_no in range(1, attempts + 1):
            passes = pass_no
            await self._checkpoint(ctx, pass_no - 1, attempts, f"grow_pass_{pass_no}/{attempts}")

            rows = await self._store.read_all_keyword_rows(key, snapshot_id)
            stats = SnapshotStats.from_rows(rows)
            self._logger.info(
                "grow_pass_start",
                category_id=key.category_id,
                snapshot_id=snapshot_id,
                pass_no=pass_no,
                total=stats.total,
                valid=stats.valid,
                unverified=stats.unverified,
                target=target,
            )

            if stats.valid >= target and stats.unverified == 0:
                outcome, reason = GrowthOutcome.SUCCESS, "target_reached"
                break

            candidates = await self._collect_candidates(ctx, snapshot, rows, stats, target, pass_no)
            if not candidates and stats.unverified == 0:
                outcome, reason = GrowthOutcome.PLATEAU, "no_candidates"
                break

            rows = await self._persist_unverified(ctx, snapshot, rows, candidates)
            row_delta = len(rows) - stats.total
            rows_added += row_delta

            rows, received = await self._validate(ctx, rows)
            if received == 0:
                empty_rounds += 1
                if empty_rounds >= _EMPTY_ROUNDS_LIMIT:
                    raise EmptyResultError(
                        f"validation returned no results for {empty_rounds} consecutive "
                        f"passes on {key}/{snapshot_id}",
                        provider_name=self._client.provider_name,
                    )
            else:
                empty_rounds = 0

            snapshot, new_stats = await self._recompute(ctx, snapshot, rows)
            valid_delta = new_stats.valid - stats.valid
            self._logger.info(
                "grow_pass_complete",
                category_id=key.category_id,
                snapshot_id=snapshot_id,
                pass_no=pass_no,
                candidates=len(candidates),
                row_delta=row_delta,
                valid_delta=valid_delta,
                valid=new_stats.valid,
                zero=new_stats.zero,
                unverified=new_stats.unverified,
            )

            if candidates and row_delta == 0 and valid_delta == 0 and stats.unverified == 0:
                raise GrowthStalledError(
                    f"pass {pass_no} produced {len(candidates)} candidates but the store "
                    f"gained no rows and no valid keywords for {key}/{snapshot_id}"
                )

        # Final flush of anything the last pass left pending.
        rows = await self._store.read_all_keyword_rows(key, snapshot_id)
        if any(r.status == RowStatus.UNVERIFIED for r in rows):
            await self._checkpoint(ctx, attempts, attempts, "final_flush")
            rows, _received = await self._validate(ctx, rows)

        final_stats = SnapshotStats.from_rows(rows)
        lifecycle = snapshot.lifecycle
        if final_stats.unverified == 0 and final_stats.total > 0:
            lifecycle = lifecycle.promote(Lifecycle.VALIDATED)
        snapshot = snapshot.touched(stats=final_stats, lifecycle=lifecycle)
        await self._store.write_snapshot(snapshot)

        if outcome is None:
            if final_stats.valid >= target and final_stats.unverified == 0:
                outcome, reason = GrowthOutcome.SUCCESS, "target_reached"
            else:
                outcome, reason = GrowthOutcome.PLATEAU, "max_attempts_exhausted"

        verification = await self._verify(key, snapshot_id, target)
        self._logger.info(
            "grow_complete",
            category_id=key.category_id,
            snapshot_id=snapshot_id,
            outcome=outcome.value,
            reason=reason,
            passes=passes,
            valid=final_stats.valid,
            lifecycle=lifecycle.value,
            verification=verification.value,
        )
        return GrowthResult(
            category_id=key.category_id,
            snapshot_id=snapshot_id,
            outcome=outcome,
            passes=passes,
            stats=final_stats,
            lifecycle=lifecycle,
            verification=verification,
            reason=reason,
            rows_added=rows_added,
        )

    # ------------------------------------------------------------------
    # Pass steps
    # ------------------------------------------------------------------

    async def _collect_candidates(
        self,
        ctx: _RunContext,
        snapshot: Snapshot,
        rows: list[KeywordRow],
        stats: SnapshotStats,
        target: int,
        pass_no: int,
    ) -> list[str]:
        if stats.valid >= target:
            return []

        category_id = snapshot.category_id
        cap = self._config.max_candidates_per_pass
        existing = {r.text for r in rows}
        found: dict[str, None] = {}

        for anchor in snapshot.open_anchors:
            deficit = max(
                0, self._config.target_per_anchor - stats.per_anchor_valid.get(anchor.id, 0)
            )
            if deficit == 0:
                continue
            limit = min(_MAX_ANCHOR_BATCH, max(_MIN_ANCHOR_BATCH, deficit * _ANCHOR_BATCH_FACTOR))
            generated = self._generator.generate(category_id, anchor.id, limit)
            for keyword in self._guard.filter(generated, category_id):
                if keyword not in existing:
                    found.setdefault(keyword)
            if len(found) >= cap:
                break

        candidates = list(found)[:cap]
        if (
            len(candidates) < self._config.discovery_min_candidates
            and pass_no <= self._config.discovery_max_pass
        ):
            discovered = await self._discover(ctx, category_id, pass_no, existing | set(candidates))
            candidates.extend(discovered[: cap - len(candidates)])

        self._logger.debug(
            "candidates_collected",
            category_id=category_id,
            pass_no=pass_no,
            count=len(candidates),
        )
        return candidates

    async def _discover(
        self,
        ctx: _RunContext,
        category_id: str,
        pass_no: int,
        exclude: set[str],
    ) -> list[str]:
        """Guard-passing related terms with positive volume for this pass's seeds."""
        per_pass = self._config.discovery_seeds_per_pass
        all_seeds = self._generator.discovery_seeds(category_id)
        seeds = all_seeds[(pass_no - 1) * per_pass : pass_no * per_pass]
        if not seeds:
            return []

        await self._assert_not_stopped(ctx)
        factories = [
            functools.partial(
                self._client.discover_related,
                group,
                category_id=category_id,
                snapshot_id=ctx.snapshot_id,
                cancel_event=ctx.cancel_event,
            )
            for group in chunk(seeds, self._config.discovery_seeds_per_call)
        ]
        try:
            results = await run_bounded(
                factories,
                concurrency=self._config.pool_concurrency,
                cancel_event=ctx.cancel_event,
            )
        except ProviderCallError as exc:
            self._logger.warning(
                "discovery_unavailable",
                category_id=category_id,
                pass_no=pass_no,
                error=str(exc),
                error_class=exc.error_class.value if exc.error_class else None,
            )
            return []

        kept: dict[str, None] = {}
        for volumes in results:
            for item in volumes:
                norm = normalize_keyword(item.keyword)
                if (
                    (item.volume or 0) > 0
                    and norm not in exclude
                    and norm not in kept
                    and self._guard.is_specific(norm, category_id).ok
                ):
                    kept[norm] = None

        self._logger.info(
            "discovery_complete",
            category_id=category_id,
            pass_no=pass_no,
            seeds=len(seeds),
            kept=len(kept),
        )
        return list(kept)

    async def _persist_unverified(
        self,
        ctx: _RunContext,
        snapshot: Snapshot,
        rows: list[KeywordRow],
        candidates: list[str],
    ) -> list[KeywordRow]:
        if not candidates:
            return rows
        anchors = snapshot.open_anchors
        new_rows: list[KeywordRow] = []
        for text in candidates:
            intent = infer_intent(text)
            new_rows.append(
                KeywordRow(
                    id=keyword_row_id(text, snapshot.category_id),
                    text=text,
                    anchor_id=assign_anchor(text, anchors, intent),
                    intent=intent,
                    created_at=self._clock(),
                )
            )
        await self._store.write_keyword_rows(ctx.key, ctx.snapshot_id, [*rows, *new_rows])
        persisted = await self._store.read_all_keyword_rows(ctx.key, ctx.snapshot_id)
        self._logger.info(
            "rows_persisted_unverified",
            category_id=ctx.key.category_id,
            snapshot_id=ctx.snapshot_id,
            sent=len(new_rows),
            total=len(persisted),
        )
        return persisted

    async def _validate(
        self, ctx: _RunContext, rows: list[KeywordRow]
    ) -> tuple[list[KeywordRow], int]:
        """Validate every UNVERIFIED row; returns the pruned rows and the hit count."""
        pending = [r.text for r in rows if r.status == RowStatus.UNVERIFIED]
        if not pending:
            return rows, 0

        by_text: dict[str, KeywordRow] = {r.text: r for r in rows}
        batches = chunk(pending, self._client.batch_size)
        validated_at = self._clock()
        received = 0

        async def before_batch(index: int, count: int) -> None:
            await self._checkpoint(ctx, index, count, f"validate_batch_{index + 1}/{count}")

        async def after_batch(index: int, batch_map: dict[str, KeywordVolume]) -> None:
            nonlocal received
            received += len(batch_map)
            for text in batches[index]:
                by_text[text] = self._apply_primary(by_text[text], batch_map.get(text), validated_at)
            await self._store.write_keyword_rows(ctx.key, ctx.snapshot_id, list(by_text.values()))

        await self._client.validate_keywords(
            pending,
            category_id=ctx.key.category_id,
            snapshot_id=ctx.snapshot_id,
            cancel_event=ctx.cancel_event,
            before_batch=before_batch,
            after_batch=after_batch,
        )

        if self._config.use_secondary_signal:
            await self._apply_secondary(ctx, by_text, pending)

        pruned = [prune_row(r) for r in by_text.values()]
        await self._store.write_keyword_rows(ctx.key, ctx.snapshot_id, pruned)
        return pruned, received

    async def _apply_secondary(
        self,
        ctx: _RunContext,
        by_text: dict[str, KeywordRow],
        validated: list[str],
    ) -> None:
        zero_texts = [
            t
            for t in validated
            if by_text[t].status == RowStatus.ZERO and not by_text[t].has_positive_signal
        ]
        if not zero_texts:
            return

        await self._assert_not_stopped(ctx)
        try:
            secondary = await self._client.fetch_secondary(
                zero_texts,
                category_id=ctx.key.category_id,
                snapshot_id=ctx.snapshot_id,
                cancel_event=ctx.cancel_event,
            )
        except ProviderCallError as exc:
            self._logger.warning(
                "secondary_signal_unavailable",
                category_id=ctx.key.category_id,
                snapshot_id=ctx.snapshot_id,
                rows=len(zero_texts),
                error=str(exc),
                error_class=exc.error_class.value if exc.error_class else None,
            )
            return

        upgraded = 0
        for text in zero_texts:
            item = secondary.get(text)
            if item is None or item.secondary_volume is None:
                continue
            by_text[text] = _revise(by_text[text], secondary_volume=item.secondary_volume)
            if item.secondary_volume > 0:
                upgraded += 1
        self._logger.info(
            "secondary_signal_applied",
            category_id=ctx.key.category_id,
            checked=len(zero_texts),
            upgraded=upgraded,
        )

    def _apply_primary(
        self,
        row: KeywordRow,
        item: KeywordVolume | None,
        validated_at: datetime,
    ) -> KeywordRow:
        if row.status != RowStatus.UNVERIFIED:
            return row
        if item is None:
            absent = row.absent_rounds + 1
            if absent >= self._config.max_absent_rounds:
                return _revise(
                    row,
                    status=RowStatus.ERROR,
                    volume=0,
                    active=False,
                    absent_rounds=absent,
                    validated_at=validated_at,
                )
            return row.model_copy(update={"absent_rounds": absent})

        volume = item.volume or 0
        return _revise(
            row,
            status=RowStatus.VALID if volume > 0 else RowStatus.ZERO,
            volume=volume,
            active=volume > 0,
            cpc=item.cpc,
            competition_index=item.competition_index,
            absent_rounds=0,
            validated_at=validated_at,
        )

    async def _recompute(
        self, ctx: _RunContext, snapshot: Snapshot, rows: list[KeywordRow]
    ) -> tuple[Snapshot, SnapshotStats]:
        stats = SnapshotStats.from_rows(rows)
        snapshot = snapshot.touched(stats=stats)
        await self._store.write_snapshot(snapshot)
        return snapshot, stats

    async def _verify(self, key: SnapshotKey, snapshot_id: str, target: int) -> Verification:
        stored = await self._store.get_snapshot_by_id(key, snapshot_id)
        if stored is None:
            self._logger.error("grow_verification_no_go", snapshot_id=snapshot_id, reason="missing")
            return Verification.NO_GO
        actual = SnapshotStats.from_rows(await self._store.read_all_keyword_rows(key, snapshot_id))
        if stored.stats != actual:
            self._logger.error(
                "grow_verification_no_go",
                snapshot_id=snapshot_id,
                reason="stats_mismatch",
                stored_valid=stored.stats.valid,
                actual_valid=actual.valid,
            )
            return Verification.NO_GO
        if actual.unverified > 0 or actual.valid < target:
            return Verification.WARN
        return Verification.GO

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load(self, key: SnapshotKey, snapshot_id: str) -> Snapshot:
        snapshot = await self._store.get_snapshot_by_id(key, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"snapshot {snapshot_id} not found for {key}")
        return snapshot

    async def _assert_not_stopped(self, ctx: _RunContext) -> None:
        if self._jobs is not None and ctx.job_id is not None:
            await self._jobs.assert_not_stopped(ctx.job_id)

    async def _checkpoint(self, ctx: _RunContext, processed: int, total: int, stage: str) -> None:
        """Stop check plus progress tick."""
        await self._assert_not_stopped(ctx)
        if self._jobs is not None and ctx.job_id is not None:
            await self._jobs.update_progress(ctx.job_id, processed, total, stage=stage)
        if self._progress is not None:
            await self._progress.update(ctx.key.category_id, ctx.job_id, stage, processed, total)
