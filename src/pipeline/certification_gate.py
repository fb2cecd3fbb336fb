"""Certification gate engine.

:func:`evaluate` is a pure function of a snapshot and its rows.  It never
writes; :class:`CertificationService` wraps it with the read / evaluate /
write / move-index sequence used by jobs.

Validity here is judged on primary volume only
(:attr:`KeywordRow.is_primary_valid`), which can differ from the growth
engine's ``VALID`` status when a row was admitted on secondary signal.

Lifecycle handling:

- promotion goes through :meth:`Lifecycle.promote`, so re-evaluating a
  certified snapshot never lowers it and a second ``evaluate`` on the
  resulting state returns the same report;
- :func:`reset_for_rebuild` is the only way back down.
"""

from __future__ import annotations

from collections import defaultdict

import structlog

from src.interfaces.snapshot_store import ISnapshotStore
from src.models.certification import (
    LEAN_MIN_ANCHORS_ATTEMPTED,
    LEAN_MIN_VALID_PER_ANCHOR,
    LEAN_THRESHOLDS,
    STANDARD_THRESHOLDS,
    VALIDATED_LITE_MIN_VALID,
    CertificationPolicy,
    CertificationReport,
    GateResult,
    HealthGrade,
    Tier,
)
from src.models.corpus import KeywordRow, Lifecycle, Snapshot, SnapshotKey
from src.services.corpus_health import compute_health
from src.utils.errors import SnapshotNotFoundError

logger = structlog.get_logger(logger_name=__name__)

POISON_REASON = "Poison guard: 0 valid keywords"


# ======================================================================
# Pure evaluation
# ======================================================================


def _anchor_valid_stats(rows: list[KeywordRow]) -> dict[str, tuple[int, int]]:
    """Map anchor id -> (valid count, max valid volume)."""
    counts: dict[str, int] = defaultdict(int)
    heads: dict[str, int] = defaultdict(int)
    for row in rows:
        if row.is_primary_valid:
            counts[row.anchor_id] += 1
            heads[row.anchor_id] = max(heads[row.anchor_id], row.volume or 0)
    return {anchor_id: (counts[anchor_id], heads[anchor_id]) for anchor_id in counts}


def _gate(name: str, passed: bool, observed: float, required: float, reason: str) -> GateResult:
    return GateResult(
        name=name,
        passed=passed,
        observed=observed,
        required=required,
        reason="" if passed else reason,
    )


def _standard_gates(
    tier: Tier,
    anchor_stats: dict[str, tuple[int, int]],
    valid_total: int,
    coverage: float,
    zero_ratio: float,
    health_grade: HealthGrade,
) -> tuple[list[GateResult], int]:
    t = STANDARD_THRESHOLDS[tier]
    anchors_passing = sum(
        1
        for valid, head in anchor_stats.values()
        if valid >= t.min_valid_per_anchor and head >= t.min_head_volume
    )
    gates = [
        _gate(
            "A_anchors",
            anchors_passing >= t.min_passing_anchors,
            anchors_passing,
            t.min_passing_anchors,
            f"Gate A (Anchors): {anchors_passing} passing (need {t.min_passing_anchors}, "
            f"valid>={t.min_valid_per_anchor}, head>={t.min_head_volume})",
        ),
        _gate(
            "B_coverage",
            coverage >= t.min_coverage,
            round(coverage, 4),
            t.min_coverage,
            f"Gate B (Coverage): {coverage * 100:.1f}% (need {t.min_coverage * 100:.0f}%)",
        ),
        _gate(
            "C_zero_ceiling",
            zero_ratio <= t.max_zero_ratio,
            round(zero_ratio, 4),
            t.max_zero_ratio,
            f"Gate C (Zero Vol): {zero_ratio * 100:.1f}% (max {t.max_zero_ratio * 100:.0f}%)",
        ),
        _gate(
            "D_health",
            health_grade != HealthGrade.RED,
            0.0 if health_grade == HealthGrade.RED else 1.0,
            1.0,
            f"Gate D (Health): grade is {health_grade.value} (cannot be RED)",
        ),
        _gate(
            "E_min_valid",
            valid_total >= t.min_valid_total,
            valid_total,
            t.min_valid_total,
            f"Gate E (Volume): {valid_total} valid keywords (need {t.min_valid_total})",
        ),
    ]
    return gates, anchors_passing


def _lean_gates(
    tier: Tier,
    anchors_passing: int,
    valid_total: int,
    coverage_pct: float,
    zero_pct: float,
) -> list[GateResult]:
    t = LEAN_THRESHOLDS[tier]
    prefix = f"LEAN {tier.value}"
    return [
        _gate(
            "anchors_passing",
            anchors_passing >= t.min_anchors_passing,
            anchors_passing,
            t.min_anchors_passing,
            f"{prefix}: {anchors_passing} anchors passing (need {t.min_anchors_passing})",
        ),
        _gate(
            "coverage_pct",
            coverage_pct >= t.min_coverage_pct,
            round(coverage_pct, 2),
            t.min_coverage_pct,
            f"{prefix}: coverage {coverage_pct:.1f}% (need {t.min_coverage_pct:.0f}%)",
        ),
        _gate(
            "valid_total",
            valid_total >= t.min_valid_total,
            valid_total,
            t.min_valid_total,
            f"{prefix}: {valid_total} valid keywords (need {t.min_valid_total})",
        ),
        _gate(
            "zero_pct",
            zero_pct <= t.max_zero_pct,
            round(zero_pct, 2),
            t.max_zero_pct,
            f"{prefix}: zero {zero_pct:.1f}% (max {t.max_zero_pct:.0f}%)",
        ),
    ]


def evaluate(
    snapshot: Snapshot,
    rows: list[KeywordRow],
    *,
    tier: Tier,
    policy: CertificationPolicy,
) -> CertificationReport:
    """Evaluate ``rows`` against the gates of ``policy`` for ``tier``.

    Parameters
    ----------
    snapshot:
        The snapshot being certified; supplies anchors and the current
        lifecycle.
    rows:
        Every keyword row of the snapshot.
    tier:
        Requested tier.  Under ``LEAN_REBUILD`` a ``FULL`` request falls
        back to ``LITE`` when the FULL thresholds are not met.
    policy:
        Gate profile; there is no default.

    Returns
    -------
    CertificationReport
        ``lifecycle`` is ``snapshot.lifecycle`` promoted to the certified
        lifecycle of the achieved tier, or unchanged on failure.
    """
    total = len(rows)
    valid_total = sum(1 for r in rows if r.is_primary_valid)
    zero_total = sum(1 for r in rows if r.is_primary_zero)
    coverage = valid_total / total if total else 0.0
    zero_ratio = zero_total / total if total else 0.0
    anchor_stats = _anchor_valid_stats(rows)
    health = compute_health(snapshot, rows)

    base = {
        "policy": policy,
        "requested_tier": tier,
        "anchors_attempted": len(snapshot.anchors),
        "valid_total": valid_total,
        "zero_total": zero_total,
        "total": total,
        "coverage": round(coverage, 4),
        "zero_ratio": round(zero_ratio, 4),
        "health": health,
    }

    if valid_total == 0:
        return CertificationReport(
            passed=False,
            lifecycle=snapshot.lifecycle,
            reasons=[POISON_REASON],
            gates=[_gate("poison_guard", False, 0, 1, POISON_REASON)],
            poisoned=True,
            **base,
        )

    if policy == CertificationPolicy.STANDARD:
        gates, anchors_passing = _standard_gates(
            tier,
            anchor_stats,
            valid_total,
            coverage,
            zero_ratio,
            health.grade,
        )
        passed = all(g.passed for g in gates)
        return CertificationReport(
            passed=passed,
            tier_achieved=tier if passed else None,
            lifecycle=(
                snapshot.lifecycle.promote(tier.certified_lifecycle)
                if passed
                else snapshot.lifecycle
            ),
            reasons=[g.reason for g in gates if not g.passed],
            gates=gates,
            anchors_passing=anchors_passing,
            **base,
        )

    # LEAN_REBUILD
    anchors_passing = sum(
        1 for valid, _head in anchor_stats.values() if valid >= LEAN_MIN_VALID_PER_ANCHOR
    )
    tiers = [Tier.LITE] if tier == Tier.LITE else [Tier.FULL, Tier.LITE]
    all_gates: list[GateResult] = []
    for candidate in tiers:
        gates = _lean_gates(candidate, anchors_passing, valid_total, coverage * 100, zero_ratio * 100)
        all_gates.extend(gates)
        if all(g.passed for g in gates):
            return CertificationReport(
                passed=True,
                tier_achieved=candidate,
                lifecycle=snapshot.lifecycle.promote(candidate.certified_lifecycle),
                gates=gates,
                anchors_passing=anchors_passing,
                **base,
            )

    return CertificationReport(
        passed=False,
        lifecycle=snapshot.lifecycle,
        reasons=[g.reason for g in all_gates if not g.passed],
        gates=all_gates,
        anchors_passing=anchors_passing,
        **base,
    )


def reset_for_rebuild(snapshot: Snapshot) -> Snapshot:
    """Return ``snapshot`` at HYDRATED with its certification report cleared.

    The one sanctioned lifecycle downgrade; snapshots already at or below
    HYDRATED are returned unchanged.
    """
    if snapshot.lifecycle.rank <= Lifecycle.HYDRATED.rank:
        return snapshot
    logger.warning(
        "lifecycle_reset_for_rebuild",
        snapshot_id=snapshot.id,
        category_id=snapshot.category_id,
        from_lifecycle=snapshot.lifecycle.value,
        to_lifecycle=Lifecycle.HYDRATED.value,
    )
    return snapshot.touched(lifecycle=Lifecycle.HYDRATED, certification=None)


# ======================================================================
# Service wrapper
# ======================================================================


class CertificationService:
    """Reads a snapshot, evaluates it, persists the verdict.

    Parameters
    ----------
    store:
        Snapshot store holding the rows and the active-snapshot index.
    """

    def __init__(self, store: ISnapshotStore) -> None:
        self._store = store

    async def certify(
        self,
        key: SnapshotKey,
        snapshot_id: str,
        tier: Tier,
        policy: CertificationPolicy,
    ) -> CertificationReport:
        snapshot = await self._store.get_snapshot_by_id(key, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"snapshot {snapshot_id} not found for {key}")
        rows = await self._store.read_all_keyword_rows(key, snapshot_id)

        if policy == CertificationPolicy.LEAN_REBUILD and len(snapshot.anchors) < LEAN_MIN_ANCHORS_ATTEMPTED:
            logger.warning(
                "certification_few_anchors",
                snapshot_id=snapshot_id,
                anchors=len(snapshot.anchors),
                expected=LEAN_MIN_ANCHORS_ATTEMPTED,
            )

        report = evaluate(snapshot, rows, tier=tier, policy=policy)
        updated = snapshot.touched(
            lifecycle=report.lifecycle,
            certification=report.model_dump(mode="json"),
        )
        await self._store.write_snapshot(updated)

        if report.passed:
            await self._store.set_active_snapshot_id(key, snapshot_id)
            logger.info(
                "certification_passed",
                category_id=key.category_id,
                snapshot_id=snapshot_id,
                policy=policy.value,
                tier=report.tier_achieved.value if report.tier_achieved else None,
                lifecycle=report.lifecycle.value,
                valid_total=report.valid_total,
                anchors_passing=report.anchors_passing,
            )
        else:
            logger.warning(
                "certification_gate_failed",
                category_id=key.category_id,
                snapshot_id=snapshot_id,
                policy=policy.value,
                poisoned=report.poisoned,
                reasons=report.reasons,
            )
        return report

    async def attempt_lite_promotion(self, key: SnapshotKey, snapshot_id: str) -> bool:
        """Promote to VALIDATED_LITE when the snapshot has enough valid rows.

        Returns ``True`` when the snapshot now carries at least
        VALIDATED_LITE.  Never lowers a higher lifecycle.
        """
        snapshot = await self._store.get_snapshot_by_id(key, snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(f"snapshot {snapshot_id} not found for {key}")
        if snapshot.stats.valid < VALIDATED_LITE_MIN_VALID:
            return False
        promoted = snapshot.lifecycle.promote(Lifecycle.VALIDATED_LITE)
        if promoted != snapshot.lifecycle:
            await self._store.write_snapshot(snapshot.touched(lifecycle=promoted))
            logger.info(
                "lifecycle_promoted",
                snapshot_id=snapshot_id,
                lifecycle=promoted.value,
                valid=snapshot.stats.valid,
            )
        return True
