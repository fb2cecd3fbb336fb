"""Corpus health scoring for a snapshot.

A pure function of the snapshot's anchors and rows.  Validity is judged on
primary volume only: a row is valid when it is active with positive
volume; a verified row with zero volume counts toward the zero share
whether or not it has been pruned.

Score (clamped to 0..100)::

    100
    - min(40, zero_pct * 0.6)
    - min(25, anchors_with_zero_valid * 5)
    - min(25, (100 - sv_weighted_valid_pct) * 0.25)   # only when total volume > 0
    - 10 if the top 10 keywords carry more than 75% of volume

Grade: GREEN >= 80, AMBER >= 60, else RED.
"""

from __future__ import annotations

import math

from src.models.certification import HealthGrade, HealthReport
from src.models.corpus import KeywordRow, Snapshot

_ACTIONS = {
    HealthGrade.GREEN: "KEEP",
    HealthGrade.AMBER: "CLEANUP",
    HealthGrade.RED: "CLEANUP + RECERTIFY",
}


def _percentile(sorted_values: list[int], fraction: float) -> int:
    if not sorted_values:
        return 0
    return sorted_values[min(len(sorted_values) - 1, math.floor(len(sorted_values) * fraction))]


def grade_for(score: float) -> HealthGrade:
    if score >= 80:
        return HealthGrade.GREEN
    if score >= 60:
        return HealthGrade.AMBER
    return HealthGrade.RED


def compute_health(snapshot: Snapshot, rows: list[KeywordRow]) -> HealthReport:
    """Compute the :class:`HealthReport` for ``snapshot`` from ``rows``."""
    total = len(rows)
    valid_rows = [r for r in rows if r.is_primary_valid]
    zero_count = sum(1 for r in rows if r.volume == 0)
    unverified = sum(1 for r in rows if r.volume is None)
    zero_pct = zero_count / total * 100 if total else 0.0

    total_volume = sum(r.volume or 0 for r in rows)
    valid_volume = sum(r.volume or 0 for r in valid_rows)
    sv_weighted_valid_pct = valid_volume / total_volume * 100 if total_volume else 0.0

    valid_volumes = sorted(r.volume or 0 for r in valid_rows)
    top10 = sum(sorted((r.volume or 0 for r in rows), reverse=True)[:10])
    top10_share_pct = top10 / total_volume * 100 if total_volume else 0.0

    per_anchor_zero_pct: dict[str, float] = {}
    anchors_with_zero_valid = 0
    for anchor in snapshot.anchors:
        anchor_rows = [r for r in rows if r.anchor_id == anchor.id]
        if not any(r.is_primary_valid for r in anchor_rows):
            anchors_with_zero_valid += 1
        anchor_zero = sum(1 for r in anchor_rows if r.is_primary_zero)
        per_anchor_zero_pct[anchor.id] = (
            round(anchor_zero / len(anchor_rows) * 100, 2) if anchor_rows else 0.0
        )

    score = 100.0
    score -= min(40.0, zero_pct * 0.6)
    score -= min(25.0, anchors_with_zero_valid * 5.0)
    if total_volume > 0:
        score -= min(25.0, (100.0 - sv_weighted_valid_pct) * 0.25)
    if top10_share_pct > 75:
        score -= 10.0
    score = max(0.0, min(100.0, score))
    grade = grade_for(score)

    warnings: list[str] = []
    if zero_pct > 20:
        warnings.append(f"High zero-volume density: {zero_pct:.1f}%")
    if anchors_with_zero_valid > 0:
        warnings.append(f"{anchors_with_zero_valid} anchors have zero valid keywords")
    if top10_share_pct > 75:
        warnings.append(
            f"High volume concentration: top 10 keywords drive {top10_share_pct:.1f}% of volume"
        )
    if unverified > 0:
        warnings.append(f"Unverified accumulation: {unverified} pending rows")

    return HealthReport(
        keywords_total=total,
        valid_total=len(valid_rows),
        zero_count=zero_count,
        zero_pct=round(zero_pct, 2),
        unverified_count=unverified,
        total_volume=total_volume,
        valid_volume=valid_volume,
        sv_weighted_valid_pct=round(sv_weighted_valid_pct, 2),
        p50=_percentile(valid_volumes, 0.5),
        p90=_percentile(valid_volumes, 0.9),
        top10_share_pct=round(top10_share_pct, 2),
        anchors_with_zero_valid=anchors_with_zero_valid,
        per_anchor_zero_pct=per_anchor_zero_pct,
        score=round(score, 1),
        grade=grade,
        recommended_action=_ACTIONS[grade],
        warnings=warnings,
    )
