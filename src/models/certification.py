"""Certification models: tiers, policies, gate thresholds and reports.

Two gate profiles exist and the caller must always name one explicitly:

- ``STANDARD``      -- the multi-gate profile (anchors, coverage, zero
  ceiling, health grade, valid floor) used for operator-initiated
  certification.
- ``LEAN_REBUILD``  -- relaxed thresholds used only by the rebuild flow,
  evaluating FULL then LITE.

Both are guarded by the poison check (zero valid keywords is never
certifiable).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.corpus import Lifecycle


class Tier(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    LITE = "LITE"
    FULL = "FULL"

    @property
    def certified_lifecycle(self) -> Lifecycle:
        return Lifecycle.CERTIFIED_FULL if self is Tier.FULL else Lifecycle.CERTIFIED_LITE


class CertificationPolicy(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    STANDARD = "STANDARD"
    LEAN_REBUILD = "LEAN_REBUILD"


class HealthGrade(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"


# ---------------------------------------------------------------------------
# Threshold tables
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StandardThresholds:
    min_passing_anchors: int
    min_valid_per_anchor: int
    min_head_volume: int
    min_coverage: float      # valid / total
    max_zero_ratio: float    # zero / total
    min_valid_total: int


@dataclass(frozen=True)
class LeanThresholds:
    min_anchors_passing: int
    min_coverage_pct: float
    min_valid_total: int
    max_zero_pct: float


STANDARD_THRESHOLDS: dict[Tier, StandardThresholds] = {
    Tier.FULL: StandardThresholds(
        min_passing_anchors=10,
        min_valid_per_anchor=20,
        min_head_volume=1000,
        min_coverage=0.35,
        max_zero_ratio=0.65,
        min_valid_total=600,
    ),
    Tier.LITE: StandardThresholds(
        min_passing_anchors=3,
        min_valid_per_anchor=10,
        min_head_volume=1000,
        min_coverage=0.05,
        max_zero_ratio=0.95,
        min_valid_total=150,
    ),
}

LEAN_MIN_VALID_PER_ANCHOR = 2
LEAN_MIN_ANCHORS_ATTEMPTED = 4

LEAN_THRESHOLDS: dict[Tier, LeanThresholds] = {
    Tier.FULL: LeanThresholds(
        min_anchors_passing=2,
        min_coverage_pct=3.0,
        min_valid_total=20,
        max_zero_pct=98.0,
    ),
    Tier.LITE: LeanThresholds(
        min_anchors_passing=1,
        min_coverage_pct=1.0,
        min_valid_total=5,
        max_zero_pct=99.0,
    ),
}

# Growth-side promotion to VALIDATED_LITE.
VALIDATED_LITE_MIN_VALID = 300


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class GateResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    passed: bool
    observed: float
    required: float
    reason: str = ""


class HealthReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    keywords_total: int = 0
    valid_total: int = 0
    zero_count: int = 0
    zero_pct: float = 0.0
    unverified_count: int = 0
    total_volume: int = 0
    valid_volume: int = 0
    sv_weighted_valid_pct: float = 0.0
    p50: int = 0
    p90: int = 0
    top10_share_pct: float = 0.0
    anchors_with_zero_valid: int = 0
    per_anchor_zero_pct: dict[str, float] = Field(default_factory=dict)
    score: float = 100.0
    grade: HealthGrade = HealthGrade.GREEN
    recommended_action: str = "KEEP"
    warnings: list[str] = Field(default_factory=list)


class CertificationReport(BaseModel):
    """Verdict of one :func:`~src.pipeline.certification_gate.evaluate` call.

    ``reasons`` lists every failed gate individually; it is empty on pass.
    ``lifecycle`` is the lifecycle the snapshot should carry afterwards --
    never lower than the lifecycle it was evaluated with.
    """

    model_config = ConfigDict(frozen=True)

    passed: bool
    policy: CertificationPolicy
    requested_tier: Tier
    tier_achieved: Tier | None = None
    lifecycle: Lifecycle
    reasons: list[str] = Field(default_factory=list)
    gates: list[GateResult] = Field(default_factory=list)
    poisoned: bool = False
    anchors_attempted: int = 0
    anchors_passing: int = 0
    valid_total: int = 0
    zero_total: int = 0
    total: int = 0
    coverage: float = 0.0
    zero_ratio: float = 0.0
    health: HealthReport | None = None
