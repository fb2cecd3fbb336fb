"""Corpus domain models: keyword rows, anchors, snapshots and their stats.

All models are Pydantic v2 with ``frozen=True``; the growth engine and the
certification gate produce new instances via ``model_copy(update={...})``
and write the full row set back to the snapshot store each pass.

Row invariant (enforced by a model validator, so a violating row cannot be
constructed):

    status == UNVERIFIED  <=>  volume is None

Stats invariant (true by construction in :meth:`SnapshotStats.from_rows`):

    valid + zero + unverified == total
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RowStatus(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Validation state of a keyword row.

    UNVERIFIED: persisted, not yet answered by the volume provider.
    VALID:      positive primary or secondary volume.
    ZERO:       confirmed zero on every signal.
    ERROR:      provider omitted the keyword for too many rounds.
    """

    UNVERIFIED = "UNVERIFIED"
    VALID = "VALID"
    ZERO = "ZERO"
    ERROR = "ERROR"


class IntentBucket(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    DECISION = "Decision"
    CONSIDERATION = "Consideration"
    PROBLEM = "Problem"
    DISCOVERY = "Discovery"


class AnchorSource(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    SCAN = "SCAN"            # created when the snapshot was drafted
    EXPANSION = "EXPANSION"  # added by anchor expansion
    MANUAL = "MANUAL"


class Lifecycle(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Ordered corpus maturity stages.

    Upgrades go through :meth:`promote`, which never lowers the rank; the
    only downgrade path is ``reset_for_rebuild`` in the certification module.
    """

    DRAFT = "DRAFT"
    HYDRATED = "HYDRATED"
    VALIDATED_LITE = "VALIDATED_LITE"
    VALIDATED = "VALIDATED"
    CERTIFIED_LITE = "CERTIFIED_LITE"
    CERTIFIED_FULL = "CERTIFIED_FULL"

    @property
    def rank(self) -> int:
        return _LIFECYCLE_ORDER.index(self)

    @property
    def is_certified(self) -> bool:
        return self in (Lifecycle.CERTIFIED_LITE, Lifecycle.CERTIFIED_FULL)

    def promote(self, target: Lifecycle) -> Lifecycle:
        """Return the higher of ``self`` and ``target``."""
        return target if target.rank > self.rank else self


_LIFECYCLE_ORDER = list(Lifecycle)


# ---------------------------------------------------------------------------
# Rows and anchors
# ---------------------------------------------------------------------------


class KeywordRow(BaseModel):
    """One keyword in a snapshot's corpus."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    anchor_id: str
    status: RowStatus = RowStatus.UNVERIFIED
    volume: int | None = None
    secondary_volume: int | None = None
    active: bool = True
    intent: IntentBucket = IntentBucket.DISCOVERY
    cpc: float | None = None
    competition_index: float | None = None
    # Consecutive validation rounds in which the provider omitted this keyword.
    absent_rounds: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    validated_at: datetime | None = None

    @model_validator(mode="after")
    def _check_unverified_volume(self) -> KeywordRow:
        if (self.status == RowStatus.UNVERIFIED) != (self.volume is None):
            raise ValueError(
                f"row {self.text!r}: status={self.status.value} requires "
                f"volume {'None' if self.status == RowStatus.UNVERIFIED else 'set'}"
            )
        return self

    @property
    def has_positive_signal(self) -> bool:
        return (self.volume or 0) > 0 or (self.secondary_volume or 0) > 0

    @property
    def is_primary_valid(self) -> bool:
        """Certification validity: active and positive primary volume."""
        return self.active and (self.volume or 0) > 0

    @property
    def is_primary_zero(self) -> bool:
        """Measured zero only; UNVERIFIED rows have no volume and are not zero rows."""
        return self.active and self.volume == 0


class Anchor(BaseModel):
    """A thematic bucket keywords are assigned to.  Never deleted."""

    model_config = ConfigDict(frozen=True)

    id: str
    order: int
    source: AnchorSource = AnchorSource.SCAN
    # Set by low-yield consolidation; merged anchors take no new keywords.
    merged_into: str | None = None

    @property
    def is_open(self) -> bool:
        return self.merged_into is None


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class SnapshotKey(BaseModel):
    """Addresses a category corpus within a market."""

    model_config = ConfigDict(frozen=True)

    category_id: str
    country: str = "IN"
    language: str = "en"

    def __str__(self) -> str:
        return f"{self.category_id}/{self.country}/{self.language}"


class SnapshotStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    valid: int = 0
    # Includes ERROR rows so that valid + zero + unverified == total.
    zero: int = 0
    unverified: int = 0
    validated: int = 0
    error: int = 0
    per_anchor_total: dict[str, int] = Field(default_factory=dict)
    per_anchor_valid: dict[str, int] = Field(default_factory=dict)

    @classmethod
    def from_rows(cls, rows: list[KeywordRow]) -> SnapshotStats:
        by_status = Counter(r.status for r in rows)
        per_anchor_total: Counter[str] = Counter()
        per_anchor_valid: Counter[str] = Counter()
        for row in rows:
            per_anchor_total[row.anchor_id] += 1
            if row.status == RowStatus.VALID:
                per_anchor_valid[row.anchor_id] += 1

        total = len(rows)
        unverified = by_status[RowStatus.UNVERIFIED]
        return cls(
            total=total,
            valid=by_status[RowStatus.VALID],
            zero=by_status[RowStatus.ZERO] + by_status[RowStatus.ERROR],
            unverified=unverified,
            validated=total - unverified,
            error=by_status[RowStatus.ERROR],
            per_anchor_total=dict(per_anchor_total),
            per_anchor_valid=dict(per_anchor_valid),
        )


class Snapshot(BaseModel):
    """A versioned, mutable working copy of one category corpus."""

    model_config = ConfigDict(frozen=True)

    id: str
    category_id: str
    country: str = "IN"
    language: str = "en"
    lifecycle: Lifecycle = Lifecycle.DRAFT
    anchors: list[Anchor] = Field(default_factory=list)
    stats: SnapshotStats = Field(default_factory=SnapshotStats)
    # Last certification report, serialized (see models.certification).
    certification: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> SnapshotKey:
        return SnapshotKey(
            category_id=self.category_id,
            country=self.country,
            language=self.language,
        )

    @property
    def open_anchors(self) -> list[Anchor]:
        return [a for a in self.anchors if a.is_open]

    def touched(self, **update: Any) -> Snapshot:
        """Copy with ``update`` applied and ``updated_at`` bumped."""
        return self.model_copy(update={**update, "updated_at": _utcnow()})
