"""Growth and anchor-expansion run results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.models.corpus import Lifecycle, SnapshotStats


class GrowthOutcome(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    SUCCESS = "SUCCESS"
    PLATEAU = "PLATEAU"


class Verification(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """Post-run check that the final stats were durably written.

    GO:     stored stats match the rows, nothing pending, target met.
    WARN:   stored stats match, but rows are pending or the target was missed.
    NO_GO:  snapshot missing or stored stats disagree with the rows.
    """

    GO = "GO"
    WARN = "WARN"
    NO_GO = "NO_GO"


class GrowthResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: str
    snapshot_id: str
    outcome: GrowthOutcome
    passes: int
    stats: SnapshotStats
    lifecycle: Lifecycle
    verification: Verification
    reason: str = ""
    rows_added: int = 0


class ExpansionResult(BaseModel):
    """Outcome of anchor expansion plus low-yield consolidation."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    anchors_added: list[str] = Field(default_factory=list)
    rows_added: int = 0
    anchors_merged: list[str] = Field(default_factory=list)
    merged_into: str | None = None
    rows_reassigned: int = 0
