"""demandCorpus domain models -- re-exports all public model classes.

The models are organized across five submodules by domain concern:
    - corpus.py         -- Keyword rows, anchors, snapshots and their stats
    - certification.py  -- Tiers, policies, gate thresholds and reports
    - growth.py         -- Growth and anchor-expansion results
    - job.py            -- Long-running job records
    - resilience.py     -- Error classes, retry options and step results
"""

from __future__ import annotations

from src.models.certification import (
    CertificationPolicy,
    CertificationReport,
    GateResult,
    HealthGrade,
    HealthReport,
    Tier,
)
from src.models.corpus import (
    Anchor,
    AnchorSource,
    IntentBucket,
    KeywordRow,
    Lifecycle,
    RowStatus,
    Snapshot,
    SnapshotKey,
    SnapshotStats,
)
from src.models.growth import ExpansionResult, GrowthOutcome, GrowthResult, Verification
from src.models.job import Job, JobKind, JobProgress, JobStatus, Liveness
from src.models.resilience import (
    ErrorClass,
    Step,
    StepResult,
    StepStatus,
    TaskOptions,
    TaskOutcome,
)

__all__ = [
    "Anchor",
    "AnchorSource",
    "CertificationPolicy",
    "CertificationReport",
    "ErrorClass",
    "ExpansionResult",
    "GateResult",
    "GrowthOutcome",
    "GrowthResult",
    "HealthGrade",
    "HealthReport",
    "IntentBucket",
    "Job",
    "JobKind",
    "JobProgress",
    "JobStatus",
    "KeywordRow",
    "Lifecycle",
    "Liveness",
    "RowStatus",
    "Snapshot",
    "SnapshotKey",
    "SnapshotStats",
    "Step",
    "StepResult",
    "StepStatus",
    "TaskOptions",
    "TaskOutcome",
    "Tier",
    "Verification",
]
