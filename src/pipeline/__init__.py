"""Pipeline components for the demandCorpus growth and certification flow."""

from src.pipeline.certification_gate import CertificationService, evaluate, reset_for_rebuild
from src.pipeline.growth_engine import GrowthConfig, GrowthEngine
from src.pipeline.job_control import JobControlRegister
from src.pipeline.orchestrator import CorpusPipeline
from src.pipeline.progress_tracker import ProgressEvent, ProgressTracker
from src.pipeline.rate_gated_client import RateGatedVolumeClient
from src.pipeline.resilient_runner import ResilientTaskRunner, classify_error
from src.pipeline.snapshot_builder import SnapshotBuilder

__all__ = [
    "CertificationService",
    "CorpusPipeline",
    "GrowthConfig",
    "GrowthEngine",
    "JobControlRegister",
    "ProgressEvent",
    "ProgressTracker",
    "RateGatedVolumeClient",
    "ResilientTaskRunner",
    "SnapshotBuilder",
    "classify_error",
    "evaluate",
    "reset_for_rebuild",
]
