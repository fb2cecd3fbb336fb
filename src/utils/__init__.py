"""Utility modules for demandCorpus.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at
  DemandCorpusError; each layer raises its own subclass so callers can
  handle failures granularly without broad ``except Exception`` blocks.
- **concurrency** -- The process-wide RateGate in front of the keyword
  volume API and the bounded, cancellable task pool used for fan-out.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production, plus
  job-scoped context binding.
- **text_normalizer** -- Keyword normalization, deterministic row ids,
  the rolling hash behind anchor fallback, and rapidfuzz brand matching.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    ConfigurationError,
    DemandCorpusError,
    EmptyResultError,
    GrowthStalledError,
    JobConflictError,
    JobStoppedError,
    LifecycleError,
    PipelineError,
    ProviderCallError,
    ProviderUnavailableError,
    RateLimitError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import RateGate, get_rate_gate, run_bounded

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import bind_job_context, configure_logging, get_logger

# -- Keyword text helpers --------------------------------------------------
from src.utils.text_normalizer import fuzzy_match, keyword_row_id, normalize_keyword

__all__ = [
    "ConfigurationError",
    "DemandCorpusError",
    "EmptyResultError",
    "GrowthStalledError",
    "JobConflictError",
    "JobStoppedError",
    "LifecycleError",
    "PipelineError",
    "ProviderCallError",
    "ProviderUnavailableError",
    "RateGate",
    "RateLimitError",
    "bind_job_context",
    "configure_logging",
    "fuzzy_match",
    "get_logger",
    "get_rate_gate",
    "keyword_row_id",
    "normalize_keyword",
    "run_bounded",
]
