# =============================================================================
# src/cli/__init__.py -- CLI Module Overview
# =============================================================================
#
# Command-line access to the corpus pipeline for operators who run jobs
# outside the API server (cron, one-off rebuilds, debugging a category).
#
#   CORPUS (corpus.py)
#      grow / validate / certify / rebuild / expand run a job in the
#      foreground through CorpusPipeline.submit; stop flags a running job
#      (possibly owned by the API process) for a cooperative stop;
#      status and health read the active snapshot.
#
# Architecture Notes:
#   - argparse for argument parsing (not Click/Typer).
#   - Heavy imports (src.main wiring) are deferred inside handlers to
#     keep --help fast.
#   - Components come from src.main.build_pipeline, so the CLI and the
#     API share one SQLite database and one set of settings.
# =============================================================================

"""CLI tools for the demandCorpus pipeline.

- ``python -m src.cli.corpus`` -- run and inspect corpus jobs.
"""
