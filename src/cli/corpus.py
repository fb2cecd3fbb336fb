"""CLI for growing, certifying and inspecting category keyword corpora.

Usage::

    # Build a fresh snapshot end to end (draft -> hydrate -> grow -> certify)
    python -m src.cli.corpus rebuild shaving --tier LITE

    # Grow the active snapshot towards the validity target
    python -m src.cli.corpus grow shaving --target-valid 1500

    # Flush pending (UNVERIFIED) rows without generating new candidates
    python -m src.cli.corpus validate shaving

    # Certify the active snapshot
    python -m src.cli.corpus certify shaving --tier FULL

    # Add modifier anchors and merge low-yield ones
    python -m src.cli.corpus expand shaving --min-anchors 8

    # Request a stop of a running job (picked up at its next checkpoint)
    python -m src.cli.corpus stop GROW_shaving_1718000000000

    # Show the active snapshot, its stats and the latest job
    python -m src.cli.corpus status shaving

    # Show the corpus health report
    python -m src.cli.corpus health shaving

Jobs run in the foreground of this process; every command opens the same
SQLite database the API server uses (``CORPUS_DB_PATH``).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from src.models.certification import Tier
from src.models.corpus import SnapshotKey
from src.models.job import Job, JobKind, JobStatus
from src.utils.errors import DemandCorpusError

_JOB_COMMANDS: dict[str, JobKind] = {
    "grow": JobKind.GROW,
    "validate": JobKind.VALIDATE,
    "certify": JobKind.CERTIFY,
    "rebuild": JobKind.REBUILD,
    "expand": JobKind.EXPAND_ANCHORS,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_params(args: argparse.Namespace) -> dict[str, Any]:
    params = {
        "snapshot_id": getattr(args, "snapshot_id", None),
        "country": getattr(args, "country", None),
        "language": getattr(args, "language", None),
        "tier": getattr(args, "tier", None),
        "target_valid": getattr(args, "target_valid", None),
        "max_attempts": getattr(args, "max_attempts", None),
        "min_anchors": getattr(args, "min_anchors", None),
        "anchor_names": getattr(args, "anchors", None),
    }
    return {k: v for k, v in params.items() if v is not None}


def _print_job(job: Job) -> None:
    print(f"Job:      {job.id}")
    print(f"Kind:     {job.kind.value}")
    print(f"Status:   {job.status.value}")
    if job.message:
        print(f"Message:  {job.message}")
    if job.progress.total:
        print(f"Progress: {job.progress.processed:,}/{job.progress.total:,} ({job.stage})")
    result = job.metadata.get("result")
    if isinstance(result, dict):
        for key in ("outcome", "verification", "lifecycle", "reason", "passed", "tier_achieved"):
            if key in result:
                print(f"  {key}: {result[key]}")
        stats = result.get("stats")
        if isinstance(stats, dict):
            print(
                f"  valid={stats.get('valid', 0):,} zero={stats.get('zero', 0):,} "
                f"unverified={stats.get('unverified', 0):,} total={stats.get('total', 0):,}"
            )


async def _close(components: dict[str, Any]) -> None:
    await components["http_client"].aclose()


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_job(args: argparse.Namespace) -> int:
    """Run one corpus job to completion and print its outcome."""
    from src.main import build_pipeline

    kind = _JOB_COMMANDS[args.command]
    components = await build_pipeline()
    try:
        print(f"Running {kind.value} for category '{args.category}'...")
        job = await components["pipeline"].submit(kind, args.category, **_job_params(args))
    finally:
        await _close(components)

    print()
    _print_job(job)
    return 0 if job.status == JobStatus.COMPLETED else 1


async def _handle_stop(args: argparse.Namespace) -> int:
    from src.main import build_pipeline

    components = await build_pipeline()
    try:
        job = await components["pipeline"].stop(args.job_id)
    finally:
        await _close(components)
    print(f"Stop requested for {job.id} (status: {job.status.value})")
    return 0


async def _handle_status(args: argparse.Namespace) -> int:
    """Show the active snapshot and the latest job for a category."""
    from src.main import build_pipeline

    components = await build_pipeline()
    try:
        settings = components["settings"]
        key = SnapshotKey(
            category_id=args.category,
            country=args.country or settings.default_country,
            language=args.language or settings.dfs_language_code,
        )
        store = components["snapshot_store"]
        snapshot_id = await store.get_active_snapshot_id(key)
        snapshot = (
            await store.get_snapshot_by_id(key, snapshot_id) if snapshot_id is not None else None
        )
        job = await components["jobs"].get_latest_job_for_category(args.category)
    finally:
        await _close(components)

    print(f"Category: {key}")
    print("=" * 60)
    if snapshot is None:
        print("No active snapshot (run 'rebuild' first).")
    else:
        stats = snapshot.stats
        print(f"Snapshot:   {snapshot.id}")
        print(f"Lifecycle:  {snapshot.lifecycle.value}")
        print(f"Anchors:    {len(snapshot.open_anchors)} open / {len(snapshot.anchors)} total")
        print(
            f"Rows:       valid={stats.valid:,} zero={stats.zero:,} "
            f"unverified={stats.unverified:,} total={stats.total:,}"
        )
    print("-" * 60)
    if job is None:
        print("No jobs recorded.")
    else:
        _print_job(job)
    return 0


async def _handle_health(args: argparse.Namespace) -> int:
    from src.main import build_pipeline
    from src.services.corpus_health import compute_health

    components = await build_pipeline()
    try:
        settings = components["settings"]
        key = SnapshotKey(
            category_id=args.category,
            country=args.country or settings.default_country,
            language=args.language or settings.dfs_language_code,
        )
        store = components["snapshot_store"]
        snapshot_id = await store.get_active_snapshot_id(key)
        snapshot = (
            await store.get_snapshot_by_id(key, snapshot_id) if snapshot_id is not None else None
        )
        rows = await store.read_all_keyword_rows(key, snapshot.id) if snapshot else []
    finally:
        await _close(components)

    if snapshot is None:
        print(f"Error: no active snapshot for {key}", file=sys.stderr)
        return 1

    report = compute_health(snapshot, rows)
    print(f"Health for {key} ({snapshot.id})")
    print("=" * 60)
    print(f"Grade:        {report.grade.value} (score {report.score:.1f})")
    print(f"Action:       {report.recommended_action}")
    print(f"Valid:        {report.valid_total:,} / {report.keywords_total:,}")
    print(f"Zero:         {report.zero_count:,} ({report.zero_pct:.1f}%)")
    print(f"Volume p50:   {report.p50:,}   p90: {report.p90:,}")
    print(f"Top-10 share: {report.top10_share_pct:.1f}%")
    for warning in report.warnings:
        print(f"  ! {warning}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_key_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("category", help="Category id (e.g. 'shaving')")
    parser.add_argument("--country", default=None, help="ISO country code (default: settings)")
    parser.add_argument("--language", default=None, help="Language code (default: settings)")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the corpus CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.corpus",
        description="Grow and certify demandCorpus keyword corpora.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Corpus commands")
    tiers = [t.value for t in Tier]

    # -- grow --
    grow = subparsers.add_parser("grow", help="Grow the active snapshot")
    _add_key_args(grow)
    grow.add_argument("--snapshot-id", default=None)
    grow.add_argument("--target-valid", type=int, default=None)
    grow.add_argument("--max-attempts", type=int, default=None)
    grow.add_argument("--tier", choices=tiers, default=None, help="LITE lowers the target")

    # -- validate --
    validate = subparsers.add_parser("validate", help="Validate pending rows only")
    _add_key_args(validate)
    validate.add_argument("--snapshot-id", default=None)

    # -- certify --
    certify = subparsers.add_parser("certify", help="Certify the active snapshot")
    _add_key_args(certify)
    certify.add_argument("--snapshot-id", default=None)
    certify.add_argument("--tier", choices=tiers, default="FULL")

    # -- rebuild --
    rebuild = subparsers.add_parser("rebuild", help="Draft, hydrate, grow and certify")
    _add_key_args(rebuild)
    rebuild.add_argument("--tier", choices=tiers, default="FULL")
    rebuild.add_argument("--target-valid", type=int, default=None)
    rebuild.add_argument("--max-attempts", type=int, default=None)
    rebuild.add_argument(
        "--anchors", nargs="+", default=None, help="Anchor names for a new draft"
    )

    # -- expand --
    expand = subparsers.add_parser("expand", help="Add modifier anchors and merge weak ones")
    _add_key_args(expand)
    expand.add_argument("--snapshot-id", default=None)
    expand.add_argument("--min-anchors", type=int, default=None)

    # -- stop --
    stop = subparsers.add_parser("stop", help="Request a stop of a running job")
    stop.add_argument("job_id")

    # -- status / health --
    _add_key_args(subparsers.add_parser("status", help="Show snapshot and latest job"))
    _add_key_args(subparsers.add_parser("health", help="Show the corpus health report"))

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the corpus tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command in _JOB_COMMANDS:
        handler = _handle_job
    elif args.command == "stop":
        handler = _handle_stop
    elif args.command == "status":
        handler = _handle_status
    else:
        handler = _handle_health

    try:
        exit_code = asyncio.run(handler(args))
    except DemandCorpusError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
