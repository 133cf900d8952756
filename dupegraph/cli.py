"""
Module: cli
Purpose: Command-line interface entry point.
"""

import argparse
import os
import signal
import sys
import threading
from typing import List, Sequence

from . import reporting, scanner
from .config import EXECUTOR_MODES, REDUNDANT_POLICIES, SENSITIVITY_THRESHOLDS, build_config
from .engine import run_pipeline
from .exceptions import CheckpointError, ConfigError, DupegraphError, RunAborted, ScanError
from .planner import describe_plan
from .utils import (
    COLOR_GREEN,
    COLOR_RED,
    COLOR_YELLOW,
    check_pixel_limit,
    color_text,
    configure_pixel_limit,
    current_pixel_limit,
    ensure_directory,
    human_readable_size,
    pixel_limit_source,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_ABORTED = 130


def _pixel_limit_arg(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("Pixel limit must be an integer.") from exc
    try:
        return check_pixel_limit(parsed)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _methods_arg(value: str) -> List[str]:
    return [part.strip().lower() for part in value.split(",") if part.strip()]


def _emit(message: str, color: str | None = None) -> None:
    if color and sys.stdout.isatty():
        message = color_text(message, color)
    print(message)


def _output_path(out_dir: str | None, name: str) -> str:
    if not out_dir:
        return reporting.artifact_path(name)
    ensure_directory(out_dir)
    return os.path.join(os.path.abspath(out_dir), name)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dupegraph",
        description="Find duplicate and near-duplicate images and propose a reviewable plan. "
        "No file is ever moved, linked or deleted by this tool.",
    )
    parser.add_argument(
        "--executor",
        choices=EXECUTOR_MODES,
        default=None,
        help="Worker pool used for fingerprinting (default: auto, or DUPEGRAPH_EXECUTOR)",
    )
    parser.add_argument(
        "--max-pixels",
        type=_pixel_limit_arg,
        default=None,
        help="Decompression-bomb pixel limit (default: 50,000,000 or DUPEGRAPH_MAX_PIXELS)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser("scan", help="List candidate image files")
    scan_parser.add_argument("paths", nargs="+", help="One or more directories to scan")

    plan_parser = subparsers.add_parser(
        "plan",
        help="Fingerprint, cluster and write the action plan and report",
    )
    plan_parser.add_argument("paths", nargs="+", help="One or more directories to analyze")
    plan_parser.add_argument(
        "--sensitivity",
        choices=sorted(SENSITIVITY_THRESHOLDS),
        default=None,
        help="Perceptual threshold preset (default: balanced, or DUPEGRAPH_SENSITIVITY)",
    )
    plan_parser.add_argument("--tight", type=int, default=None, help="Override T1 (tight Hamming distance)")
    plan_parser.add_argument("--loose", type=int, default=None, help="Override T2 (loose Hamming distance)")
    plan_parser.add_argument("--merge-threshold", type=float, default=None)
    plan_parser.add_argument("--auto-confidence", type=float, default=None)
    plan_parser.add_argument("--delete-confidence", type=float, default=None)
    plan_parser.add_argument(
        "--methods",
        type=_methods_arg,
        default=None,
        help="Comma-separated detection methods: exact,perceptual,exif,filename",
    )
    plan_parser.add_argument("--policy", choices=REDUNDANT_POLICIES, default=None)
    plan_parser.add_argument("--workers", type=int, default=None)
    plan_parser.add_argument("--checkpoint", default=None, help="Path of the resumable fingerprint checkpoint")
    plan_parser.add_argument(
        "--out-dir",
        default=None,
        help="Directory for the JSON/CSV report and the action plan (default: artifacts/)",
    )
    dry_run_group = plan_parser.add_mutually_exclusive_group()
    dry_run_group.add_argument("--dry-run", dest="dry_run", action="store_true", default=True)
    dry_run_group.add_argument(
        "--for-execution",
        dest="dry_run",
        action="store_false",
        help="Mark the plan as approved input for an external executor",
    )
    plan_parser.add_argument("--verbose", action="store_true", help="Trace merges and canonical selection")
    return parser


def _run_scan(args) -> int:
    sources, skipped_symlinks = scanner.scan_paths_with_stats(args.paths)
    for source in sources:
        print(source.path)
    total = human_readable_size(sum(source.size for source in sources))
    _emit(f"{len(sources)} candidate files, {total} ({skipped_symlinks} symlinks skipped)", COLOR_GREEN)
    return EXIT_OK


def _run_plan(args) -> int:
    config = build_config(
        args.sensitivity,
        executor=args.executor,
        tight_distance=args.tight,
        loose_distance=args.loose,
        merge_threshold=args.merge_threshold,
        auto_confidence=args.auto_confidence,
        delete_confidence=args.delete_confidence,
        methods=args.methods,
        redundant_policy=args.policy,
        max_workers=args.workers,
        dry_run=args.dry_run,
    )
    sources = scanner.scan_paths(args.paths)
    if args.verbose:
        print(
            f"Executor: {config.executor}, "
            f"pixel limit: {current_pixel_limit():,} (source={pixel_limit_source()})"
        )

    stop = threading.Event()
    previous = signal.getsignal(signal.SIGINT)

    def request_stop(signum, frame):
        stop.set()

    signal.signal(signal.SIGINT, request_stop)
    try:
        result = run_pipeline(
            sources,
            config,
            checkpoint_path=args.checkpoint,
            should_stop=stop.is_set,
            reporter=print if args.verbose else None,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    report = reporting.build_report(
        result.clusters,
        {record.id: record for record in result.records},
        result.plan,
    )
    report_json = _output_path(args.out_dir, "dedupe_report.json")
    report_csv = _output_path(args.out_dir, "dedupe_report.csv")
    plan_json = _output_path(args.out_dir, "action_plan.json")
    reporting.write_json_report(report, report_json)
    reporting.write_csv_report(report, report_csv)
    reporting.write_json_report(result.plan, plan_json)

    print(describe_plan(result.plan))
    if result.summary.skipped:
        _emit(f"{len(result.summary.skipped)} files skipped; see {report_json}", COLOR_YELLOW)
    _emit(f"Report: {report_json}", COLOR_GREEN)
    _emit(f"Plan:   {plan_json}", COLOR_GREEN)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    reporting.ensure_log_initialized()
    try:
        configure_pixel_limit(args.max_pixels)
        if args.command == "scan":
            return _run_scan(args)
        return _run_plan(args)
    except ConfigError as exc:
        _emit(f"Configuration error: {exc}", COLOR_RED)
        return EXIT_CONFIG
    except RunAborted as exc:
        _emit(f"Aborted after {exc.completed} fingerprints; checkpoint kept for resume.", COLOR_YELLOW)
        return EXIT_ABORTED
    except (ScanError, CheckpointError) as exc:
        _emit(f"Error: {exc}", COLOR_RED)
        return EXIT_FAILURE
    except DupegraphError as exc:
        _emit(f"Unexpected failure: {exc}", COLOR_RED)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
