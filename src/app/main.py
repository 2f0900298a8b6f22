from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from core.app_version import get_app_version
from core.config import AppConfig, load_app_config
from core.exceptions import CacheSiftError, StoreQueryError
from core.logging import configure_logging, get_logger
from core.pipeline import PipelineOptions, PipelineSummary, run_pipeline
from core.store_query import query_store

LOGGER = get_logger("app.main")

EXIT_OK = 0
EXIT_NOT_READY = 1
EXIT_FATAL = 2


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="cachesift",
        description="Assemble a forensic toolchain from a manifest and carve images out of cache files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check which tools from the manifest are ready
  cachesift check --base-dir ./case01

  # Download missing required tools, then check again
  cachesift acquire --base-dir ./case01

  # Carve a browser cache directory into ./case01/evidence/carved
  cachesift carve --base-dir ./case01 --candidates "/mnt/evidence/Cache_Data" --min-size 2048

  # Everything in one go
  cachesift run --base-dir ./case01 --candidates ./cache --acquire
""",
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {get_app_version()}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--base-dir", type=Path, default=Path.cwd(),
                        help="Workspace holding config/config.yml (default: current directory)")
    common.add_argument("--config", type=Path, help="Explicit path to a YAML config file")
    common.add_argument("--manifest", type=Path, help="Tool/signature manifest (overrides config)")
    common.add_argument("--evidence-root", type=Path, help="Evidence output root (overrides config)")
    common.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default: from config)")
    common.add_argument("--no-report", action="store_true", help="Do not write the status report")

    carving = argparse.ArgumentParser(add_help=False)
    carving.add_argument("--candidates", type=Path, help="Directory of cache files to scan")
    carving.add_argument("--min-size", type=int, help="Only keep artifacts larger than this many bytes")
    carving.add_argument("--max-candidates", type=int, help="Maximum number of files to scan")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("check", parents=[common], help="Check tool readiness")
    sub.add_parser("acquire", parents=[common], help="Acquire missing required tools")
    sub.add_parser("carve", parents=[common, carving], help="Carve artifacts from a cache directory")
    run_parser = sub.add_parser("run", parents=[common, carving], help="Check, optionally acquire, and carve")
    run_parser.add_argument("--acquire", action="store_true", help="Acquire missing required tools")

    query_parser = sub.add_parser("query", help="Run an opaque query against a SQLite store")
    query_parser.add_argument("store", type=Path, help="Path to the SQLite store")
    query_parser.add_argument("sql", help="Query text")
    query_parser.add_argument("--count", action="store_true", help="Print the row count instead of the first value")

    return parser


def build_options(args: argparse.Namespace) -> PipelineOptions:
    """Map a sub-command onto pipeline switches."""
    command = args.command
    return PipelineOptions(
        check_tools=command in ("check", "acquire", "run"),
        auto_acquire=command == "acquire" or bool(getattr(args, "acquire", False)),
        carve=command in ("carve", "run"),
        write_report=not args.no_report,
        candidate_dir=getattr(args, "candidates", None),
        min_size=getattr(args, "min_size", None),
        max_candidates=getattr(args, "max_candidates", None),
    )


def load_config(args: argparse.Namespace) -> AppConfig:
    config = load_app_config(args.base_dir.resolve(), args.config)
    if args.manifest:
        config = replace(config, manifest_path=args.manifest.resolve())
    if args.evidence_root:
        config = replace(config, evidence_root=args.evidence_root.resolve())
    return config


def print_summary(summary: PipelineSummary) -> None:
    """Print a short console summary of a pipeline run."""
    for status in summary.final_statuses:
        kind = "required" if status.required else "optional"
        detail = f"  ({status.detail})" if status.detail else ""
        print(f"  {status.name:<20} {kind:<8} {status.readiness.value}{detail}")
    for outcome in summary.acquisitions:
        print(f"  [{'OK' if outcome.success else 'FAILED'}] {outcome.tool}: {outcome.message}")
    if summary.manifest_issues:
        print(f"  {len(summary.manifest_issues)} manifest line(s) dropped")
    if summary.carve_result is not None:
        result = summary.carve_result
        print(f"  Carved {len(result.artifacts)} unique artifact(s) from {result.scanned} candidate(s)")
    if summary.report_path:
        print(f"  Status report: {summary.report_path}")


def run_query(args: argparse.Namespace) -> int:
    try:
        value = query_store(args.store, args.sql, count_rows=args.count)
    except StoreQueryError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_NOT_READY
    print("" if value is None else value)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == "query":
        return run_query(args)

    try:
        config = load_config(args)
    except CacheSiftError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL

    configure_logging(
        config.logs_dir,
        level=args.log_level or config.logging.level,
        max_bytes=config.logging.max_mb * 1024 * 1024,
        backup_count=config.logging.backup_count,
    )
    LOGGER.info("cachesift %s: %s", get_app_version(), args.command)

    try:
        summary = run_pipeline(config, build_options(args))
    except CacheSiftError as exc:
        LOGGER.error("Fatal: %s", exc)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL

    print_summary(summary)
    if summary.final_statuses and not summary.all_required_ready:
        return EXIT_NOT_READY
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
