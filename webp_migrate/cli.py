"""Command-line entry point for the WebP asset pipeline."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Sequence

from .config import (
    ANALYSIS_REPORT_NAME,
    BROKEN_REPORT_NAME,
    DEFAULT_DEST_PREFIX,
    DEFAULT_PREFIX,
    DEFAULT_QUALITY,
    DEFAULT_WIDTHS,
    DEFAULT_WORKERS,
    MISSING_REPORT_NAME,
    RASTER_EXTENSIONS,
    ConvertConfig,
    ResponsiveConfig,
    RewriteConfig,
)
from .converter import convert_tree, generate_responsive
from .discovery import iter_files
from .index import analyze_references, build_reference_index, find_missing
from .models import ConversionStats
from .reports import write_json_report
from .rewriter import rewrite_tree, scan_tree
from .utils import normalize_extensions

logger = logging.getLogger("webp_migrate.cli")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INTERRUPTED = 130


def _parse_widths(value: str) -> List[int]:
    try:
        widths = [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid widths {value!r}. Example: 400,800,1200,1920"
        ) from None
    if not widths or any(width <= 0 for width in widths):
        raise argparse.ArgumentTypeError("Widths must be positive integers")
    return widths


def _parse_extensions(value: str):
    return normalize_extensions(value.split(","))


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_conversion_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("src_root", type=Path, help="Directory holding the original images")
    parser.add_argument("dst_root", type=Path, help="Directory that receives the WebP tree")
    parser.add_argument(
        "--quality",
        type=int,
        default=DEFAULT_QUALITY,
        help=f"WebP quality 0-100 (default: {DEFAULT_QUALITY})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Concurrent conversions (default: {DEFAULT_WORKERS})",
    )
    _add_common_arguments(parser)


def _add_reference_arguments(parser: argparse.ArgumentParser, report_name: str) -> None:
    parser.add_argument("source_root", type=Path, help="Directory of source files to scan")
    parser.add_argument("asset_root", type=Path, help="Directory holding the converted WebP tree")
    parser.add_argument(
        "--prefix",
        default=DEFAULT_PREFIX,
        help=f"Root-relative prefix of original image references (default: {DEFAULT_PREFIX})",
    )
    parser.add_argument(
        "--dest-prefix",
        default=DEFAULT_DEST_PREFIX,
        help=f"Prefix used for converted references (default: {DEFAULT_DEST_PREFIX})",
    )
    parser.add_argument(
        "--report",
        type=Path,
        default=Path(report_name),
        help=f"Where to write the JSON report (default: {report_name})",
    )
    _add_common_arguments(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webp-migrate",
        description="Convert site images to WebP and point source references at the converted files.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    discover_parser = subparsers.add_parser("discover", help="List image files under a directory")
    discover_parser.add_argument("root", type=Path, help="Directory to scan")
    discover_parser.add_argument(
        "--ext",
        type=_parse_extensions,
        default=RASTER_EXTENSIONS,
        help="Comma-separated extensions to include (default: .gif,.jpeg,.jpg,.png)",
    )
    _add_common_arguments(discover_parser)

    convert_parser = subparsers.add_parser("convert", help="Convert originals to WebP")
    _add_conversion_arguments(convert_parser)

    responsive_parser = subparsers.add_parser(
        "generate-responsive", help="Write width-tagged WebP variants"
    )
    _add_conversion_arguments(responsive_parser)
    responsive_parser.add_argument(
        "--widths",
        type=_parse_widths,
        default=list(DEFAULT_WIDTHS),
        help="Comma-separated target widths (default: 400,800,1200,1920)",
    )
    responsive_parser.add_argument(
        "--only",
        action="append",
        default=[],
        metavar="PATTERN",
        help="Restrict to file names matching this glob; may be repeated",
    )

    missing_parser = subparsers.add_parser(
        "find-missing", help="List originals that have no WebP counterpart"
    )
    missing_parser.add_argument("src_root", type=Path, help="Directory holding the original images")
    missing_parser.add_argument("dst_root", type=Path, help="Directory holding the WebP tree")
    missing_parser.add_argument(
        "--report",
        type=Path,
        default=Path(MISSING_REPORT_NAME),
        help=f"Where to write the JSON list (default: {MISSING_REPORT_NAME})",
    )
    _add_common_arguments(missing_parser)

    analyze_parser = subparsers.add_parser(
        "analyze", help="Report which referenced images already have a WebP version"
    )
    _add_reference_arguments(analyze_parser, ANALYSIS_REPORT_NAME)

    rewrite_parser = subparsers.add_parser(
        "rewrite-refs", help="Rewrite image references to their WebP counterparts"
    )
    _add_reference_arguments(rewrite_parser, BROKEN_REPORT_NAME)
    rewrite_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing any source file",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def _log_conversion_summary(stats: ConversionStats, elapsed: float) -> None:
    logger.info(
        "Finished in %.2fs (%d converted, %d failed, %d skipped, %d output file(s))",
        elapsed,
        stats.converted,
        stats.failed,
        stats.skipped,
        stats.outputs,
    )
    logger.info(
        "Original %.2f MB -> WebP %.2f MB (%.1f%% smaller)",
        stats.original_bytes / 1024 / 1024,
        stats.converted_bytes / 1024 / 1024,
        stats.savings_percent,
    )


def _run_discover(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    count = 0
    for path in iter_files(args.root, args.ext):
        if cancel_event.is_set():
            return EXIT_INTERRUPTED
        sys.stdout.write(f"{path}\n")
        count += 1
    sys.stdout.flush()
    logger.info("Found %d file(s) under %s", count, args.root)
    return EXIT_OK


def _run_convert(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    config = ConvertConfig(
        source_root=args.src_root,
        dest_root=args.dst_root,
        quality=args.quality,
        workers=args.workers,
    )
    start = time.perf_counter()
    _, stats = convert_tree(config, cancel_event)
    _log_conversion_summary(stats, time.perf_counter() - start)
    return EXIT_INTERRUPTED if cancel_event.is_set() else EXIT_OK


def _run_responsive(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    config = ResponsiveConfig(
        source_root=args.src_root,
        dest_root=args.dst_root,
        quality=args.quality,
        workers=args.workers,
        widths=tuple(args.widths),
        only=list(args.only),
    )
    start = time.perf_counter()
    _, stats = generate_responsive(config, cancel_event)
    _log_conversion_summary(stats, time.perf_counter() - start)
    return EXIT_INTERRUPTED if cancel_event.is_set() else EXIT_OK


def _run_find_missing(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    missing = find_missing(args.src_root, args.dst_root)
    for item in missing:
        logger.info("  %-60s %.2f MB", item.path, item.size / 1024 / 1024)
    logger.info("%d image(s) need WebP conversion", len(missing))
    if missing:
        write_json_report(args.report, [item.path for item in missing])
    return EXIT_OK


def _rewrite_config(args: argparse.Namespace, dry_run: bool = False) -> RewriteConfig:
    return RewriteConfig(
        source_root=args.source_root,
        asset_root=args.asset_root,
        prefix=args.prefix,
        dest_prefix=args.dest_prefix,
        dry_run=dry_run,
    )


def _run_analyze(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    config = _rewrite_config(args)
    index = build_reference_index(config.asset_root, config.target_extension)
    report = analyze_references(scan_tree(config), index, config.dest_prefix, config.target_extension)
    for item in report.available:
        logger.debug("  %s -> %s", item["original"], item["converted"])
    for path in report.missing:
        logger.info("  missing: %s", path)
    logger.info(
        "%d/%d referenced image(s) available as WebP (%d%%)",
        len(report.available),
        report.total_references,
        report.conversion_rate,
    )
    write_json_report(args.report, report.to_dict())
    return EXIT_OK


def _run_rewrite(args: argparse.Namespace, cancel_event: threading.Event) -> int:
    config = _rewrite_config(args, dry_run=args.dry_run)
    index = build_reference_index(config.asset_root, config.target_extension)
    start = time.perf_counter()
    report = rewrite_tree(config, index, cancel_event)
    logger.info(
        "Finished in %.2fs (%d scanned, %d updated, %d replacement(s), %d failed, %d broken)",
        time.perf_counter() - start,
        report.files_scanned,
        report.files_updated,
        report.replacements,
        len(report.failed_files),
        len(report.broken),
    )
    for path in sorted(report.broken):
        logger.warning("  broken: %s", path)
    write_json_report(args.report, report.to_dict())
    return EXIT_INTERRUPTED if report.cancelled else EXIT_OK


COMMANDS: Dict[str, Callable[[argparse.Namespace, threading.Event], int]] = {
    "discover": _run_discover,
    "convert": _run_convert,
    "generate-responsive": _run_responsive,
    "find-missing": _run_find_missing,
    "analyze": _run_analyze,
    "rewrite-refs": _run_rewrite,
}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    cancel_event = threading.Event()

    def _interrupt(signum, frame) -> None:
        logger.warning("Interrupt received; stopping after the current file")
        cancel_event.set()

    previous = signal.signal(signal.SIGINT, _interrupt)
    try:
        return COMMANDS[args.command](args, cancel_event)
    except (FileNotFoundError, NotADirectoryError, ValueError) as exc:
        logger.error("%s", exc)
        return EXIT_FATAL
    finally:
        signal.signal(signal.SIGINT, previous)


if __name__ == "__main__":
    sys.exit(main())
