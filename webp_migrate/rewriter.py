"""Rewrite image path literals in source files to their converted counterparts."""

from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import Collection, Iterator, List, Optional, Tuple

from .config import RewriteConfig
from .discovery import iter_files
from .models import MigrationReport, ReferenceIndex, ReferenceStyle, SourceReference
from .utils import asset_path_for, write_text_atomic

logger = logging.getLogger("webp_migrate")


def compile_reference_pattern(prefix: str, image_extensions: Collection[str]) -> re.Pattern:
    """Match ``prefix``-rooted image literals, either inside ``url(...)`` or quoted.

    The ``url(...)`` alternatives are tried first so a quoted path inside a CSS
    wrapper is matched once, as a whole. Quoted paths may contain spaces and
    parentheses; a bare ``url(...)`` path may not.
    """
    prefix = re.escape(prefix)
    extensions = "|".join(sorted(re.escape(ext.lstrip(".")) for ext in image_extensions))
    quoted = rf"{prefix}[^'\"`\r\n]*?\.(?i:{extensions})"
    bare = rf"{prefix}[^'\"`()\s]*?\.(?i:{extensions})"
    return re.compile(
        rf"url\(\s*(?:(?P<uq>['\"])(?P<upath>{quoted})(?P=uq)|(?P<bpath>{bare}))\s*\)"
        rf"|(?P<q>['\"`])(?P<qpath>{quoted})(?P=q)"
    )


def _path_group(match: re.Match) -> Tuple[str, ReferenceStyle]:
    if match.group("upath") is not None:
        return "upath", ReferenceStyle.CSS_URL
    if match.group("bpath") is not None:
        return "bpath", ReferenceStyle.CSS_URL
    return "qpath", ReferenceStyle.QUOTED


def _reference(match: re.Match, file: Path, prefix: str) -> SourceReference:
    group, style = _path_group(match)
    path = match.group(group)
    return SourceReference(
        file=file,
        matched=match.group(0),
        path=path,
        asset=asset_path_for(path[len(prefix):]),
        style=style,
    )


def scan_text(text: str, file: Path, pattern: re.Pattern, prefix: str) -> Iterator[SourceReference]:
    for match in pattern.finditer(text):
        yield _reference(match, file, prefix)


def rewrite_text(
    text: str,
    file: Path,
    index: ReferenceIndex,
    config: RewriteConfig,
    pattern: Optional[re.Pattern] = None,
) -> Tuple[str, int, List[SourceReference]]:
    """Point every resolvable reference at its converted asset.

    Returns the new text, the number of replacements, and the references
    that had no converted counterpart (left untouched).
    """
    if pattern is None:
        pattern = compile_reference_pattern(config.prefix, config.image_extensions)
    replacements = 0
    unresolved: List[SourceReference] = []

    def repl(match: re.Match) -> str:
        nonlocal replacements
        reference = _reference(match, file, config.prefix)
        if reference.asset not in index:
            unresolved.append(reference)
            return match.group(0)
        group, _ = _path_group(match)
        start, end = match.span(group)
        offset = match.start()
        whole = match.group(0)
        replacements += 1
        converted = f"{config.dest_prefix}{reference.asset}{config.target_extension}"
        return whole[: start - offset] + converted + whole[end - offset :]

    return pattern.sub(repl, text), replacements, unresolved


def _read_source(path: Path) -> str:
    # Bytes are decoded directly so line endings survive the round trip.
    return path.read_bytes().decode("utf-8")


def scan_tree(config: RewriteConfig) -> List[SourceReference]:
    """Collect references from every source file without modifying anything."""
    pattern = compile_reference_pattern(config.prefix, config.image_extensions)
    references: List[SourceReference] = []
    for path in iter_files(config.source_root, config.source_extensions):
        try:
            text = _read_source(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping %s: %s", path, exc)
            continue
        references.extend(scan_text(text, path, pattern, config.prefix))
    return references


def rewrite_tree(
    config: RewriteConfig,
    index: ReferenceIndex,
    cancel_event: Optional[threading.Event] = None,
) -> MigrationReport:
    """Rewrite every source file under ``config.source_root`` and report the result.

    Files are written back only when their content changed. Per-file errors are
    logged and recorded; they never stop the batch.
    """
    source_root = Path(config.source_root).resolve()
    pattern = compile_reference_pattern(config.prefix, config.image_extensions)
    report = MigrationReport()

    for path in iter_files(source_root, config.source_extensions):
        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Rewrite cancelled after %d file(s)", report.files_scanned)
            report.cancelled = True
            break
        label = path.relative_to(source_root).as_posix()
        try:
            original = _read_source(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Skipping %s: read error: %s", label, exc)
            report.failed_files.append({"file": label, "error": str(exc)})
            continue
        report.files_scanned += 1

        updated, count, unresolved = rewrite_text(original, path, index, config, pattern)
        for reference in unresolved:
            report.add_broken(reference, label)

        if updated == original:
            continue
        if not config.dry_run:
            try:
                write_text_atomic(path, updated)
            except OSError as exc:
                logger.warning("Skipping %s: write error: %s", label, exc)
                report.failed_files.append({"file": label, "error": str(exc)})
                continue
        report.files_updated += 1
        report.replacements += count
        logger.info("%s %s (%d update(s))", "Would update" if config.dry_run else "Updated", label, count)

    return report
