"""Raster to WebP conversion with optional responsive width variants."""

from __future__ import annotations

import concurrent.futures as cf
import fnmatch
import io
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from filetype import guess
from PIL import Image

from .config import TARGET_EXTENSION, ConvertConfig, ResponsiveConfig
from .discovery import iter_files
from .models import ConversionRecord, ConversionStats
from .utils import asset_path_for, write_bytes_atomic

logger = logging.getLogger("webp_migrate")

ALLOWED_IMAGE_TYPES = {"png", "jpg", "gif"}
# Preferred source when several originals share an output path.
SOURCE_PRIORITY = (".png", ".jpg", ".jpeg", ".gif")

# (output path, target width or None for full size)
OutputPlan = List[Tuple[Path, Optional[int]]]


class ConversionError(RuntimeError):
    """Raised when an image cannot be converted."""


def target_path(
    source: Path,
    src_root: Path,
    dst_root: Path,
    width: Optional[int] = None,
    extension: str = TARGET_EXTENSION,
) -> Path:
    """Mirror ``source`` from ``src_root`` into ``dst_root`` with the target extension.

    ``src_root/a/b/name.png`` maps to ``dst_root/a/b/name.webp``, or to
    ``dst_root/a/b/name-800w.webp`` when ``width`` is 800.
    """
    relative = Path(source).resolve().relative_to(Path(src_root).resolve())
    stem = relative.stem if width is None else f"{relative.stem}-{width}w"
    return Path(dst_root).resolve() / relative.parent / f"{stem}{extension}"


def _detect_type(source: Path) -> str:
    kind = guess(str(source))
    if kind is None or not kind.mime.startswith("image/"):
        raise ConversionError(f"{source.name} is not a recognised image")
    if kind.extension.lower() not in ALLOWED_IMAGE_TYPES:
        raise ConversionError(f"{source.name} has unsupported image type {kind.extension}")
    return kind.extension.lower()


def _normalize_mode(image: Image.Image) -> Image.Image:
    """Convert to RGB or RGBA, keeping transparency when the source has any."""
    if image.mode in ("RGB", "RGBA"):
        return image
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _encode(image: Image.Image, width: Optional[int], quality: int) -> bytes:
    if width is not None and image.width > width:
        height = max(1, round(image.height * width / image.width))
        image = image.resize((width, height), Image.Resampling.LANCZOS)
    buffer = io.BytesIO()
    image.save(buffer, format="WEBP", quality=quality, method=6)
    return buffer.getvalue()


def convert_image(source: Path, outputs: OutputPlan, quality: int) -> int:
    """Write every planned output for ``source`` and return their combined size."""
    _detect_type(source)
    total = 0
    with Image.open(source) as opened:
        opened.seek(0)
        image = _normalize_mode(opened)
        image.load()
        for destination, width in outputs:
            data = _encode(image, width, quality)
            write_bytes_atomic(destination, data)
            total += len(data)
            logger.debug("Wrote %s (%d bytes)", destination, len(data))
    return total


def _plan_outputs(source: Path, config: ConvertConfig) -> OutputPlan:
    if isinstance(config, ResponsiveConfig):
        return [
            (target_path(source, config.source_root, config.dest_root, width), width)
            for width in config.widths
        ]
    return [(target_path(source, config.source_root, config.dest_root), None)]


def _convert_one(
    source: Path,
    config: ConvertConfig,
    cancel_event: Optional[threading.Event],
) -> Optional[ConversionRecord]:
    if cancel_event is not None and cancel_event.is_set():
        return None
    relative = source.relative_to(Path(config.source_root).resolve()).as_posix()
    record = ConversionRecord(source=source, asset=asset_path_for(relative))
    plan = _plan_outputs(source, config)
    try:
        record.original_size = source.stat().st_size
        record.converted_size = convert_image(source, plan, config.quality)
    except (ConversionError, OSError, ValueError, Image.DecompressionBombError) as exc:
        record.error = str(exc)
        logger.warning("Failed to convert %s: %s", relative, exc)
        return record
    record.outputs = [destination for destination, _ in plan]
    logger.info(
        "Converted %s -> %d output(s), %.1f KB -> %.1f KB",
        relative,
        len(record.outputs),
        record.original_size / 1024,
        record.converted_size / 1024,
    )
    return record


def _select_sources(config: ConvertConfig) -> List[Path]:
    sources = list(iter_files(config.source_root, config.extensions))
    patterns: Sequence[str] = config.only if isinstance(config, ResponsiveConfig) else ()
    if patterns:
        sources = [
            path for path in sources
            if any(fnmatch.fnmatch(path.name, pattern) for pattern in patterns)
        ]
    return sources


def _source_priority(source: Path) -> Tuple[int, str]:
    suffix = source.suffix.lower()
    rank = SOURCE_PRIORITY.index(suffix) if suffix in SOURCE_PRIORITY else len(SOURCE_PRIORITY)
    return rank, source.name


def _claim_targets(
    sources: List[Path], config: ConvertConfig
) -> Tuple[List[Path], List[ConversionRecord]]:
    """Keep one source per output path; the rest are recorded as duplicates.

    ``hero.png`` and ``hero.jpg`` both map to ``hero.webp``, so the winner is
    picked by extension priority, then by name.
    """
    groups: Dict[Path, List[Path]] = {}
    for source in sources:
        groups.setdefault(_plan_outputs(source, config)[0][0], []).append(source)

    kept: List[Path] = []
    duplicates: List[ConversionRecord] = []
    source_root = Path(config.source_root).resolve()
    for candidates in groups.values():
        winner, *losers = sorted(candidates, key=_source_priority)
        kept.append(winner)
        for loser in losers:
            relative = loser.relative_to(source_root).as_posix()
            logger.warning(
                "Skipping %s: duplicate target, already produced from %s",
                relative,
                winner.name,
            )
            duplicates.append(
                ConversionRecord(
                    source=loser,
                    asset=asset_path_for(relative),
                    error=f"duplicate target: already produced from {winner.name}",
                )
            )
    return kept, duplicates


def convert_tree(
    config: ConvertConfig,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[List[ConversionRecord], ConversionStats]:
    """Convert every original under ``config.source_root`` with bounded parallelism.

    A failing file is logged, recorded with its error and skipped, as is a
    source whose output path another source already claims. Once
    ``cancel_event`` is set no further conversions start.
    """
    dest_root = Path(config.dest_root).resolve()
    found = _select_sources(config)
    dest_root.mkdir(parents=True, exist_ok=True)
    logger.info("Found %d image(s) to convert under %s", len(found), config.source_root)

    stats = ConversionStats()
    sources, records = _claim_targets(found, config)
    for record in records:
        stats.record(record)
    with cf.ThreadPoolExecutor(max_workers=config.workers) as executor:
        futures = [
            executor.submit(_convert_one, source, config, cancel_event)
            for source in sources
        ]
        for future in cf.as_completed(futures):
            record = future.result()
            if record is None:
                stats.record_skipped()
                continue
            stats.record(record)
            records.append(record)

    records.sort(key=lambda item: str(item.source))
    return records, stats


def generate_responsive(
    config: ResponsiveConfig,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[List[ConversionRecord], ConversionStats]:
    """Write ``name-{width}w.webp`` variants for each configured width."""
    logger.info("Generating widths %s", ", ".join(f"{w}w" for w in config.widths))
    return convert_tree(config, cancel_event)
