"""Lookups over the converted asset tree."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Collection, Dict, Iterable, List

from .config import RASTER_EXTENSIONS, TARGET_EXTENSION
from .discovery import iter_files
from .models import AvailabilityReport, MissingAsset, ReferenceIndex, SourceReference
from .utils import asset_path_for

logger = logging.getLogger("webp_migrate")


def build_reference_index(dst_root: Path, extension: str = TARGET_EXTENSION) -> ReferenceIndex:
    """Collect the asset path of every converted file under ``dst_root``."""
    root = Path(dst_root).resolve()
    assets = frozenset(
        asset_path_for(path.relative_to(root).as_posix())
        for path in iter_files(root, {extension})
    )
    logger.info("Indexed %d converted asset(s) under %s", len(assets), root)
    return ReferenceIndex(root=root, assets=assets)


def find_missing(
    src_root: Path,
    dst_root: Path,
    extensions: Collection[str] = RASTER_EXTENSIONS,
    extension: str = TARGET_EXTENSION,
) -> List[MissingAsset]:
    """List originals without a converted counterpart, largest first."""
    src = Path(src_root).resolve()
    dst = Path(dst_root).resolve()
    missing: List[MissingAsset] = []
    for path in iter_files(src, extensions):
        relative = path.relative_to(src)
        if not (dst / relative).with_suffix(extension).is_file():
            missing.append(MissingAsset(path=relative.as_posix(), size=path.stat().st_size))
    missing.sort(key=lambda item: (-item.size, item.path))
    return missing


def analyze_references(
    references: Iterable[SourceReference],
    index: ReferenceIndex,
    dest_prefix: str,
    extension: str = TARGET_EXTENSION,
) -> AvailabilityReport:
    """Report which distinct referenced paths could be served from the converted tree."""
    seen: Dict[str, SourceReference] = {}
    for reference in references:
        seen.setdefault(reference.path, reference)

    available: List[Dict[str, str]] = []
    missing: List[str] = []
    for path in sorted(seen):
        reference = seen[path]
        if reference.asset in index:
            available.append(
                {"original": path, "converted": f"{dest_prefix}{reference.asset}{extension}"}
            )
        else:
            missing.append(path)
    return AvailabilityReport(
        total_converted_files=len(index),
        total_references=len(seen),
        available=available,
        missing=missing,
    )
