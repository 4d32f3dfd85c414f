"""Configuration objects and constants for the asset pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, List, Tuple

RASTER_EXTENSIONS: FrozenSet[str] = frozenset({".png", ".jpg", ".jpeg", ".gif"})
SOURCE_EXTENSIONS: FrozenSet[str] = frozenset(
    {".js", ".jsx", ".ts", ".tsx", ".css", ".scss", ".html"}
)
TARGET_EXTENSION = ".webp"

DEFAULT_QUALITY = 85
DEFAULT_WORKERS = 4
DEFAULT_WIDTHS: Tuple[int, ...] = (400, 800, 1200, 1920)
DEFAULT_PREFIX = "/images/"
DEFAULT_DEST_PREFIX = "/images-webp/"

BROKEN_REPORT_NAME = "broken-references.json"
MISSING_REPORT_NAME = "missing-webp-list.json"
ANALYSIS_REPORT_NAME = "webp-analysis-report.json"


@dataclass
class ConvertConfig:
    """Settings for a full-size WebP conversion run."""

    source_root: Path
    dest_root: Path
    quality: int = DEFAULT_QUALITY
    workers: int = DEFAULT_WORKERS
    extensions: FrozenSet[str] = RASTER_EXTENSIONS

    def __post_init__(self) -> None:
        if not 0 <= self.quality <= 100:
            raise ValueError(f"quality must be between 0 and 100, got {self.quality}")
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")


@dataclass
class ResponsiveConfig(ConvertConfig):
    """Conversion run that writes one width-tagged variant per configured width."""

    widths: Tuple[int, ...] = DEFAULT_WIDTHS
    only: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.widths or any(width <= 0 for width in self.widths):
            raise ValueError(f"widths must be positive integers, got {self.widths}")
        self.widths = tuple(sorted(set(self.widths)))


@dataclass
class RewriteConfig:
    """Settings that control how source references are matched and rewritten."""

    source_root: Path
    asset_root: Path
    prefix: str = DEFAULT_PREFIX
    dest_prefix: str = DEFAULT_DEST_PREFIX
    source_extensions: FrozenSet[str] = SOURCE_EXTENSIONS
    image_extensions: FrozenSet[str] = RASTER_EXTENSIONS
    target_extension: str = TARGET_EXTENSION
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not self.prefix.startswith("/") or not self.prefix.endswith("/"):
            raise ValueError(f"prefix must start and end with '/', got {self.prefix!r}")
        if not self.dest_prefix.endswith("/"):
            raise ValueError(f"dest_prefix must end with '/', got {self.dest_prefix!r}")
        if self.prefix == self.dest_prefix:
            raise ValueError("prefix and dest_prefix must differ")
