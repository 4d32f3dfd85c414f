"""Data models used throughout the asset pipeline."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterator, List, Optional

# Slash-separated, extension-free path relative to an asset root, e.g. "a/b/name".
AssetPath = str


@dataclass
class ConversionRecord:
    """Outcome of converting one original image."""

    source: Path
    asset: AssetPath
    outputs: List[Path] = field(default_factory=list)
    original_size: int = 0
    converted_size: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.outputs)


class ConversionStats:
    """Thread-safe totals gathered while conversions complete."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.converted = 0
        self.failed = 0
        self.skipped = 0
        self.outputs = 0
        self.original_bytes = 0
        self.converted_bytes = 0

    def record(self, record: ConversionRecord) -> None:
        with self._lock:
            if record.error is not None:
                self.failed += 1
                return
            self.converted += 1
            self.outputs += len(record.outputs)
            self.original_bytes += record.original_size
            self.converted_bytes += record.converted_size

    def record_skipped(self) -> None:
        with self._lock:
            self.skipped += 1

    @property
    def savings_percent(self) -> float:
        if not self.original_bytes:
            return 0.0
        return (1 - self.converted_bytes / self.original_bytes) * 100


@dataclass(frozen=True)
class ReferenceIndex:
    """Immutable set of asset paths that have a converted file on disk."""

    root: Path
    assets: FrozenSet[AssetPath]

    def __contains__(self, asset: object) -> bool:
        return asset in self.assets

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self) -> Iterator[AssetPath]:
        return iter(self.assets)


class ReferenceStyle(str, enum.Enum):
    QUOTED = "quoted"
    CSS_URL = "css-url"


@dataclass(frozen=True)
class SourceReference:
    """An image path literal found in a source file."""

    file: Path
    matched: str
    path: str
    asset: AssetPath
    style: ReferenceStyle


@dataclass
class BrokenReference:
    """A path literal with no converted counterpart, with every file that uses it."""

    path: str
    asset: AssetPath
    style: ReferenceStyle
    files: List[str] = field(default_factory=list)

    def add_file(self, file: str) -> None:
        if file not in self.files:
            self.files.append(file)
            self.files.sort()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "asset": self.asset,
            "style": self.style.value,
            "files": list(self.files),
        }


@dataclass
class MigrationReport:
    """Summary of a single source rewrite run."""

    files_scanned: int = 0
    files_updated: int = 0
    replacements: int = 0
    failed_files: List[Dict[str, str]] = field(default_factory=list)
    broken: Dict[str, BrokenReference] = field(default_factory=dict)
    cancelled: bool = False

    def add_broken(self, reference: SourceReference, file_label: str) -> None:
        entry = self.broken.get(reference.path)
        if entry is None:
            entry = BrokenReference(
                path=reference.path,
                asset=reference.asset,
                style=reference.style,
            )
            self.broken[reference.path] = entry
        entry.add_file(file_label)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "files_scanned": self.files_scanned,
            "files_updated": self.files_updated,
            "replacements": self.replacements,
            "failed_files": list(self.failed_files),
            "broken_count": len(self.broken),
            "broken_references": [
                self.broken[path].to_dict() for path in sorted(self.broken)
            ],
            "cancelled": self.cancelled,
        }


@dataclass
class MissingAsset:
    """Original image that has no converted counterpart yet."""

    path: str
    size: int


@dataclass
class AvailabilityReport:
    """Which referenced images can already be served in the converted format."""

    total_converted_files: int
    total_references: int
    available: List[Dict[str, str]]
    missing: List[str]

    @property
    def conversion_rate(self) -> int:
        if not self.total_references:
            return 0
        return round(len(self.available) / self.total_references * 100)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_converted_files": self.total_converted_files,
            "total_references": self.total_references,
            "available_count": len(self.available),
            "missing_count": len(self.missing),
            "available": list(self.available),
            "missing": list(self.missing),
            "conversion_rate": self.conversion_rate,
        }
