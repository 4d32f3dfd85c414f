"""Utility helpers for path normalisation and durable file writes."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, FrozenSet


def normalize_extensions(extensions: Iterable[str]) -> FrozenSet[str]:
    """Lower-case extensions and make sure each carries a leading dot."""
    normalized = set()
    for ext in extensions:
        ext = ext.strip().lower()
        if not ext:
            continue
        normalized.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(normalized)


def asset_path_for(relative: str) -> str:
    """Turn a relative file path into an extension-free, slash-separated asset path."""
    normalized = relative.replace("\\", "/").lstrip("/")
    head, _, name = normalized.rpartition("/")
    stem, dot, _ = name.rpartition(".")
    if dot and stem:
        name = stem
    return f"{head}/{name}" if head else name


def write_bytes_atomic(target: Path, data: bytes) -> None:
    """Write ``data`` next to ``target`` and move it into place in one step."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_text_atomic(target: Path, text: str) -> None:
    write_bytes_atomic(target, text.encode("utf-8"))
