"""Recursive file discovery filtered by extension."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Collection, Iterator, List

from .utils import normalize_extensions

logger = logging.getLogger("webp_migrate")

DEFAULT_EXCLUDED_DIRS = frozenset({"node_modules"})


def _walk(directory: Path, extensions: Collection[str], exclude_dirs: Collection[str]) -> Iterator[Path]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)
    for entry in entries:
        if entry.is_dir():
            if entry.name.startswith(".") or entry.name in exclude_dirs:
                logger.debug("Skipping directory %s", entry.path)
                continue
            yield from _walk(Path(entry.path), extensions, exclude_dirs)
        elif entry.is_file() and os.path.splitext(entry.name)[1].lower() in extensions:
            yield Path(entry.path)


def iter_files(
    root: Path,
    extensions: Collection[str],
    exclude_dirs: Collection[str] = DEFAULT_EXCLUDED_DIRS,
) -> Iterator[Path]:
    """Yield absolute paths of files under ``root`` whose extension is in ``extensions``.

    The tree is walked depth-first in name order. Hidden directories and
    ``exclude_dirs`` are pruned. A missing or non-directory root raises on the
    first ``next()``.
    """
    root = Path(root).resolve()
    if not root.exists():
        raise FileNotFoundError(f"Root directory does not exist: {root}")
    if not root.is_dir():
        raise NotADirectoryError(f"Root is not a directory: {root}")
    yield from _walk(root, normalize_extensions(extensions), frozenset(exclude_dirs))


def discover(root: Path, extensions: Collection[str]) -> List[Path]:
    """Eagerly collect :func:`iter_files` results."""
    files = list(iter_files(root, extensions))
    logger.debug("Discovered %d file(s) under %s", len(files), root)
    return files
