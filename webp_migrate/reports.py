"""Persisted JSON artifacts."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .utils import write_text_atomic

logger = logging.getLogger("webp_migrate")


def write_json_report(path: Path, payload: Any) -> Path:
    """Serialise ``payload`` as indented JSON and return the resolved path."""
    target = Path(path).resolve()
    write_text_atomic(target, json.dumps(payload, indent=2) + "\n")
    logger.info("Report saved to %s", target)
    return target
