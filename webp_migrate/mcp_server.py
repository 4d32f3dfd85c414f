"""MCP server exposing the webp-migrate pipeline steps as tools."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_DEST_PREFIX, DEFAULT_PREFIX, RASTER_EXTENSIONS, RewriteConfig
from .discovery import discover as discover_files
from .index import analyze_references, build_reference_index, find_missing as find_missing_assets
from .rewriter import rewrite_tree, scan_tree

logger = logging.getLogger("webp_migrate.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="webp-migrate")


def _existing_dir(path: str) -> Path:
    root = Path(path).expanduser()
    if not root.is_dir():
        raise FileNotFoundError(f"Directory does not exist: {root}")
    return root


@mcp.tool()
def discover(root: str) -> List[str]:
    """List raster images under a directory."""

    return [str(path) for path in discover_files(_existing_dir(root), RASTER_EXTENSIONS)]


@mcp.tool()
def find_missing(src_root: str, dst_root: str) -> List[Dict[str, Any]]:
    """List original images that have no WebP counterpart, largest first."""

    missing = find_missing_assets(_existing_dir(src_root), Path(dst_root).expanduser())
    return [{"path": item.path, "size": item.size} for item in missing]


@mcp.tool()
def analyze(
    source_root: str,
    asset_root: str,
    prefix: str = DEFAULT_PREFIX,
    dest_prefix: str = DEFAULT_DEST_PREFIX,
) -> Dict[str, Any]:
    """Report which image references in a source tree already have a WebP version."""

    config = RewriteConfig(
        source_root=_existing_dir(source_root),
        asset_root=_existing_dir(asset_root),
        prefix=prefix,
        dest_prefix=dest_prefix,
    )
    index = build_reference_index(config.asset_root, config.target_extension)
    report = analyze_references(scan_tree(config), index, config.dest_prefix, config.target_extension)
    return report.to_dict()


@mcp.tool()
def rewrite_refs(
    source_root: str,
    asset_root: str,
    prefix: str = DEFAULT_PREFIX,
    dest_prefix: str = DEFAULT_DEST_PREFIX,
    dry_run: bool = True,
) -> Dict[str, Any]:
    """Point image references at their WebP counterparts. Defaults to a dry run."""

    config = RewriteConfig(
        source_root=_existing_dir(source_root),
        asset_root=_existing_dir(asset_root),
        prefix=prefix,
        dest_prefix=dest_prefix,
        dry_run=dry_run,
    )
    index = build_reference_index(config.asset_root, config.target_extension)
    return rewrite_tree(config, index).to_dict()


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
