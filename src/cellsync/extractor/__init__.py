"""Reference Region Extractor for Python source (tree-sitter based)."""

from __future__ import annotations

from cellsync.extractor.annotate import annotate
from cellsync.extractor.regions import extract_regions
from cellsync.extractor.service import create_extractor_server

__all__ = ["annotate", "create_extractor_server", "extract_regions"]
