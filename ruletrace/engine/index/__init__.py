"""Rule manifest and bidirectional index.

- Manifest: merged rule definitions with duplicate detection
- ForwardIndex: rule -> verb -> references
- ReverseIndex: file -> annotated code units, folder tree totals
- Outline coverage aggregated bottom-up
"""

from .builder import (
    DocumentOutline,
    FileCoverage,
    FolderNode,
    ForwardIndex,
    ReverseIndex,
    ScannedFile,
    annotate_outline,
    build_folder_tree,
    build_forward,
    build_outlines,
    build_reverse,
    content_digest,
    scan_file,
    summarize,
)
from .coverage import CoverageSummary, coverage_percent
from .manifest import Manifest, merge_specs

__all__ = [
    "Manifest",
    "merge_specs",
    "ScannedFile",
    "scan_file",
    "content_digest",
    "ForwardIndex",
    "build_forward",
    "FileCoverage",
    "FolderNode",
    "ReverseIndex",
    "build_reverse",
    "build_folder_tree",
    "DocumentOutline",
    "annotate_outline",
    "build_outlines",
    "summarize",
    "CoverageSummary",
    "coverage_percent",
]
