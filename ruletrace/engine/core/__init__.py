"""Engine core module.

This module contains the leaf components of the ruletrace engine:
- Rule ids and version matching
- Per-language comment profiles and the reference scanner
- Markdown rule extraction
- Code unit segmentation
- Shared data structures
"""

from .code_units import segment_code_units, unit_index_for_line
from .document import (
    CodeUnit,
    CoverageCounts,
    DuplicateRule,
    LineAnnotation,
    OutlineEntry,
    ParseWarning,
    Reference,
    RuleDefinition,
    RuleLocation,
)
from .languages import CommentProfile, get_profile, known_languages, profile_for_path
from .markdown import ExtractedSpec, extract_rules, render_rule_marker, rule_anchor_id, slugify
from .rule_id import RuleId, RuleIdMatch, classify_reference, is_valid_rule_id, parse_rule_id
from .scanner import ScanResult, iter_references, parse_reference_token, scan_source

__all__ = [
    # Rule ids
    "RuleId",
    "RuleIdMatch",
    "parse_rule_id",
    "is_valid_rule_id",
    "classify_reference",
    # Data structures
    "Reference",
    "ParseWarning",
    "RuleDefinition",
    "RuleLocation",
    "DuplicateRule",
    "CodeUnit",
    "LineAnnotation",
    "CoverageCounts",
    "OutlineEntry",
    # Scanner
    "CommentProfile",
    "get_profile",
    "profile_for_path",
    "known_languages",
    "ScanResult",
    "iter_references",
    "parse_reference_token",
    "scan_source",
    # Markdown
    "ExtractedSpec",
    "extract_rules",
    "render_rule_marker",
    "rule_anchor_id",
    "slugify",
    # Code units
    "segment_code_units",
    "unit_index_for_line",
]
