"""Keyword search over rule ids, rule text and file paths.

Scoring follows a simple weighting:
- Rule id matches weighted 5x (ids are short and deliberate)
- Rule text matches weighted 1x with BM25-style length normalization
- An exact id match always ranks first
- File paths score on keyword hits in the path segments
"""

import logging
import re
from dataclasses import dataclass

from ..models.enums import SearchKind
from .core.document import RuleDefinition
from .snapshot import Snapshot

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {"a", "an", "the", "is", "are", "be", "of", "to", "in", "on", "for", "and", "or", "with", "it"}
)
EXACT_ID_SCORE = 100.0
_AVG_RULE_CHARS = 300.0
_SNIPPET_CHARS = 160


@dataclass(frozen=True)
class SearchMatch:
    kind: SearchKind
    score: float
    spec: str | None = None
    rule: RuleDefinition | None = None
    path: str | None = None

    @property
    def snippet(self) -> str | None:
        if self.rule is None or not self.rule.raw_text:
            return None
        text = " ".join(self.rule.raw_text.split())
        return text if len(text) <= _SNIPPET_CHARS else text[: _SNIPPET_CHARS - 3] + "..."


def extract_keywords(query: str) -> list[str]:
    """Lowercase keywords of a query, stop words removed.

    Dots and dashes are kept inside words so rule ids stay whole.
    """
    words = re.split(r"[^\w.+-]+", query.lower())
    return [w.strip(".") for w in words if w and len(w) >= 2 and w not in STOP_WORDS]


def score_rule(definition: RuleDefinition, query: str, keywords: list[str]) -> float:
    """Relevance of one rule definition (0 means no match)."""
    rule_id = str(definition.id).lower()
    if query.strip().lower() in (rule_id, definition.id.base.lower()):
        return EXACT_ID_SCORE

    text = definition.raw_text.lower()
    length_norm = max(1.0 / (1.0 + 0.75 * (len(text) / _AVG_RULE_CHARS - 1.0)), 0.15)

    score = 0.0
    for keyword in keywords:
        if keyword in rule_id:
            score += 5.0
        score += text.count(keyword) * length_norm
        if keyword in definition.tags:
            score += 2.0
    return score


def score_path(path: str, keywords: list[str]) -> float:
    lowered = path.lower()
    name = lowered.rsplit("/", 1)[-1]
    score = 0.0
    for keyword in keywords:
        if keyword in name:
            score += 3.0
        elif keyword in lowered:
            score += 1.0
    return score


def search_snapshot(snapshot: Snapshot, query: str, limit: int = 20) -> list[SearchMatch]:
    """Rank rules and files of every spec/impl against ``query``.

    Args:
        snapshot: Snapshot to search
        query: Free text or a rule id
        limit: Maximum number of matches

    Returns:
        Matches ordered by descending score, ties by kind then name.
    """
    keywords = extract_keywords(query)
    if not keywords and not query.strip():
        return []

    matches: list[SearchMatch] = []
    for spec_name, spec in snapshot.specs.items():
        for definition in spec.manifest:
            score = score_rule(definition, query, keywords)
            if score > 0:
                matches.append(SearchMatch(SearchKind.RULE, score, spec=spec_name, rule=definition))

    seen_paths: set[str] = set()
    for view in snapshot.impls.values():
        for path in view.files:
            if path in seen_paths:
                continue
            seen_paths.add(path)
            score = score_path(path, keywords)
            if score > 0:
                matches.append(SearchMatch(SearchKind.FILE, score, path=path))

    matches.sort(
        key=lambda m: (-m.score, m.kind.value, str(m.rule.id) if m.rule else m.path or "")
    )
    logger.debug(f"Search '{query}': {len(matches)} match(es)")
    return matches[:limit]
