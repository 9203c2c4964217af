"""Rule identifiers.

A rule id is a dot-separated sequence of segments, each matching
``[A-Za-z0-9_-]+``, optionally followed by ``+N`` naming a revision of the
rule. Unversioned ids are revision 1, so ``auth.login`` and ``auth.login+1``
are the same id.
"""

import re
from dataclasses import dataclass
from enum import StrEnum

SEGMENT_RE = re.compile(r"[A-Za-z0-9_-]+")
_BASE_RE = re.compile(r"[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*")


@dataclass(frozen=True, order=True)
class RuleId:
    """Immutable rule id; equality and ordering are structural on (base, version)."""

    base: str
    version: int = 1

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self.base.split("."))

    @property
    def prefix(self) -> str:
        """First segment, used for section grouping and naming conventions."""
        return self.segments[0]

    def __str__(self) -> str:
        return self.base if self.version == 1 else f"{self.base}+{self.version}"


class RuleIdMatch(StrEnum):
    """Relationship between a reference id and a rule definition id."""

    EXACT = "exact"
    STALE = "stale"
    NO_MATCH = "no_match"


def parse_rule_id(text: str) -> RuleId | None:
    """Parse ``a.b.c`` or ``a.b.c+N``; returns None for anything else.

    Examples:
        >>> parse_rule_id("auth.login")
        RuleId(base='auth.login', version=1)
        >>> parse_rule_id("auth.login+2")
        RuleId(base='auth.login', version=2)
        >>> parse_rule_id("auth..login") is None
        True
    """
    if not text:
        return None
    base, plus, version_text = text.partition("+")
    if not _BASE_RE.fullmatch(base):
        return None
    if not plus:
        return RuleId(base)
    if not version_text.isdigit() or not version_text.isascii():
        return None
    version = int(version_text)
    if version == 0:
        return None
    return RuleId(base, version)


def is_valid_rule_id(text: str) -> bool:
    return parse_rule_id(text) is not None


def classify_reference(rule_id: RuleId, reference_id: RuleId) -> RuleIdMatch:
    """Compare a reference against a rule definition.

    Same base and version is exact; same base with an older version is
    stale; anything else (other base, newer version) does not match.
    """
    if rule_id.base != reference_id.base:
        return RuleIdMatch.NO_MATCH
    if rule_id.version == reference_id.version:
        return RuleIdMatch.EXACT
    if reference_id.version < rule_id.version:
        return RuleIdMatch.STALE
    return RuleIdMatch.NO_MATCH
