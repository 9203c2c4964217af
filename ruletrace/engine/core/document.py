"""Core data structures for the ruletrace engine.

Everything here is a frozen dataclass: values are created by the scanner,
the markdown extractor and the index builder, then shared read-only by every
snapshot that reuses them.
"""

from dataclasses import dataclass, field

from ...models.enums import DuplicateKind, RequirementLevel, RuleStatus, Verb, WarningKind
from .rule_id import RuleId


@dataclass(frozen=True)
class Reference:
    """A verb-tagged pointer from a source comment to a rule.

    Attributes:
        verb: Reference verb (impl, verify, ...)
        rule_id: Referenced rule id
        file: Path relative to the project root, with forward slashes
        byte_offset: Offset of the opening bracket in the UTF-8 file bytes
        byte_length: Length in bytes of the bracketed token
        line: 1-indexed line of the opening bracket
    """

    verb: Verb
    rule_id: RuleId
    file: str
    byte_offset: int
    byte_length: int
    line: int

    @property
    def counts_as_coverage(self) -> bool:
        return self.verb not in (Verb.UNKNOWN, Verb.DEFINE)


@dataclass(frozen=True)
class ParseWarning:
    """A recoverable problem found while scanning a file."""

    kind: WarningKind
    file: str
    line: int
    byte_offset: int
    byte_length: int
    message: str
    rule_id: str | None = None


@dataclass(frozen=True)
class RuleDefinition:
    """A rule defined by an ``r[rule.id]`` marker in a spec document.

    Attributes:
        id: The rule id
        spec_file: Spec file path relative to the project root (or the URL)
        byte_offset: Offset of the marker line in the file bytes
        byte_length: Length of the marker line in bytes
        line: 1-indexed line of the marker
        raw_text: Rule body text
        level: RFC 2119 requirement level
        heading_path: Slugs of the enclosing headings, outermost first
        anchor_id: HTML anchor id of the rendered marker
        depends_on: Rule ids named by ``[depends ...]`` tokens in the body
    """

    id: RuleId
    spec_file: str
    byte_offset: int
    byte_length: int
    line: int
    raw_text: str
    level: RequirementLevel
    heading_path: tuple[str, ...]
    anchor_id: str
    status: RuleStatus | None = None
    since: str | None = None
    until: str | None = None
    tags: tuple[str, ...] = ()
    depends_on: tuple[RuleId, ...] = ()

    @property
    def counts_for_coverage(self) -> bool:
        """Draft and removed rules are excluded from coverage totals."""
        return self.status not in (RuleStatus.DRAFT, RuleStatus.REMOVED)

    @property
    def section(self) -> str | None:
        return self.heading_path[-1] if self.heading_path else None


@dataclass(frozen=True)
class RuleLocation:
    file: str
    line: int
    byte_offset: int


@dataclass(frozen=True)
class DuplicateRule:
    """A rule id defined more than once; the first location is the one kept."""

    id: RuleId
    kind: DuplicateKind
    locations: tuple[RuleLocation, ...]


@dataclass(frozen=True)
class CodeUnit:
    """A contiguous line range of a source file.

    Attributes:
        start_line: First line (1-indexed, inclusive)
        end_line: Last line (1-indexed, inclusive)
        kind: Coarse classification ("item", "comment", "module")
        name: First code line of the unit, trimmed, for display
        rule_ids: Rules referenced from inside the range
    """

    start_line: int
    end_line: int
    kind: str
    name: str | None = None
    rule_ids: frozenset[RuleId] = frozenset()

    @property
    def covered(self) -> bool:
        return bool(self.rule_ids)

    def contains(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True)
class LineAnnotation:
    """Collapsed reference lines inside one code unit."""

    start_line: int
    end_line: int
    rule_ids: tuple[RuleId, ...]


@dataclass(frozen=True)
class CoverageCounts:
    """Rule coverage counts for an outline entry, file or spec."""

    impl_count: int = 0
    verify_count: int = 0
    total: int = 0

    def __add__(self, other: "CoverageCounts") -> "CoverageCounts":
        return CoverageCounts(
            impl_count=self.impl_count + other.impl_count,
            verify_count=self.verify_count + other.verify_count,
            total=self.total + other.total,
        )


@dataclass(frozen=True)
class OutlineEntry:
    """A heading of a spec document with coverage of the rules beneath it.

    Attributes:
        slug: Anchor slug of the heading
        title: Heading text
        level: Heading level (1-6)
        rule_ids: Rules directly under this heading (not in a sub-heading)
        children: Sub-headings in document order
        direct: Coverage of rule_ids only
        aggregated: direct plus the aggregated counts of all children
    """

    slug: str
    title: str
    level: int
    rule_ids: tuple[RuleId, ...] = ()
    children: tuple["OutlineEntry", ...] = ()
    direct: CoverageCounts = field(default_factory=CoverageCounts)
    aggregated: CoverageCounts = field(default_factory=CoverageCounts)

    def walk(self):
        """Yield this entry and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()
