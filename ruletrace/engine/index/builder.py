"""Forward and reverse index construction.

The forward index maps rule ids to references grouped by verb. The reverse
index maps files to code units annotated with the rules they reference, with
per-file and per-folder totals aggregated bottom-up. Outline coverage is
annotated onto the heading tree of each spec document.
"""

import hashlib
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from ...models.enums import Verb
from ..core.code_units import segment_code_units, unit_index_for_line
from ..core.document import (
    CodeUnit,
    CoverageCounts,
    LineAnnotation,
    OutlineEntry,
    ParseWarning,
    Reference,
)
from ..core.languages import get_profile
from ..core.markdown import ExtractedSpec
from ..core.rule_id import RuleId
from ..core.scanner import scan_source
from .coverage import CoverageSummary, coverage_percent
from .manifest import Manifest

logger = logging.getLogger(__name__)


def content_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


# ============ SCANNED FILES ============


@dataclass(frozen=True)
class ScannedFile:
    """One source file scanned for one language."""

    path: str
    language: str
    digest: str
    content: str
    references: tuple[Reference, ...] = ()
    warnings: tuple[ParseWarning, ...] = ()
    units: tuple[CodeUnit, ...] = ()


def scan_file(path: str, data: bytes, language: str) -> ScannedFile:
    """Scan and segment one file. Pure; safe to run in worker threads."""
    profile = get_profile(language)
    result = scan_source(data, profile, path)
    content = data.decode("utf-8", errors="replace")
    return ScannedFile(
        path=path,
        language=profile.name,
        digest=content_digest(data),
        content=content,
        references=result.references,
        warnings=result.warnings,
        units=segment_code_units(content, profile),
    )


# ============ FORWARD INDEX ============


@dataclass(frozen=True)
class ForwardIndex:
    """Referenced rule id -> verb -> references, in (path, offset) order.

    Ids are keyed as written in the source, so broken and stale references
    appear under their own ids. ``covered``, ``implemented`` and ``verified``
    only hold ids that are defined in the manifest.
    """

    entries: Mapping[RuleId, Mapping[Verb, tuple[Reference, ...]]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    covered: frozenset[RuleId] = frozenset()
    implemented: frozenset[RuleId] = frozenset()
    verified: frozenset[RuleId] = frozenset()

    def references(self, rule_id: RuleId, verb: Verb | None = None) -> tuple[Reference, ...]:
        by_verb = self.entries.get(rule_id)
        if not by_verb:
            return ()
        if verb is not None:
            return by_verb.get(verb, ())
        return tuple(ref for refs in by_verb.values() for ref in refs)

    def all_references(self) -> Iterable[Reference]:
        for by_verb in self.entries.values():
            for refs in by_verb.values():
                yield from refs

    def is_covered(self, rule_id: RuleId) -> bool:
        return rule_id in self.covered

    def is_verified(self, rule_id: RuleId) -> bool:
        return rule_id in self.verified


def build_forward(manifest: Manifest, files: Iterable[ScannedFile]) -> ForwardIndex:
    grouped: dict[RuleId, dict[Verb, list[Reference]]] = {}
    for scanned in sorted(files, key=lambda f: f.path):
        for ref in scanned.references:
            grouped.setdefault(ref.rule_id, {}).setdefault(ref.verb, []).append(ref)

    covered = set()
    implemented = set()
    verified = set()
    for rule_id, by_verb in grouped.items():
        if manifest.get(rule_id) is None:
            continue
        if any(verb not in (Verb.UNKNOWN, Verb.DEFINE) for verb in by_verb):
            covered.add(rule_id)
        if Verb.IMPL in by_verb:
            implemented.add(rule_id)
        if Verb.VERIFY in by_verb:
            verified.add(rule_id)

    entries = {
        rule_id: MappingProxyType({verb: tuple(refs) for verb, refs in by_verb.items()})
        for rule_id, by_verb in sorted(grouped.items())
    }
    return ForwardIndex(
        entries=MappingProxyType(entries),
        covered=frozenset(covered),
        implemented=frozenset(implemented),
        verified=frozenset(verified),
    )


# ============ REVERSE INDEX ============


@dataclass(frozen=True)
class FileCoverage:
    """Code units of one file with the rules they reference."""

    path: str
    language: str
    units: tuple[CodeUnit, ...] = ()
    annotations: tuple[LineAnnotation, ...] = ()
    references: tuple[Reference, ...] = ()

    @property
    def total_units(self) -> int:
        return len(self.units)

    @property
    def covered_units(self) -> int:
        return sum(1 for unit in self.units if unit.covered)

    @property
    def uncovered_units(self) -> tuple[CodeUnit, ...]:
        return tuple(unit for unit in self.units if not unit.covered)

    @property
    def percent(self) -> float:
        return coverage_percent(self.covered_units, self.total_units)

    def is_line_covered(self, line: int) -> bool:
        return any(a.start_line <= line <= a.end_line for a in self.annotations)

    def unit_references(self, unit: CodeUnit) -> tuple[Reference, ...]:
        return tuple(ref for ref in self.references if unit.contains(ref.line))


@dataclass(frozen=True)
class FolderNode:
    """A folder of the reverse index tree with bottom-up unit totals."""

    name: str
    path: str
    files: tuple[str, ...] = ()
    children: tuple["FolderNode", ...] = ()
    total_units: int = 0
    covered_units: int = 0

    @property
    def percent(self) -> float:
        return coverage_percent(self.covered_units, self.total_units)

    def find(self, path: str) -> "FolderNode | None":
        path = path.strip("/")
        if path == self.path:
            return self
        for child in self.children:
            if path == child.path or path.startswith(child.path + "/"):
                return child.find(path)
        return None


@dataclass(frozen=True)
class ReverseIndex:
    files: Mapping[str, FileCoverage] = field(default_factory=lambda: MappingProxyType({}))
    tree: FolderNode = field(default_factory=lambda: FolderNode(name="", path=""))

    @property
    def total_units(self) -> int:
        return self.tree.total_units

    @property
    def covered_units(self) -> int:
        return self.tree.covered_units


def _collapse(units: tuple[CodeUnit, ...], refs: list[Reference]) -> tuple[LineAnnotation, ...]:
    """Merge equal or adjacent reference lines within one unit."""
    annotations: list[LineAnnotation] = []
    current: tuple[int | None, int, int, dict[RuleId, None]] | None = None

    for ref in sorted(refs, key=lambda r: (r.line, r.byte_offset)):
        unit = unit_index_for_line(units, ref.line)
        if current is not None and current[0] == unit and ref.line <= current[2] + 1:
            current[3][ref.rule_id] = None
            current = (current[0], current[1], ref.line, current[3])
            continue
        if current is not None:
            annotations.append(LineAnnotation(current[1], current[2], tuple(current[3])))
        current = (unit, ref.line, ref.line, {ref.rule_id: None})
    if current is not None:
        annotations.append(LineAnnotation(current[1], current[2], tuple(current[3])))
    return tuple(annotations)


def build_file_coverage(scanned: ScannedFile) -> FileCoverage:
    refs = [ref for ref in scanned.references if ref.counts_as_coverage]
    unit_ids: dict[int, dict[RuleId, None]] = {}
    for ref in refs:
        index = unit_index_for_line(scanned.units, ref.line)
        if index is not None:
            unit_ids.setdefault(index, {})[ref.rule_id] = None

    units = tuple(
        replace(unit, rule_ids=frozenset(unit_ids[i])) if i in unit_ids else unit
        for i, unit in enumerate(scanned.units)
    )
    return FileCoverage(
        path=scanned.path,
        language=scanned.language,
        units=units,
        annotations=_collapse(scanned.units, refs),
        references=scanned.references,
    )


def build_folder_tree(files: Mapping[str, FileCoverage]) -> FolderNode:
    """Aggregate per-file totals into a folder tree, bottom-up."""
    root: dict = {"files": [], "dirs": {}}
    for path in sorted(files):
        node = root
        for part in path.split("/")[:-1]:
            node = node["dirs"].setdefault(part, {"files": [], "dirs": {}})
        node["files"].append(path)

    def freeze(name: str, path: str, node: dict) -> FolderNode:
        children = tuple(
            freeze(child, f"{path}/{child}" if path else child, sub)
            for child, sub in sorted(node["dirs"].items())
        )
        total = sum(files[p].total_units for p in node["files"]) + sum(c.total_units for c in children)
        covered = sum(files[p].covered_units for p in node["files"]) + sum(
            c.covered_units for c in children
        )
        return FolderNode(
            name=name,
            path=path,
            files=tuple(node["files"]),
            children=children,
            total_units=total,
            covered_units=covered,
        )

    return freeze("", "", root)


def build_reverse(files: Iterable[ScannedFile]) -> ReverseIndex:
    coverage = {scanned.path: build_file_coverage(scanned) for scanned in sorted(files, key=lambda f: f.path)}
    return ReverseIndex(files=MappingProxyType(coverage), tree=build_folder_tree(coverage))


# ============ OUTLINE COVERAGE ============


@dataclass(frozen=True)
class DocumentOutline:
    """Outline of one spec document annotated with coverage."""

    path: str
    title: str | None
    entries: tuple[OutlineEntry, ...] = ()
    preamble_rule_ids: tuple[RuleId, ...] = ()
    preamble: CoverageCounts = field(default_factory=CoverageCounts)

    @property
    def aggregated(self) -> CoverageCounts:
        total = self.preamble
        for entry in self.entries:
            total = total + entry.aggregated
        return total


def _direct_counts(rule_ids: Iterable[RuleId], manifest: Manifest, forward: ForwardIndex) -> CoverageCounts:
    impl_count = verify_count = total = 0
    for rule_id in rule_ids:
        definition = manifest.get(rule_id)
        if definition is None or not definition.counts_for_coverage:
            continue
        total += 1
        impl_count += forward.is_covered(rule_id)
        verify_count += forward.is_verified(rule_id)
    return CoverageCounts(impl_count=impl_count, verify_count=verify_count, total=total)


def annotate_outline(
    entry: OutlineEntry, manifest: Manifest, forward: ForwardIndex
) -> OutlineEntry:
    """Return ``entry`` with direct and aggregated counts filled in, bottom-up."""
    children = tuple(annotate_outline(child, manifest, forward) for child in entry.children)
    direct = _direct_counts(entry.rule_ids, manifest, forward)
    aggregated = direct
    for child in children:
        aggregated = aggregated + child.aggregated
    return replace(entry, children=children, direct=direct, aggregated=aggregated)


def build_outlines(
    documents: Iterable[ExtractedSpec], manifest: Manifest, forward: ForwardIndex
) -> tuple[DocumentOutline, ...]:
    outlines = []
    for spec in sorted(documents, key=lambda s: s.sort_key):
        outlines.append(
            DocumentOutline(
                path=spec.path,
                title=spec.title,
                entries=tuple(annotate_outline(e, manifest, forward) for e in spec.outline),
                preamble_rule_ids=spec.preamble_rule_ids,
                preamble=_direct_counts(spec.preamble_rule_ids, manifest, forward),
            )
        )
    return tuple(outlines)


def summarize(manifest: Manifest, forward: ForwardIndex) -> CoverageSummary:
    counts = _direct_counts(manifest.ids, manifest, forward)
    return CoverageSummary(total=counts.total, covered=counts.impl_count, verified=counts.verify_count)
