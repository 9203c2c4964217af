"""Read-path API over published snapshots.

Every public method grabs the current snapshot once and answers entirely
from it, so a response never mixes two versions. Results are pydantic
models from ``ruletrace.models``.
"""

import logging
from typing import Protocol

from ..exceptions import (
    FileNotIndexedError,
    RuleNotFoundError,
    SectionNotFoundError,
    SpecSelectionError,
)
from ..models.api import (
    AnnotationInfo,
    BrokenReferenceInfo,
    CodeUnitInfo,
    ConfigResponse,
    CoverageCountsInfo,
    CoverageSummaryInfo,
    DuplicateInfo,
    FileCoverageInfo,
    FileResponse,
    FolderInfo,
    ForwardEntry,
    ForwardResponse,
    ImplInfo,
    LocationInfo,
    NamingViolationInfo,
    OrphanInfo,
    OutlineEntryInfo,
    ReferenceInfo,
    ReverseResponse,
    RuleInfo,
    SearchHit,
    SearchResponse,
    SpecDocumentInfo,
    SpecInfo,
    SpecResponse,
    StaleReferenceInfo,
    ValidationInfo,
    VersionResponse,
    WarningInfo,
)
from ..models.tools import RuleCoverageInfo, RuleResult
from .core.document import (
    CodeUnit,
    CoverageCounts,
    LineAnnotation,
    OutlineEntry,
    ParseWarning,
    Reference,
    RuleDefinition,
)
from .core.rule_id import RuleIdMatch, classify_reference, parse_rule_id
from .index.builder import FileCoverage, FolderNode
from .search import search_snapshot
from .snapshot import ImplView, Snapshot
from .validation import suggest_similar

logger = logging.getLogger(__name__)


class SnapshotSource(Protocol):
    """Anything that publishes snapshots (the UpdateController in practice)."""

    config_error: str | None

    @property
    def snapshot(self) -> Snapshot: ...


# ============ CONVERTERS ============


def reference_info(ref: Reference) -> ReferenceInfo:
    return ReferenceInfo(
        verb=ref.verb,
        rule_id=str(ref.rule_id),
        file=ref.file,
        line=ref.line,
        byte_offset=ref.byte_offset,
        byte_length=ref.byte_length,
    )


def rule_info(definition: RuleDefinition, view: ImplView | None = None, with_text: bool = True) -> RuleInfo:
    return RuleInfo(
        id=str(definition.id),
        spec_file=definition.spec_file,
        line=definition.line,
        anchor_id=definition.anchor_id,
        level=definition.level,
        status=definition.status,
        section=definition.section,
        tags=list(definition.tags),
        text=definition.raw_text if with_text else None,
        covered=view.forward.is_covered(definition.id) if view else False,
        verified=view.forward.is_verified(definition.id) if view else False,
    )


def counts_info(counts: CoverageCounts) -> CoverageCountsInfo:
    return CoverageCountsInfo(
        impl_count=counts.impl_count, verify_count=counts.verify_count, total=counts.total
    )


def outline_info(entry: OutlineEntry) -> OutlineEntryInfo:
    return OutlineEntryInfo(
        slug=entry.slug,
        title=entry.title,
        level=entry.level,
        rule_ids=[str(rule_id) for rule_id in entry.rule_ids],
        aggregated=counts_info(entry.aggregated),
        children=[outline_info(child) for child in entry.children],
    )


def unit_info(unit: CodeUnit) -> CodeUnitInfo:
    return CodeUnitInfo(
        start_line=unit.start_line,
        end_line=unit.end_line,
        kind=unit.kind,
        name=unit.name,
        rule_ids=sorted(str(rule_id) for rule_id in unit.rule_ids),
    )


def annotation_info(annotation: LineAnnotation) -> AnnotationInfo:
    return AnnotationInfo(
        start_line=annotation.start_line,
        end_line=annotation.end_line,
        rule_ids=[str(rule_id) for rule_id in annotation.rule_ids],
    )


def file_coverage_info(coverage: FileCoverage, detailed: bool = False) -> FileCoverageInfo:
    return FileCoverageInfo(
        path=coverage.path,
        language=coverage.language,
        total_units=coverage.total_units,
        covered_units=coverage.covered_units,
        percent=round(coverage.percent, 1),
        units=[unit_info(u) for u in coverage.units] if detailed else None,
        annotations=[annotation_info(a) for a in coverage.annotations] if detailed else None,
    )


def folder_info(node: FolderNode, files: dict, depth: int | None = None) -> FolderInfo:
    """Convert a folder subtree; ``depth`` limits how many levels are expanded."""
    expand = depth is None or depth > 0
    next_depth = None if depth is None else depth - 1
    return FolderInfo(
        name=node.name,
        path=node.path,
        total_units=node.total_units,
        covered_units=node.covered_units,
        percent=round(node.percent, 1),
        files=[file_coverage_info(files[p]) for p in node.files] if expand else [],
        children=[folder_info(c, files, next_depth) for c in node.children] if expand else [],
    )


def warning_info(warning: ParseWarning) -> WarningInfo:
    return WarningInfo(
        kind=warning.kind,
        file=warning.file,
        line=warning.line,
        byte_offset=warning.byte_offset,
        byte_length=warning.byte_length,
        message=warning.message,
        rule_id=warning.rule_id,
    )


def validation_info(view: ImplView, config_error: str | None = None) -> ValidationInfo:
    report = view.validation
    error = report.config_error or config_error
    error_count = report.error_count + (1 if error and not report.config_error else 0)
    return ValidationInfo(
        spec=view.spec,
        impl=view.impl,
        is_valid=error_count == 0,
        error_count=error_count,
        broken=[
            BrokenReferenceInfo(reference=reference_info(b.reference), suggestions=list(b.suggestions))
            for b in report.broken
        ],
        stale=[
            StaleReferenceInfo(reference=reference_info(s.reference), current=str(s.current))
            for s in report.stale
        ],
        duplicates=[
            DuplicateInfo(
                rule_id=str(d.id),
                kind=d.kind,
                locations=[
                    LocationInfo(file=loc.file, line=loc.line, byte_offset=loc.byte_offset)
                    for loc in d.locations
                ],
            )
            for d in report.duplicates
        ],
        orphaned=[
            OrphanInfo(rule_id=str(o.rule_id), spec_file=o.spec_file, line=o.line)
            for o in report.orphaned
        ],
        naming=[
            NamingViolationInfo(
                rule_id=str(n.rule_id), spec_file=n.spec_file, line=n.line, message=n.message
            )
            for n in report.naming
        ],
        cycles=[[str(rule_id) for rule_id in cycle] for cycle in report.cycles],
        warnings=[warning_info(w) for w in report.warnings],
        config_error=error,
    )


# ============ SELECTION ============


def resolve_pair(snapshot: Snapshot, selector: str | None) -> tuple[str, str]:
    """Resolve a ``spec`` / ``spec/impl`` selector to one pair.

    With no selector the only configured pair is used; a bare spec name
    picks that spec's first implementation.

    Raises:
        SpecSelectionError: when nothing or more than one pair matches.
    """
    pairs = snapshot.pairs()
    choices = ", ".join(f"{s}/{i}" for s, i in pairs) or "none configured"
    if not pairs:
        raise SpecSelectionError("No spec/impl pairs are configured")

    if not selector:
        if len(pairs) == 1:
            return pairs[0]
        raise SpecSelectionError(f"Several spec/impl pairs exist, pick one of: {choices}")

    spec, _, impl = selector.partition("/")
    if impl:
        if (spec, impl) in snapshot.impls:
            return spec, impl
        raise SpecSelectionError(f"Unknown spec/impl '{selector}', available: {choices}")

    for pair in pairs:
        if pair[0] == spec:
            return pair
    raise SpecSelectionError(f"Unknown spec '{spec}', available: {choices}")


def _selector(spec: str | None, impl: str | None) -> str | None:
    if spec and impl:
        return f"{spec}/{impl}"
    return spec or None


def find_section(view: ImplView, section: str) -> OutlineEntry:
    wanted = section.strip().lstrip("#").strip().lower()
    for outline in view.outlines:
        for root in outline.entries:
            for entry in root.walk():
                if entry.slug == wanted or entry.title.lower() == wanted:
                    return entry
    raise SectionNotFoundError(f"Section '{section}' not found in spec '{view.spec}'")


# ============ QUERY ENGINE ============


class QueryEngine:
    """Read API used by the dashboard routes and the MCP tool handlers."""

    def __init__(self, source: SnapshotSource):
        self.source = source

    @property
    def snapshot(self) -> Snapshot:
        return self.source.snapshot

    def view(self, selector: str | None, snapshot: Snapshot | None = None) -> ImplView:
        snapshot = snapshot or self.snapshot
        spec, impl = resolve_pair(snapshot, selector)
        return snapshot.impls[(spec, impl)]

    def get_config(self) -> ConfigResponse:
        snapshot = self.snapshot
        return ConfigResponse(
            project_root=snapshot.project_root,
            specs=[
                SpecInfo(
                    name=spec.name,
                    source=spec.source,
                    impls=[
                        ImplInfo(
                            name=impl.name,
                            lang=impl.lang,
                            include=list(impl.include),
                            exclude=list(impl.exclude),
                        )
                        for impl in spec.impls
                    ],
                )
                for spec in snapshot.config.specs
            ],
            config_error=self.source.config_error or snapshot.config_error,
        )

    def get_version(self) -> VersionResponse:
        snapshot = self.snapshot
        return VersionResponse(version=snapshot.version, built_at=snapshot.built_at)

    def get_spec(self, spec: str | None = None, impl: str | None = None) -> SpecResponse:
        """Rendered documents and outline with per-entry aggregated coverage."""
        snapshot = self.snapshot
        view = self.view(_selector(spec, impl), snapshot)
        spec_view = snapshot.specs[view.spec]
        documents = {doc.path: doc for doc in spec_view.documents}
        return SpecResponse(
            spec=view.spec,
            impl=view.impl,
            documents=[
                SpecDocumentInfo(
                    path=outline.path,
                    title=outline.title,
                    content=documents[outline.path].document,
                    outline=[outline_info(entry) for entry in outline.entries],
                    preamble_rule_ids=[str(r) for r in outline.preamble_rule_ids],
                    aggregated=counts_info(outline.aggregated),
                )
                for outline in view.outlines
            ],
            rules=[rule_info(d, view, with_text=False) for d in spec_view.manifest],
            coverage=CoverageSummaryInfo(**view.summary.to_dict()),
        )

    def get_forward(self, spec: str | None = None, impl: str | None = None) -> ForwardResponse:
        snapshot = self.snapshot
        view = self.view(_selector(spec, impl), snapshot)
        manifest = snapshot.specs[view.spec].manifest
        return ForwardResponse(
            spec=view.spec,
            impl=view.impl,
            rules=[
                ForwardEntry(
                    rule_id=str(rule_id),
                    defined=manifest.get(rule_id) is not None,
                    references={
                        verb.value: [reference_info(r) for r in refs]
                        for verb, refs in by_verb.items()
                    },
                )
                for rule_id, by_verb in view.forward.entries.items()
            ],
        )

    def get_reverse(self, spec: str | None = None, impl: str | None = None) -> ReverseResponse:
        view = self.view(_selector(spec, impl))
        reverse = view.reverse
        return ReverseResponse(
            spec=view.spec,
            impl=view.impl,
            total_units=reverse.total_units,
            covered_units=reverse.covered_units,
            percent=round(reverse.tree.percent, 1),
            tree=folder_info(reverse.tree, dict(reverse.files)),
        )

    def get_file(self, spec: str | None, impl: str | None, path: str) -> FileResponse:
        """Raw content of one source file with its units and annotations.

        Raises:
            FileNotIndexedError: if the file is not scanned for this impl.
        """
        view = self.view(_selector(spec, impl))
        path = path.strip("/")
        scanned = view.files.get(path)
        coverage = view.reverse.files.get(path)
        if scanned is None or coverage is None:
            raise FileNotIndexedError(f"File '{path}' is not indexed for {view.key}")
        return FileResponse(
            spec=view.spec,
            impl=view.impl,
            path=path,
            language=scanned.language,
            content=scanned.content,
            units=[unit_info(u) for u in coverage.units],
            annotations=[annotation_info(a) for a in coverage.annotations],
            references=[reference_info(r) for r in scanned.references],
        )

    def search(self, query: str, limit: int = 20, snapshot: Snapshot | None = None) -> SearchResponse:
        snapshot = snapshot or self.snapshot
        hits = []
        for match in search_snapshot(snapshot, query, limit):
            hits.append(
                SearchHit(
                    kind=match.kind,
                    score=round(match.score, 3),
                    spec=match.spec,
                    rule_id=str(match.rule.id) if match.rule else None,
                    path=match.rule.spec_file if match.rule else match.path,
                    line=match.rule.line if match.rule else None,
                    snippet=match.snippet,
                )
            )
        return SearchResponse(query=query, hits=hits)

    # ============ TOOL QUERIES ============

    def uncovered(
        self,
        selector: str | None = None,
        section: str | None = None,
        verified: bool = False,
        snapshot: Snapshot | None = None,
    ) -> tuple[ImplView, list[RuleInfo]]:
        """Counted rules without coverage (or, with ``verified``, without a verify reference)."""
        snapshot = snapshot or self.snapshot
        view = self.view(selector, snapshot)
        manifest = snapshot.specs[view.spec].manifest
        scope = None
        if section:
            entry = find_section(view, section)
            scope = {rule_id for e in entry.walk() for rule_id in e.rule_ids}

        missing = view.forward.is_verified if verified else view.forward.is_covered
        rules = [
            rule_info(definition, view)
            for definition in manifest
            if definition.counts_for_coverage
            and not missing(definition.id)
            and (scope is None or definition.id in scope)
        ]
        return view, rules

    def unmapped(
        self, selector: str | None = None, path: str | None = None, snapshot: Snapshot | None = None
    ) -> tuple[ImplView, FolderInfo | None, FileCoverageInfo | None, list[CodeUnitInfo]]:
        """Coverage tree zoomed to a folder, or the uncovered units of one file.

        Raises:
            FileNotIndexedError: if ``path`` is neither an indexed file nor folder.
        """
        view = self.view(selector, snapshot)
        reverse = view.reverse
        target = (path or "").strip("/")
        coverage = reverse.files.get(target) if target else None
        if coverage is not None:
            return view, None, file_coverage_info(coverage), [unit_info(u) for u in coverage.uncovered_units]

        node = reverse.tree.find(target)
        if node is None:
            raise FileNotIndexedError(f"Path '{target}' is not indexed for {view.key}")
        return view, folder_info(node, dict(reverse.files), depth=1), None, []

    def rule(self, rule_id: str, snapshot: Snapshot | None = None) -> RuleResult:
        """Full text of a rule and every reference to it, per implementation.

        Raises:
            RuleNotFoundError: with similar ids as suggestions.
        """
        snapshot = snapshot or self.snapshot
        parsed = parse_rule_id(rule_id.strip())
        bases = [d.id.base for spec in snapshot.specs.values() for d in spec.manifest]
        if parsed is None:
            raise RuleNotFoundError(rule_id, suggest_similar(rule_id, bases))

        for spec_name, spec in snapshot.specs.items():
            definition = spec.manifest.get_base(parsed.base)
            if definition is None:
                continue
            coverage = []
            for impl_name in spec.impl_names:
                view = snapshot.impl_view(spec_name, impl_name)
                if view is None:
                    continue
                stale = [
                    reference_info(ref)
                    for referenced, by_verb in view.forward.entries.items()
                    if classify_reference(definition.id, referenced) is RuleIdMatch.STALE
                    for refs in by_verb.values()
                    for ref in refs
                ]
                coverage.append(
                    RuleCoverageInfo(
                        spec=spec_name,
                        impl=impl_name,
                        covered=view.forward.is_covered(definition.id),
                        verified=view.forward.is_verified(definition.id),
                        references=[reference_info(r) for r in view.forward.references(definition.id)],
                        stale_references=stale,
                    )
                )
            return RuleResult(
                spec=spec_name,
                rule=rule_info(definition),
                coverage=coverage,
                depends_on=[str(d) for d in definition.depends_on],
            )

        raise RuleNotFoundError(rule_id, suggest_similar(parsed.base, bases))

    def validate(self, selector: str | None = None, snapshot: Snapshot | None = None) -> ValidationInfo:
        view = self.view(selector, snapshot)
        return validation_info(view, self.source.config_error)
