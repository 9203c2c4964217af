"""Validation engine.

Runs after every index build of a spec/impl pair and accumulates problems
into a ValidationReport. Nothing here raises: a report with errors is
published alongside a usable snapshot.
"""

import difflib
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from ..config import NamingConfig
from ..models.enums import Verb
from .core.document import DuplicateRule, ParseWarning, Reference
from .core.rule_id import RuleId, RuleIdMatch
from .index.builder import ForwardIndex, ReverseIndex
from .index.manifest import Manifest

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
_SUGGESTION_CUTOFF = 0.6


@dataclass(frozen=True)
class BrokenReference:
    """A reference to a rule id the manifest does not define."""

    reference: Reference
    suggestions: tuple[str, ...] = ()


@dataclass(frozen=True)
class StaleReference:
    """A reference to an older revision of a defined rule."""

    reference: Reference
    current: RuleId


@dataclass(frozen=True)
class OrphanedRule:
    rule_id: RuleId
    spec_file: str
    line: int


@dataclass(frozen=True)
class NamingViolation:
    rule_id: RuleId
    spec_file: str
    line: int
    message: str


@dataclass(frozen=True)
class ValidationReport:
    """Everything validation found for one spec/impl pair."""

    broken: tuple[BrokenReference, ...] = ()
    stale: tuple[StaleReference, ...] = ()
    duplicates: tuple[DuplicateRule, ...] = ()
    orphaned: tuple[OrphanedRule, ...] = ()
    naming: tuple[NamingViolation, ...] = ()
    cycles: tuple[tuple[RuleId, ...], ...] = ()
    warnings: tuple[ParseWarning, ...] = ()
    config_error: str | None = None

    @property
    def error_count(self) -> int:
        """Errors that make the pair invalid; orphans and warnings are informational."""
        return (
            len(self.broken)
            + len(self.stale)
            + len(self.duplicates)
            + len(self.naming)
            + len(self.cycles)
            + (1 if self.config_error else 0)
        )

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0


def suggest_similar(target: str, candidates: Iterable[str], limit: int = MAX_SUGGESTIONS) -> list[str]:
    """Up to ``limit`` candidate ids close to ``target``, best first."""
    return difflib.get_close_matches(target, list(candidates), n=limit, cutoff=_SUGGESTION_CUTOFF)


def check_references(
    manifest: Manifest, forward: ForwardIndex
) -> tuple[list[BrokenReference], list[StaleReference]]:
    broken: list[BrokenReference] = []
    stale: list[StaleReference] = []
    known = [definition.id.base for definition in manifest]

    for rule_id, by_verb in forward.entries.items():
        match, definition = manifest.resolve(rule_id)
        if match is RuleIdMatch.EXACT:
            continue
        references = [ref for verb, refs in by_verb.items() for ref in refs]
        if match is RuleIdMatch.STALE:
            stale.extend(StaleReference(reference=ref, current=definition.id) for ref in references)
            continue
        suggestions = tuple(suggest_similar(rule_id.base, known))
        broken.extend(BrokenReference(reference=ref, suggestions=suggestions) for ref in references)

    broken.sort(key=lambda b: (b.reference.file, b.reference.byte_offset))
    stale.sort(key=lambda s: (s.reference.file, s.reference.byte_offset))
    return broken, stale


def check_orphans(manifest: Manifest, forward: ForwardIndex) -> list[OrphanedRule]:
    """Counted rules with no reference of any verb, stale ones included."""
    referenced = {rule_id.base for rule_id in forward.entries}
    return [
        OrphanedRule(rule_id=definition.id, spec_file=definition.spec_file, line=definition.line)
        for definition in manifest
        if definition.counts_for_coverage and definition.id.base not in referenced
    ]


def check_naming(manifest: Manifest, naming: NamingConfig | None) -> list[NamingViolation]:
    if naming is None or (not naming.pattern and not naming.prefixes):
        return []
    pattern = re.compile(naming.pattern) if naming.pattern else None
    violations = []
    for definition in manifest:
        rule_id = definition.id
        if pattern is not None and not pattern.search(rule_id.base):
            message = f"Rule '{rule_id}' does not match pattern '{naming.pattern}'"
        elif naming.prefixes and rule_id.prefix not in naming.prefixes:
            message = (
                f"Rule '{rule_id}' has prefix '{rule_id.prefix}', "
                f"expected one of: {', '.join(naming.prefixes)}"
            )
        else:
            continue
        violations.append(
            NamingViolation(
                rule_id=rule_id, spec_file=definition.spec_file, line=definition.line, message=message
            )
        )
    return violations


def dependency_graph(manifest: Manifest, reverse: ReverseIndex | None) -> dict[RuleId, set[RuleId]]:
    """Edges A -> B from ``[depends B]`` in rule A's body, and from code units
    that carry an impl/verify reference to A together with a depends
    reference to B."""
    graph: dict[RuleId, set[RuleId]] = {}
    for definition in manifest:
        for target in definition.depends_on:
            graph.setdefault(definition.id, set()).add(target)

    if reverse is not None:
        for coverage in reverse.files.values():
            for unit in coverage.units:
                refs = coverage.unit_references(unit)
                sources = {r.rule_id for r in refs if r.verb in (Verb.IMPL, Verb.VERIFY)}
                targets = {r.rule_id for r in refs if r.verb is Verb.DEPENDS}
                for source in sources:
                    for target in targets - {source}:
                        graph.setdefault(source, set()).add(target)
    return graph


def _canonical(cycle: list[RuleId]) -> tuple[RuleId, ...]:
    pivot = cycle.index(min(cycle))
    return tuple(cycle[pivot:] + cycle[:pivot])


def find_cycles(graph: Mapping[RuleId, Iterable[RuleId]]) -> list[tuple[RuleId, ...]]:
    """Cycles reachable by depth-first search, each reported once.

    Uses an explicit stack rather than recursion. Each cycle is the full
    ordered id list, rotated to start at its smallest id.
    """
    done: set[RuleId] = set()
    found: dict[tuple[RuleId, ...], None] = {}

    for start in sorted(graph):
        if start in done:
            continue
        path = [start]
        on_path = {start: 0}
        stack = [iter(sorted(graph.get(start, ())))]
        while stack:
            advanced = False
            for child in stack[-1]:
                if child in on_path:
                    found.setdefault(_canonical(path[on_path[child]:]), None)
                elif child not in done:
                    on_path[child] = len(path)
                    path.append(child)
                    stack.append(iter(sorted(graph.get(child, ()))))
                    advanced = True
                    break
            if not advanced:
                stack.pop()
                node = path.pop()
                del on_path[node]
                done.add(node)

    return sorted(found)


def validate(
    manifest: Manifest,
    forward: ForwardIndex,
    reverse: ReverseIndex | None = None,
    naming: NamingConfig | None = None,
    warnings: Iterable[ParseWarning] = (),
    config_error: str | None = None,
) -> ValidationReport:
    """Run every check and assemble the report.

    Args:
        manifest: Merged rule definitions of the spec
        forward: Forward index of the implementation
        reverse: Reverse index, used for code-level dependency edges
        naming: Naming convention of the spec, if any
        warnings: Parse warnings from extraction and scanning
        config_error: Message of the current configuration error

    Returns:
        ValidationReport
    """
    broken, stale = check_references(manifest, forward)
    orphaned = check_orphans(manifest, forward)
    naming_violations = check_naming(manifest, naming)
    cycles = find_cycles(dependency_graph(manifest, reverse))

    report = ValidationReport(
        broken=tuple(broken),
        stale=tuple(stale),
        duplicates=manifest.duplicates,
        orphaned=tuple(orphaned),
        naming=tuple(naming_violations),
        cycles=tuple(cycles),
        warnings=tuple(warnings),
        config_error=config_error,
    )
    if not report.is_valid:
        logger.info(
            f"Validation: {len(broken)} broken, {len(stale)} stale, "
            f"{len(report.duplicates)} duplicate, {len(naming_violations)} naming, "
            f"{len(cycles)} cycle(s)"
        )
    return report
