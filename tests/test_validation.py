"""Tests for the validation engine."""

from ruletrace.config import NamingConfig
from ruletrace.engine.core.markdown import extract_rules
from ruletrace.engine.core.rule_id import RuleId
from ruletrace.engine.index import build_forward, build_reverse, merge_specs, scan_file
from ruletrace.engine.validation import (
    dependency_graph,
    find_cycles,
    suggest_similar,
    validate,
)
from ruletrace.models.enums import DuplicateKind

from tests.conftest import LIB_RS, SPEC_MD


def run(spec_md: str, sources: dict[str, str], **kwargs):
    manifest = merge_specs([extract_rules(spec_md, "docs/spec.md")])
    files = [scan_file(path, content.encode(), "rust") for path, content in sources.items()]
    return validate(manifest, build_forward(manifest, files), build_reverse(files), **kwargs)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class TestReferenceChecks:
    """Broken and stale references."""

    def test_clean_project(self):
        report = run("r[a.b]\nX MUST y.\n", {"a.rs": "// [impl a.b]\n"})
        assert report.is_valid
        assert report.error_count == 0

    def test_broken_reference_with_suggestion(self):
        report = run(SPEC_MD, {"a.rs": "// [impl auth.token.validaton]\n"})
        (broken,) = report.broken
        assert broken.reference.rule_id == RuleId("auth.token.validaton")
        assert broken.reference.line == 1
        assert broken.suggestions[0] == "auth.token.validation"
        assert len(broken.suggestions) <= 3

    def test_broken_reference_without_suggestion(self):
        report = run(SPEC_MD, {"a.rs": "// [verify zzz.qqq]\n"})
        assert report.broken[0].suggestions == ()

    def test_each_broken_occurrence_is_reported(self):
        report = run("r[a.b]\nX MUST y.\n", {"a.rs": "// [impl a.c]\n\n// [verify a.c]\n"})
        assert [b.reference.line for b in report.broken] == [1, 3]

    def test_stale_reference(self):
        report = run("r[a.b+2]\nX MUST y.\n", {"a.rs": "// [impl a.b]\n"})
        (stale,) = report.stale
        assert stale.current == RuleId("a.b", 2)
        assert stale.reference.rule_id == RuleId("a.b")
        assert report.broken == ()
        # A stale reference still marks the rule as referenced
        assert report.orphaned == ()

    def test_newer_revision_is_broken(self):
        report = run("r[a.b]\nX MUST y.\n", {"a.rs": "// [impl a.b+3]\n"})
        assert len(report.broken) == 1

    def test_suggest_similar(self):
        assert suggest_similar("auth.logn", ["auth.login", "billing.charge"]) == ["auth.login"]
        assert suggest_similar("x", []) == []


# ---------------------------------------------------------------------------
# Rule-level checks
# ---------------------------------------------------------------------------


class TestOrphans:
    """Counted rules with no reference at all."""

    def test_orphans_are_informational(self):
        report = run(SPEC_MD, {"src/lib.rs": LIB_RS})
        assert [str(o.rule_id) for o in report.orphaned] == ["auth.token.expiry", "auth.session.create"]
        assert report.orphaned[0].line == 8
        assert report.is_valid

    def test_draft_rules_are_never_orphans(self):
        report = run("r[a.b status=draft]\nX MUST y.\n", {})
        assert report.orphaned == ()


class TestDuplicates:
    """Duplicates flow from extraction into the report."""

    def test_same_file_duplicate_is_an_error(self):
        report = run("r[x.y]\nFirst MUST hold.\n\nr[x.y]\nSecond MUST hold.\n", {})
        (duplicate,) = report.duplicates
        assert duplicate.kind is DuplicateKind.SAME_FILE
        assert report.error_count == 1


class TestNaming:
    """Naming conventions."""

    def test_pattern_violation(self):
        naming = NamingConfig(pattern=r"^[a-z]+\.[a-z.]+$")
        report = run("r[auth.Login]\nX MUST y.\n\nr[auth.logout]\nX MUST y.\n", {}, naming=naming)
        (violation,) = report.naming
        assert violation.rule_id == RuleId("auth.Login")
        assert "does not match pattern" in violation.message

    def test_pattern_is_searched_not_anchored(self):
        naming = NamingConfig(pattern=r"login")
        report = run("r[auth.login]\nX MUST y.\n", {}, naming=naming)
        assert report.naming == ()

    def test_prefix_violation(self):
        naming = NamingConfig(prefixes=["auth", "api"])
        report = run("r[auth.a]\nX MUST y.\n\nr[billing.b]\nX MUST y.\n", {}, naming=naming)
        (violation,) = report.naming
        assert violation.rule_id == RuleId("billing.b")
        assert "expected one of: auth, api" in violation.message
        assert report.error_count == 1

    def test_no_convention(self):
        assert run("r[Anything.Goes]\nX MUST y.\n", {}, naming=NamingConfig()).naming == ()


# ---------------------------------------------------------------------------
# Dependency cycles
# ---------------------------------------------------------------------------


class TestCycles:
    """Cycles over depends edges."""

    def test_cycle_from_rule_bodies(self):
        spec = (
            "r[a.c]\nX MUST [depends a.a].\n\n"
            "r[a.a]\nX MUST [depends a.b].\n\n"
            "r[a.b]\nX MUST [depends a.c].\n"
        )
        report = run(spec, {})
        assert report.cycles == ((RuleId("a.a"), RuleId("a.b"), RuleId("a.c")),)
        assert not report.is_valid

    def test_cycle_from_code_units(self):
        source = (
            "// [impl a.x]\n// [depends a.y]\nfn f() {}\n\n"
            "// [impl a.y]\n// [depends a.x]\nfn g() {}\n"
        )
        report = run("r[a.x]\nX MUST y.\n\nr[a.y]\nX MUST y.\n", {"a.rs": source})
        assert report.cycles == ((RuleId("a.x"), RuleId("a.y")),)

    def test_depends_in_separate_units_makes_no_edge(self):
        source = "// [impl a.x]\nfn f() {}\n\n// [depends a.y]\nfn g() {}\n"
        manifest = merge_specs([extract_rules("r[a.x]\nX MUST y.\n", "a.md")])
        reverse = build_reverse([scan_file("a.rs", source.encode(), "rust")])
        assert dependency_graph(manifest, reverse) == {}

    def test_find_cycles(self):
        a, b, c, d = (RuleId(x) for x in ("a", "b", "c", "d"))
        graph = {b: {a}, a: {b, d}, c: {c}, d: set()}
        assert find_cycles(graph) == [(a, b), (c,)]

    def test_acyclic(self):
        a, b, c = (RuleId(x) for x in ("a", "b", "c"))
        assert find_cycles({a: {b, c}, b: {c}}) == []

    def test_long_chain_does_not_recurse(self):
        ids = [RuleId(f"n{i}") for i in range(5000)]
        graph = {ids[i]: {ids[i + 1]} for i in range(len(ids) - 1)}
        graph[ids[-1]] = {ids[0]}
        (cycle,) = find_cycles(graph)
        assert len(cycle) == 5000
        assert cycle[0] == min(ids)


class TestReport:
    """Error counting."""

    def test_config_error_counts(self):
        report = run("r[a.b]\nX MUST y.\n", {"a.rs": "// [impl a.b]\n"}, config_error="bad toml")
        assert report.error_count == 1

    def test_warnings_do_not_count(self):
        spec = extract_rules("r[a.b]\nNo keyword here.\n", "a.md")
        manifest = merge_specs([spec])
        report = validate(manifest, build_forward(manifest, []), warnings=spec.warnings)
        assert len(report.warnings) == 1
        assert report.error_count == 0
