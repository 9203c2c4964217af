"""Tests for markdown rule extraction."""

from ruletrace.engine.core.markdown import (
    extract_rules,
    render_rule_marker,
    requirement_level,
    rule_anchor_id,
    slugify,
)
from ruletrace.engine.core.rule_id import RuleId
from ruletrace.models.enums import DuplicateKind, RequirementLevel, RuleStatus, WarningKind


def kinds(spec):
    return [w.kind for w in spec.warnings]


# ---------------------------------------------------------------------------
# Rule markers
# ---------------------------------------------------------------------------


class TestRuleMarkers:
    """Markers alone on a line define rules; everything else is prose."""

    def test_marker_and_body(self):
        spec = extract_rules("r[auth.login]\nUsers MUST log in.\n", "docs/a.md")
        (rule,) = spec.definitions
        assert rule.id == RuleId("auth.login")
        assert rule.spec_file == "docs/a.md"
        assert rule.line == 1
        assert rule.byte_offset == 0
        assert rule.byte_length == len("r[auth.login]")
        assert rule.raw_text == "Users MUST log in."
        assert rule.level is RequirementLevel.MUST
        assert rule.anchor_id == "r-auth.login"
        assert spec.warnings == ()

    def test_only_newline_ends_a_line(self):
        prefix = "Intro\x0c\n\nSee also\x85here.\n\n"
        spec = extract_rules(prefix + "r[a.b]\nX MUST y.\n", "a.md")
        (rule,) = spec.definitions
        assert rule.line == 5
        assert rule.byte_offset == len(prefix.encode("utf-8"))

    def test_inline_marker_is_ignored(self):
        spec = extract_rules("See r[auth.login] for details.\nAlso `r[a.b]`.\n", "a.md")
        assert spec.definitions == ()

    def test_body_ends_at_blank_line(self):
        spec = extract_rules("r[a.b]\nLine one MUST hold.\nline two\n\nnot body\n", "a.md")
        assert spec.definitions[0].raw_text == "Line one MUST hold.\nline two"

    def test_body_ends_at_next_marker(self):
        spec = extract_rules("r[a.b]\nA MUST x.\nr[a.c]\nC MAY y.\n", "a.md")
        assert [d.raw_text for d in spec.definitions] == ["A MUST x.", "C MAY y."]

    def test_blockquote_marker(self):
        content = "> r[a.b]\n> Body MUST hold.\n> more\n\nafter\n"
        spec = extract_rules(content, "a.md")
        (rule,) = spec.definitions
        assert rule.raw_text == "Body MUST hold.\nmore"
        assert spec.document.startswith('> <div class="rule" id="r-a.b">')

    def test_marker_in_fenced_code_is_ignored(self):
        spec = extract_rules("```md\nr[a.b]\nX MUST y.\n```\n", "a.md")
        assert spec.definitions == ()

    def test_malformed_marker_warns(self):
        spec = extract_rules("r[a..b]\nX MUST y.\n", "a.md")
        assert spec.definitions == ()
        assert kinds(spec) == [WarningKind.MALFORMED_REFERENCE]

    def test_versioned_marker(self):
        spec = extract_rules("r[a.b+2]\nX MUST y.\n", "a.md")
        assert spec.definitions[0].id == RuleId("a.b", 2)
        assert spec.definitions[0].anchor_id == "r-a.b+2"

    def test_depends_tokens_in_body(self):
        spec = extract_rules("r[a.b]\nX MUST follow [depends a.c] and [depends a.d].\n", "a.md")
        assert spec.definitions[0].depends_on == (RuleId("a.c"), RuleId("a.d"))


class TestAttributes:
    """``key=value`` attributes after the rule id."""

    def test_all_attributes(self):
        spec = extract_rules(
            "r[a.b status=stable level=should since=1.0 until=2.0 tags=x,y]\nText MUST hold.\n",
            "a.md",
        )
        rule = spec.definitions[0]
        assert rule.status is RuleStatus.STABLE
        assert rule.level is RequirementLevel.SHOULD
        assert rule.since == "1.0"
        assert rule.until == "2.0"
        assert rule.tags == ("x", "y")

    def test_invalid_values_warn(self):
        spec = extract_rules("r[a.b status=bogus level=huge color=red]\nX MUST y.\n", "a.md")
        assert kinds(spec) == [WarningKind.INVALID_ATTRIBUTE] * 3
        assert spec.definitions[0].status is None
        assert spec.definitions[0].level is RequirementLevel.MUST

    def test_draft_and_removed_rules_do_not_count(self):
        spec = extract_rules(
            "r[a.b status=draft]\nX MUST y.\n\nr[a.c status=removed]\nX MUST y.\n\n"
            "r[a.d status=deprecated]\nX MUST y.\n",
            "a.md",
        )
        assert [d.counts_for_coverage for d in spec.definitions] == [False, False, True]


class TestRequirementLevels:
    """RFC 2119 keyword detection."""

    def test_strongest_keyword_wins(self):
        level, keywords = requirement_level("It MAY retry and MUST log.")
        assert level is RequirementLevel.MUST
        assert keywords == ["MAY", "MUST"]

    def test_lowercase_is_not_a_keyword(self):
        assert requirement_level("it must log")[0] is RequirementLevel.UNSPECIFIED

    def test_missing_keyword_warns(self):
        spec = extract_rules("r[a.b]\nThe server logs requests.\n", "a.md")
        assert kinds(spec) == [WarningKind.NO_RFC2119_KEYWORD]
        assert spec.definitions[0].level is RequirementLevel.UNSPECIFIED

    def test_empty_body_does_not_warn(self):
        spec = extract_rules("r[a.b]\n\nParagraph.\n", "a.md")
        assert spec.definitions[0].raw_text == ""
        assert spec.warnings == ()

    def test_negative_requirement_warns(self):
        spec = extract_rules("r[a.b]\nClients MUST NOT retry.\n", "a.md")
        assert kinds(spec) == [WarningKind.NEGATIVE_REQUIREMENT]
        assert spec.definitions[0].level is RequirementLevel.MUST

    def test_explicit_level_suppresses_keyword_warning(self):
        spec = extract_rules("r[a.b level=may]\nThe server logs requests.\n", "a.md")
        assert spec.warnings == ()
        assert spec.definitions[0].level is RequirementLevel.MAY


# ---------------------------------------------------------------------------
# Duplicates
# ---------------------------------------------------------------------------


class TestSameFileDuplicates:
    """A second definition of the same id in one file."""

    def test_first_occurrence_kept(self):
        spec = extract_rules("r[x.y]\nFirst MUST hold.\n\nr[x.y]\nSecond MUST hold.\n", "a.md")
        (rule,) = spec.definitions
        assert rule.raw_text == "First MUST hold."
        (duplicate,) = spec.duplicates
        assert duplicate.kind is DuplicateKind.SAME_FILE
        assert duplicate.id == RuleId("x.y")
        assert [loc.line for loc in duplicate.locations] == [1, 4]

    def test_three_definitions_make_one_duplicate_entry(self):
        content = "r[x.y]\nA MUST.\n\nr[x.y]\nB MUST.\n\nr[x.y+2]\nC MUST.\n"
        spec = extract_rules(content, "a.md")
        (duplicate,) = spec.duplicates
        assert len(duplicate.locations) == 3


# ---------------------------------------------------------------------------
# Outline and rendering
# ---------------------------------------------------------------------------


class TestOutline:
    """Heading tree, slugs and rule placement."""

    def test_nesting(self):
        spec = extract_rules("# A\n## B\n### C\n## D\n# E\n", "a.md")
        assert [e.slug for e in spec.outline] == ["a", "e"]
        a = spec.outline[0]
        assert [c.slug for c in a.children] == ["b", "d"]
        assert [c.slug for c in a.children[0].children] == ["c"]
        assert [e.level for e in a.walk()] == [1, 2, 3, 2]

    def test_rules_attach_to_nearest_heading(self):
        content = "r[pre.amble]\nX MUST y.\n\n# Auth\n## Tokens\nr[auth.token]\nX MUST y.\n"
        spec = extract_rules(content, "a.md")
        assert spec.preamble_rule_ids == (RuleId("pre.amble"),)
        tokens = spec.outline[0].children[0]
        assert tokens.rule_ids == (RuleId("auth.token"),)
        assert spec.definitions[1].heading_path == ("auth", "tokens")
        assert spec.definitions[1].section == "tokens"

    def test_slugs(self):
        assert slugify("Tokens & Sessions!") == "tokens-sessions"
        assert slugify("***") == "section"

    def test_explicit_and_repeated_slugs(self):
        spec = extract_rules("# Intro {#start}\n## Setup\n## Setup\n", "a.md")
        assert spec.outline[0].slug == "start"
        assert spec.outline[0].title == "Intro"
        assert [c.slug for c in spec.outline[0].children] == ["setup", "setup-1"]

    def test_heading_in_fence_is_not_outlined(self):
        spec = extract_rules("~~~\n# not a heading\n~~~\n# Real\n", "a.md")
        assert [e.title for e in spec.outline] == ["Real"]


class TestRendering:
    """Rewritten document content."""

    def test_marker_replaced_and_headings_anchored(self):
        spec = extract_rules("## Tokens\nr[a.b]\nX MUST y.\n", "a.md")
        lines = spec.document.splitlines()
        assert lines[0] == "## Tokens {#tokens}"
        assert lines[1] == render_rule_marker("a.b")
        assert lines[2] == "X MUST y."

    def test_marker_html(self):
        html = render_rule_marker("a.b")
        assert 'id="r-a.b"' in html
        assert 'href="#r-a.b"' in html
        assert "[a.<wbr>b]" in html

    def test_anchor_escaping(self):
        assert rule_anchor_id(RuleId("a.b", 2)) == "r-a.b+2"


class TestFrontmatter:
    """YAML and TOML frontmatter."""

    def test_yaml_frontmatter(self):
        content = "---\ntitle: T\nweight: 5\n---\nr[a.b]\nX MUST y.\n"
        spec = extract_rules(content, "a.md")
        assert spec.title == "T"
        assert spec.weight == 5
        assert spec.sort_key == (5, "a.md")
        rule = spec.definitions[0]
        # Offsets refer to the original file, frontmatter included
        assert rule.line == 5
        assert rule.byte_offset == len("---\ntitle: T\nweight: 5\n---\n")
        assert not spec.document.startswith("---")

    def test_toml_frontmatter(self):
        spec = extract_rules("+++\nweight = 2\ntitle = \"Doc\"\n+++\n# H\n", "a.md")
        assert spec.weight == 2
        assert spec.title == "Doc"

    def test_malformed_frontmatter_is_ignored(self):
        spec = extract_rules("---\ntitle: [unclosed\n---\n# H\n", "a.md")
        assert spec.weight == 0
        assert spec.title is None

    def test_unclosed_fence_is_not_frontmatter(self):
        spec = extract_rules("---\nr[a.b]\nX MUST y.\n", "a.md")
        assert [str(d.id) for d in spec.definitions] == ["a.b"]
