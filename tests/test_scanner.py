"""Tests for the comment-region reference scanner."""

import pytest

from ruletrace.engine.core.languages import get_profile, known_languages, profile_for_path
from ruletrace.engine.core.rule_id import RuleId
from ruletrace.engine.core.scanner import (
    comment_regions,
    iter_references,
    parse_reference_token,
    scan_source,
)
from ruletrace.exceptions import UnknownLanguageError
from ruletrace.models.enums import Verb, WarningKind


def span(content: str, ref) -> bytes:
    data = content.encode("utf-8")
    return data[ref.byte_offset : ref.byte_offset + ref.byte_length]


# ---------------------------------------------------------------------------
# Token parsing
# ---------------------------------------------------------------------------


class TestParseReferenceToken:
    """Interpretation of the text between brackets."""

    @pytest.mark.parametrize("verb", ["define", "impl", "verify", "depends", "related"])
    def test_recognized_verbs(self, verb):
        parsed = parse_reference_token(f"{verb} auth.login")
        assert parsed.verb is Verb(verb)
        assert parsed.rule_id == RuleId("auth.login")
        assert parsed.warning is None

    def test_bare_id_is_impl(self):
        parsed = parse_reference_token("auth.login")
        assert parsed.verb is Verb.IMPL
        assert parsed.rule_id == RuleId("auth.login")

    def test_bare_single_segment_is_prose(self):
        assert parse_reference_token("note") is None
        assert parse_reference_token("0") is None

    def test_explicit_verb_allows_single_segment(self):
        assert parse_reference_token("impl intro").rule_id == RuleId("intro")

    def test_unknown_verb(self):
        parsed = parse_reference_token("implements auth.login")
        assert parsed.verb is Verb.UNKNOWN
        assert parsed.warning is WarningKind.UNKNOWN_VERB

    def test_malformed_id_with_verb(self):
        parsed = parse_reference_token("impl auth..login")
        assert parsed.rule_id is None
        assert parsed.warning is WarningKind.MALFORMED_REFERENCE

    def test_malformed_dotted_bare_id(self):
        assert parse_reference_token("auth.").warning is WarningKind.MALFORMED_REFERENCE

    def test_empty_and_prose(self):
        assert parse_reference_token("") is None
        assert parse_reference_token("   ") is None
        assert parse_reference_token("x, y") is None

    def test_versioned_reference(self):
        assert parse_reference_token("verify auth.login+2").rule_id == RuleId("auth.login", 2)


# ---------------------------------------------------------------------------
# Comment regions
# ---------------------------------------------------------------------------


class TestCommentRegions:
    """Byte ranges of comments per language profile."""

    def test_line_comment_runs_to_newline(self):
        data = b"let a = 1; // note\nlet b = 2;\n"
        regions = list(comment_regions(data, get_profile("rust")))
        assert regions == [(11, 18, True)]
        assert data[11:18] == b"// note"

    def test_block_comment_includes_delimiters(self):
        data = b"x /* a\nb */ y"
        ((start, end, terminated),) = comment_regions(data, get_profile("c"))
        assert data[start:end] == b"/* a\nb */"
        assert terminated

    def test_unterminated_block(self):
        data = b"x /* open"
        assert list(comment_regions(data, get_profile("c"))) == [(2, 9, False)]

    def test_longest_opener_wins(self):
        data = b"--[[ block ]] -- line"
        regions = list(comment_regions(data, get_profile("lua")))
        assert data[regions[0][0] : regions[0][1]] == b"--[[ block ]]"
        assert data[regions[1][0] : regions[1][1]] == b"-- line"

    def test_file_without_comments(self):
        assert list(comment_regions(b"echo hi\n", get_profile("shell"))) == []


# ---------------------------------------------------------------------------
# Reference extraction
# ---------------------------------------------------------------------------


class TestIterReferences:
    """References with exact byte spans and lines."""

    def test_rust_line_comment(self):
        content = "fn a() {}\n// [impl auth.login]\n"
        (ref,) = iter_references(content, "rust", "src/a.rs")
        assert ref.verb is Verb.IMPL
        assert ref.rule_id == RuleId("auth.login")
        assert ref.file == "src/a.rs"
        assert ref.line == 2
        assert ref.byte_offset == 13
        assert span(content, ref) == b"[impl auth.login]"

    def test_r_prefix_excluded_from_span(self):
        content = "// r[verify a.b]\n"
        (ref,) = iter_references(content, "rust", "a.rs")
        assert ref.verb is Verb.VERIFY
        assert span(content, ref) == b"[verify a.b]"

    def test_tokens_outside_comments_are_ignored(self):
        content = 'let s = x[impl.a];\nlet t = "[impl a.b]";\n'
        assert list(iter_references(content, "rust", "a.rs")) == []

    def test_indexing_expression_in_comment_is_ignored(self):
        content = "// use arr[i.j] here\n"
        assert list(iter_references(content, "rust", "a.rs")) == []

    def test_multiline_block_comment_lines(self):
        content = "/*\n * [impl a.b]\n *\n * [verify c.d]\n */\nint x;\n"
        refs = list(iter_references(content, "c", "a.c"))
        assert [(r.verb, str(r.rule_id), r.line) for r in refs] == [
            (Verb.IMPL, "a.b", 2),
            (Verb.VERIFY, "c.d", 4),
        ]

    def test_several_tokens_in_one_comment(self):
        content = "# [impl a.b] and [related c.d]\n"
        refs = list(iter_references(content, "python", "a.py"))
        assert [r.verb for r in refs] == [Verb.IMPL, Verb.RELATED]
        assert [span(content, r) for r in refs] == [b"[impl a.b]", b"[related c.d]"]

    def test_python_docstring(self):
        content = 'def f():\n    """Check.\n\n    [verify a.b]\n    """\n'
        (ref,) = iter_references(content, "python", "a.py")
        assert ref.line == 4

    def test_html_comment(self):
        content = "<p>x</p>\n<!-- [impl ui.button] -->\n"
        (ref,) = iter_references(content, "html", "a.html")
        assert ref.line == 2
        assert span(content, ref) == b"[impl ui.button]"

    def test_byte_offsets_count_utf8_bytes(self):
        content = "// é [impl a.b]\n"
        (ref,) = iter_references(content, "rust", "a.rs")
        assert ref.byte_offset == 6
        assert span(content, ref) == b"[impl a.b]"

    def test_bytes_input(self):
        (ref,) = iter_references(b"-- [impl q.r]\n", "sql", "a.sql")
        assert ref.rule_id == RuleId("q.r")

    def test_unknown_verb_emits_reference_and_warning(self):
        warnings = []
        (ref,) = iter_references("// [note a.b]\n", "rust", "a.rs", warnings)
        assert ref.verb is Verb.UNKNOWN
        assert [w.kind for w in warnings] == [WarningKind.UNKNOWN_VERB]
        assert warnings[0].rule_id == "a.b"

    def test_malformed_reference_warns_without_reference(self):
        warnings = []
        refs = list(iter_references("\n// [impl a..b]\n", "rust", "a.rs", warnings))
        assert refs == []
        (warning,) = warnings
        assert warning.kind is WarningKind.MALFORMED_REFERENCE
        assert warning.line == 2
        assert warning.byte_offset == 4

    def test_unterminated_block_warns_and_keeps_references(self):
        result = scan_source("/* [impl a.b]\nstill open", "c", "a.c")
        assert [str(r.rule_id) for r in result.references] == ["a.b"]
        assert [w.kind for w in result.warnings] == [WarningKind.UNTERMINATED_BLOCK]

    def test_unknown_language(self):
        with pytest.raises(UnknownLanguageError):
            list(iter_references("", "cobol", "a.cob"))

    @pytest.mark.parametrize(
        ("language", "template"),
        [
            ("rust", "// {}\n"),
            ("go", "/* {} */\n"),
            ("python", "# {}\n"),
            ("ruby", "=begin\n{}\n=end\n"),
            ("haskell", "{{- {} -}}\n"),
            ("lua", "-- {}\n"),
            ("css", "/* {} */\n"),
        ],
    )
    def test_each_token_yields_one_reference(self, language, template):
        tokens = ["[impl p.one]", "[verify p.two]", "[depends p.three]"]
        content = "code\n" + "".join(template.format(t) for t in tokens)
        refs = list(iter_references(content, language, "f"))
        assert [span(content, r).decode() for r in refs] == tokens


class TestLanguages:
    """Comment profile lookup."""

    def test_aliases_are_case_insensitive(self):
        assert get_profile("RS").name == "rust"
        assert get_profile("c++").name == "cpp"

    def test_profile_for_path(self):
        assert profile_for_path("src/main.ts").name == "typescript"
        assert profile_for_path("Makefile") is None

    def test_known_languages_sorted(self):
        names = known_languages()
        assert names == sorted(names)
        assert "python" in names
