"""Markdown rule extraction.

Walks a spec document line by line and produces rule definitions, a
rewritten document with linkable rule anchors and heading ids, the heading
outline and any warnings. Byte offsets always refer to the original file,
frontmatter included.

Marker syntax, alone on its line::

    r[auth.login.session]
    r[auth.login.session+2 status=stable level=must tags=auth,session]
    > r[auth.logout] (blockquote form; the rest of the quote is the body)
"""

import html
import logging
import re
import tomllib
from collections.abc import Iterator
from dataclasses import dataclass, field

import yaml

from ...models.enums import DuplicateKind, RequirementLevel, RuleStatus, Verb, WarningKind
from .document import DuplicateRule, OutlineEntry, ParseWarning, RuleDefinition, RuleLocation
from .rule_id import RuleId, parse_rule_id
from .scanner import parse_reference_token

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(r"^ {0,3}(?P<quote>>[ \t]?)?r\[(?P<body>[^\[\]]+)\][ \t]*$")
_HEADING_RE = re.compile(r"^ {0,3}(?P<hashes>#{1,6})(?:[ \t]+(?P<text>.*?))?[ \t]*$")
_EXPLICIT_ANCHOR_RE = re.compile(r"[ \t]*\{#(?P<slug>[A-Za-z0-9_-]+)\}$")
_FENCE_RE = re.compile(r"^ {0,3}(?P<fence>`{3,}|~{3,})")
_BODY_TOKEN_RE = re.compile(r"\[([^\[\]\n]+)\]")
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9]+")
_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")

# Ordered strongest first; negative forms are matched before their positive prefix.
_RFC2119_RE = re.compile(
    r"\b(MUST NOT|SHALL NOT|SHOULD NOT|NOT RECOMMENDED|MUST|SHALL|REQUIRED|"
    r"SHOULD|RECOMMENDED|MAY|OPTIONAL)\b"
)
_KEYWORD_LEVELS = {
    "MUST NOT": RequirementLevel.MUST,
    "SHALL NOT": RequirementLevel.MUST,
    "MUST": RequirementLevel.MUST,
    "SHALL": RequirementLevel.MUST,
    "REQUIRED": RequirementLevel.MUST,
    "SHOULD NOT": RequirementLevel.SHOULD,
    "NOT RECOMMENDED": RequirementLevel.SHOULD,
    "SHOULD": RequirementLevel.SHOULD,
    "RECOMMENDED": RequirementLevel.SHOULD,
    "MAY": RequirementLevel.MAY,
    "OPTIONAL": RequirementLevel.MAY,
}
_LEVEL_STRENGTH = {
    RequirementLevel.MUST: 3,
    RequirementLevel.SHOULD: 2,
    RequirementLevel.MAY: 1,
    RequirementLevel.UNSPECIFIED: 0,
}
_NEGATIVE_KEYWORDS = frozenset({"MUST NOT", "SHALL NOT", "SHOULD NOT"})
_SETTABLE_LEVELS = ("must", "should", "may")


@dataclass(frozen=True)
class ExtractedSpec:
    """Everything extracted from one spec document.

    Attributes:
        path: Spec file path (relative to the project root) or URL
        definitions: Rule definitions in document order, first occurrence only
        document: Rewritten markdown (frontmatter removed)
        outline: Top-level outline entries
        preamble_rule_ids: Rules that appear before the first heading
        warnings: Extraction warnings
        duplicates: Same-file duplicate definitions
        weight: Frontmatter ``weight`` (orders spec files)
        title: Frontmatter ``title``
    """

    path: str
    definitions: tuple[RuleDefinition, ...] = ()
    document: str = ""
    outline: tuple[OutlineEntry, ...] = ()
    preamble_rule_ids: tuple[RuleId, ...] = ()
    warnings: tuple[ParseWarning, ...] = ()
    duplicates: tuple[DuplicateRule, ...] = ()
    weight: int = 0
    title: str | None = None

    @property
    def sort_key(self) -> tuple[int, str]:
        return (self.weight, self.path)


@dataclass
class _Heading:
    slug: str
    title: str
    level: int
    rule_ids: list[RuleId] = field(default_factory=list)
    children: list["_Heading"] = field(default_factory=list)

    def freeze(self) -> OutlineEntry:
        return OutlineEntry(
            slug=self.slug,
            title=self.title,
            level=self.level,
            rule_ids=tuple(self.rule_ids),
            children=tuple(child.freeze() for child in self.children),
        )


@dataclass(frozen=True)
class _Line:
    number: int
    offset: int
    text: str  # without line terminator
    ending: str


def slugify(title: str) -> str:
    """Lowercase, collapse non-alphanumerics to ``-`` and trim."""
    slug = _SLUG_STRIP_RE.sub("-", title.lower()).strip("-")
    return slug or "section"


def rule_anchor_id(rule_id: RuleId | str) -> str:
    return "r-" + html.escape(str(rule_id), quote=True)


def render_rule_marker(rule_id: RuleId | str) -> str:
    """HTML container that replaces a rule marker in the rendered document."""
    text = str(rule_id)
    anchor = rule_anchor_id(text)
    label = ".<wbr>".join(html.escape(part, quote=True) for part in text.split("."))
    escaped = html.escape(text, quote=True)
    return (
        f'<div class="rule" id="{anchor}">'
        f'<a class="rule-link" href="#{anchor}" title="{escaped}">'
        f"<span>[{label}]</span></a></div>"
    )


def requirement_level(text: str) -> tuple[RequirementLevel, list[str]]:
    """Strongest RFC 2119 level in ``text`` and the keywords found."""
    keywords = _RFC2119_RE.findall(text)
    level = RequirementLevel.UNSPECIFIED
    for keyword in keywords:
        candidate = _KEYWORD_LEVELS[keyword]
        if _LEVEL_STRENGTH[candidate] > _LEVEL_STRENGTH[level]:
            level = candidate
    return level, keywords


def _split_lines(content: str) -> list[_Line]:
    lines = []
    offset = 0
    for number, raw in enumerate(_LINE_RE.findall(content), start=1):
        text = raw.removesuffix("\n").removesuffix("\r")
        lines.append(_Line(number, offset, text, raw[len(text):]))
        offset += len(raw.encode("utf-8"))
    return lines


def _parse_frontmatter(lines: list[_Line], path: str) -> tuple[dict, int]:
    """Return the frontmatter mapping and the index of the first body line."""
    if not lines or lines[0].text not in ("---", "+++"):
        return {}, 0
    fence = lines[0].text
    for index in range(1, len(lines)):
        if lines[index].text == fence:
            break
    else:
        return {}, 0

    raw = "\n".join(line.text for line in lines[1:index])
    try:
        data = yaml.safe_load(raw) if fence == "---" else tomllib.loads(raw)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring malformed frontmatter in {path}: {e}")
        data = {}
    if not isinstance(data, dict):
        data = {}
    return data, index + 1


def _iter_body_dependencies(body: str) -> Iterator[RuleId]:
    for match in _BODY_TOKEN_RE.finditer(body):
        parsed = parse_reference_token(match.group(1))
        if parsed is not None and parsed.rule_id is not None and parsed.verb is Verb.DEPENDS:
            yield parsed.rule_id


class _Extractor:
    """Single pass over the lines of one document."""

    def __init__(self, path: str, content: str):
        self.path = path
        self.lines = _split_lines(content)
        self.output: list[str] = []
        self.warnings: list[ParseWarning] = []
        self.definitions: list[RuleDefinition] = []
        self.first_seen: dict[str, RuleDefinition] = {}
        self.duplicate_locations: dict[str, list[RuleLocation]] = {}
        self.duplicate_ids: dict[str, RuleId] = {}
        self.roots: list[_Heading] = []
        self.stack: list[_Heading] = []
        self.preamble: list[RuleId] = []
        self.slug_counts: dict[str, int] = {}

    def warn(self, kind: WarningKind, line: _Line, message: str, rule_id: str | None = None) -> None:
        logger.debug(f"{self.path}:{line.number}: {message}")
        self.warnings.append(
            ParseWarning(
                kind=kind,
                file=self.path,
                line=line.number,
                byte_offset=line.offset,
                byte_length=len(line.text.encode("utf-8")),
                message=message,
                rule_id=rule_id,
            )
        )

    def unique_slug(self, base: str) -> str:
        count = self.slug_counts.get(base, 0)
        self.slug_counts[base] = count + 1
        return base if count == 0 else f"{base}-{count}"

    def emit(self, line: _Line, text: str | None = None) -> None:
        self.output.append((line.text if text is None else text) + line.ending)

    def run(self) -> ExtractedSpec:
        frontmatter, start = _parse_frontmatter(self.lines, self.path)
        fence: str | None = None
        index = start
        while index < len(self.lines):
            line = self.lines[index]
            fence_match = _FENCE_RE.match(line.text)
            if fence is not None:
                if fence_match and fence_match.group("fence")[0] == fence[0] and len(
                    fence_match.group("fence")
                ) >= len(fence):
                    fence = None
                self.emit(line)
                index += 1
                continue
            if fence_match:
                fence = fence_match.group("fence")
                self.emit(line)
                index += 1
                continue

            heading = _HEADING_RE.match(line.text)
            if heading:
                self.handle_heading(line, heading)
                index += 1
                continue

            marker = _MARKER_RE.match(line.text)
            if marker:
                index = self.handle_marker(index, marker)
                continue

            self.emit(line)
            index += 1

        weight = frontmatter.get("weight", 0)
        title = frontmatter.get("title")
        return ExtractedSpec(
            path=self.path,
            definitions=tuple(self.definitions),
            document="".join(self.output),
            outline=tuple(root.freeze() for root in self.roots),
            preamble_rule_ids=tuple(self.preamble),
            warnings=tuple(self.warnings),
            duplicates=tuple(
                DuplicateRule(
                    id=self.duplicate_ids[base],
                    kind=DuplicateKind.SAME_FILE,
                    locations=tuple(locations),
                )
                for base, locations in self.duplicate_locations.items()
            ),
            weight=weight if isinstance(weight, int) and not isinstance(weight, bool) else 0,
            title=str(title) if title is not None else None,
        )

    def handle_heading(self, line: _Line, match: re.Match) -> None:
        level = len(match.group("hashes"))
        text = (match.group("text") or "").rstrip("#").rstrip()
        explicit = _EXPLICIT_ANCHOR_RE.search(text)
        if explicit:
            title = text[: explicit.start()].strip()
            slug = self.unique_slug(explicit.group("slug"))
        else:
            title = text
            slug = self.unique_slug(slugify(title))

        entry = _Heading(slug=slug, title=title, level=level)
        while self.stack and self.stack[-1].level >= level:
            self.stack.pop()
        if self.stack:
            self.stack[-1].children.append(entry)
        else:
            self.roots.append(entry)
        self.stack.append(entry)
        self.emit(line, f"{match.group('hashes')} {title} {{#{slug}}}")

    def handle_marker(self, index: int, match: re.Match) -> int:
        line = self.lines[index]
        quoted = match.group("quote") is not None
        tokens = match.group("body").split()
        rule_id = parse_rule_id(tokens[0]) if tokens else None
        if rule_id is None:
            self.warn(
                WarningKind.MALFORMED_REFERENCE,
                line,
                f"Malformed rule marker 'r[{match.group('body')}]'",
            )
            self.emit(line)
            return index + 1

        attributes = self.parse_attributes(line, rule_id, tokens[1:])
        body_lines, next_index = (
            self.quoted_body(index + 1) if quoted else self.plain_body(index + 1)
        )
        body = "\n".join(body_lines).strip()

        marker_html = render_rule_marker(rule_id)
        self.emit(line, f"> {marker_html}" if quoted else marker_html)
        for body_line in self.lines[index + 1 : next_index]:
            self.emit(body_line)

        self.record(line, rule_id, body, attributes)
        return next_index

    def plain_body(self, start: int) -> tuple[list[str], int]:
        body = []
        index = start
        while index < len(self.lines):
            text = self.lines[index].text
            if not text.strip() or _MARKER_RE.match(text) or _HEADING_RE.match(text):
                break
            if _FENCE_RE.match(text):
                break
            body.append(text)
            index += 1
        return body, index

    def quoted_body(self, start: int) -> tuple[list[str], int]:
        body = []
        index = start
        while index < len(self.lines):
            text = self.lines[index].text
            stripped = text.lstrip()
            if not stripped.startswith(">") or _MARKER_RE.match(text):
                break
            content = stripped[1:]
            body.append(content[1:] if content.startswith(" ") else content)
            index += 1
        return body, index

    def parse_attributes(self, line: _Line, rule_id: RuleId, tokens: list[str]) -> dict:
        attributes: dict = {}
        for token in tokens:
            key, eq, value = token.partition("=")
            problem = None
            if not eq or not value:
                problem = f"Expected key=value attribute, got '{token}'"
            elif key == "status":
                try:
                    attributes["status"] = RuleStatus(value)
                except ValueError:
                    problem = f"Invalid status '{value}'"
            elif key == "level":
                if value in _SETTABLE_LEVELS:
                    attributes["level"] = RequirementLevel(value)
                else:
                    problem = f"Invalid level '{value}'"
            elif key in ("since", "until"):
                attributes[key] = value
            elif key == "tags":
                attributes["tags"] = tuple(tag for tag in value.split(",") if tag)
            else:
                problem = f"Unknown attribute '{key}'"
            if problem:
                self.warn(WarningKind.INVALID_ATTRIBUTE, line, problem, rule_id=str(rule_id))
        return attributes

    def record(self, line: _Line, rule_id: RuleId, body: str, attributes: dict) -> None:
        location = RuleLocation(file=self.path, line=line.number, byte_offset=line.offset)
        first = self.first_seen.get(rule_id.base)
        if first is not None:
            locations = self.duplicate_locations.setdefault(
                rule_id.base,
                [RuleLocation(file=first.spec_file, line=first.line, byte_offset=first.byte_offset)],
            )
            self.duplicate_ids.setdefault(rule_id.base, first.id)
            locations.append(location)
            logger.debug(f"{self.path}:{line.number}: duplicate rule '{rule_id}'")
            return

        detected, keywords = requirement_level(body)
        level = attributes.get("level", detected)
        if body and not keywords and "level" not in attributes:
            self.warn(
                WarningKind.NO_RFC2119_KEYWORD,
                line,
                f"Rule '{rule_id}' has no RFC 2119 keyword",
                rule_id=str(rule_id),
            )
        for keyword in dict.fromkeys(k for k in keywords if k in _NEGATIVE_KEYWORDS):
            self.warn(
                WarningKind.NEGATIVE_REQUIREMENT,
                line,
                f"Rule '{rule_id}' uses negative requirement '{keyword}'",
                rule_id=str(rule_id),
            )

        definition = RuleDefinition(
            id=rule_id,
            spec_file=self.path,
            byte_offset=line.offset,
            byte_length=len(line.text.encode("utf-8")),
            line=line.number,
            raw_text=body,
            level=level,
            heading_path=tuple(entry.slug for entry in self.stack),
            anchor_id=rule_anchor_id(rule_id),
            status=attributes.get("status"),
            since=attributes.get("since"),
            until=attributes.get("until"),
            tags=attributes.get("tags", ()),
            depends_on=tuple(dict.fromkeys(_iter_body_dependencies(body))),
        )
        self.first_seen[rule_id.base] = definition
        self.definitions.append(definition)
        if self.stack:
            self.stack[-1].rule_ids.append(rule_id)
        else:
            self.preamble.append(rule_id)


def extract_rules(content: str, path: str) -> ExtractedSpec:
    """Extract rule definitions, the rewritten document and outline from markdown.

    Args:
        content: Markdown source
        path: Spec path recorded on definitions and warnings

    Returns:
        ExtractedSpec for the document.
    """
    return _Extractor(path, content).run()
