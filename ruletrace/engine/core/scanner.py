"""Reference scanner.

Extracts ``[verb rule.id]`` references from the comment regions of a source
file. The file is scanned once as UTF-8 bytes with a small state machine
(code -> line comment -> code, code -> block comment -> code) driven by the
language's CommentProfile. String literals are not tracked, so a comment
opener inside a string starts a comment region.

Token forms inside comments:
- ``[impl auth.login]``: recognized verb
- ``[auth.login]``: implicit ``impl``; bare tokens need at least two segments
- ``[note auth.login]``: unknown verb, emitted with verb ``unknown`` plus a warning
- ``[impl auth..login]``: malformed id, dropped with a warning
"""

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from ...models.enums import Verb, WarningKind
from .document import ParseWarning, Reference
from .languages import CommentProfile, get_profile
from .rule_id import RuleId, parse_rule_id

logger = logging.getLogger(__name__)

# Optional ``r`` prefix; the bracket must not be glued to an identifier (``arr[i.j]``).
_TOKEN_RE = re.compile(rb"(?<![A-Za-z0-9_])r?\[([^\[\]\r\n]*)\]")
_VERB_WORD_RE = re.compile(r"[a-z]+")
_RECOGNIZED_VERBS = Verb.recognized()


@dataclass(frozen=True)
class TokenParse:
    """Outcome of interpreting the inside of one bracketed token."""

    verb: Verb | None
    rule_id: RuleId | None
    id_text: str
    warning: WarningKind | None = None


@dataclass(frozen=True)
class ScanResult:
    """References and warnings extracted from one source file."""

    references: tuple[Reference, ...] = ()
    warnings: tuple[ParseWarning, ...] = ()


def parse_reference_token(inner: str) -> TokenParse | None:
    """Interpret bracket content; None means ordinary prose to be ignored.

    Args:
        inner: Text between the brackets

    Returns:
        TokenParse with a rule id (possibly with a warning), a TokenParse
        without rule id for malformed references, or None.
    """
    inner = inner.strip()
    if not inner:
        return None

    explicit = False
    verb = Verb.IMPL
    id_text = inner
    warning = None

    head, _, rest = inner.partition(" ")
    rest = rest.strip()
    if rest:
        if head in _RECOGNIZED_VERBS:
            verb = Verb(head)
            id_text = rest
            explicit = True
        elif _VERB_WORD_RE.fullmatch(head) and parse_rule_id(rest) is not None:
            verb = Verb.UNKNOWN
            id_text = rest
            explicit = True
            warning = WarningKind.UNKNOWN_VERB

    rule_id = parse_rule_id(id_text)
    if rule_id is None:
        if explicit or "." in id_text:
            return TokenParse(verb=None, rule_id=None, id_text=id_text,
                              warning=WarningKind.MALFORMED_REFERENCE)
        return None
    if not explicit and len(rule_id.segments) < 2:
        return None
    return TokenParse(verb=verb, rule_id=rule_id, id_text=id_text, warning=warning)


def comment_regions(data: bytes, profile: CommentProfile) -> Iterator[tuple[int, int, bool]]:
    """Yield ``(start, end, terminated)`` byte ranges of comments, delimiters included.

    Longer openers win over shorter ones starting at the same byte, so
    ``--[[`` opens a Lua block rather than a line comment.
    """
    openers: list[tuple[bytes, bytes | None]] = [
        (prefix.encode(), None) for prefix in profile.line_prefixes
    ] + [(open_.encode(), close.encode()) for open_, close in profile.block_delimiters]
    openers.sort(key=lambda item: -len(item[0]))
    if not openers:
        return

    size = len(data)
    next_hit = [-2] * len(openers)
    pos = 0
    while pos < size:
        best: tuple[int, int] | None = None  # (offset, opener index)
        for i, (opener, _) in enumerate(openers):
            if next_hit[i] != -1 and next_hit[i] < pos:
                next_hit[i] = data.find(opener, pos)
            hit = next_hit[i]
            if hit == -1:
                continue
            if best is None or hit < best[0]:
                best = (hit, i)
        if best is None:
            return

        start, index = best
        opener, closer = openers[index]
        body = start + len(opener)
        if closer is None:
            end = data.find(b"\n", body)
            end = size if end == -1 else end
            yield start, end, True
        else:
            close = data.find(closer, body)
            if close == -1:
                yield start, size, False
                return
            end = close + len(closer)
            yield start, end, True
        pos = max(end, start + 1)


def iter_references(
    content: str | bytes,
    language: str | CommentProfile,
    path: str,
    warnings: list[ParseWarning] | None = None,
) -> Iterator[Reference]:
    """Lazily yield the references found in a file's comment regions.

    Args:
        content: File content (str is encoded as UTF-8)
        language: Language name or a CommentProfile
        path: File path recorded on references and warnings
        warnings: Optional list that receives ParseWarnings as they are found

    Yields:
        References in file order.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    profile = language if isinstance(language, CommentProfile) else get_profile(language)

    line = 1
    line_offset = 0

    def line_at(offset: int) -> int:
        nonlocal line, line_offset
        line += data.count(b"\n", line_offset, offset)
        line_offset = offset
        return line

    def warn(kind: WarningKind, offset: int, length: int, message: str, rule_id=None) -> None:
        warning = ParseWarning(
            kind=kind,
            file=path,
            line=line_at(offset),
            byte_offset=offset,
            byte_length=length,
            message=message,
            rule_id=rule_id,
        )
        logger.debug(f"{path}:{warning.line}: {message}")
        if warnings is not None:
            warnings.append(warning)

    for start, end, terminated in comment_regions(data, profile):
        for match in _TOKEN_RE.finditer(data, start, end):
            bracket = match.start() + (1 if data[match.start()] == ord("r") else 0)
            length = match.end() - bracket
            try:
                inner = match.group(1).decode("utf-8")
            except UnicodeDecodeError:
                continue
            parsed = parse_reference_token(inner)
            if parsed is None:
                continue
            if parsed.rule_id is None:
                warn(
                    WarningKind.MALFORMED_REFERENCE,
                    bracket,
                    length,
                    f"Malformed rule reference '[{inner.strip()}]'",
                )
                continue
            if parsed.warning is WarningKind.UNKNOWN_VERB:
                verb_text = inner.strip().partition(" ")[0]
                warn(
                    WarningKind.UNKNOWN_VERB,
                    bracket,
                    length,
                    f"Unknown verb '{verb_text}' (valid verbs: {', '.join(sorted(_RECOGNIZED_VERBS))})",
                    rule_id=str(parsed.rule_id),
                )
            yield Reference(
                verb=parsed.verb,
                rule_id=parsed.rule_id,
                file=path,
                byte_offset=bracket,
                byte_length=length,
                line=line_at(bracket),
            )
        if not terminated:
            warn(
                WarningKind.UNTERMINATED_BLOCK,
                start,
                end - start,
                "Block comment is not terminated before end of file",
            )


def scan_source(content: str | bytes, language: str | CommentProfile, path: str) -> ScanResult:
    """Scan a whole file eagerly."""
    warnings: list[ParseWarning] = []
    references = tuple(iter_references(content, language, path, warnings))
    return ScanResult(references=references, warnings=tuple(warnings))
