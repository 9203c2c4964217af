"""Language-agnostic segmentation of source files into code units.

A unit starts at a non-blank line in column 0 that follows a blank line (or
the start of the file) and runs until the next unit start, trailing blank
lines excluded. Comments directly above an item therefore belong to the
item's unit, and blank lines inside indented bodies do not split a unit.
"""

import bisect

from .document import CodeUnit
from .languages import CommentProfile

_NAME_LIMIT = 80


def _is_comment(stripped: str, openers: tuple[str, ...]) -> bool:
    return stripped.startswith(openers) or stripped.startswith("*")


def segment_code_units(content: str, profile: CommentProfile | None = None) -> tuple[CodeUnit, ...]:
    """Split ``content`` into top-level CodeUnits (rule_ids left empty).

    Args:
        content: Decoded file content
        profile: Comment profile, used to classify comment-only units and
            to pick a display name that is not a comment line

    Returns:
        Units ordered by start line; empty for blank files.
    """
    # Only "\n" ends a line, matching the scanner's line numbers
    lines = [line.removesuffix("\r") for line in content.split("\n")]
    openers: tuple[str, ...] = ()
    if profile is not None:
        openers = profile.line_prefixes + tuple(open_ for open_, _ in profile.block_delimiters)

    starts = []
    previous_blank = True
    for number, text in enumerate(lines, start=1):
        blank = not text.strip()
        if not blank and previous_blank and not text[0].isspace():
            starts.append(number)
        elif not blank and not starts:
            starts.append(number)
        previous_blank = blank

    units = []
    for i, start in enumerate(starts):
        end = (starts[i + 1] - 1) if i + 1 < len(starts) else len(lines)
        while end > start and not lines[end - 1].strip():
            end -= 1

        body = [lines[n - 1].strip() for n in range(start, end + 1) if lines[n - 1].strip()]
        code = [text for text in body if not (openers and _is_comment(text, openers))]
        kind = "item" if code or not openers else "comment"
        name = (code[0] if code else body[0])[:_NAME_LIMIT] if body else None
        units.append(CodeUnit(start_line=start, end_line=end, kind=kind, name=name))
    return tuple(units)


def unit_index_for_line(units: tuple[CodeUnit, ...], line: int) -> int | None:
    """Index of the unit containing ``line``, or None."""
    position = bisect.bisect_right([unit.start_line for unit in units], line) - 1
    if position >= 0 and units[position].contains(line):
        return position
    return None
