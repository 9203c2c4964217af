"""Enumeration types for ruletrace."""

from enum import StrEnum


class ToolName(StrEnum):
    """Available MCP tools."""

    STATUS = "ruletrace_status"
    UNCOVERED = "ruletrace_uncovered"
    UNTESTED = "ruletrace_untested"
    UNMAPPED = "ruletrace_unmapped"
    RULE = "ruletrace_rule"
    VALIDATE = "ruletrace_validate"
    SEARCH = "ruletrace_search"
    RELOAD = "ruletrace_reload"


class Verb(StrEnum):
    """Verb carried by a source reference (``[verb rule.id]``)."""

    DEFINE = "define"
    IMPL = "impl"
    VERIFY = "verify"
    DEPENDS = "depends"
    RELATED = "related"
    UNKNOWN = "unknown"  # Unrecognized verb token, reported as a warning

    @classmethod
    def recognized(cls) -> frozenset[str]:
        return frozenset(v.value for v in cls if v is not cls.UNKNOWN)


class RequirementLevel(StrEnum):
    """RFC 2119 requirement level of a rule."""

    MUST = "must"
    SHOULD = "should"
    MAY = "may"
    UNSPECIFIED = "unspecified"


class RuleStatus(StrEnum):
    """Lifecycle stage of a rule."""

    DRAFT = "draft"
    STABLE = "stable"
    DEPRECATED = "deprecated"
    REMOVED = "removed"


class WarningKind(StrEnum):
    """Non-fatal problems found while scanning or extracting."""

    UNKNOWN_VERB = "unknown_verb"
    MALFORMED_REFERENCE = "malformed_reference"
    INVALID_ATTRIBUTE = "invalid_attribute"
    NO_RFC2119_KEYWORD = "no_rfc2119_keyword"
    NEGATIVE_REQUIREMENT = "negative_requirement"
    UNTERMINATED_BLOCK = "unterminated_block"


class DuplicateKind(StrEnum):
    """Where a duplicate rule definition was detected."""

    SAME_FILE = "same_file"  # Extraction of a single spec file
    CROSS_FILE = "cross_file"  # Manifest merge across spec files


class ControllerState(StrEnum):
    """Update controller state machine."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REBUILDING = "rebuilding"
    STOPPED = "stopped"


class SearchKind(StrEnum):
    """Kind of search hit."""

    RULE = "rule"
    FILE = "file"
