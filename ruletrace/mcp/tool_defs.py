"""MCP Tool Definitions for ruletrace.

This module contains all tool definitions returned by the tools/list method.
Each tool definition includes the schema for its input parameters.

Tool Categories:
    - Overview: ruletrace_status
    - Coverage: ruletrace_uncovered, ruletrace_untested, ruletrace_unmapped
    - Rules: ruletrace_rule, ruletrace_search
    - Maintenance: ruletrace_validate, ruletrace_reload
"""

from ..models.enums import ToolName

_SPEC_IMPL = {
    "type": "string",
    "description": "Spec name or 'spec/impl'. Optional when only one pair is configured.",
}
_OFFSET = {"type": "integer", "default": 0, "minimum": 0, "description": "Items to skip"}
_LIMIT = {"type": "integer", "minimum": 1, "maximum": 1000, "description": "Page size"}


TOOL_DEFINITIONS: list[dict] = [
    # ============ Overview ============
    {
        "name": ToolName.STATUS.value,
        "description": "Coverage overview of every spec/impl pair: rule totals, covered and verified percentages, validation error counts. Start here.",
        "inputSchema": {"type": "object", "properties": {}, "required": []},
    },
    # ============ Coverage ============
    {
        "name": ToolName.UNCOVERED.value,
        "description": "List rules that no code implements or verifies. Zoom into a spec section with 'section'; results are paged.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "spec_impl": _SPEC_IMPL,
                "section": {
                    "type": "string",
                    "description": "Heading slug or title to restrict the listing to",
                },
                "offset": _OFFSET,
                "limit": _LIMIT,
            },
            "required": [],
        },
    },
    {
        "name": ToolName.UNTESTED.value,
        "description": "List rules without a [verify rule.id] reference in tests. Same parameters as ruletrace_uncovered.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "spec_impl": _SPEC_IMPL,
                "section": {"type": "string", "description": "Heading slug or title"},
                "offset": _OFFSET,
                "limit": _LIMIT,
            },
            "required": [],
        },
    },
    {
        "name": ToolName.UNMAPPED.value,
        "description": "Show code that references no rule. Without 'path' returns the top of the coverage tree; a folder path zooms in, a file path lists its unreferenced code units.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "spec_impl": _SPEC_IMPL,
                "path": {"type": "string", "description": "Folder or file, relative to the project root"},
                "offset": _OFFSET,
                "limit": _LIMIT,
            },
            "required": [],
        },
    },
    # ============ Rules ============
    {
        "name": ToolName.RULE.value,
        "description": "Full text of one rule plus every impl/verify/depends reference to it, per implementation. Suggests similar ids when not found.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "rule_id": {
                    "type": "string",
                    "description": "Rule id such as 'auth.token.expiry' (a '+2' version suffix is accepted)",
                },
            },
            "required": ["rule_id"],
        },
    },
    {
        "name": ToolName.SEARCH.value,
        "description": "Keyword search over rule ids, rule text and source file paths.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Keywords or a rule id"},
                "limit": {"type": "integer", "default": 20, "minimum": 1, "maximum": 200},
            },
            "required": ["query"],
        },
    },
    # ============ Maintenance ============
    {
        "name": ToolName.VALIDATE.value,
        "description": "Validation report: broken and stale references, duplicate rules, orphaned rules, naming violations, dependency cycles and parse warnings.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "spec_impl": _SPEC_IMPL,
                "offset": _OFFSET,
                "limit": _LIMIT,
            },
            "required": [],
        },
    },
    {
        "name": ToolName.RELOAD.value,
        "description": "Re-read the project config and rebuild every index from scratch. An invalid config is reported and the previous index stays live.",
        "inputSchema": {"type": "object", "properties": {}, "required": []},
    },
]
