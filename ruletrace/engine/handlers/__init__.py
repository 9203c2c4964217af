"""Tool handlers for the ruletrace MCP tools.

This package contains the tool handlers organized by domain:
- coverage: Coverage views (status, uncovered, untested, unmapped)
- rules: Rule lookup, validation, search and reload

Each handler is a standalone async function that takes:
- params: dict[str, Any] - Tool parameters from MCP call
- ctx: HandlerContext - Query engine, controller and caller session

And returns:
- ToolResult with data, input_tokens, output_tokens
"""

from ...models import ToolName
from .base import HandlerContext, HandlerFunc, count_tokens, paginate, session_delta
from .coverage import (
    handle_status,
    handle_uncovered,
    handle_unmapped,
    handle_untested,
)
from .rules import (
    handle_reload,
    handle_rule,
    handle_search,
    handle_validate,
)

TOOL_HANDLERS: dict[ToolName, HandlerFunc] = {
    ToolName.STATUS: handle_status,
    ToolName.UNCOVERED: handle_uncovered,
    ToolName.UNTESTED: handle_untested,
    ToolName.UNMAPPED: handle_unmapped,
    ToolName.RULE: handle_rule,
    ToolName.VALIDATE: handle_validate,
    ToolName.SEARCH: handle_search,
    ToolName.RELOAD: handle_reload,
}

__all__ = [
    # Base
    "HandlerContext",
    "HandlerFunc",
    "TOOL_HANDLERS",
    "count_tokens",
    "paginate",
    "session_delta",
    # Coverage handlers
    "handle_status",
    "handle_uncovered",
    "handle_untested",
    "handle_unmapped",
    # Rule handlers
    "handle_rule",
    "handle_validate",
    "handle_search",
    "handle_reload",
]
