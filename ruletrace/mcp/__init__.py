"""MCP (Model Context Protocol) transport module.

This module contains components for the MCP Streamable HTTP transport:
- Tool definitions for tools/list
- JSON-RPC 2.0 envelopes and ruletrace error codes
- The /mcp router (import from .transport directly, it needs the app state deps)
"""

from .jsonrpc import (
    FILE_NOT_INDEXED,
    INVALID_PARAMS,
    RULE_NOT_FOUND,
    SECTION_NOT_FOUND,
    SERVER_ERROR,
    SPEC_SELECTION,
    error_code,
    jsonrpc_error,
    jsonrpc_response,
)
from .tool_defs import TOOL_DEFINITIONS

__all__ = [
    # Tool definitions
    "TOOL_DEFINITIONS",
    # JSON-RPC envelopes
    "jsonrpc_response",
    "jsonrpc_error",
    "error_code",
    # Error codes clients branch on
    "INVALID_PARAMS",
    "SERVER_ERROR",
    "RULE_NOT_FOUND",
    "SPEC_SELECTION",
    "FILE_NOT_INDEXED",
    "SECTION_NOT_FOUND",
]
