"""JSON-RPC 2.0 envelopes and error codes for the /mcp endpoint.

Protocol failures use the reserved codes. Ruletrace errors raised by a tool
get their own codes in the -32000 to -32099 server range so clients can
tell a mistyped rule id from a bad selector without parsing messages.

See: https://www.jsonrpc.org/specification
"""

from typing import Any

from ..exceptions import (
    ConfigError,
    FileNotIndexedError,
    RuleNotFoundError,
    RuletraceError,
    SectionNotFoundError,
    SourceFetchError,
    SpecSelectionError,
)

# Reserved by JSON-RPC
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Ruletrace tool errors
SERVER_ERROR = -32000
RULE_NOT_FOUND = -32001
SPEC_SELECTION = -32002
FILE_NOT_INDEXED = -32003
SECTION_NOT_FOUND = -32004
CONFIG_INVALID = -32005
SOURCE_UNAVAILABLE = -32006

_ERROR_CODES: list[tuple[type[RuletraceError], int]] = [
    (RuleNotFoundError, RULE_NOT_FOUND),
    (SpecSelectionError, SPEC_SELECTION),
    (FileNotIndexedError, FILE_NOT_INDEXED),
    (SectionNotFoundError, SECTION_NOT_FOUND),
    (ConfigError, CONFIG_INVALID),
    (SourceFetchError, SOURCE_UNAVAILABLE),
]


def error_code(error: RuletraceError) -> int:
    """Code for a ruletrace error; SERVER_ERROR when no specific one applies."""
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return SERVER_ERROR


def is_caller_error(error: RuletraceError) -> bool:
    """True when the error describes the request rather than the server."""
    return isinstance(
        error, (RuleNotFoundError, SpecSelectionError, FileNotIndexedError, SectionNotFoundError)
    )


def error_data(error: RuletraceError) -> dict | None:
    if isinstance(error, RuleNotFoundError):
        return {"rule_id": error.rule_id, "suggestions": error.suggestions}
    return None


def jsonrpc_response(id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def jsonrpc_error(id: Any, code: int, message: str, data: Any = None) -> dict:
    """Error envelope; ``id`` is None when the request could not be parsed."""
    error: dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": error}


def jsonrpc_tool_error(id: Any, error: RuletraceError) -> dict:
    """Error envelope for a ruletrace error raised while running a tool."""
    return jsonrpc_error(id, error_code(error), str(error), error_data(error))
