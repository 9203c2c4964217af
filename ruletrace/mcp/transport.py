"""MCP Streamable HTTP transport.

``POST /mcp`` accepts single or batched JSON-RPC 2.0 requests. ``initialize``
opens a session whose id is returned in the ``Mcp-Session-Id`` header; later
calls send it back so every tool result carries the coverage delta since that
session's previous call. ``DELETE /mcp`` ends the session.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import __version__
from ..api.deps import (
    SESSION_HEADER,
    get_controller,
    get_query,
    get_session_id,
    get_sessions,
    lookup_session,
)
from ..config import settings
from ..engine.controller import UpdateController
from ..engine.handlers import TOOL_HANDLERS, HandlerContext
from ..engine.query import QueryEngine
from ..engine.sessions import SessionStore
from ..exceptions import RuletraceError
from ..models import ToolName
from .jsonrpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    is_caller_error,
    jsonrpc_error,
    jsonrpc_response,
    jsonrpc_tool_error,
)
from .tool_defs import TOOL_DEFINITIONS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["MCP Transport"])

PROTOCOL_VERSION = "2024-11-05"


@router.post("/mcp")
async def mcp_transport_endpoint(
    request: Request,
    session_id: str | None = Depends(get_session_id),
    controller: UpdateController = Depends(get_controller),
    query: QueryEngine = Depends(get_query),
    sessions: SessionStore = Depends(get_sessions),
):
    """
    MCP Streamable HTTP endpoint (JSON-RPC format).

    Config example (Claude Code):
    ```json
    {"mcpServers": {"ruletrace": {"type": "http", "url": "http://localhost:3000/mcp"}}}
    ```
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(jsonrpc_error(None, PARSE_ERROR, "Parse error"), status_code=400)

    # A request without a known session header gets one from initialize
    headers: dict[str, str] = {}
    session = lookup_session(sessions, session_id)

    async def handle(req: Any) -> dict | None:
        nonlocal session
        if isinstance(req, dict) and req.get("method") == "initialize" and session is None:
            session = sessions.create()
            headers[SESSION_HEADER] = session.session_id
        ctx = HandlerContext(
            query=query, controller=controller, session=session, page_size=settings.page_size
        )
        return await _handle_request(req, ctx)

    # Handle batch requests
    if isinstance(body, list):
        if not body:
            return JSONResponse(jsonrpc_error(None, INVALID_REQUEST, "Empty batch"), status_code=400)
        responses = []
        for req in body:
            resp = await handle(req)
            if resp:  # Skip notifications (no id)
                responses.append(resp)
        if not responses:
            return Response(status_code=202, headers=headers)
        return JSONResponse(responses, headers=headers)

    # Handle single request
    response = await handle(body)
    if response is None:
        return Response(status_code=202, headers=headers)
    return JSONResponse(response, headers=headers)


@router.delete("/mcp")
async def mcp_end_session(
    session_id: str | None = Depends(get_session_id),
    sessions: SessionStore = Depends(get_sessions),
):
    """End an MCP session."""
    if not session_id or not sessions.destroy(session_id):
        return Response(status_code=404)
    return Response(status_code=204)


async def _handle_request(body: Any, ctx: HandlerContext) -> dict | None:
    """Handle a single JSON-RPC request."""
    if not isinstance(body, dict) or not isinstance(body.get("method"), str):
        return jsonrpc_error(
            body.get("id") if isinstance(body, dict) else None, INVALID_REQUEST, "Invalid Request"
        )

    method = body["method"]
    id = body.get("id")
    params = body.get("params") or {}

    if id is None:  # Notification - no response
        logger.debug(f"Notification {method}")
        return None

    if not isinstance(params, dict):
        return jsonrpc_error(id, INVALID_PARAMS, "params must be an object")

    if method == "initialize":
        return jsonrpc_response(
            id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": "ruletrace", "version": __version__},
                "capabilities": {"tools": {}},
            },
        )
    elif method == "tools/list":
        return jsonrpc_response(id, {"tools": TOOL_DEFINITIONS})
    elif method == "tools/call":
        return await _handle_call_tool(id, params, ctx)
    elif method == "ping":
        return jsonrpc_response(id, {})
    else:
        return jsonrpc_error(id, METHOD_NOT_FOUND, f"Method not found: {method}")


async def _handle_call_tool(id: Any, params: dict, ctx: HandlerContext) -> dict:
    """Handle MCP tools/call request."""
    tool_name = params.get("name")
    arguments = params.get("arguments") or {}

    try:
        tool = ToolName(tool_name)
    except ValueError:
        return jsonrpc_error(id, INVALID_PARAMS, f"Unknown tool: {tool_name}")
    if not isinstance(arguments, dict):
        return jsonrpc_error(id, INVALID_PARAMS, "arguments must be an object")

    try:
        result = await TOOL_HANDLERS[tool](arguments, ctx)
    except ValidationError as e:
        return jsonrpc_error(id, INVALID_PARAMS, f"Invalid parameter: {_first_error(e)}")
    except RuletraceError as e:
        if not is_caller_error(e):
            logger.warning(f"{tool.value} failed: {e}")
        return jsonrpc_tool_error(id, e)
    except Exception as e:
        logger.error(f"{tool.value} crashed: {e}", exc_info=True)
        return jsonrpc_error(id, INTERNAL_ERROR, "Internal error")

    logger.debug(
        f"{tool.value}: ~{result.input_tokens} tokens in, ~{result.output_tokens} tokens out"
    )
    payload = {
        "content": [{"type": "text", "text": json.dumps(result.data, indent=2, default=str)}],
    }
    if result.is_error:
        payload["isError"] = True
    return jsonrpc_response(id, payload)


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "arguments"
    return f"{location}: {first.get('msg', 'invalid value')}"
