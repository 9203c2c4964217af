"""FastAPI dependency injection functions.

This module contains shared dependencies for API endpoints:
- Access to the controller, query engine and session store on app.state
- MCP session header extraction
- Error sanitization
"""

import logging
from typing import Annotated

from fastapi import Header, HTTPException
from fastapi import Request as FastAPIRequest

from ..engine.controller import UpdateController
from ..engine.query import QueryEngine
from ..engine.sessions import Session, SessionStore
from ..exceptions import (
    ConfigError,
    FileNotIndexedError,
    RuleNotFoundError,
    RuletraceError,
    SectionNotFoundError,
    SpecSelectionError,
)

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"


# ============ ERROR SANITIZATION ============


def error_status(error: RuletraceError) -> int:
    """HTTP status for a ruletrace error raised while answering a request."""
    if isinstance(error, (RuleNotFoundError, FileNotIndexedError, SectionNotFoundError)):
        return 404
    if isinstance(error, (SpecSelectionError, ConfigError)):
        return 400
    return 500


def sanitize_error_message(error: Exception) -> str:
    """
    Sanitize error messages to prevent information disclosure.

    Ruletrace errors describe the project the caller asked about and are
    returned as-is; anything else is logged and replaced by a generic message.
    """
    if isinstance(error, RuletraceError):
        return str(error)

    # Log the actual error for debugging
    logger.error(f"Request failed: {error}", exc_info=True)

    return "An error occurred processing your request. Please try again."


# ============ STATE ACCESSORS ============


def get_controller(request: FastAPIRequest) -> UpdateController:
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Index is not ready")
    return controller


def get_query(request: FastAPIRequest) -> QueryEngine:
    query = getattr(request.app.state, "query", None)
    if query is None:
        raise HTTPException(status_code=503, detail="Index is not ready")
    return query


def get_sessions(request: FastAPIRequest) -> SessionStore:
    return request.app.state.sessions


# ============ HEADER EXTRACTORS ============


async def get_session_id(
    mcp_session_id: Annotated[str | None, Header(alias=SESSION_HEADER)] = None,
) -> str | None:
    """Extract the MCP session id from the request headers."""
    return mcp_session_id


def lookup_session(sessions: SessionStore, session_id: str | None) -> Session | None:
    """Resolve a session header.

    Unknown ids are adopted so deltas still work after a restart. The store
    evicts its least recently used session once it is full.
    """
    if not session_id:
        return None
    return sessions.get_or_create(session_id)
