"""API routes and dependencies.

This package contains the HTTP read surface:
- dashboard: /api/* read endpoints over the published snapshot
- deps: FastAPI dependency injection functions
"""

from .deps import (
    SESSION_HEADER,
    error_status,
    get_controller,
    get_query,
    get_session_id,
    get_sessions,
    lookup_session,
    sanitize_error_message,
)

__all__ = [
    "SESSION_HEADER",
    "error_status",
    "get_controller",
    "get_query",
    "get_session_id",
    "get_sessions",
    "lookup_session",
    "sanitize_error_message",
]
