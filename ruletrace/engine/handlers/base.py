"""Base infrastructure for tool handlers.

This module provides the common types and utilities used by all handler modules.
Each handler receives a HandlerContext with shared state and returns a ToolResult.
"""

import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Coroutine, TypeVar

from ...models.responses import DeltaInfo, PageInfo, RuleChangeInfo
from ..sessions import Delta, RuleChange, Session, compute_delta

if TYPE_CHECKING:
    from ...models import ToolResult
    from ..controller import UpdateController
    from ..query import QueryEngine
    from ..snapshot import Snapshot

T = TypeVar("T")


@dataclass
class HandlerContext:
    """Context object passed to all handlers.

    Contains shared state and dependencies that handlers need to operate.
    """

    # Read API over the published snapshot
    query: "QueryEngine"

    # Snapshot writer (status and reload)
    controller: "UpdateController"

    # MCP session of the caller (None for sessionless calls)
    session: Session | None

    # Default page size for list tools
    page_size: int = 50


# Type alias for handler functions
HandlerFunc = Callable[
    [dict[str, Any], HandlerContext],
    Coroutine[Any, Any, "ToolResult"],
]


def count_tokens(text: str) -> int:
    """Estimate token count for a string.

    Uses a simple heuristic of ~4 characters per token.
    This is a reasonable approximation for English text.
    """
    if not text:
        return 0
    return max(1, len(text) // 4)


def count_payload_tokens(payload: Any) -> int:
    return count_tokens(json.dumps(payload, default=str))


def _change_info(change: RuleChange) -> RuleChangeInfo:
    return RuleChangeInfo(
        spec=change.spec,
        impl=change.impl,
        rule_id=str(change.rule_id),
        file=change.file,
        line=change.line,
    )


def delta_info(delta: Delta) -> DeltaInfo:
    return DeltaInfo(
        from_version=delta.from_version,
        to_version=delta.to_version,
        first_query=delta.first_query,
        newly_covered=[_change_info(c) for c in delta.newly_covered],
        newly_verified=[_change_info(c) for c in delta.newly_verified],
        newly_uncovered=[_change_info(c) for c in delta.newly_uncovered],
    )


def session_delta(ctx: HandlerContext, snapshot: "Snapshot") -> DeltaInfo | None:
    """Advance the caller's session to ``snapshot`` and describe the change.

    Handlers pass the snapshot their result was built from, so the delta and
    the data always describe the same version.
    """
    if ctx.session is None:
        return None
    return delta_info(compute_delta(ctx.session, snapshot))


def paginate(
    items: Sequence[T],
    offset: int,
    limit: int | None,
    ctx: HandlerContext,
    tool: str,
    hints: list[str] | None = None,
) -> tuple[list[T], PageInfo]:
    """Slice ``items`` and describe how to fetch the next page.

    Args:
        items: Full result list
        offset: Items to skip
        limit: Page size (defaults to ctx.page_size)
        ctx: Handler context
        tool: Tool name used in the follow-up hint
        hints: Extra hints appended after the paging hint

    Returns:
        Tuple of (page items, PageInfo)
    """
    limit = limit or ctx.page_size
    page = list(items[offset : offset + limit])
    next_offset = offset + limit if offset + limit < len(items) else None
    all_hints = []
    if next_offset is not None:
        all_hints.append(
            f"{len(items) - next_offset} more; call {tool} with offset={next_offset}"
        )
    all_hints.extend(hints or [])
    return page, PageInfo(
        offset=offset, limit=limit, total=len(items), next_offset=next_offset, hints=all_hints
    )
