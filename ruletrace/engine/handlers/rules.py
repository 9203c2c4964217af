"""Rule lookup, validation, search and reload handlers.

Handles:
- ruletrace_rule: Full text of a rule and every reference to it
- ruletrace_validate: Validation report of a spec/impl pair
- ruletrace_search: Keyword search over rules and files
- ruletrace_reload: Re-read config and rebuild from scratch
"""

import asyncio
import logging
from typing import Any

from ...exceptions import ConfigReloadError
from ...models import (
    ReloadResult,
    RuleParams,
    SearchParams,
    SearchResult,
    ToolName,
    ToolResult,
    ValidateParams,
    ValidateResult,
)
from .base import HandlerContext, count_payload_tokens, count_tokens, paginate, session_delta

logger = logging.getLogger(__name__)

# Report lists that are paged together by ruletrace_validate
_PAGED_FIELDS = ("broken", "stale", "duplicates", "orphaned", "naming", "cycles", "warnings")


async def handle_rule(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """Return a rule's text with its references in every implementation.

    Args:
        params: Dict containing:
            - rule_id: Rule id, a ``+N`` version suffix is accepted

    Returns:
        ToolResult with RuleResult
    """
    request = RuleParams.model_validate(params)
    snapshot = ctx.query.snapshot
    result = ctx.query.rule(request.rule_id, snapshot=snapshot)
    result.delta = session_delta(ctx, snapshot)
    data = result.model_dump(mode="json")
    return ToolResult(
        data=data,
        input_tokens=count_tokens(request.rule_id),
        output_tokens=count_payload_tokens(data),
    )


async def handle_validate(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """Validate a spec/impl pair.

    Every issue list is sliced with the same offset/limit window; the page
    total is the length of the longest list.

    Args:
        params: Dict containing:
            - spec_impl: Optional 'spec' or 'spec/impl' selector
            - offset / limit: Paging

    Returns:
        ToolResult with ValidateResult
    """
    request = ValidateParams.model_validate(params)
    snapshot = ctx.query.snapshot
    report = ctx.query.validate(request.spec_impl, snapshot=snapshot)

    longest = max(_PAGED_FIELDS, key=lambda name: len(getattr(report, name)))
    _, page_info = paginate(
        getattr(report, longest), request.offset, request.limit, ctx, ToolName.VALIDATE.value
    )
    window = slice(page_info.offset, page_info.offset + page_info.limit)
    report = report.model_copy(
        update={name: getattr(report, name)[window] for name in _PAGED_FIELDS}
    )
    if report.broken and any(b.suggestions for b in report.broken):
        page_info.hints.append(f"Use {ToolName.RULE.value} on a suggestion to compare rule text")

    result = ValidateResult(
        report=report, page=page_info, delta=session_delta(ctx, snapshot)
    )
    data = result.model_dump(mode="json")
    return ToolResult(
        data=data,
        input_tokens=count_tokens(str(params)),
        output_tokens=count_payload_tokens(data),
    )


async def handle_search(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """Search rule ids, rule text and file paths.

    Args:
        params: Dict containing:
            - query: Keywords or a rule id
            - limit: Maximum hits (default 20)

    Returns:
        ToolResult with SearchResult
    """
    request = SearchParams.model_validate(params)
    snapshot = ctx.query.snapshot
    response = ctx.query.search(request.query, request.limit, snapshot=snapshot)
    result = SearchResult(
        query=response.query, hits=response.hits, delta=session_delta(ctx, snapshot)
    )
    data = result.model_dump(mode="json")
    return ToolResult(
        data=data,
        input_tokens=count_tokens(request.query),
        output_tokens=count_payload_tokens(data),
    )


async def handle_reload(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """Re-read the project config and rebuild every index.

    A malformed config is reported in the result; the previously published
    snapshot stays live.

    Returns:
        ToolResult with ReloadResult
    """
    snapshot = ctx.query.snapshot
    previous = snapshot.version
    config_error = None
    try:
        snapshot = await asyncio.to_thread(ctx.controller.reload)
    except ConfigReloadError as e:
        logger.warning(f"Reload rejected: {e}")
        config_error = str(e)
    version = snapshot.version

    changed = version != previous
    if config_error:
        message = "Config is invalid; the previous snapshot is still served"
    elif changed:
        message = f"Rebuilt snapshot {previous} -> {version}"
    else:
        message = "Nothing changed"

    result = ReloadResult(
        version=version,
        previous_version=previous,
        changed=changed,
        config_error=config_error,
        message=message,
        delta=session_delta(ctx, snapshot),
    )
    data = result.model_dump(mode="json")
    return ToolResult(data=data, input_tokens=0, output_tokens=count_payload_tokens(data))
