"""Coverage tool handlers.

Handles:
- ruletrace_status: Coverage overview of every spec/impl pair
- ruletrace_uncovered: Rules without impl or verify references
- ruletrace_untested: Rules without verify references
- ruletrace_unmapped: Code units without any reference, zoomable by path
"""

from typing import Any

from ...models import (
    CoverageSummaryInfo,
    PairStatus,
    RuleListResult,
    StatusResult,
    ToolName,
    ToolResult,
    UncoveredParams,
    UnmappedParams,
    UnmappedResult,
)
from .base import HandlerContext, count_payload_tokens, count_tokens, paginate, session_delta


async def handle_status(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """Summarize coverage of every spec/impl pair in the current snapshot.

    Args:
        params: Unused
        ctx: Handler context

    Returns:
        ToolResult with StatusResult
    """
    snapshot = ctx.query.snapshot
    pairs = []
    for (spec, impl), view in sorted(snapshot.impls.items()):
        pairs.append(
            PairStatus(
                spec=spec,
                impl=impl,
                coverage=CoverageSummaryInfo(**view.summary.to_dict()),
                validation_errors=view.validation.error_count,
                orphaned=len(view.validation.orphaned),
            )
        )

    result = StatusResult(
        version=snapshot.version,
        controller_state=ctx.controller.state.value,
        config_error=ctx.controller.config_error or snapshot.config_error,
        pairs=pairs,
        delta=session_delta(ctx, snapshot),
    )
    data = result.model_dump(mode="json")
    return ToolResult(data=data, input_tokens=0, output_tokens=count_payload_tokens(data))


async def _rule_list(
    params: dict[str, Any],
    ctx: HandlerContext,
    verified: bool,
) -> ToolResult:
    request = UncoveredParams.model_validate(params)
    snapshot = ctx.query.snapshot
    view, rules = ctx.query.uncovered(
        request.spec_impl, request.section, verified=verified, snapshot=snapshot
    )
    tool = ToolName.UNTESTED if verified else ToolName.UNCOVERED

    hints = []
    if not rules:
        hints.append("Every counted rule in this scope is " + ("verified" if verified else "covered"))
    elif not request.section and len(rules) > (request.limit or ctx.page_size):
        hints.append(f"Pass section=<heading slug> to {tool.value} to zoom into one part of the spec")

    page, page_info = paginate(rules, request.offset, request.limit, ctx, tool.value, hints)
    result = RuleListResult(
        spec=view.spec,
        impl=view.impl,
        section=request.section,
        rules=page,
        page=page_info,
        delta=session_delta(ctx, snapshot),
    )
    data = result.model_dump(mode="json")
    return ToolResult(
        data=data,
        input_tokens=count_tokens(str(params)),
        output_tokens=count_payload_tokens(data),
    )


async def handle_uncovered(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """List counted rules with neither an impl nor a verify reference.

    Args:
        params: Dict containing:
            - spec_impl: Optional 'spec' or 'spec/impl' selector
            - section: Optional heading slug or title to zoom into
            - offset / limit: Paging

    Returns:
        ToolResult with RuleListResult
    """
    return await _rule_list(params, ctx, verified=False)


async def handle_untested(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """List counted rules without a verify reference (same params as uncovered)."""
    return await _rule_list(params, ctx, verified=True)


async def handle_unmapped(
    params: dict[str, Any],
    ctx: HandlerContext,
) -> ToolResult:
    """Show code that no rule references.

    Without ``path`` the top of the coverage tree is returned; a folder path
    zooms into that folder, and a file path lists its unreferenced units.

    Args:
        params: Dict containing:
            - spec_impl: Optional 'spec' or 'spec/impl' selector
            - path: Optional folder or file path
            - offset / limit: Paging over files or units

    Returns:
        ToolResult with UnmappedResult
    """
    request = UnmappedParams.model_validate(params)
    snapshot = ctx.query.snapshot
    view, folder, file, units = ctx.query.unmapped(
        request.spec_impl, request.path, snapshot=snapshot
    )
    tool = ToolName.UNMAPPED.value

    if folder is not None:
        # Least covered first so the interesting files lead the page
        files = sorted(folder.files, key=lambda f: (f.percent, f.path))
        hints = []
        if folder.children or files:
            hints.append(f"Call {tool} with path=<folder or file> to zoom in")
        page, page_info = paginate(files, request.offset, request.limit, ctx, tool, hints)
        folder = folder.model_copy(update={"files": page})
        units = []
    else:
        units, page_info = paginate(units, request.offset, request.limit, ctx, tool)

    result = UnmappedResult(
        spec=view.spec,
        impl=view.impl,
        path=request.path,
        folder=folder,
        file=file,
        unmapped_units=units,
        page=page_info,
        delta=session_delta(ctx, snapshot),
    )
    data = result.model_dump(mode="json")
    return ToolResult(
        data=data,
        input_tokens=count_tokens(str(params)),
        output_tokens=count_payload_tokens(data),
    )
