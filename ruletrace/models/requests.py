"""Request models (Pydantic *Params classes) for the MCP tools."""

from typing import Any

from pydantic import BaseModel, Field

from .enums import ToolName

# ============ CORE REQUEST MODELS ============


class MCPRequest(BaseModel):
    """MCP tool execution request."""

    tool: ToolName = Field(..., description="The ruletrace tool to execute")
    params: dict[str, Any] = Field(default_factory=dict, description="Tool parameters")


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request envelope."""

    jsonrpc: str = Field(default="2.0")
    id: int | str | None = Field(default=None, description="Absent for notifications")
    method: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


# ============ TOOL PARAMS ============


class PageParams(BaseModel):
    """Progressive-discovery paging shared by list tools."""

    offset: int = Field(default=0, ge=0, description="Items to skip")
    limit: int | None = Field(default=None, ge=1, le=1000, description="Page size")


class StatusParams(BaseModel):
    """Parameters for ruletrace_status (none)."""


class UncoveredParams(PageParams):
    """Parameters for ruletrace_uncovered and ruletrace_untested."""

    spec_impl: str | None = Field(default=None, description="'spec' or 'spec/impl'")
    section: str | None = Field(default=None, description="Heading slug or title to zoom into")


class UnmappedParams(PageParams):
    """Parameters for ruletrace_unmapped."""

    spec_impl: str | None = Field(default=None, description="'spec' or 'spec/impl'")
    path: str | None = Field(default=None, description="Folder or file to zoom into")


class RuleParams(BaseModel):
    """Parameters for ruletrace_rule."""

    rule_id: str = Field(..., min_length=1, description="Rule id, optionally with +N")


class ValidateParams(PageParams):
    """Parameters for ruletrace_validate."""

    spec_impl: str | None = Field(default=None, description="'spec' or 'spec/impl'")


class SearchParams(BaseModel):
    """Parameters for ruletrace_search."""

    query: str = Field(..., min_length=1, description="Keywords or a rule id")
    limit: int = Field(default=20, ge=1, le=200, description="Maximum hits")
