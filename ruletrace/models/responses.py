"""Response envelopes for the HTTP and MCP transports."""

from typing import Any

from pydantic import BaseModel, Field


class ToolResult(BaseModel):
    """Result of a tool handler before it is wrapped for MCP."""

    data: dict[str, Any] = Field(default_factory=dict, description="Tool payload")
    input_tokens: int = Field(default=0, ge=0, description="Estimated tokens of the parameters")
    output_tokens: int = Field(default=0, ge=0, description="Estimated tokens of the payload")
    is_error: bool = Field(default=False, description="Report as an MCP tool error")


class HealthResponse(BaseModel):
    """Response of GET /health."""

    status: str = Field(..., description="ok or degraded")
    version: str = Field(..., description="Server version")
    snapshot_version: int = Field(..., ge=0)
    controller_state: str
    config_error: str | None = None
    watch_errors: int = Field(default=0, ge=0)


class PageInfo(BaseModel):
    """Progressive-discovery paging hints."""

    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)
    next_offset: int | None = Field(default=None, description="Offset of the next page, if any")
    hints: list[str] = Field(default_factory=list, description="Suggested follow-up calls")


class RuleChangeInfo(BaseModel):
    spec: str
    impl: str
    rule_id: str
    file: str | None = None
    line: int | None = None


class DeltaInfo(BaseModel):
    """Coverage changes since the session's previous tool call."""

    from_version: int | None = None
    to_version: int = Field(..., ge=0)
    first_query: bool = False
    newly_covered: list[RuleChangeInfo] = Field(default_factory=list)
    newly_verified: list[RuleChangeInfo] = Field(default_factory=list)
    newly_uncovered: list[RuleChangeInfo] = Field(default_factory=list)
