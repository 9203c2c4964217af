"""Result models of the ruletrace MCP tools."""

from pydantic import BaseModel, Field

from .api import (
    CodeUnitInfo,
    CoverageSummaryInfo,
    FileCoverageInfo,
    FolderInfo,
    ReferenceInfo,
    RuleInfo,
    SearchHit,
    ValidationInfo,
)
from .responses import DeltaInfo, PageInfo


class PairStatus(BaseModel):
    """Coverage overview of one spec/impl pair."""

    spec: str
    impl: str
    coverage: CoverageSummaryInfo
    validation_errors: int = Field(default=0, ge=0)
    orphaned: int = Field(default=0, ge=0)


class StatusResult(BaseModel):
    """Result of ruletrace_status."""

    version: int = Field(..., ge=0)
    controller_state: str
    config_error: str | None = None
    pairs: list[PairStatus] = Field(default_factory=list)
    delta: DeltaInfo | None = None


class RuleListResult(BaseModel):
    """Result of ruletrace_uncovered and ruletrace_untested."""

    spec: str
    impl: str
    section: str | None = None
    rules: list[RuleInfo] = Field(default_factory=list)
    page: PageInfo = Field(default_factory=PageInfo)
    delta: DeltaInfo | None = None


class UnmappedResult(BaseModel):
    """Result of ruletrace_unmapped: a folder listing or a single file."""

    spec: str
    impl: str
    path: str | None = None
    folder: FolderInfo | None = Field(default=None, description="Zoomed folder (files paged)")
    file: FileCoverageInfo | None = Field(default=None, description="Zoomed file")
    unmapped_units: list[CodeUnitInfo] = Field(
        default_factory=list, description="Code units without references (file zoom)"
    )
    page: PageInfo = Field(default_factory=PageInfo)
    delta: DeltaInfo | None = None


class RuleCoverageInfo(BaseModel):
    spec: str
    impl: str
    covered: bool
    verified: bool
    references: list[ReferenceInfo] = Field(default_factory=list)
    stale_references: list[ReferenceInfo] = Field(default_factory=list)


class RuleResult(BaseModel):
    """Result of ruletrace_rule."""

    spec: str
    rule: RuleInfo
    coverage: list[RuleCoverageInfo] = Field(default_factory=list)
    depends_on: list[str] = Field(default_factory=list)
    delta: DeltaInfo | None = None


class ValidateResult(BaseModel):
    """Result of ruletrace_validate."""

    report: ValidationInfo
    page: PageInfo = Field(default_factory=PageInfo)
    delta: DeltaInfo | None = None


class SearchResult(BaseModel):
    """Result of ruletrace_search."""

    query: str
    hits: list[SearchHit] = Field(default_factory=list)
    delta: DeltaInfo | None = None


class ReloadResult(BaseModel):
    """Result of ruletrace_reload."""

    version: int = Field(..., ge=0)
    previous_version: int = Field(..., ge=0)
    changed: bool
    config_error: str | None = None
    message: str
    delta: DeltaInfo | None = None
