"""Read API models shared by the dashboard routes and the MCP tools."""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import DuplicateKind, RequirementLevel, RuleStatus, SearchKind, Verb, WarningKind

# ============ CONFIG ============


class ImplInfo(BaseModel):
    """One implementation of a spec."""

    name: str = Field(..., description="Implementation name")
    lang: str = Field(..., description="Canonical language name")
    include: list[str] = Field(default_factory=list, description="Include globs")
    exclude: list[str] = Field(default_factory=list, description="Exclude globs")


class SpecInfo(BaseModel):
    """A configured spec."""

    name: str = Field(..., description="Spec name")
    source: str = Field(..., description="Glob, file or URL of the rule documents")
    impls: list[ImplInfo] = Field(default_factory=list, description="Implementations")


class ConfigResponse(BaseModel):
    """Result of get_config."""

    project_root: str = Field(..., description="Absolute project root")
    specs: list[SpecInfo] = Field(default_factory=list, description="Configured specs")
    config_error: str | None = Field(default=None, description="Current configuration error")


class VersionResponse(BaseModel):
    version: int = Field(..., ge=0, description="Published snapshot version")
    built_at: datetime = Field(..., description="When the snapshot was assembled")


# ============ RULES & REFERENCES ============


class ReferenceInfo(BaseModel):
    """A source reference to a rule."""

    verb: Verb = Field(..., description="Reference verb")
    rule_id: str = Field(..., description="Referenced rule id as written")
    file: str = Field(..., description="Path relative to the project root")
    line: int = Field(..., ge=1, description="1-indexed line")
    byte_offset: int = Field(..., ge=0, description="Offset of the bracketed token")
    byte_length: int = Field(..., ge=0, description="Length of the bracketed token")


class RuleInfo(BaseModel):
    """A rule definition with its coverage for one implementation."""

    id: str = Field(..., description="Rule id")
    spec_file: str = Field(..., description="Spec document defining the rule")
    line: int = Field(..., ge=1, description="Line of the rule marker")
    anchor_id: str = Field(..., description="HTML anchor of the rendered marker")
    level: RequirementLevel = Field(default=RequirementLevel.UNSPECIFIED)
    status: RuleStatus | None = Field(default=None)
    section: str | None = Field(default=None, description="Slug of the enclosing heading")
    tags: list[str] = Field(default_factory=list)
    text: str | None = Field(default=None, description="Rule body text")
    covered: bool = Field(default=False, description="Has an impl/verify/depends/related reference")
    verified: bool = Field(default=False, description="Has a verify reference")


class ForwardEntry(BaseModel):
    """All references to one rule id, grouped by verb."""

    rule_id: str = Field(..., description="Referenced rule id")
    defined: bool = Field(..., description="Whether the manifest defines this exact id")
    references: dict[str, list[ReferenceInfo]] = Field(
        default_factory=dict, description="Verb -> references"
    )


class ForwardResponse(BaseModel):
    """Result of get_forward."""

    spec: str
    impl: str
    rules: list[ForwardEntry] = Field(default_factory=list)


# ============ SPEC DOCUMENTS ============


class CoverageCountsInfo(BaseModel):
    impl_count: int = Field(default=0, ge=0, description="Covered rules")
    verify_count: int = Field(default=0, ge=0, description="Verified rules")
    total: int = Field(default=0, ge=0, description="Rules counted toward coverage")


class OutlineEntryInfo(BaseModel):
    """A heading with aggregated coverage of the rules beneath it."""

    slug: str
    title: str
    level: int = Field(..., ge=1, le=6)
    rule_ids: list[str] = Field(default_factory=list, description="Rules directly under the heading")
    aggregated: CoverageCountsInfo = Field(default_factory=CoverageCountsInfo)
    children: list["OutlineEntryInfo"] = Field(default_factory=list)


class SpecDocumentInfo(BaseModel):
    path: str = Field(..., description="Document path or URL")
    title: str | None = Field(default=None, description="Frontmatter title")
    content: str = Field(..., description="Rewritten markdown with rule anchors")
    outline: list[OutlineEntryInfo] = Field(default_factory=list)
    preamble_rule_ids: list[str] = Field(default_factory=list)
    aggregated: CoverageCountsInfo = Field(default_factory=CoverageCountsInfo)


class CoverageSummaryInfo(BaseModel):
    total: int = Field(default=0, ge=0)
    covered: int = Field(default=0, ge=0)
    verified: int = Field(default=0, ge=0)
    covered_percent: float = Field(default=0.0, ge=0, le=100)
    verified_percent: float = Field(default=0.0, ge=0, le=100)


class SpecResponse(BaseModel):
    """Result of get_spec."""

    spec: str
    impl: str
    documents: list[SpecDocumentInfo] = Field(default_factory=list)
    rules: list[RuleInfo] = Field(default_factory=list)
    coverage: CoverageSummaryInfo = Field(default_factory=CoverageSummaryInfo)


# ============ REVERSE INDEX ============


class CodeUnitInfo(BaseModel):
    start_line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)
    kind: str
    name: str | None = None
    rule_ids: list[str] = Field(default_factory=list)


class AnnotationInfo(BaseModel):
    start_line: int = Field(..., ge=1)
    end_line: int = Field(..., ge=1)
    rule_ids: list[str] = Field(default_factory=list)


class FileCoverageInfo(BaseModel):
    path: str
    language: str
    total_units: int = Field(default=0, ge=0)
    covered_units: int = Field(default=0, ge=0)
    percent: float = Field(default=0.0, ge=0, le=100)
    units: list[CodeUnitInfo] | None = Field(default=None, description="Omitted in tree listings")
    annotations: list[AnnotationInfo] | None = Field(default=None)


class FolderInfo(BaseModel):
    """Folder of the reverse index with bottom-up totals."""

    name: str
    path: str
    total_units: int = Field(default=0, ge=0)
    covered_units: int = Field(default=0, ge=0)
    percent: float = Field(default=0.0, ge=0, le=100)
    files: list[FileCoverageInfo] = Field(default_factory=list)
    children: list["FolderInfo"] = Field(default_factory=list)


class ReverseResponse(BaseModel):
    """Result of get_reverse."""

    spec: str
    impl: str
    total_units: int = Field(default=0, ge=0)
    covered_units: int = Field(default=0, ge=0)
    percent: float = Field(default=0.0, ge=0, le=100)
    tree: FolderInfo


class FileResponse(BaseModel):
    """Result of get_file: raw content plus its annotations."""

    spec: str
    impl: str
    path: str
    language: str
    content: str
    units: list[CodeUnitInfo] = Field(default_factory=list)
    annotations: list[AnnotationInfo] = Field(default_factory=list)
    references: list[ReferenceInfo] = Field(default_factory=list)


# ============ VALIDATION ============


class LocationInfo(BaseModel):
    file: str
    line: int = Field(..., ge=1)
    byte_offset: int = Field(default=0, ge=0)


class BrokenReferenceInfo(BaseModel):
    reference: ReferenceInfo
    suggestions: list[str] = Field(default_factory=list, description="Similar defined rule ids")


class StaleReferenceInfo(BaseModel):
    reference: ReferenceInfo
    current: str = Field(..., description="Currently defined revision")


class DuplicateInfo(BaseModel):
    rule_id: str
    kind: DuplicateKind
    locations: list[LocationInfo] = Field(default_factory=list, description="First is the kept one")


class OrphanInfo(BaseModel):
    rule_id: str
    spec_file: str
    line: int = Field(..., ge=1)


class NamingViolationInfo(BaseModel):
    rule_id: str
    spec_file: str
    line: int = Field(..., ge=1)
    message: str


class WarningInfo(BaseModel):
    kind: WarningKind
    file: str
    line: int = Field(..., ge=1)
    byte_offset: int = Field(default=0, ge=0)
    byte_length: int = Field(default=0, ge=0)
    message: str
    rule_id: str | None = None


class ValidationInfo(BaseModel):
    """Validation report of one spec/impl pair."""

    spec: str
    impl: str
    is_valid: bool
    error_count: int = Field(default=0, ge=0)
    broken: list[BrokenReferenceInfo] = Field(default_factory=list)
    stale: list[StaleReferenceInfo] = Field(default_factory=list)
    duplicates: list[DuplicateInfo] = Field(default_factory=list)
    orphaned: list[OrphanInfo] = Field(default_factory=list)
    naming: list[NamingViolationInfo] = Field(default_factory=list)
    cycles: list[list[str]] = Field(default_factory=list, description="Ordered rule id lists")
    warnings: list[WarningInfo] = Field(default_factory=list)
    config_error: str | None = None


# ============ SEARCH ============


class SearchHit(BaseModel):
    kind: SearchKind
    score: float = Field(..., ge=0)
    spec: str | None = None
    rule_id: str | None = None
    path: str | None = None
    line: int | None = None
    snippet: str | None = None


class SearchResponse(BaseModel):
    query: str
    hits: list[SearchHit] = Field(default_factory=list)
