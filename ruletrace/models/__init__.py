"""Pydantic models for ruletrace request/response schemas.

This module re-exports all models for convenience.
Import from submodules directly for cleaner imports:

    from ruletrace.models.enums import ToolName, Verb
    from ruletrace.models.api import RuleInfo
"""

# ============ ENUMS ============
# ============ READ API MODELS ============
from .api import (
    AnnotationInfo,
    BrokenReferenceInfo,
    CodeUnitInfo,
    ConfigResponse,
    CoverageCountsInfo,
    CoverageSummaryInfo,
    DuplicateInfo,
    FileCoverageInfo,
    FileResponse,
    FolderInfo,
    ForwardEntry,
    ForwardResponse,
    ImplInfo,
    LocationInfo,
    NamingViolationInfo,
    OrphanInfo,
    OutlineEntryInfo,
    ReferenceInfo,
    ReverseResponse,
    RuleInfo,
    SearchHit,
    SearchResponse,
    SpecDocumentInfo,
    SpecInfo,
    SpecResponse,
    StaleReferenceInfo,
    ValidationInfo,
    VersionResponse,
    WarningInfo,
)
from .enums import (
    ControllerState,
    DuplicateKind,
    RequirementLevel,
    RuleStatus,
    SearchKind,
    ToolName,
    Verb,
    WarningKind,
)

# ============ REQUEST MODELS ============
from .requests import (
    JsonRpcRequest,
    MCPRequest,
    PageParams,
    RuleParams,
    SearchParams,
    StatusParams,
    UncoveredParams,
    UnmappedParams,
    ValidateParams,
)

# ============ RESPONSE MODELS ============
from .responses import (
    DeltaInfo,
    HealthResponse,
    PageInfo,
    RuleChangeInfo,
    ToolResult,
)

# ============ TOOL RESULTS ============
from .tools import (
    PairStatus,
    ReloadResult,
    RuleCoverageInfo,
    RuleListResult,
    RuleResult,
    SearchResult,
    StatusResult,
    UnmappedResult,
    ValidateResult,
)

__all__ = [
    # Enums
    "ControllerState",
    "DuplicateKind",
    "RequirementLevel",
    "RuleStatus",
    "SearchKind",
    "ToolName",
    "Verb",
    "WarningKind",
    # Read API
    "AnnotationInfo",
    "BrokenReferenceInfo",
    "CodeUnitInfo",
    "ConfigResponse",
    "CoverageCountsInfo",
    "CoverageSummaryInfo",
    "DuplicateInfo",
    "FileCoverageInfo",
    "FileResponse",
    "FolderInfo",
    "ForwardEntry",
    "ForwardResponse",
    "ImplInfo",
    "LocationInfo",
    "NamingViolationInfo",
    "OrphanInfo",
    "OutlineEntryInfo",
    "ReferenceInfo",
    "ReverseResponse",
    "RuleInfo",
    "SearchHit",
    "SearchResponse",
    "SpecDocumentInfo",
    "SpecInfo",
    "SpecResponse",
    "StaleReferenceInfo",
    "ValidationInfo",
    "VersionResponse",
    "WarningInfo",
    # Requests
    "JsonRpcRequest",
    "MCPRequest",
    "PageParams",
    "RuleParams",
    "SearchParams",
    "StatusParams",
    "UncoveredParams",
    "UnmappedParams",
    "ValidateParams",
    # Responses
    "DeltaInfo",
    "HealthResponse",
    "PageInfo",
    "RuleChangeInfo",
    "ToolResult",
    # Tool results
    "PairStatus",
    "ReloadResult",
    "RuleCoverageInfo",
    "RuleListResult",
    "RuleResult",
    "SearchResult",
    "StatusResult",
    "UnmappedResult",
    "ValidateResult",
]
