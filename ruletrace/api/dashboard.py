"""Dashboard read API endpoints.

Thin HTTP layer over QueryEngine. Every endpoint answers from one published
snapshot; ``spec`` and ``impl`` select the pair and may be omitted when the
project has a single implementation.

Base URL: /api
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..engine.query import QueryEngine
from ..models import (
    ConfigResponse,
    FileResponse,
    ForwardResponse,
    ReverseResponse,
    SearchResponse,
    SpecResponse,
    VersionResponse,
)
from .deps import get_query

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Dashboard"])

SpecParam = Annotated[str | None, Query(description="Spec name")]
ImplParam = Annotated[str | None, Query(description="Implementation name")]


@router.get("/config", response_model=ConfigResponse)
async def get_config(query: QueryEngine = Depends(get_query)) -> ConfigResponse:
    """Configured specs and implementations, plus the current config error if any."""
    return query.get_config()


@router.get("/version", response_model=VersionResponse)
async def get_version(query: QueryEngine = Depends(get_query)) -> VersionResponse:
    """Version of the published snapshot; poll this to detect rebuilds."""
    return query.get_version()


@router.get("/spec", response_model=SpecResponse)
async def get_spec(
    spec: SpecParam = None,
    impl: ImplParam = None,
    query: QueryEngine = Depends(get_query),
) -> SpecResponse:
    """Rendered spec documents with outline coverage."""
    return query.get_spec(spec, impl)


@router.get("/forward", response_model=ForwardResponse)
async def get_forward(
    spec: SpecParam = None,
    impl: ImplParam = None,
    query: QueryEngine = Depends(get_query),
) -> ForwardResponse:
    return query.get_forward(spec, impl)


@router.get("/reverse", response_model=ReverseResponse)
async def get_reverse(
    spec: SpecParam = None,
    impl: ImplParam = None,
    query: QueryEngine = Depends(get_query),
) -> ReverseResponse:
    return query.get_reverse(spec, impl)


@router.get("/file", response_model=FileResponse)
async def get_file(
    path: Annotated[str, Query(min_length=1, description="File path relative to the project root")],
    spec: SpecParam = None,
    impl: ImplParam = None,
    query: QueryEngine = Depends(get_query),
) -> FileResponse:
    """Source of one file with its code units and coverage annotations."""
    return query.get_file(spec, impl, path)


@router.get("/search", response_model=SearchResponse)
async def search(
    q: Annotated[str, Query(min_length=1, description="Keywords or a rule id")],
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
    query: QueryEngine = Depends(get_query),
) -> SearchResponse:
    return query.search(q, limit)
