"""Knowledge views: coverage, entity registry, graph explorer and search playground."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from delo_dashboard.analytics.coverage import load_coverage
from delo_dashboard.api.dependencies import (
    get_app_settings,
    get_current_principal,
    get_query_cache,
    get_search_service,
    get_table_client,
)
from delo_dashboard.api.routes_monitor import invalidate_audit_views
from delo_dashboard.auth.keys import Principal
from delo_dashboard.core.config import Settings
from delo_dashboard.core.errors import NotFoundError
from delo_dashboard.db.cache import QueryCache
from delo_dashboard.db.tables import TableClient
from delo_dashboard.knowledge.entities import EntityCatalog
from delo_dashboard.knowledge.graph import load_graph
from delo_dashboard.models.dto import SearchRequest, SearchResponse
from delo_dashboard.search.service import SearchService

router = APIRouter()


@router.get("/coverage", summary="Corpus coverage heatmap, module counts and gaps")
async def coverage(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    return cache.get_or_load(("coverage",), lambda: load_coverage(client, settings))


def _catalog(client: TableClient, cache: QueryCache) -> EntityCatalog:
    return cache.get_or_load(("entities",), lambda: EntityCatalog.load(client))


@router.get("/entities", summary="Browse and search the entity registry")
async def entities(
    entity_type: str | None = Query(default=None, alias="type", description="Only entities of this type"),
    q: str | None = Query(default=None, description="Match code, name or alias"),
    page: int = Query(default=0, ge=0),
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    return _catalog(client, cache).listing(entity_type=entity_type, search=q, page=page, page_size=settings.page_size)


@router.get("/entities/{code}", summary="Entity detail with parents and connections")
async def entity_detail(
    code: str,
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
) -> dict:
    detail = _catalog(client, cache).detail(code)
    if detail is None:
        raise NotFoundError(f"Entity {code} not found")
    return detail


@router.get("/graph", summary="Entity graph nodes and links")
async def graph(
    types: list[str] | None = Query(default=None, description="Entity types to include; all when omitted"),
    selected: str | None = Query(default=None),
    client: TableClient = Depends(get_table_client),
) -> dict:
    return load_graph(client, active_types=set(types) if types is not None else None, selected=selected)


@router.post("/search", response_model=SearchResponse, summary="Preview chunks visible at the caller's level")
async def search(
    request: SearchRequest,
    principal: Principal = Depends(get_current_principal),
    service: SearchService = Depends(get_search_service),
    cache: QueryCache = Depends(get_query_cache),
) -> SearchResponse:
    payload = service.search(
        principal,
        query=request.query,
        tool=request.tool,
        domain=request.domain,
        top_k=request.top_k,
    )
    invalidate_audit_views(cache)
    return SearchResponse(**payload)


@router.get("/search/domains", summary="Domains available for filtering search")
async def search_domains(
    service: SearchService = Depends(get_search_service),
    cache: QueryCache = Depends(get_query_cache),
) -> list[str]:
    return cache.get_or_load(("playground-domains",), service.domains)


__all__ = ["router"]
