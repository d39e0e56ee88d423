"""Administrative routes; every endpoint here requires an L4 key."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from delo_dashboard.analytics.health import load_health
from delo_dashboard.api.dependencies import (
    get_app_settings,
    get_key_service,
    get_query_cache,
    get_table_client,
    require_admin,
)
from delo_dashboard.api.routes_keys import invalidate_key_views
from delo_dashboard.auth.keys import KeyService, Principal
from delo_dashboard.core.config import Settings
from delo_dashboard.db.cache import QueryCache
from delo_dashboard.db.tables import TableClient
from delo_dashboard.models.dto import (
    AccessLevelUpdateRequest,
    ApiKeyResponse,
    IssuedKeyResponse,
    MutationResponse,
    UserCreateRequest,
)

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/settings/keys", response_model=list[ApiKeyResponse], summary="All API keys by access level")
async def all_keys(
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> list[ApiKeyResponse]:
    rows = cache.get_or_load(("settings", "api-keys"), keys.list_all_keys)
    return [ApiKeyResponse(**row) for row in rows]


@router.post("/settings/users", response_model=IssuedKeyResponse, status_code=201, summary="Add a user")
async def add_user(
    request: UserCreateRequest,
    principal: Principal = Depends(require_admin),
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> IssuedKeyResponse:
    issued = keys.add_user(request.user_id, request.display_name, request.access_level, created_by=principal.user_id)
    invalidate_key_views(cache)
    return IssuedKeyResponse(key=issued.key, record=issued.record)


@router.patch("/settings/users/{user_id}", response_model=MutationResponse, summary="Change a user's access level")
async def update_user(
    user_id: str,
    request: AccessLevelUpdateRequest,
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> MutationResponse:
    affected = keys.update_access_level(user_id, request.access_level)
    invalidate_key_views(cache)
    return MutationResponse(affected=affected)


@router.delete("/settings/users/{user_id}", response_model=MutationResponse, summary="Remove a user and their keys")
async def remove_user(
    user_id: str,
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> MutationResponse:
    affected = keys.remove_user(user_id)
    invalidate_key_views(cache)
    return MutationResponse(affected=affected)


@router.get("/settings/health", summary="Corpus sizes, stale files and entity temperature")
async def corpus_health(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    return cache.get_or_load(("settings", "corpus-health"), lambda: load_health(client, settings))


__all__ = ["router"]
