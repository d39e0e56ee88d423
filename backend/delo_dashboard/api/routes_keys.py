"""Self-service API key routes for the signed-in user."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from delo_dashboard.api.dependencies import get_current_principal, get_key_service, get_query_cache
from delo_dashboard.auth.keys import KeyService, Principal, key_summary
from delo_dashboard.db.cache import QueryCache
from delo_dashboard.models.dto import (
    IssuedKeyResponse,
    KeyCreateRequest,
    KeyRevokeRequest,
    MeResponse,
    MutationResponse,
    MyKeysResponse,
)

router = APIRouter()


def invalidate_key_views(cache: QueryCache) -> None:
    cache.invalidate(("my-keys",))
    cache.invalidate(("settings",))


@router.get("/me", response_model=MeResponse, summary="Who am I and at which level")
async def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    return MeResponse(user_id=principal.user_id, access_level=principal.access_level, is_admin=principal.is_admin)


@router.get("/keys", response_model=MyKeysResponse, summary="List my API keys")
async def list_keys(
    principal: Principal = Depends(get_current_principal),
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> MyKeysResponse:
    rows = cache.get_or_load(("my-keys", principal.user_id), lambda: keys.list_user_keys(principal.user_id))
    return MyKeysResponse(access_level=principal.access_level, summary=key_summary(rows), keys=rows)


@router.post("/keys", response_model=IssuedKeyResponse, status_code=201, summary="Create a key at my level")
async def create_key(
    request: KeyCreateRequest,
    principal: Principal = Depends(get_current_principal),
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> IssuedKeyResponse:
    issued = keys.create_key(principal, request.display_name, request.description)
    invalidate_key_views(cache)
    return IssuedKeyResponse(key=issued.key, record=issued.record)


@router.post("/keys/{key_id}/revoke", response_model=MutationResponse, summary="Revoke one of my keys")
async def revoke_key(
    key_id: int,
    request: KeyRevokeRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    keys: KeyService = Depends(get_key_service),
    cache: QueryCache = Depends(get_query_cache),
) -> MutationResponse:
    keys.revoke_key(principal, key_id, reason=request.reason if request else None)
    invalidate_key_views(cache)
    return MutationResponse(affected=1)


__all__ = ["router", "invalidate_key_views"]
