"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Header

from delo_dashboard.auth.keys import KeyService, Principal
from delo_dashboard.core.config import Settings, get_settings
from delo_dashboard.core.errors import AuthenticationError, AuthorizationError
from delo_dashboard.db.cache import QueryCache
from delo_dashboard.db.sqlite import SQLiteDatabase
from delo_dashboard.db.tables import TableClient
from delo_dashboard.search.service import SearchService

_DB: SQLiteDatabase | None = None
_CACHE: QueryCache | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_database() -> SQLiteDatabase:
    global _DB
    if _DB is None:
        settings = get_app_settings()
        db = SQLiteDatabase(settings.db_path)
        db.ensure_schema()
        _DB = db
    return _DB


def get_table_client() -> TableClient:
    return TableClient(get_database())


def get_query_cache() -> QueryCache:
    global _CACHE
    if _CACHE is None:
        _CACHE = QueryCache(ttl_seconds=get_app_settings().query_cache_ttl_seconds)
    return _CACHE


def get_key_service() -> KeyService:
    return KeyService(get_table_client(), key_prefix=get_app_settings().api_key_prefix)


def get_search_service() -> SearchService:
    return SearchService(get_table_client(), get_app_settings())


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Unauthorized")
    return token.strip()


def get_current_principal(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None),
    keys: KeyService = Depends(get_key_service),
) -> Principal:
    """Resolve the caller from ``Authorization: Bearer <key>`` or ``X-API-Key``."""
    token = _bearer_token(authorization) or x_api_key
    return keys.authenticate(token)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise AuthorizationError("L4 access required")
    return principal


__all__ = [
    "get_app_settings",
    "get_current_principal",
    "get_database",
    "get_key_service",
    "get_query_cache",
    "get_search_service",
    "get_table_client",
    "require_admin",
]
