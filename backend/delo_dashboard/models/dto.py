"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str | None = None
    tool: str | None = None
    domain: str | None = None
    top_k: int | None = Field(default=None, ge=1, le=100)


class SearchResult(BaseModel):
    rank: int
    file_path: str
    domain: str | None
    content_type: str | None
    preview: str
    entity_codes: list[str] | None
    access_level: int


class SearchResponse(BaseModel):
    query: str
    tool: str
    results_count: int
    access_level: int
    results: list[SearchResult]


class MeResponse(BaseModel):
    user_id: str
    access_level: int
    is_admin: bool


class ApiKeyResponse(BaseModel):
    id: int
    key_prefix: str
    user_id: str
    access_level: int
    display_name: str
    description: str | None = None
    is_active: bool
    created_at: datetime
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    revoked_at: datetime | None = None
    revoke_reason: str | None = None
    created_by: str | None = None


class KeySummary(BaseModel):
    active: int
    total: int
    last_used: datetime | None


class MyKeysResponse(BaseModel):
    access_level: int
    summary: KeySummary
    keys: list[ApiKeyResponse]


class KeyCreateRequest(BaseModel):
    display_name: str
    description: str | None = None


class IssuedKeyResponse(BaseModel):
    key: str = Field(description="Plaintext key; shown only once")
    record: ApiKeyResponse


class KeyRevokeRequest(BaseModel):
    reason: str | None = None


class UserCreateRequest(BaseModel):
    user_id: str
    display_name: str
    access_level: int = 2


class AccessLevelUpdateRequest(BaseModel):
    access_level: int


class MutationResponse(BaseModel):
    status: str = "ok"
    affected: int


class LogPageResponse(BaseModel):
    rows: list[dict[str, Any]]
    total: int
    page: int
    page_size: int
    total_pages: int


__all__ = [
    "AccessLevelUpdateRequest",
    "ApiKeyResponse",
    "IssuedKeyResponse",
    "KeyCreateRequest",
    "KeyRevokeRequest",
    "KeySummary",
    "LogPageResponse",
    "MeResponse",
    "MutationResponse",
    "MyKeysResponse",
    "SearchRequest",
    "SearchResponse",
    "SearchResult",
    "UserCreateRequest",
]
