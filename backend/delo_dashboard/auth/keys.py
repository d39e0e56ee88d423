"""API keys: issuance, authentication and access-level administration.

Keys are shown in plaintext exactly once, at creation; only the SHA-256 hash
and a short display prefix are stored. A caller's access level is the highest
level among their active keys.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from delo_dashboard.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from delo_dashboard.core.logging import get_logger
from delo_dashboard.core.metrics import KEY_MUTATIONS
from delo_dashboard.db.tables import TableClient
from delo_dashboard.utils.hashing import sha256_text

logger = get_logger(__name__)

ACCESS_LEVELS = (1, 2, 3, 4)
ADMIN_LEVEL = 4
KEY_ALPHABET = string.ascii_letters + string.digits
KEY_BODY_LENGTH = 40
DISPLAY_PREFIX_LENGTH = 7

KEY_COLUMNS = (
    "id, key_prefix, user_id, access_level, display_name, description, is_active, "
    "created_at, expires_at, last_used_at, revoked_at, revoke_reason, created_by"
)


def generate_api_key(prefix: str = "dm_") -> str:
    body = "".join(secrets.choice(KEY_ALPHABET) for _ in range(KEY_BODY_LENGTH))
    return f"{prefix}{body}"


def generate_invite_key() -> tuple[str, str]:
    """Return ``(key, display_prefix)`` for keys issued by an administrator."""
    key = secrets.token_hex(32)
    return key, f"sk-dm-{key[:2]}"


def hash_key(key: str) -> str:
    return sha256_text(key)


def display_prefix(key: str) -> str:
    return key[:DISPLAY_PREFIX_LENGTH]


def validate_access_level(level: Any) -> int:
    if isinstance(level, bool) or level not in ACCESS_LEVELS:
        raise ValidationError(f"Access level must be one of {list(ACCESS_LEVELS)}, got {level!r}")
    return int(level)


def normalize_user_id(user_id: str | None) -> str:
    return (user_id or "").strip().lower()


def is_usable(key: Mapping[str, Any], now: datetime | None = None) -> bool:
    """Active and not past its expiry."""
    if not key.get("is_active"):
        return False
    expires_at = key.get("expires_at")
    if expires_at is None:
        return True
    return expires_at > (now or datetime.now(tz=timezone.utc))


def would_remove_last_admin(
    keys: Iterable[Mapping[str, Any]],
    removing: Callable[[Mapping[str, Any]], bool],
    now: datetime | None = None,
) -> bool:
    """True when taking away every key matched by ``removing`` leaves no usable L4 key."""
    admins = [k for k in keys if k.get("access_level") == ADMIN_LEVEL and is_usable(k, now)]
    if not admins:
        return False
    return all(removing(k) for k in admins)


def ensure_not_last_admin(
    keys: Iterable[Mapping[str, Any]],
    removing: Callable[[Mapping[str, Any]], bool],
    now: datetime | None = None,
) -> None:
    if would_remove_last_admin(keys, removing, now):
        raise ConflictError("Cannot remove the last L4 admin: this would lock everyone out.")


def key_summary(keys: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    keys = list(keys)
    used = [k["last_used_at"] for k in keys if k.get("last_used_at")]
    return {
        "active": sum(1 for k in keys if k.get("is_active")),
        "total": len(keys),
        "last_used": max(used) if used else None,
    }


@dataclass(frozen=True, slots=True)
class Principal:
    user_id: str
    key_id: int
    access_level: int

    @property
    def is_admin(self) -> bool:
        return self.access_level >= ADMIN_LEVEL


@dataclass(frozen=True, slots=True)
class IssuedKey:
    key: str
    record: dict[str, Any]


class KeyService:
    """All reads and writes against ``api_keys``."""

    def __init__(self, client: TableClient, key_prefix: str = "dm_") -> None:
        self.client = client
        self.key_prefix = key_prefix

    # -- authentication ----------------------------------------------------

    def authenticate(self, token: str | None, now: datetime | None = None) -> Principal:
        if not token:
            raise AuthenticationError("Unauthorized")
        now = now or datetime.now(tz=timezone.utc)
        record = (
            self.client.table("api_keys")
            .select("id, user_id, access_level, is_active, expires_at")
            .eq("key_hash", hash_key(token))
            .limit(1)
            .execute()
            .first()
        )
        if record is None or not record["is_active"]:
            raise AuthenticationError("Unauthorized")
        if record["expires_at"] is not None and record["expires_at"] <= now:
            raise AuthenticationError("API key expired")
        self.client.table("api_keys").update({"last_used_at": now}).eq("id", record["id"]).execute()
        level = self.resolve_access_level(record["user_id"], now)
        return Principal(user_id=record["user_id"], key_id=record["id"], access_level=level)

    def resolve_access_level(self, user_id: str, now: datetime | None = None) -> int:
        """Highest level among the user's active, unexpired keys."""
        now = now or datetime.now(tz=timezone.utc)
        rows = (
            self.client.table("api_keys")
            .select("access_level, is_active, expires_at")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .order("access_level", desc=True)
            .execute()
            .rows
        )
        record = next((row for row in rows if is_usable(row, now)), None)
        if record is None:
            raise AuthorizationError("No active API key found")
        return record["access_level"]

    # -- self service ------------------------------------------------------

    def list_user_keys(self, user_id: str) -> list[dict[str, Any]]:
        return (
            self.client.table("api_keys")
            .select(KEY_COLUMNS)
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .order("id", desc=True)
            .execute()
            .rows
        )

    def create_key(self, principal: Principal, display_name: str, description: str | None = None) -> IssuedKey:
        name = (display_name or "").strip()
        if not name:
            raise ValidationError("display_name is required")
        level = self.resolve_access_level(principal.user_id)
        key = generate_api_key(self.key_prefix)
        record = self._insert(
            key=key,
            prefix=display_prefix(key),
            user_id=principal.user_id,
            level=level,
            display_name=name,
            description=(description or "").strip() or None,
            created_by=principal.user_id,
        )
        KEY_MUTATIONS.labels(action="create").inc()
        logger.info("Issued key %s for %s at L%s", record["key_prefix"], principal.user_id, level)
        return IssuedKey(key=key, record=record)

    def revoke_key(self, principal: Principal, key_id: int, reason: str | None = None) -> None:
        keys = self.list_all_keys()
        target = next((k for k in keys if k["id"] == key_id and k["user_id"] == principal.user_id), None)
        if target is None:
            raise NotFoundError("Key not found")
        ensure_not_last_admin(keys, lambda k: k["id"] == key_id)
        (
            self.client.table("api_keys")
            .update({"is_active": False, "revoked_at": datetime.now(tz=timezone.utc), "revoke_reason": reason})
            .eq("id", key_id)
            .eq("user_id", principal.user_id)
            .execute()
        )
        KEY_MUTATIONS.labels(action="revoke").inc()
        logger.info("Revoked key %s for %s", target["key_prefix"], principal.user_id)

    # -- administration ----------------------------------------------------

    def list_all_keys(self) -> list[dict[str, Any]]:
        return (
            self.client.table("api_keys")
            .select(KEY_COLUMNS)
            .order("access_level", desc=True)
            .order("id")
            .execute()
            .rows
        )

    def add_user(self, user_id: str, display_name: str, access_level: int, created_by: str = "dashboard") -> IssuedKey:
        uid = normalize_user_id(user_id)
        name = (display_name or "").strip()
        if not uid or not name:
            raise ValidationError("user_id and display_name are required")
        level = validate_access_level(access_level)
        if any(k["user_id"] == uid for k in self.list_all_keys()):
            raise ValidationError(f'User "{uid}" already exists')
        key, prefix = generate_invite_key()
        record = self._insert(
            key=key,
            prefix=prefix,
            user_id=uid,
            level=level,
            display_name=name,
            description=None,
            created_by=created_by,
        )
        KEY_MUTATIONS.labels(action="invite").inc()
        logger.info("Added user %s at L%s", uid, level)
        return IssuedKey(key=key, record=record)

    def update_access_level(self, user_id: str, access_level: int) -> int:
        user_id = normalize_user_id(user_id)
        level = validate_access_level(access_level)
        keys = self.list_all_keys()
        if not any(k["user_id"] == user_id for k in keys):
            raise NotFoundError(f'User "{user_id}" not found')
        if level < ADMIN_LEVEL:
            ensure_not_last_admin(keys, lambda k: k["user_id"] == user_id)
        updated = self.client.table("api_keys").update({"access_level": level}).eq("user_id", user_id).execute()
        KEY_MUTATIONS.labels(action="update").inc()
        logger.info("Set %s to L%s", user_id, level)
        return updated.count or 0

    def remove_user(self, user_id: str) -> int:
        user_id = normalize_user_id(user_id)
        keys = self.list_all_keys()
        if not any(k["user_id"] == user_id for k in keys):
            raise NotFoundError(f'User "{user_id}" not found')
        ensure_not_last_admin(keys, lambda k: k["user_id"] == user_id)
        deleted = self.client.table("api_keys").delete().eq("user_id", user_id).execute()
        KEY_MUTATIONS.labels(action="delete").inc()
        logger.info("Removed user %s (%s keys)", user_id, deleted.count)
        return deleted.count or 0

    def _insert(
        self,
        key: str,
        prefix: str,
        user_id: str,
        level: int,
        display_name: str,
        description: str | None,
        created_by: str,
    ) -> dict[str, Any]:
        created = (
            self.client.table("api_keys")
            .insert(
                {
                    "key_hash": hash_key(key),
                    "key_prefix": prefix,
                    "user_id": user_id,
                    "access_level": level,
                    "display_name": display_name,
                    "description": description,
                    "is_active": True,
                    "created_at": datetime.now(tz=timezone.utc),
                    "created_by": created_by,
                }
            )
            .execute()
            .first()
        )
        created.pop("key_hash", None)
        return created


__all__ = [
    "ACCESS_LEVELS",
    "ADMIN_LEVEL",
    "IssuedKey",
    "KeyService",
    "Principal",
    "display_prefix",
    "ensure_not_last_admin",
    "generate_api_key",
    "generate_invite_key",
    "hash_key",
    "is_usable",
    "key_summary",
    "normalize_user_id",
    "validate_access_level",
    "would_remove_last_admin",
]
