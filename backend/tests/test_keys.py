"""Tests for API key issuance and the last-admin guard."""

from datetime import datetime, timedelta, timezone

import pytest

from delo_dashboard.auth.keys import (
    Principal,
    display_prefix,
    generate_api_key,
    generate_invite_key,
    hash_key,
    is_usable,
    key_summary,
    validate_access_level,
    would_remove_last_admin,
)
from delo_dashboard.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)


def test_key_format() -> None:
    key = generate_api_key()
    assert key.startswith("dm_")
    assert len(key) == 43
    assert key[3:].isalnum()
    assert display_prefix(key) == key[:7]
    assert generate_api_key() != key


def test_invite_key_format() -> None:
    key, prefix = generate_invite_key()
    assert len(key) == 64
    assert prefix == f"sk-dm-{key[:2]}"
    assert hash_key(key) != key
    assert len(hash_key(key)) == 64


@pytest.mark.parametrize("level", [0, 5, "4", True, None])
def test_invalid_access_levels(level) -> None:
    with pytest.raises(ValidationError):
        validate_access_level(level)


def test_last_admin_guard() -> None:
    keys = [
        {"id": 1, "user_id": "root", "access_level": 4, "is_active": True},
        {"id": 2, "user_id": "ops", "access_level": 4, "is_active": False},
        {"id": 3, "user_id": "dev", "access_level": 2, "is_active": True},
    ]
    assert would_remove_last_admin(keys, lambda k: k["user_id"] == "root")
    assert not would_remove_last_admin(keys, lambda k: k["user_id"] == "dev")
    keys[1]["is_active"] = True
    assert not would_remove_last_admin(keys, lambda k: k["user_id"] == "root")
    assert not would_remove_last_admin([], lambda k: True)


def test_key_summary(now) -> None:
    rows = [
        {"is_active": True, "last_used_at": now - timedelta(days=1)},
        {"is_active": False, "last_used_at": now},
        {"is_active": True, "last_used_at": None},
    ]
    assert key_summary(rows) == {"active": 2, "total": 3, "last_used": now}
    assert key_summary([]) == {"active": 0, "total": 0, "last_used": None}


def test_add_user_and_authenticate(keys) -> None:
    issued = keys.add_user("Root", "Root Admin", 4, created_by="cli")
    assert issued.record["user_id"] == "root"
    assert "key_hash" not in issued.record

    principal = keys.authenticate(issued.key)
    assert principal.user_id == "root"
    assert principal.is_admin
    stored = keys.list_user_keys("root")[0]
    assert stored["last_used_at"] is not None

    with pytest.raises(AuthenticationError):
        keys.authenticate("dm_not-a-real-key")
    with pytest.raises(AuthenticationError):
        keys.authenticate(None)
    with pytest.raises(ValidationError):
        keys.add_user("root", "Again", 2)


def test_create_key_inherits_highest_level(keys) -> None:
    keys.add_user("dev", "Dev", 2)
    keys.update_access_level("dev", 3)
    issued = keys.create_key(Principal("dev", 0, 3), "laptop", "  ")
    assert issued.key.startswith("dm_")
    assert issued.record["access_level"] == 3
    assert issued.record["description"] is None
    assert keys.authenticate(issued.key).access_level == 3

    with pytest.raises(ValidationError):
        keys.create_key(Principal("dev", 0, 3), "   ")


def test_access_level_without_active_key(keys) -> None:
    with pytest.raises(AuthorizationError):
        keys.resolve_access_level("ghost")


def test_revoke_key(keys) -> None:
    keys.add_user("root", "Root", 4)
    issued = keys.add_user("dev", "Dev", 2)
    dev = keys.authenticate(issued.key)
    second = keys.create_key(dev, "ci")

    keys.revoke_key(dev, second.record["id"], reason="rotated")
    revoked = next(k for k in keys.list_user_keys("dev") if k["id"] == second.record["id"])
    assert revoked["is_active"] is False
    assert revoked["revoke_reason"] == "rotated"
    with pytest.raises(AuthenticationError):
        keys.authenticate(second.key)

    with pytest.raises(NotFoundError):
        keys.revoke_key(dev, 9999)


def test_last_admin_cannot_be_removed(keys) -> None:
    admin = keys.add_user("root", "Root", 4)
    keys.add_user("dev", "Dev", 2)
    root = keys.authenticate(admin.key)

    with pytest.raises(ConflictError):
        keys.remove_user("root")
    with pytest.raises(ConflictError):
        keys.update_access_level("root", 3)
    with pytest.raises(ConflictError):
        keys.revoke_key(root, root.key_id)

    keys.add_user("second", "Second", 4)
    assert keys.remove_user("root") == 1
    assert [k["user_id"] for k in keys.list_all_keys()] == ["second", "dev"]


def test_unknown_user_mutations(keys) -> None:
    with pytest.raises(NotFoundError):
        keys.remove_user("nobody")
    with pytest.raises(NotFoundError):
        keys.update_access_level("nobody", 2)


def _insert_key(tables, user_id: str, level: int, key: str, now, expires_at=None) -> None:
    tables.table("api_keys").insert(
        {
            "key_hash": hash_key(key),
            "key_prefix": display_prefix(key),
            "user_id": user_id,
            "access_level": level,
            "display_name": user_id,
            "is_active": True,
            "created_at": now - timedelta(days=30),
            "expires_at": expires_at,
        }
    ).execute()


def test_expired_key_is_rejected(keys, tables, now) -> None:
    _insert_key(tables, "dev", 2, "dm_expired", now, expires_at=now - timedelta(days=1))
    with pytest.raises(AuthenticationError, match="expired"):
        keys.authenticate("dm_expired", now=now)

    _insert_key(tables, "dev", 2, "dm_current", now, expires_at=now + timedelta(days=1))
    assert keys.authenticate("dm_current", now=now).access_level == 2


def test_expired_keys_do_not_grant_their_level(keys, tables) -> None:
    now = datetime.now(tz=timezone.utc)
    issued = keys.add_user("dev", "Dev", 1)
    _insert_key(tables, "dev", 4, "dm_stale_admin", now, expires_at=now - timedelta(days=1))

    principal = keys.authenticate(issued.key)
    assert principal.access_level == 1
    assert not principal.is_admin
    created = keys.create_key(principal, "laptop")
    assert created.record["access_level"] == 1

    _insert_key(tables, "ghost", 4, "dm_only_expired", now, expires_at=now - timedelta(days=1))
    with pytest.raises(AuthorizationError):
        keys.resolve_access_level("ghost", now=now)


def test_guard_ignores_expired_admin_keys(now) -> None:
    keys = [
        {"id": 1, "user_id": "root", "access_level": 4, "is_active": True, "expires_at": None},
        {"id": 2, "user_id": "old", "access_level": 4, "is_active": True, "expires_at": now - timedelta(hours=1)},
    ]
    assert would_remove_last_admin(keys, lambda k: k["id"] == 1, now=now)
    assert not is_usable(keys[1], now)
    assert is_usable(keys[0], now)


def test_revoking_last_working_admin_key_is_blocked(keys, tables) -> None:
    now = datetime.now(tz=timezone.utc)
    admin = keys.add_user("root", "Root", 4)
    _insert_key(tables, "old", 4, "dm_old_admin", now, expires_at=now - timedelta(days=1))
    root = keys.authenticate(admin.key)
    with pytest.raises(ConflictError):
        keys.revoke_key(root, root.key_id)


def test_admin_mutations_normalise_user_id(keys) -> None:
    keys.add_user("root", "Root", 4)
    keys.add_user(" Ops ", "Ops", 3)
    assert keys.update_access_level("Ops", 2) == 1
    assert keys.list_user_keys("ops")[0]["access_level"] == 2
    assert keys.remove_user("  OPS") == 1
