"""API integration tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from delo_dashboard.api.dependencies import get_key_service, get_table_client
from delo_dashboard.app import app


@pytest.fixture
def client() -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_key(client: TestClient) -> str:
    return get_key_service().add_user("root", "Root", 4, created_by="tests").key


@pytest.fixture
def member_key(client: TestClient) -> str:
    return get_key_service().add_user("dev", "Dev", 2, created_by="tests").key


def bearer(key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {key}"}


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
    assert client.get("/metrics").status_code == 200


def test_missing_key_redirects_to_login(client: TestClient) -> None:
    resp = client.get("/api/overview")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized", "redirect": "/login"}
    assert client.get("/api/overview", headers={"Authorization": "Basic abc"}).status_code == 401


def test_settings_require_admin(client: TestClient, member_key: str, admin_key: str) -> None:
    resp = client.get("/api/settings/keys", headers=bearer(member_key))
    assert resp.status_code == 403
    assert resp.json()["redirect"] == "/dashboard/access-denied"

    resp = client.get("/api/settings/keys", headers={"X-API-Key": admin_key})
    assert resp.status_code == 200
    assert [row["user_id"] for row in resp.json()] == ["root", "dev"]


def test_search_respects_access_level(client: TestClient, member_key: str) -> None:
    get_table_client().table("knowledge_chunks").insert(
        [
            {"file_path": "public.md", "domain": "connect", "chunk_text": "Sync runs hourly", "access_level": 1},
            {"file_path": "secret.md", "domain": "connect", "chunk_text": "Sync credentials", "access_level": 4},
        ]
    ).execute()

    assert client.get("/api/logs", headers=bearer(member_key)).json()["total"] == 0

    resp = client.post("/api/search", json={"query": "sync", "tool": "search_knowledge"}, headers=bearer(member_key))
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["query"] == "sync"
    assert payload["access_level"] == 2
    assert [result["file_path"] for result in payload["results"]] == ["public.md"]

    logs = client.get("/api/logs", headers=bearer(member_key)).json()
    assert logs["total"] == 1
    assert logs["rows"][0]["user_id"] == "dev"
    assert client.get("/api/overview", headers=bearer(member_key)).json()["queries_7d"] == 1
    assert client.get("/api/search/domains", headers=bearer(member_key)).json() == ["connect"]

    resp = client.post("/api/search", json={"query": "", "tool": "search_knowledge"}, headers=bearer(member_key))
    assert resp.status_code == 400


def test_key_lifecycle(client: TestClient, member_key: str) -> None:
    me = client.get("/api/me", headers=bearer(member_key)).json()
    assert me == {"user_id": "dev", "access_level": 2, "is_admin": False}

    created = client.post("/api/keys", json={"display_name": "laptop"}, headers=bearer(member_key))
    assert created.status_code == 201
    new_key = created.json()["key"]
    assert new_key.startswith("dm_")
    key_id = created.json()["record"]["id"]

    listing = client.get("/api/keys", headers=bearer(new_key)).json()
    assert listing["summary"]["active"] == 2
    assert listing["access_level"] == 2

    resp = client.post(f"/api/keys/{key_id}/revoke", json={"reason": "lost"}, headers=bearer(member_key))
    assert resp.status_code == 200
    assert client.get("/api/me", headers=bearer(new_key)).status_code == 401
    assert client.get("/api/keys", headers=bearer(member_key)).json()["summary"]["active"] == 1


def test_user_administration(client: TestClient, admin_key: str) -> None:
    resp = client.post(
        "/api/settings/users",
        json={"user_id": "Ops", "display_name": "Ops", "access_level": 3},
        headers=bearer(admin_key),
    )
    assert resp.status_code == 201
    assert resp.json()["record"]["key_prefix"].startswith("sk-dm-")

    bad = client.post(
        "/api/settings/users",
        json={"user_id": "x", "display_name": "X", "access_level": 7},
        headers=bearer(admin_key),
    )
    assert bad.status_code == 400

    resp = client.patch("/api/settings/users/Ops", json={"access_level": 1}, headers=bearer(admin_key))
    assert resp.json() == {"status": "ok", "affected": 1}

    resp = client.delete("/api/settings/users/root", headers=bearer(admin_key))
    assert resp.status_code == 409
    assert "last L4 admin" in resp.json()["error"]

    assert client.delete("/api/settings/users/ops", headers=bearer(admin_key)).json()["affected"] == 1
    assert client.delete("/api/settings/users/ops", headers=bearer(admin_key)).status_code == 404


def test_entities_and_coverage(client: TestClient, member_key: str) -> None:
    get_table_client().table("entity_descriptions").insert(
        {"code": "CON", "canonical_name": "Connect", "entity_type": "module", "domain": "connect"}
    ).execute()

    listing = client.get("/api/entities", params={"type": "module"}, headers=bearer(member_key)).json()
    assert [row["code"] for row in listing["entities"]] == ["CON"]
    assert client.get("/api/entities/NOPE", headers=bearer(member_key)).status_code == 404
    assert client.get("/api/coverage", headers=bearer(member_key)).json()["gaps"] == []

    graph = client.get("/api/graph", params={"types": "customer"}, headers=bearer(member_key)).json()
    assert graph["nodes"] == []


def test_log_export(client: TestClient, member_key: str) -> None:
    resp = client.get("/api/logs/export", headers=bearer(member_key))
    assert resp.status_code == 200
    assert resp.headers["content-disposition"].startswith('attachment; filename="delomemory-audit-log-')
    assert resp.json() == []
