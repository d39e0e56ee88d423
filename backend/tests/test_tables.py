"""Tests for the table query builder and the read cache."""

import threading
import time
from datetime import timedelta

import pytest

from delo_dashboard.core.errors import QueryError
from delo_dashboard.db.cache import QueryCache
from delo_dashboard.db.tables import escape_like


@pytest.fixture
def audit(tables, audit_rows):
    tables.table("access_audit_log").insert(audit_rows).execute()
    return tables


def test_insert_assigns_ids(tables, make_audit_row, now) -> None:
    result = tables.table("access_audit_log").insert(make_audit_row("carol", "get_entity", 10, 1, now)).execute()
    assert result.count == 1
    assert result.first()["id"] == 1


def test_filters_order_and_range(audit, now) -> None:
    rows = (
        audit.table("access_audit_log")
        .select("user_id, query_time_ms, created_at")
        .eq("tool_name", "search_knowledge")
        .gte("created_at", now - timedelta(days=7))
        .order("query_time_ms", desc=True)
        .execute()
        .rows
    )
    assert [row["query_time_ms"] for row in rows] == [900, 120, 80]
    assert rows[0]["created_at"] == now - timedelta(days=2)

    page = audit.table("access_audit_log").select("id").order("id").range(1, 2).execute()
    assert [row["id"] for row in page.rows] == [2, 3]
    assert audit.table("access_audit_log").select("id").is_null("query_time_ms").execute().first()["id"] == 5
    assert len(audit.table("access_audit_log").select("id").in_("user_id", []).execute()) == 0


def test_exact_count_head(audit) -> None:
    result = audit.table("access_audit_log").select("id", count="exact", head=True).neq("user_id", "bob").execute()
    assert result.count == 3
    assert result.rows == []


def test_ilike_escapes_wildcards(tables) -> None:
    tables.table("knowledge_chunks").insert(
        [
            {"file_path": "a.md", "chunk_text": "100% uptime", "entity_codes": ["CON"]},
            {"file_path": "b.md", "chunk_text": "100 percent", "entity_codes": []},
        ]
    ).execute()
    rows = (
        tables.table("knowledge_chunks")
        .select("file_path, entity_codes")
        .ilike("chunk_text", f"%{escape_like('100%')}%")
        .execute()
        .rows
    )
    assert rows == [{"file_path": "a.md", "entity_codes": ["CON"]}]


def test_update_and_delete_counts(audit) -> None:
    updated = audit.table("access_audit_log").update({"chunks_returned": 9}).eq("user_id", "alice").execute()
    assert updated.count == 3
    deleted = audit.table("access_audit_log").delete().eq("user_id", "bob").execute()
    assert deleted.count == 2


def test_unknown_names_raise(tables) -> None:
    with pytest.raises(QueryError):
        tables.table("nope")
    with pytest.raises(QueryError):
        tables.table("api_keys").select("id, password")
    with pytest.raises(QueryError):
        tables.table("api_keys").select("id", count="planned")


def test_database_errors_become_query_errors(tables, now) -> None:
    row = {"key_hash": "x", "key_prefix": "dm_x", "user_id": "u", "access_level": 9, "display_name": "u", "created_at": now}
    with pytest.raises(QueryError):
        tables.table("api_keys").insert(row).execute()


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_cache_ttl_and_invalidation() -> None:
    clock = FakeClock()
    cache = QueryCache(ttl_seconds=30, clock=clock)
    calls = []

    def loader():
        calls.append(1)
        return len(calls)

    assert cache.get_or_load(("stats", "overview"), loader) == 1
    assert cache.get_or_load(("stats", "overview"), loader) == 1
    clock.now = 31
    assert cache.get_or_load(("stats", "overview"), loader) == 2

    cache.get_or_load(("costs",), loader)
    assert cache.invalidate(("stats",)) == 1
    assert len(cache) == 1
    assert cache.invalidate() == 1


def test_cache_does_not_store_errors() -> None:
    cache = QueryCache()

    def broken():
        raise QueryError("boom")

    with pytest.raises(QueryError):
        cache.get_or_load(("logs",), broken)
    assert len(cache) == 0
    assert cache.get_or_load(("logs",), lambda: []) == []


def test_concurrent_loads_share_one_call() -> None:
    cache = QueryCache(ttl_seconds=30)
    started = threading.Event()
    release = threading.Event()
    calls = []
    results = []

    def loader():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return {"rows": 3}

    def worker():
        results.append(cache.get_or_load(("analytics",), loader))

    first = threading.Thread(target=worker)
    first.start()
    assert started.wait(timeout=5)
    second = threading.Thread(target=worker)
    second.start()
    deadline = time.monotonic() + 5
    while cache._loading[("analytics",)].waiters < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    release.set()
    first.join(timeout=5)
    second.join(timeout=5)

    assert len(calls) == 1
    assert results == [{"rows": 3}, {"rows": 3}]
    assert cache._loading == {}


def test_cache_bookkeeping_stays_bounded() -> None:
    uncached = QueryCache(ttl_seconds=0)
    for page in range(200):
        uncached.get_or_load(("logs", page, "all"), lambda: [])
    assert uncached._loading == {}
    assert len(uncached) == 0

    clock = FakeClock()
    cache = QueryCache(ttl_seconds=30, clock=clock)
    for page in range(50):
        cache.get_or_load(("logs", page, "all"), lambda: [])
    clock.now = 31
    cache.get_or_load(("logs", 0, "get_entity"), lambda: [])
    assert len(cache) == 1


def test_ilike_folds_unicode_case(tables) -> None:
    tables.table("knowledge_chunks").insert(
        [
            {"file_path": "fr.md", "chunk_text": "RÉSUMÉ DE L'ÉTÉ"},
            {"file_path": "en.md", "chunk_text": "summer summary"},
        ]
    ).execute()
    rows = tables.table("knowledge_chunks").select("file_path").ilike("chunk_text", "%été%").execute().rows
    assert rows == [{"file_path": "fr.md"}]
