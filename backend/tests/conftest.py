"""Test fixtures for the DeloMemory dashboard."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _reset_singletons() -> None:
    from delo_dashboard.api import dependencies as deps
    from delo_dashboard.core import config

    if deps._DB is not None:
        deps._DB.close()
    config.get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._DB = None
    deps._CACHE = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("DELO_DB_PATH", str(tmp_path / "dashboard.db"))
    monkeypatch.delenv("DELO_CONFIG", raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


@pytest.fixture
def tables():
    from delo_dashboard.api.dependencies import get_database
    from delo_dashboard.db.tables import TableClient

    return TableClient(get_database())


@pytest.fixture
def keys(tables):
    from delo_dashboard.auth.keys import KeyService

    return KeyService(tables)


@pytest.fixture
def now() -> datetime:
    return NOW


def audit_row(user: str, tool: str, ms: int | None, returned: int, at: datetime, **extra) -> dict:
    row = {
        "user_id": user,
        "tool_name": tool,
        "query_text": f"{tool} query",
        "query_time_ms": ms,
        "chunks_returned": returned,
        "chunks_filtered": extra.pop("filtered", 0),
        "access_level": extra.pop("level", 2),
        "created_at": at,
    }
    row.update(extra)
    return row


@pytest.fixture
def audit_rows() -> list[dict]:
    """A small, fixed week of audit traffic ending at NOW."""
    return [
        audit_row("alice", "search_knowledge", 120, 5, NOW - timedelta(hours=1)),
        audit_row("alice", "search_knowledge", 80, 0, NOW - timedelta(days=1)),
        audit_row("alice", "get_entity", 40, 2, NOW - timedelta(days=2), filtered=18),
        audit_row("bob", "search_knowledge", 900, 0, NOW - timedelta(days=2), level=4),
        audit_row("bob", "get_entity", None, 3, NOW - timedelta(days=40)),
    ]


@pytest.fixture
def make_audit_row():
    return audit_row
