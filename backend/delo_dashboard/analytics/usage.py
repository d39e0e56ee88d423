"""Analytics page: who queries, with which tools, how fast, about what."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from delo_dashboard.analytics.stats import count_by, daily_average, day_label, ranked, since
from delo_dashboard.db.tables import TableClient

WINDOW_DAYS = 30
TOP_USERS = 10
TOP_ENTITIES = 10
EDGE_SAMPLE = 500


def queries_by_user(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    counts = count_by(rows, "user_id")
    return [{"user": user, "queries": n} for user, n in ranked(counts, TOP_USERS)]


def queries_by_tool(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    counts = count_by(rows, "tool_name")
    return [{"tool": tool, "count": n} for tool, n in ranked(counts)]


def latency_trend(rows: list[Mapping[str, Any]], now: datetime | None = None) -> list[dict[str, Any]]:
    if not rows:
        return []
    samples = [(row["created_at"], row["query_time_ms"] or 0) for row in rows]
    return [{"date": day_label(day), "avg_ms": avg} for day, avg in daily_average(samples, WINDOW_DAYS, now)]


def entity_connections(edges: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    """Degree per entity code; each edge counts once for each endpoint."""
    counts: dict[str, int] = {}
    for edge in edges:
        for code in (edge.get("source_entity"), edge.get("target_entity")):
            if code:
                counts[code] = counts.get(code, 0) + 1
    return counts


def top_entities(edges: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    return [
        {"entity": code, "connections": n}
        for code, n in ranked(entity_connections(edges), TOP_ENTITIES)
    ]


def load_usage(client: TableClient, now: datetime | None = None) -> dict[str, Any]:
    window_start = since(WINDOW_DAYS, now)
    rows = (
        client.table("access_audit_log")
        .select("user_id, tool_name, query_time_ms, created_at")
        .gte("created_at", window_start)
        .order("created_at")
        .execute()
        .rows
    )
    timed = [row for row in rows if row["query_time_ms"] is not None]
    edges = client.table("entity_graph").select("source_entity, target_entity").limit(EDGE_SAMPLE).execute().rows
    return {
        "by_user": queries_by_user(rows),
        "by_tool": queries_by_tool(rows),
        "latency_trend": latency_trend(timed, now),
        "top_entities": top_entities(edges),
    }


__all__ = [
    "entity_connections",
    "latency_trend",
    "load_usage",
    "queries_by_tool",
    "queries_by_user",
    "top_entities",
]
