"""Query log listing and per-user/access-level summaries."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

import orjson

from delo_dashboard.analytics.stats import UNKNOWN, count_by, format_ms, mean, rate_percent, ranked, round_half_up
from delo_dashboard.db.tables import TableClient

ACCESS_LEVEL_LABELS: dict[int, str] = {
    1: "L1 - Read Only",
    2: "L2 - Standard",
    3: "L3 - Elevated",
    4: "L4 - Admin",
}

SUMMARY_COLUMNS = "user_id, query_time_ms, chunks_returned, chunks_filtered, access_level, tool_name, created_at"


def access_level_label(level: int) -> str:
    return ACCESS_LEVEL_LABELS.get(level, f"L{level} - Unknown")


def summary_stats(rows: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    if not rows:
        return {"total_entries": 0, "unique_users": 0, "avg_latency": "N/A", "filtered_ratio": "N/A"}
    filtered = sum(row.get("chunks_filtered") or 0 for row in rows)
    returned = sum(row.get("chunks_returned") or 0 for row in rows)
    considered = filtered + returned
    timings = [row["query_time_ms"] for row in rows if row.get("query_time_ms") is not None]
    return {
        "total_entries": len(rows),
        "unique_users": len({row.get("user_id") for row in rows}),
        "avg_latency": format_ms(mean(timings)),
        "filtered_ratio": f"{rate_percent(filtered, considered)}%" if considered else "N/A",
    }


def user_breakdown(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    grouped: dict[str, dict[str, Any]] = {}
    for row in rows:
        user = row.get("user_id") or UNKNOWN
        stats = grouped.setdefault(user, {"count": 0, "ms": 0, "tools": {}, "last_active": row["created_at"]})
        stats["count"] += 1
        stats["ms"] += row.get("query_time_ms") or 0
        tool = row.get("tool_name") or UNKNOWN
        stats["tools"][tool] = stats["tools"].get(tool, 0) + 1
        if row["created_at"] > stats["last_active"]:
            stats["last_active"] = row["created_at"]

    breakdown = []
    for user, stats in grouped.items():
        top = ranked(stats["tools"], 1)
        breakdown.append(
            {
                "user": user,
                "count": stats["count"],
                "avg_latency": round_half_up(stats["ms"] / stats["count"]),
                "most_used_tool": top[0][0] if top else "N/A",
                "last_active": stats["last_active"],
            }
        )
    return sorted(breakdown, key=lambda item: item["count"], reverse=True)


def access_level_distribution(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    counts = count_by(rows, lambda row: row.get("access_level") or 0)
    return [{"name": access_level_label(level), "value": n} for level, n in ranked(counts)]


def load_log_page(
    client: TableClient,
    page: int = 0,
    page_size: int = 25,
    tool: str | None = None,
) -> dict[str, Any]:
    query = (
        client.table("access_audit_log")
        .select("*", count="exact")
        .order("created_at", desc=True)
        .range(page * page_size, (page + 1) * page_size - 1)
    )
    if tool:
        query = query.eq("tool_name", tool)
    result = query.execute()
    total = result.count or 0
    return {
        "rows": result.rows,
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size) if page_size else 0,
    }


def load_tool_names(client: TableClient) -> list[str]:
    rows = client.table("access_audit_log").select("tool_name").execute().rows
    names: list[str] = []
    for row in rows:
        name = row["tool_name"]
        if name and name not in names:
            names.append(name)
    return names


def load_summary_rows(client: TableClient) -> list[dict[str, Any]]:
    return client.table("access_audit_log").select(SUMMARY_COLUMNS).execute().rows


def build_log_summary(rows: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    return {
        "stats": summary_stats(rows),
        "users": user_breakdown(rows),
        "access_levels": access_level_distribution(rows),
    }


def export_filename(now: datetime | None = None) -> str:
    now = now or datetime.now(tz=timezone.utc)
    return f"delomemory-audit-log-{now:%Y-%m-%d}.json"


def export_json(rows: Sequence[Mapping[str, Any]]) -> bytes:
    return orjson.dumps(list(rows), option=orjson.OPT_INDENT_2)


__all__ = [
    "ACCESS_LEVEL_LABELS",
    "access_level_distribution",
    "access_level_label",
    "build_log_summary",
    "export_filename",
    "export_json",
    "load_log_page",
    "load_summary_rows",
    "load_tool_names",
    "summary_stats",
    "user_breakdown",
]
