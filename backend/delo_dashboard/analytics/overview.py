"""Overview page: headline usage numbers and the 30-day query trend."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from delo_dashboard.analytics.stats import daily_buckets, day_label, format_ms, mean, since
from delo_dashboard.db.tables import TableClient

TREND_DAYS = 30
RECENT_DAYS = 7


def query_trend(timestamps: list[datetime], now: datetime | None = None) -> list[dict[str, Any]]:
    """Daily query counts for the trailing 30 days; empty when there is no data."""
    if not timestamps:
        return []
    return [
        {"date": day_label(day), "queries": count}
        for day, count in daily_buckets(timestamps, TREND_DAYS, now)
    ]


def load_overview(client: TableClient, now: datetime | None = None) -> dict[str, Any]:
    recent_since = since(RECENT_DAYS, now)
    audit = client.table("access_audit_log")

    query_count = (
        audit.select("*", count="exact", head=True).gte("created_at", recent_since).execute().count or 0
    )
    users = client.table("access_audit_log").select("user_id").gte("created_at", recent_since).execute().rows
    timings = (
        client.table("access_audit_log")
        .select("query_time_ms")
        .gte("created_at", recent_since)
        .not_null("query_time_ms")
        .execute()
        .rows
    )
    corpus_files = client.table("knowledge_files").select("*", count="exact", head=True).execute().count or 0
    trend_rows = (
        client.table("access_audit_log")
        .select("created_at")
        .gte("created_at", since(TREND_DAYS, now))
        .order("created_at")
        .execute()
        .rows
    )

    return {
        "queries_7d": query_count,
        "unique_users_7d": len({row["user_id"] for row in users}),
        "avg_response": format_ms(mean([row["query_time_ms"] for row in timings])),
        "corpus_files": corpus_files,
        "trend": query_trend([row["created_at"] for row in trend_rows], now),
    }


__all__ = ["load_overview", "query_trend"]
