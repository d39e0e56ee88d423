"""Search-quality signals derived from the audit log."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from delo_dashboard.analytics.stats import (
    UNKNOWN,
    day_label,
    format_ms,
    mean,
    percentile,
    rate_percent,
    round_half_up,
    since,
    to_day,
)
from delo_dashboard.db.tables import TableClient

HEAVY_FILTER_RATIO = 0.8
PROBLEM_LIMIT = 30
TREND_DAYS = 30
ZERO_RESULTS = "Zero Results"
HIGH_LATENCY = "High Latency"


def _timings(rows: Iterable[Mapping[str, Any]]) -> list[float]:
    return [row["query_time_ms"] for row in rows if row.get("query_time_ms") is not None]


def latency_threshold(rows: Sequence[Mapping[str, Any]]) -> float:
    """p95 latency used to flag slow queries."""
    return percentile(_timings(rows), 95)


def is_heavily_filtered(row: Mapping[str, Any]) -> bool:
    returned = row.get("chunks_returned") or 0
    filtered = row.get("chunks_filtered") or 0
    total = returned + filtered
    return total > 0 and filtered / total > HEAVY_FILTER_RATIO


def quality_stats(rows: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    if not rows:
        return {"total": 0, "zero_result_rate": "0%", "avg_latency": "0ms", "heavy_filter_rate": "0%"}
    total = len(rows)
    zero = sum(1 for row in rows if row.get("chunks_returned") == 0)
    heavy = sum(1 for row in rows if is_heavily_filtered(row))
    return {
        "total": total,
        "zero_result_rate": f"{rate_percent(zero, total)}%",
        "avg_latency": format_ms(mean(_timings(rows))),
        "heavy_filter_rate": f"{rate_percent(heavy, total)}%",
    }


def zero_result_trend(rows: Iterable[Mapping[str, Any]], now: datetime | None = None) -> list[dict[str, Any]]:
    """Daily zero-result rate; only days that saw traffic are reported."""
    cutoff = since(TREND_DAYS, now)
    daily: dict[date, list[int]] = {}
    for row in rows:
        created = row["created_at"]
        if created < cutoff:
            continue
        entry = daily.setdefault(to_day(created), [0, 0])
        entry[0] += 1
        if row.get("chunks_returned") == 0:
            entry[1] += 1
    return [
        {"date": day_label(day), "raw_date": day.isoformat(), "rate": rate_percent(zero, total)}
        for day, (total, zero) in sorted(daily.items())
    ]


def problem_queries(rows: Iterable[Mapping[str, Any]], p95: float) -> list[dict[str, Any]]:
    problems: list[dict[str, Any]] = []
    for row in rows:
        issues: list[str] = []
        if row.get("chunks_returned") == 0:
            issues.append(ZERO_RESULTS)
        latency = row.get("query_time_ms")
        if latency is not None and p95 > 0 and latency > p95:
            issues.append(HIGH_LATENCY)
        if issues:
            problems.append({**row, "issues": issues})
            if len(problems) >= PROBLEM_LIMIT:
                break
    return problems


def user_quality(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    grouped: dict[str, dict[str, float]] = {}
    for row in rows:
        stats = grouped.setdefault(
            row.get("user_id") or UNKNOWN,
            {"total": 0, "zero": 0, "chunks": 0, "ms": 0, "timed": 0},
        )
        stats["total"] += 1
        if row.get("chunks_returned") == 0:
            stats["zero"] += 1
        stats["chunks"] += row.get("chunks_returned") or 0
        if row.get("query_time_ms") is not None:
            stats["ms"] += row["query_time_ms"]
            stats["timed"] += 1

    report = [
        {
            "user": user,
            "queries": int(s["total"]),
            "zero_result": int(s["zero"]),
            "zero_result_rate": rate_percent(s["zero"], s["total"]),
            "avg_chunks": round_half_up(s["chunks"] / s["total"] * 10) / 10 if s["total"] else 0,
            "avg_latency": round_half_up(s["ms"] / s["timed"]) if s["timed"] else 0,
        }
        for user, s in grouped.items()
    ]
    return sorted(report, key=lambda item: item["zero_result_rate"], reverse=True)


def build_quality_report(rows: Sequence[Mapping[str, Any]], now: datetime | None = None) -> dict[str, Any]:
    p95 = latency_threshold(rows)
    return {
        "p95_ms": p95,
        "stats": quality_stats(rows),
        "trend": zero_result_trend(rows, now),
        "problems": problem_queries(rows, p95),
        "users": user_quality(rows),
    }


def load_quality(client: TableClient, now: datetime | None = None) -> dict[str, Any]:
    rows = (
        client.table("access_audit_log")
        .select(
            "user_id, tool_name, query_text, query_time_ms, chunks_returned, chunks_filtered, access_level, created_at"
        )
        .order("created_at", desc=True)
        .execute()
        .rows
    )
    return build_quality_report(rows, now)


__all__ = [
    "build_quality_report",
    "is_heavily_filtered",
    "latency_threshold",
    "load_quality",
    "problem_queries",
    "quality_stats",
    "user_quality",
    "zero_result_trend",
]
