"""Cost estimation for MCP query traffic.

Spend is approximated from query counts alone: every query is assumed to embed
the query text plus a fixed number of candidate chunks, priced per million
embedding tokens. The model is static, so the estimate for N queries is
always ``N * cost_per_query``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping

from delo_dashboard.analytics.stats import count_by, daily_buckets, day_label, since
from delo_dashboard.core.config import Settings
from delo_dashboard.db.tables import TableClient

WINDOW_DAYS = 30


@dataclass(frozen=True, slots=True)
class CostModel:
    avg_tokens_per_query: int = 200
    avg_tokens_per_chunk: int = 150
    embedding_cost_per_1m_tokens: float = 0.02
    avg_chunks_processed_per_query: int = 50
    cache_hit_rate: float = 0.3

    @classmethod
    def from_settings(cls, settings: Settings) -> "CostModel":
        return cls(
            avg_tokens_per_query=settings.avg_tokens_per_query,
            avg_tokens_per_chunk=settings.avg_tokens_per_chunk,
            embedding_cost_per_1m_tokens=settings.embedding_cost_per_1m_tokens,
            avg_chunks_processed_per_query=settings.avg_chunks_processed_per_query,
            cache_hit_rate=settings.cache_hit_rate,
        )


def tokens_per_query(model: CostModel) -> int:
    return model.avg_tokens_per_query + model.avg_chunks_processed_per_query * model.avg_tokens_per_chunk


def estimate_query_cost(model: CostModel) -> float:
    """Dollar cost of a single query under ``model``."""
    return tokens_per_query(model) / 1_000_000 * model.embedding_cost_per_1m_tokens


def estimate_cost(query_count: int, model: CostModel) -> float:
    return query_count * estimate_query_cost(model)


def format_cost(amount: float) -> str:
    if amount < 0.01:
        return f"${amount:.4f}"
    return f"${amount:.2f}"


def format_tokens(count: int | float) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


def _cost_breakdown(counts: Mapping[str, int], label: str, model: CostModel) -> list[dict[str, Any]]:
    per_query = estimate_query_cost(model)
    items = [{label: name, "cost": round(n * per_query, 4)} for name, n in counts.items()]
    return sorted(items, key=lambda item: item["cost"], reverse=True)


def build_cost_report(
    rows: Iterable[Mapping[str, Any]],
    model: CostModel,
    now: datetime | None = None,
) -> dict[str, Any]:
    rows = list(rows)
    per_query = estimate_query_cost(model)
    total_queries = len(rows)
    monthly_cost = estimate_cost(total_queries, model)
    daily_cost = monthly_cost / WINDOW_DAYS if total_queries else 0.0
    total_tokens = total_queries * tokens_per_query(model)
    savings = monthly_cost * model.cache_hit_rate

    return {
        "cost_per_query": per_query,
        "tokens_per_query": tokens_per_query(model),
        "total_queries": total_queries,
        "monthly_cost": monthly_cost,
        "daily_cost": daily_cost,
        "total_tokens": total_tokens,
        "potential_savings": savings,
        "cache_hit_rate": model.cache_hit_rate,
        "display": {
            "monthly_cost": format_cost(monthly_cost),
            "daily_cost": format_cost(daily_cost),
            "total_tokens": format_tokens(total_tokens),
            "potential_savings": format_cost(savings),
        },
        "daily_trend": [
            {"date": day_label(day), "cost": round(n * per_query, 4)}
            for day, n in daily_buckets((row["created_at"] for row in rows), WINDOW_DAYS, now)
        ],
        "by_tool": _cost_breakdown(count_by(rows, "tool_name"), "tool", model),
        "by_user": _cost_breakdown(count_by(rows, "user_id"), "user", model),
    }


def load_costs(client: TableClient, settings: Settings, now: datetime | None = None) -> dict[str, Any]:
    rows = (
        client.table("access_audit_log")
        .select("user_id, tool_name, query_time_ms, chunks_returned, created_at")
        .gte("created_at", since(WINDOW_DAYS, now))
        .order("created_at", desc=True)
        .execute()
        .rows
    )
    return build_cost_report(rows, CostModel.from_settings(settings), now)


__all__ = [
    "CostModel",
    "build_cost_report",
    "estimate_cost",
    "estimate_query_cost",
    "format_cost",
    "format_tokens",
    "load_costs",
    "tokens_per_query",
]
