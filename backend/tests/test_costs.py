"""Tests for the cost estimation model."""

import pytest

from delo_dashboard.analytics.costs import (
    CostModel,
    build_cost_report,
    estimate_cost,
    estimate_query_cost,
    format_cost,
    format_tokens,
    tokens_per_query,
)


def test_default_per_query_constants() -> None:
    model = CostModel()
    assert tokens_per_query(model) == 7700
    assert estimate_query_cost(model) == pytest.approx(0.000154)


@pytest.mark.parametrize("queries", [0, 1, 17, 10_000])
def test_cost_is_linear_in_query_count(queries: int) -> None:
    model = CostModel()
    assert estimate_cost(queries, model) == pytest.approx(queries * estimate_query_cost(model))
    assert estimate_cost(queries, model) == estimate_cost(queries, model)


def test_cost_report(now, audit_rows) -> None:
    recent = [row for row in audit_rows if (now - row["created_at"]).days < 30]
    report = build_cost_report(recent, CostModel(), now=now)
    assert report["total_queries"] == 4
    assert report["monthly_cost"] == pytest.approx(4 * 0.000154)
    assert report["daily_cost"] == pytest.approx(4 * 0.000154 / 30)
    assert report["total_tokens"] == 4 * 7700
    assert report["potential_savings"] == pytest.approx(4 * 0.000154 * 0.3)
    assert len(report["daily_trend"]) == 30
    assert report["by_user"][0] == {"user": "alice", "cost": round(3 * 0.000154, 4)}
    assert [item["tool"] for item in report["by_tool"]] == ["search_knowledge", "get_entity"]


def test_empty_report_has_zero_daily_cost(now) -> None:
    report = build_cost_report([], CostModel(), now=now)
    assert report["daily_cost"] == 0
    assert report["by_tool"] == []


def test_formatting() -> None:
    assert format_cost(0.000154) == "$0.0002"
    assert format_cost(12.345) == "$12.35"
    assert format_tokens(950) == "950"
    assert format_tokens(30_800) == "30.8K"
    assert format_tokens(2_500_000) == "2.5M"
