"""Monitoring views: overview, analytics, costs, query logs and feedback."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from delo_dashboard.analytics.costs import load_costs
from delo_dashboard.analytics.logs import (
    build_log_summary,
    export_filename,
    export_json,
    load_log_page,
    load_summary_rows,
    load_tool_names,
)
from delo_dashboard.analytics.overview import load_overview
from delo_dashboard.analytics.quality import load_quality
from delo_dashboard.analytics.usage import load_usage
from delo_dashboard.api.dependencies import get_app_settings, get_query_cache, get_table_client
from delo_dashboard.core.config import Settings
from delo_dashboard.db.cache import QueryCache
from delo_dashboard.db.tables import TableClient
from delo_dashboard.models.dto import LogPageResponse

router = APIRouter()

AUDIT_VIEWS = ("stats", "analytics", "costs", "logs", "log-tools", "logs-summary", "feedback")


@router.get("/overview", summary="Headline usage numbers and 30-day query trend")
async def overview(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
) -> dict:
    return cache.get_or_load(("stats", "overview"), lambda: load_overview(client))


@router.get("/analytics", summary="Usage by user, tool, latency and entity")
async def analytics(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
) -> dict:
    return cache.get_or_load(("analytics",), lambda: load_usage(client))


@router.get("/costs", summary="Estimated embedding spend over the last 30 days")
async def costs(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
    settings: Settings = Depends(get_app_settings),
) -> dict:
    return cache.get_or_load(("costs",), lambda: load_costs(client, settings))


@router.get("/logs", response_model=LogPageResponse, summary="Paginated audit log")
async def logs(
    page: int = Query(default=0, ge=0),
    tool: str | None = Query(default=None),
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
    settings: Settings = Depends(get_app_settings),
) -> LogPageResponse:
    payload = cache.get_or_load(
        ("logs", page, tool or "all"),
        lambda: load_log_page(client, page=page, page_size=settings.page_size, tool=tool),
    )
    return LogPageResponse(**payload)


@router.get("/logs/tools", summary="Distinct tool names seen in the audit log")
async def log_tools(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
) -> list[str]:
    return cache.get_or_load(("log-tools",), lambda: load_tool_names(client))


@router.get("/logs/summary", summary="Audit log totals, per-user breakdown and access levels")
async def log_summary(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
) -> dict:
    rows = cache.get_or_load(("logs-summary",), lambda: load_summary_rows(client))
    return build_log_summary(rows)


@router.get("/logs/export", summary="Download the audit log summary rows as JSON")
async def log_export(client: TableClient = Depends(get_table_client)) -> Response:
    rows = load_summary_rows(client)
    return Response(
        content=export_json(rows),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/feedback", summary="Search quality signals")
async def feedback(
    client: TableClient = Depends(get_table_client),
    cache: QueryCache = Depends(get_query_cache),
) -> dict:
    return cache.get_or_load(("feedback",), lambda: load_quality(client))


def invalidate_audit_views(cache: QueryCache) -> None:
    for prefix in AUDIT_VIEWS:
        cache.invalidate((prefix,))


__all__ = ["router", "invalidate_audit_views"]
