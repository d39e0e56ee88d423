"""Playground search proxy.

The MCP server ranks chunks by embedding similarity; the dashboard only needs
a preview of what a caller at a given access level could see, so this does a
case-insensitive substring match over chunk text instead.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from delo_dashboard.auth.keys import Principal
from delo_dashboard.core.config import Settings
from delo_dashboard.core.errors import ValidationError
from delo_dashboard.core.logging import get_logger
from delo_dashboard.core.metrics import SEARCH_COUNT
from delo_dashboard.db.tables import TableClient, escape_like
from delo_dashboard.utils.text import preview

logger = get_logger(__name__)

CHUNK_COLUMNS = "id, file_path, domain, content_type, chunk_text, entity_codes, access_level, metadata"


class SearchService:
    def __init__(self, client: TableClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def search(
        self,
        principal: Principal,
        query: str | None,
        tool: str | None,
        domain: str | None = None,
        top_k: int | None = None,
    ) -> dict[str, Any]:
        if not (query or "").strip() or not tool:
            SEARCH_COUNT.labels(outcome="invalid").inc()
            raise ValidationError("query and tool are required")

        start_time = time.perf_counter()
        limit = top_k or self.settings.search_default_top_k
        chunks = (
            self.client.table("knowledge_chunks")
            .select(CHUNK_COLUMNS)
            .lte("access_level", principal.access_level)
        )
        if domain:
            chunks = chunks.eq("domain", domain)
        rows = chunks.ilike("chunk_text", f"%{escape_like(query)}%").order("id").limit(limit).execute().rows

        results = [
            {
                "rank": rank,
                "file_path": row["file_path"],
                "domain": row["domain"],
                "content_type": row["content_type"],
                "preview": preview(row["chunk_text"], self.settings.search_preview_chars),
                "entity_codes": row["entity_codes"],
                "access_level": row["access_level"],
            }
            for rank, row in enumerate(rows, start=1)
        ]
        duration = time.perf_counter() - start_time
        self._record(principal, tool, query, duration, len(results))
        SEARCH_COUNT.labels(outcome="ok" if results else "empty").inc()
        return {
            "query": query,
            "tool": tool,
            "results_count": len(results),
            "access_level": principal.access_level,
            "results": results,
        }

    def domains(self) -> list[str]:
        rows = self.client.table("knowledge_chunks").select("domain").not_null("domain").execute().rows
        return sorted({row["domain"] for row in rows})

    def _record(self, principal: Principal, tool: str, query: str, duration: float, returned: int) -> None:
        self.client.table("access_audit_log").insert(
            {
                "user_id": principal.user_id,
                "tool_name": tool,
                "query_text": query,
                "query_time_ms": round(duration * 1000),
                "chunks_returned": returned,
                "chunks_filtered": 0,
                "access_level": principal.access_level,
                "created_at": datetime.now(tz=timezone.utc),
            }
        ).execute()
        logger.debug("Search by %s via %s returned %s chunks", principal.user_id, tool, returned)


__all__ = ["SearchService"]
