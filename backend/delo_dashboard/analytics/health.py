"""Corpus health: table sizes, stale files and entity reference temperature."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence

from delo_dashboard.core.config import Settings
from delo_dashboard.db.tables import TableClient
from delo_dashboard.knowledge.entities import chunk_reference_counts

CORPUS_TABLES = {
    "files": "knowledge_files",
    "chunks": "knowledge_chunks",
    "entities": "entity_descriptions",
    "edges": "entity_graph",
}


def stale_files(
    files: Iterable[Mapping[str, Any]],
    stale_after_days: int,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Files whose last update (or index time) is older than the cutoff.

    Files that were never indexed count as stale.
    """
    now = now or datetime.now(tz=timezone.utc)
    cutoff = now - timedelta(days=stale_after_days)
    stale: list[dict[str, Any]] = []
    for row in files:
        touched = row.get("updated_at") or row.get("indexed_at")
        if touched is None or touched < cutoff:
            age = None if touched is None else (now - touched).days
            stale.append({"file_path": row["file_path"], "domain": row.get("domain"), "age_days": age})
    return sorted(stale, key=lambda item: (item["age_days"] is not None, -(item["age_days"] or 0)))


def classify_entities(
    entities: Sequence[Mapping[str, Any]],
    references: Mapping[str, int],
    hot_min: int,
    cold_max: int,
) -> dict[str, list[dict[str, Any]]]:
    """Split entities into orphan (0 refs), cold (1..cold_max) and hot (>= hot_min)."""
    orphan: list[dict[str, Any]] = []
    cold: list[dict[str, Any]] = []
    hot: list[dict[str, Any]] = []
    for entity in entities:
        n = references.get(entity["code"], 0)
        item = {"code": entity["code"], "entity_type": entity.get("entity_type"), "chunks": n}
        if n == 0:
            orphan.append(item)
        elif n <= cold_max:
            cold.append(item)
        if n >= hot_min:
            hot.append(item)
    hot.sort(key=lambda item: item["chunks"], reverse=True)
    return {"orphan": orphan, "cold": cold, "hot": hot}


def dangling_edges(entities: Iterable[Mapping[str, Any]], edges: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    known = {entity["code"] for entity in entities}
    return [
        {"source_entity": edge["source_entity"], "target_entity": edge["target_entity"]}
        for edge in edges
        if edge["source_entity"] not in known or edge["target_entity"] not in known
    ]


def load_corpus_counts(client: TableClient) -> dict[str, int]:
    return {
        label: client.table(table).select("*", count="exact", head=True).execute().count or 0
        for label, table in CORPUS_TABLES.items()
    }


def load_health(client: TableClient, settings: Settings, now: datetime | None = None) -> dict[str, Any]:
    files = client.table("knowledge_files").select("file_path, domain, indexed_at, updated_at").execute().rows
    entities = client.table("entity_descriptions").select("code, entity_type").execute().rows
    edges = client.table("entity_graph").select("source_entity, target_entity").execute().rows
    chunks = client.table("knowledge_chunks").select("entity_codes").execute().rows
    references = chunk_reference_counts(chunks)
    return {
        "counts": load_corpus_counts(client),
        "stale_files": stale_files(files, settings.stale_after_days, now),
        "entities": classify_entities(
            entities,
            references,
            settings.hot_entity_min_chunks,
            settings.cold_entity_max_chunks,
        ),
        "dangling_edges": dangling_edges(entities, edges),
    }


__all__ = ["classify_entities", "dangling_edges", "load_corpus_counts", "load_health", "stale_files"]
