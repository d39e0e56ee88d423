"""Entity registry: search, filtering and per-entity detail."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping, Sequence

from delo_dashboard.analytics.usage import entity_connections
from delo_dashboard.db.tables import TableClient

PAGE_SIZE = 25


def chunk_reference_counts(chunks: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    """How many chunks mention each entity code."""
    counts: dict[str, int] = {}
    for chunk in chunks:
        for code in chunk.get("entity_codes") or []:
            counts[code] = counts.get(code, 0) + 1
    return counts


def entity_types(entities: Iterable[Mapping[str, Any]]) -> list[str]:
    return sorted({entity["entity_type"] for entity in entities})


def type_counts(entities: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for entity in entities:
        counts[entity["entity_type"]] = counts.get(entity["entity_type"], 0) + 1
    return dict(sorted(counts.items()))


def matches_search(entity: Mapping[str, Any], query: str) -> bool:
    q = query.lower()
    if q in entity["code"].lower() or q in entity["canonical_name"].lower():
        return True
    return any(q in alias.lower() for alias in entity.get("aliases") or [])


def filter_entities(
    entities: Sequence[Mapping[str, Any]],
    entity_type: str | None = None,
    search: str | None = None,
) -> list[Mapping[str, Any]]:
    result = list(entities)
    if entity_type:
        result = [entity for entity in result if entity["entity_type"] == entity_type]
    if search and search.strip():
        result = [entity for entity in result if matches_search(entity, search.strip())]
    return result


def paginate(items: Sequence[Any], page: int, page_size: int = PAGE_SIZE) -> tuple[list[Any], int]:
    total_pages = math.ceil(len(items) / page_size) if page_size else 0
    start = page * page_size
    return list(items[start : start + page_size]), total_pages


def connected_codes(edges: Iterable[Mapping[str, Any]], code: str) -> list[str]:
    """Entity codes linked to ``code`` in either direction, sorted."""
    connected: set[str] = set()
    for edge in edges:
        if edge["source_entity"] == code:
            connected.add(edge["target_entity"])
        if edge["target_entity"] == code:
            connected.add(edge["source_entity"])
    return sorted(connected)


def parent_chain(entities: Iterable[Mapping[str, Any]], code: str) -> list[Mapping[str, Any]]:
    """Ancestors of ``code`` nearest first; stops on missing parents or cycles."""
    by_code = {entity["code"]: entity for entity in entities}
    chain: list[Mapping[str, Any]] = []
    seen = {code}
    current = by_code.get(code)
    while current is not None and current.get("parent_code"):
        parent = by_code.get(current["parent_code"])
        if parent is None or parent["code"] in seen:
            break
        chain.append(parent)
        seen.add(parent["code"])
        current = parent
    return chain


class EntityCatalog:
    """Entities, edges and chunk references loaded once per request."""

    def __init__(
        self,
        entities: Sequence[Mapping[str, Any]],
        edges: Sequence[Mapping[str, Any]],
        chunks: Sequence[Mapping[str, Any]],
    ) -> None:
        self.entities = entities
        self.edges = edges
        self.connections = entity_connections(edges)
        self.chunk_counts = chunk_reference_counts(chunks)

    @classmethod
    def load(cls, client: TableClient) -> "EntityCatalog":
        entities = client.table("entity_descriptions").select("*").order("code").execute().rows
        edges = client.table("entity_graph").select("source_entity, target_entity").execute().rows
        chunks = client.table("knowledge_chunks").select("entity_codes").execute().rows
        return cls(entities, edges, chunks)

    def _row(self, entity: Mapping[str, Any]) -> dict[str, Any]:
        return {
            **entity,
            "connections": self.connections.get(entity["code"], 0),
            "chunk_count": self.chunk_counts.get(entity["code"], 0),
        }

    def listing(
        self,
        entity_type: str | None = None,
        search: str | None = None,
        page: int = 0,
        page_size: int = PAGE_SIZE,
    ) -> dict[str, Any]:
        filtered = filter_entities(self.entities, entity_type, search)
        items, total_pages = paginate(filtered, page, page_size)
        return {
            "stats": {
                "total_entities": len(self.entities),
                "entity_types": len(entity_types(self.entities)),
                "graph_edges": len(self.edges),
            },
            "type_counts": type_counts(self.entities),
            "matched": len(filtered),
            "page": page,
            "total_pages": total_pages,
            "entities": [self._row(entity) for entity in items],
        }

    def detail(self, code: str) -> dict[str, Any] | None:
        entity = next((e for e in self.entities if e["code"] == code), None)
        if entity is None:
            return None
        return {
            **self._row(entity),
            "parent_chain": [
                {"code": parent["code"], "canonical_name": parent["canonical_name"]}
                for parent in parent_chain(self.entities, code)
            ],
            "connected": connected_codes(self.edges, code),
        }


__all__ = [
    "EntityCatalog",
    "PAGE_SIZE",
    "chunk_reference_counts",
    "connected_codes",
    "entity_types",
    "filter_entities",
    "matches_search",
    "paginate",
    "parent_chain",
    "type_counts",
]
