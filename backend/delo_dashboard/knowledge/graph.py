"""Graph explorer payloads: nodes and links filtered by entity type."""

from __future__ import annotations

from typing import Any, Collection, Iterable, Mapping, Sequence

from delo_dashboard.db.tables import TableClient
from delo_dashboard.knowledge.entities import connected_codes, entity_types

TYPE_COLORS: dict[str, str] = {
    "customer": "#ef4444",
    "module": "#3b82f6",
    "platform": "#8b5cf6",
    "person": "#f59e0b",
    "process": "#10b981",
    "concept": "#6366f1",
    "cerebro_component": "#ec4899",
    "product": "#14b8a6",
    "partner": "#f97316",
    "team": "#a855f7",
}
FALLBACK_COLOR = "#6b7280"

ENTITY_COLUMNS = "code, canonical_name, entity_type, domain, access_level, description, aliases, parent_code"


def node_color(entity_type: str | None) -> str:
    return TYPE_COLORS.get(entity_type or "", FALLBACK_COLOR)


def build_graph(
    entities: Iterable[Mapping[str, Any]],
    edges: Iterable[Mapping[str, Any]],
    active_types: Collection[str] | None = None,
) -> dict[str, list[dict[str, Any]]]:
    """Nodes for entities of the active types, links only between kept nodes.

    ``None`` means every type is active; an empty collection hides everything.
    """
    kept = [e for e in entities if active_types is None or e["entity_type"] in active_types]
    codes = {e["code"] for e in kept}
    nodes = [
        {
            "id": e["code"],
            "name": e["canonical_name"],
            "type": e["entity_type"],
            "domain": e.get("domain"),
            "access_level": e.get("access_level"),
            "description": e.get("description"),
            "aliases": e.get("aliases"),
            "color": node_color(e["entity_type"]),
            "val": 1,
        }
        for e in kept
    ]
    links = [
        {"source": edge["source_entity"], "target": edge["target_entity"], "label": edge.get("relationship_type")}
        for edge in edges
        if edge["source_entity"] in codes and edge["target_entity"] in codes
    ]
    return {"nodes": nodes, "links": links}


def selected_node(
    entities: Sequence[Mapping[str, Any]],
    edges: Sequence[Mapping[str, Any]],
    code: str,
) -> dict[str, Any] | None:
    by_code = {e["code"]: e for e in entities}
    entity = by_code.get(code)
    if entity is None:
        return None
    neighbours = [by_code[c] for c in connected_codes(edges, code) if c in by_code]
    return {"entity": entity, "connected": neighbours}


def load_graph(
    client: TableClient,
    active_types: Collection[str] | None = None,
    selected: str | None = None,
) -> dict[str, Any]:
    entities = client.table("entity_descriptions").select(ENTITY_COLUMNS).execute().rows
    edges = (
        client.table("entity_graph")
        .select("source_entity, target_entity, relationship_type, weight")
        .execute()
        .rows
    )
    payload: dict[str, Any] = {
        "entity_types": entity_types(entities),
        **build_graph(entities, edges, active_types),
    }
    if selected:
        payload["selected"] = selected_node(entities, edges, selected)
    return payload


__all__ = ["FALLBACK_COLOR", "TYPE_COLORS", "build_graph", "load_graph", "node_color", "selected_node"]
