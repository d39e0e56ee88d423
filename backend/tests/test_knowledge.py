"""Tests for the entity registry and graph explorer."""

from delo_dashboard.knowledge.entities import EntityCatalog, paginate, parent_chain
from delo_dashboard.knowledge.graph import FALLBACK_COLOR, build_graph, load_graph, node_color


def _entity(code: str, entity_type: str, name: str | None = None, parent: str | None = None, aliases=None) -> dict:
    return {
        "code": code,
        "canonical_name": name or code.title(),
        "entity_type": entity_type,
        "domain": "connect",
        "access_level": 1,
        "description": None,
        "aliases": aliases,
        "parent_code": parent,
    }


ENTITIES = [
    _entity("CON", "module", "Connect"),
    _entity("CON-SYNC", "process", "Sync Engine", parent="CON", aliases=["syncer"]),
    _entity("ACME", "customer", "Acme Corp"),
    _entity("PLAT", "platform", "Platform"),
]
EDGES = [
    {"source_entity": "CON-SYNC", "target_entity": "CON", "relationship_type": "part_of"},
    {"source_entity": "ACME", "target_entity": "CON", "relationship_type": "uses"},
    {"source_entity": "ACME", "target_entity": "GHOST", "relationship_type": "uses"},
]
CHUNKS = [{"entity_codes": ["CON", "ACME"]}, {"entity_codes": ["CON"]}, {"entity_codes": None}]


def test_listing_filters_and_counts() -> None:
    catalog = EntityCatalog(ENTITIES, EDGES, CHUNKS)
    listing = catalog.listing()
    assert listing["stats"] == {"total_entities": 4, "entity_types": 4, "graph_edges": 3}
    assert listing["matched"] == 4
    con = next(row for row in listing["entities"] if row["code"] == "CON")
    assert con["connections"] == 2
    assert con["chunk_count"] == 2

    assert [row["code"] for row in catalog.listing(search="SYNCER")["entities"]] == ["CON-SYNC"]
    assert [row["code"] for row in catalog.listing(search="acme")["entities"]] == ["ACME"]
    assert catalog.listing(entity_type="customer", search="connect")["matched"] == 0


def test_paginate() -> None:
    items, pages = paginate(list(range(60)), page=2, page_size=25)
    assert items == list(range(50, 60))
    assert pages == 3
    assert paginate([], 0, 25) == ([], 0)


def test_parent_chain_stops_on_cycles() -> None:
    looped = [_entity("A", "module", parent="B"), _entity("B", "module", parent="C"), _entity("C", "module", parent="A")]
    assert [e["code"] for e in parent_chain(looped, "A")] == ["B", "C"]
    assert parent_chain(looped, "missing") == []


def test_detail() -> None:
    detail = EntityCatalog(ENTITIES, EDGES, CHUNKS).detail("CON-SYNC")
    assert detail["parent_chain"] == [{"code": "CON", "canonical_name": "Connect"}]
    assert detail["connected"] == ["CON"]
    assert EntityCatalog(ENTITIES, EDGES, CHUNKS).detail("NOPE") is None


def test_graph_type_filter() -> None:
    everything = build_graph(ENTITIES, EDGES)
    assert len(everything["nodes"]) == 4
    assert len(everything["links"]) == 2

    modules_only = build_graph(ENTITIES, EDGES, {"module", "customer"})
    assert {node["id"] for node in modules_only["nodes"]} == {"CON", "ACME"}
    assert modules_only["links"] == [{"source": "ACME", "target": "CON", "label": "uses"}]
    assert build_graph(ENTITIES, EDGES, set()) == {"nodes": [], "links": []}


def test_node_colors() -> None:
    assert node_color("customer") == "#ef4444"
    assert node_color("mystery") == FALLBACK_COLOR
    assert node_color(None) == FALLBACK_COLOR


def test_load_graph_from_tables(tables) -> None:
    tables.table("entity_descriptions").insert(ENTITIES).execute()
    tables.table("entity_graph").insert(EDGES).execute()
    payload = load_graph(tables, selected="ACME")
    assert payload["entity_types"] == ["customer", "module", "platform", "process"]
    assert [e["code"] for e in payload["selected"]["connected"]] == ["CON"]
    assert payload["selected"]["entity"]["aliases"] is None
