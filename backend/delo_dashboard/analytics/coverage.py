"""Coverage page: where the knowledge corpus is thin.

Chunks and entities are grouped into product modules by their domain, and a
few heuristics turn the resulting counts into a list of coverage gaps.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Literal, Mapping

from delo_dashboard.analytics.stats import UNKNOWN
from delo_dashboard.core.config import Settings
from delo_dashboard.db.tables import TableClient

UNKNOWN_MODULE = "Unknown"

MODULE_MAP: dict[str, str] = {
    "tenant-services": "TSC",
    "connect": "CON",
    "forecast": "FST",
    "ilm": "ILM",
    "optimize": "OPT",
    "automate": "AUT",
    "analyze": "ANA",
    "onboarding": "OBD",
    "portal": "PTL",
    "admin": "APL",
    "demo": "DMD",
}

Severity = Literal["Low", "Medium", "High"]


@dataclass(frozen=True, slots=True)
class CoverageGap:
    id: str
    severity: Severity
    message: str


def domain_to_module(domain: str) -> str:
    """Map a chunk/entity domain onto a module code.

    Exact matches win; otherwise the first key that contains the domain or is
    contained in it. Anything else lands in the ``Unknown`` bucket.
    """
    if domain in MODULE_MAP:
        return MODULE_MAP[domain]
    lower = domain.lower()
    for key, code in MODULE_MAP.items():
        if key in lower or lower in key:
            return code
    return UNKNOWN_MODULE


def build_heatmap(chunks: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    matrix: dict[str, dict[str, int]] = {}
    for chunk in chunks:
        domain = chunk.get("domain") or UNKNOWN
        content_type = chunk.get("content_type") or UNKNOWN
        row = matrix.setdefault(domain, {})
        row[content_type] = row.get(content_type, 0) + 1
    values = [n for row in matrix.values() for n in row.values()]
    return {
        "domains": sorted(matrix),
        "content_types": sorted({ct for row in matrix.values() for ct in row}),
        "matrix": matrix,
        "max_count": max(values) if values else 1,
    }


def module_counts(rows: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for row in rows:
        module = domain_to_module(row.get("domain") or UNKNOWN)
        counts[module] = counts.get(module, 0) + 1
    return counts


def find_coverage_gaps(
    chunk_modules: Mapping[str, int],
    entity_modules: Mapping[str, int],
    heatmap: Mapping[str, Any],
    min_chunks: int = 10,
    orphan_entities: int = 0,
) -> list[CoverageGap]:
    gaps: list[CoverageGap] = []

    for module, count in chunk_modules.items():
        if module != UNKNOWN_MODULE and count < min_chunks:
            plural = "" if count == 1 else "s"
            gaps.append(
                CoverageGap(f"low-{module}", "Medium", f"Module {module} has only {count} chunk{plural}: low coverage")
            )

    for module in chunk_modules:
        if module != UNKNOWN_MODULE and not entity_modules.get(module):
            gaps.append(
                CoverageGap(
                    f"no-entities-{module}", "High", f"Module {module} has zero entities: no structured knowledge"
                )
            )

    domains: list[str] = heatmap["domains"]
    content_types: list[str] = heatmap["content_types"]
    matrix: Mapping[str, Mapping[str, int]] = heatmap["matrix"]
    if len(domains) > 1 and len(content_types) > 1:
        for content_type in content_types:
            present = [d for d in domains if matrix.get(d, {}).get(content_type)]
            missing = [d for d in domains if not matrix.get(d, {}).get(content_type)]
            if len(present) >= len(domains) / 2 and 0 < len(missing) <= 3:
                gaps.append(
                    CoverageGap(
                        f"missing-{content_type}-{','.join(missing)}",
                        "Low",
                        f'Content type "{content_type}" missing in: {", ".join(missing)}',
                    )
                )

    if orphan_entities:
        plural = "y has" if orphan_entities == 1 else "ies have"
        gaps.append(
            CoverageGap(
                "orphan-entities",
                "Low",
                f"{orphan_entities} entit{plural} zero referencing chunks",
            )
        )
    return gaps


def build_coverage_report(
    chunks: list[Mapping[str, Any]],
    entities: list[Mapping[str, Any]],
    min_chunks: int = 10,
) -> dict[str, Any]:
    heatmap = build_heatmap(chunks)
    chunk_modules = module_counts(chunks)
    entity_modules = module_counts(entities)

    referenced = {code for chunk in chunks for code in (chunk.get("entity_codes") or [])}
    orphans = sum(1 for entity in entities if entity["code"] not in referenced) if chunks else 0

    gaps = find_coverage_gaps(chunk_modules, entity_modules, heatmap, min_chunks, orphans) if chunks else []
    return {
        "summary": {
            "total_chunks": len(chunks),
            "domains": len(heatmap["domains"]),
            "content_types": len(heatmap["content_types"]),
            "entities": len(entities),
        },
        "heatmap": heatmap,
        "modules": [{"module": module, "count": n} for module, n in sorted(chunk_modules.items())],
        "entity_modules": entity_modules,
        "gaps": [asdict(gap) for gap in gaps],
    }


def load_coverage(client: TableClient, settings: Settings) -> dict[str, Any]:
    chunks = client.table("knowledge_chunks").select("domain, content_type, entity_codes").execute().rows
    entities = client.table("entity_descriptions").select("code, entity_type, domain").execute().rows
    return build_coverage_report(chunks, entities, settings.coverage_min_chunks)


__all__ = [
    "MODULE_MAP",
    "UNKNOWN_MODULE",
    "CoverageGap",
    "build_coverage_report",
    "build_heatmap",
    "domain_to_module",
    "find_coverage_gaps",
    "load_coverage",
    "module_counts",
]
