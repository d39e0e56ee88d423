"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "delo_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "delo_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

SEARCH_COUNT = Counter(
    "delo_search_requests_total",
    "Search proxy requests by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

CACHE_LOOKUPS = Counter(
    "delo_query_cache_lookups_total",
    "Query cache lookups",
    labelnames=("result",),
    registry=REGISTRY,
)

KEY_MUTATIONS = Counter(
    "delo_api_key_mutations_total",
    "API key create/revoke/update/delete operations",
    labelnames=("action",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SEARCH_COUNT",
    "CACHE_LOOKUPS",
    "KEY_MUTATIONS",
    "metrics_response",
]
