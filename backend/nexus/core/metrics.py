"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "nexus_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

QUERY_LATENCY = Histogram(
    "nexus_query_latency_seconds",
    "Latency of index queries",
    labelnames=("collection",),
    registry=REGISTRY,
)

RECORDS_INDEXED = Counter(
    "nexus_records_indexed_total",
    "Record files written into the index",
    labelnames=("collection",),
    registry=REGISTRY,
)

INVALID_RECORDS = Counter(
    "nexus_invalid_records_total",
    "Record files skipped because they failed validation",
    labelnames=("collection",),
    registry=REGISTRY,
)

SOURCES = Gauge(
    "nexus_sources",
    "Number of archives currently indexed",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "QUERY_LATENCY",
    "RECORDS_INDEXED",
    "INVALID_RECORDS",
    "SOURCES",
    "metrics_response",
]
