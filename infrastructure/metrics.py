"""Prometheus metrics for the audio catalog.

Metrics:
    catalog_ingest_total              Counter of uploads by outcome
    catalog_artwork_failures_total    Embedded artwork that could not be stored
    catalog_cleanup_failures_total    Compensating artifact deletes that failed
    catalog_query_latency_seconds     Histogram of search / facets / suggest latency

Usage::

    from infrastructure.metrics import LatencyTimer, record_ingest, record_query

    with LatencyTimer() as t:
        page = search_catalog(session, query, owner_id)
    record_query(operation="search", latency_seconds=t.elapsed)
"""

from __future__ import annotations

import logging
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

ingest_total = Counter(
    "catalog_ingest_total",
    "Audio uploads by outcome",
    ["status"],
    registry=REGISTRY,
)

artwork_failures_total = Counter(
    "catalog_artwork_failures_total",
    "Embedded artwork that was extracted but could not be stored",
    registry=REGISTRY,
)

cleanup_failures_total = Counter(
    "catalog_cleanup_failures_total",
    "Best-effort artifact deletes that failed after a partial write",
    ["reason"],
    registry=REGISTRY,
)

query_latency_seconds = Histogram(
    "catalog_query_latency_seconds",
    "Latency of catalog read operations in seconds",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=REGISTRY,
)

INGEST_STATUSES: frozenset[str] = frozenset(
    {"ok", "empty", "persistence_error", "transient_error", "error"}
)


def record_ingest(status: str) -> None:
    """Count one finished upload.

    Args:
        status: One of ``INGEST_STATUSES``.

    Raises:
        ValueError: Unknown status (keeps label cardinality bounded).
    """
    if status not in INGEST_STATUSES:
        raise ValueError(f"Unknown ingest status {status!r}")
    ingest_total.labels(status=status).inc()


def record_artwork_failure() -> None:
    artwork_failures_total.inc()


def record_cleanup_failure(reason: str) -> None:
    """Count a compensating delete that did not succeed.

    Args:
        reason: Short label for the step being undone, e.g. ``"ingest"``.
    """
    cleanup_failures_total.labels(reason=reason).inc()


def record_query(*, operation: str, latency_seconds: float) -> None:
    """Observe the latency of a search, facets or suggest call."""
    query_latency_seconds.labels(operation=operation).observe(latency_seconds)


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            facets = catalog_facets(session, owner_id)
        record_query(operation="facets", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        self.elapsed = time.perf_counter() - self._start
