"""Infrastructure layer for the audio catalog.

Modules:
    metrics     Prometheus metrics registry for ingestion, cleanup and query latency.
"""
