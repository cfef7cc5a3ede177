"""Prometheus metrics for the resource server."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all resource server metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Facade operations
        self.operations_total = Counter(
            "resource_operations_total",
            "Total number of resource operations",
            ["entity_set", "operation", "outcome"],  # outcome: ok, created, not_found, ...
            registry=self._registry,
        )

        self.operation_latency_seconds = Histogram(
            "resource_operation_latency_seconds",
            "Resource operation latency in seconds",
            ["entity_set", "operation"],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
            registry=self._registry,
        )

        # Query engine
        self.query_rows_returned = Histogram(
            "resource_query_rows_returned",
            "Rows returned per list query",
            ["entity_set"],
            buckets=(0, 1, 5, 10, 50, 100, 500, 1000, 5000),
            registry=self._registry,
        )

        self.query_parse_errors_total = Counter(
            "resource_query_parse_errors_total",
            "Total number of rejected query options",
            ["entity_set"],
            registry=self._registry,
        )

        # Store
        self.store_entities = Gauge(
            "resource_store_entities",
            "Number of entities held per collection",
            ["entity_set"],
            registry=self._registry,
        )

        self.info = Info(
            "resource_server",
            "Resource server information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from resource_server import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
