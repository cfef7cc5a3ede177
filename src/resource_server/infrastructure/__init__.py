"""Infrastructure layer - cross-cutting concerns."""

from resource_server.infrastructure.config import Config, get_config
from resource_server.infrastructure.logging import bind_request_context, get_logger, setup_logging
from resource_server.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from resource_server.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "bind_request_context",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
]
