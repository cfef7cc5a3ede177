"""Unit tests for logging, tracing and metrics setup."""

from __future__ import annotations

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from prometheus_client import CollectorRegistry

from resource_server.infrastructure import tracing
from resource_server.infrastructure.logging import get_logger, setup_logging
from resource_server.infrastructure.metrics import MetricsRegistry
from resource_server.ports.inbound import QueryOptions


@pytest.fixture
def span_exporter(monkeypatch: pytest.MonkeyPatch) -> InMemorySpanExporter:
    """Route trace_span into an in-memory exporter."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))
    return exporter


@pytest.mark.unit
class TestLogging:
    """Tests for structured logging setup."""

    def test_setup_logging_returns_logger(self) -> None:
        logger = setup_logging(level="DEBUG", log_format="console")

        assert logger is not None
        logger.debug("logging_configured")

    def test_get_logger_binds_context(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO", log_format="json")

        get_logger("test", component="store").info("hello")

        out = capsys.readouterr().out
        assert '"component": "store"' in out
        assert '"event": "hello"' in out


@pytest.mark.unit
class TestTracing:
    """Tests for trace_span."""

    def test_span_attributes_skip_none(self, span_exporter: InMemorySpanExporter) -> None:
        with tracing.trace_span("resource.test", {"a": 1, "b": None}):
            pass

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "resource.test"
        assert dict(span.attributes) == {"a": 1}

    def test_service_operations_are_traced(self, service, span_exporter: InMemorySpanExporter) -> None:
        service.list("Orders", QueryOptions(top="1"))

        (span,) = span_exporter.get_finished_spans()
        assert span.name == "resource.list"
        assert span.attributes["resource.entity_set"] == "Orders"
        assert span.attributes["resource.outcome"] == "ok"


@pytest.mark.unit
class TestMetrics:
    """Tests for MetricsRegistry."""

    def test_isolated_registries(self) -> None:
        first = CollectorRegistry()
        second = CollectorRegistry()
        MetricsRegistry(first).operations_total.labels(
            entity_set="Orders", operation="list", outcome="ok"
        ).inc()
        MetricsRegistry(second)

        labels = {"entity_set": "Orders", "operation": "list", "outcome": "ok"}
        assert first.get_sample_value("resource_operations_total", labels) == 1
        assert second.get_sample_value("resource_operations_total", labels) is None
