"""Component wiring for the resource server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

import structlog
from opentelemetry import trace

from resource_server.adapters.inbound.query_parser import QueryParser
from resource_server.application.resource_service import ResourceService
from resource_server.domain.services import EntityStore, MutationEngine, QueryEngine
from resource_server.infrastructure.config import Config, get_config
from resource_server.infrastructure.logging import get_logger
from resource_server.infrastructure.metrics import MetricsRegistry, get_metrics
from resource_server.infrastructure.tracing import get_tracer


@dataclass
class Container:
    """All long-lived resource server components."""

    config: Config
    logger: structlog.BoundLogger
    tracer: trace.Tracer
    metrics: MetricsRegistry
    store: EntityStore
    query_engine: QueryEngine
    mutation_engine: MutationEngine
    parser: QueryParser
    service: ResourceService

    _instance: ClassVar[Container | None] = None

    @classmethod
    def get(
        cls,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> Container:
        """Get the process-wide container, building it on first use.

        The arguments only take effect on the call that builds it.
        """
        if cls._instance is None:
            cls._instance = build_container(config, metrics=metrics)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the process-wide container (useful for testing)."""
        cls._instance = None


def build_container(
    config: Config | None = None,
    metrics: MetricsRegistry | None = None,
) -> Container:
    """Build a fresh set of components from configuration.

    Logging, tracing and the metrics endpoint are set up by the caller;
    this only wires the objects together.

    Args:
        config: Configuration. Defaults to get_config().
        metrics: Metrics registry. Defaults to the global registry.
    """
    config = config or get_config()
    metrics = metrics or get_metrics()
    logger = get_logger("resource_server")

    store = EntityStore()
    query_engine = QueryEngine()
    mutation_engine = MutationEngine(store, delete_policy=config.store.delete_policy)
    parser = QueryParser(
        max_top=config.query.max_top,
        max_depth=config.query.max_filter_depth,
        max_terms=config.query.max_filter_terms,
    )
    service = ResourceService(
        store,
        query_engine=query_engine,
        mutation_engine=mutation_engine,
        parser=parser,
        metrics=metrics,
        logger=logger,
    )

    logger.info(
        "resource_server_container_initialized",
        delete_policy=config.store.delete_policy,
        max_top=config.query.max_top,
    )

    return Container(
        config=config,
        logger=logger,
        tracer=get_tracer(),
        metrics=metrics,
        store=store,
        query_engine=query_engine,
        mutation_engine=mutation_engine,
        parser=parser,
        service=service,
    )


def get_container(
    config: Config | None = None,
    metrics: MetricsRegistry | None = None,
) -> Container:
    """Get the process-wide container."""
    return Container.get(config, metrics=metrics)
