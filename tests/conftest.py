"""Pytest configuration and fixtures for resource_server tests."""

from __future__ import annotations

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from resource_server.adapters.inbound.query_parser import QueryParser
from resource_server.adapters.inbound.rest_api import create_app
from resource_server.application import Container, ResourceService, seed_store
from resource_server.domain.services import EntityStore, MutationEngine, QueryEngine
from resource_server.infrastructure.metrics import MetricsRegistry


@pytest.fixture(autouse=True)
def reset_container() -> Generator[None, None, None]:
    """Drop the process-wide container between tests."""
    Container.reset()
    yield
    Container.reset()


@pytest.fixture
def collector_registry() -> CollectorRegistry:
    """Provide an isolated Prometheus registry."""
    return CollectorRegistry(auto_describe=True)


@pytest.fixture
def metrics_registry(collector_registry: CollectorRegistry) -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    return MetricsRegistry(registry=collector_registry)


@pytest.fixture
def store() -> EntityStore:
    """Provide an empty entity store."""
    return EntityStore()


@pytest.fixture
def seeded_store(store: EntityStore) -> EntityStore:
    """Provide a store holding the 3 seed customers and 5 seed orders."""
    seed_store(store)
    return store


@pytest.fixture
def parser() -> QueryParser:
    return QueryParser()


@pytest.fixture
def query_engine() -> QueryEngine:
    return QueryEngine()


@pytest.fixture
def mutation_engine(seeded_store: EntityStore) -> MutationEngine:
    return MutationEngine(seeded_store)


@pytest.fixture
def service(store: EntityStore, metrics_registry: MetricsRegistry) -> ResourceService:
    """Provide a seeded resource facade with isolated metrics."""
    svc = ResourceService(store, metrics=metrics_registry)
    svc.seed()
    return svc


@pytest.fixture
def client(service: ResourceService) -> Generator[TestClient, None, None]:
    """Provide an HTTP client for the REST API."""
    with TestClient(create_app(service)) as test_client:
        yield test_client


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
