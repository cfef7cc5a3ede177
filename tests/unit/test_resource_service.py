"""Unit tests for the resource facade and its wiring."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from resource_server.application import Container, ResourceService, build_container, get_container
from resource_server.domain.services import EntityStore, EntityView, QueryResult
from resource_server.domain.value_objects import OutcomeKind
from resource_server.infrastructure.config import Config, QueryConfig, StoreConfig
from resource_server.infrastructure.metrics import MetricsRegistry
from resource_server.ports.inbound import QueryOptions


def operations(registry: CollectorRegistry, entity_set: str, operation: str, outcome: str) -> float:
    value = registry.get_sample_value(
        "resource_operations_total",
        {"entity_set": entity_set, "operation": operation, "outcome": outcome},
    )
    return value or 0.0


@pytest.mark.unit
class TestSeed:
    """Tests for seeding."""

    def test_seed_is_idempotent(self, service: ResourceService) -> None:
        again = service.seed()

        assert again == {"Customers": 0, "Orders": 0}
        assert service.store.counts() == {"Customers": 3, "Orders": 5}

    def test_seed_fills_only_empty_collections(self, metrics_registry: MetricsRegistry) -> None:
        store = EntityStore()
        svc = ResourceService(store, metrics=metrics_registry)
        svc.create("Customers", {"Id": 10, "Name": "Early"})

        inserted = svc.seed()

        assert inserted == {"Customers": 0, "Orders": 5}
        assert store.counts() == {"Customers": 1, "Orders": 5}

    def test_store_gauge(self, service: ResourceService, collector_registry: CollectorRegistry) -> None:
        service.delete("Orders", 1)

        assert collector_registry.get_sample_value(
            "resource_store_entities", {"entity_set": "Orders"}
        ) == 4


@pytest.mark.unit
class TestReads:
    """Tests for list and get_by_key."""

    def test_list(self, service: ResourceService) -> None:
        outcome = service.list("Orders", QueryOptions(filter="Amount gt 100"))

        assert outcome.kind is OutcomeKind.OK
        assert isinstance(outcome.value, QueryResult)
        assert [r["Id"] for r in outcome.value.records()] == [1, 2, 4]

    def test_unknown_entity_set(
        self, service: ResourceService, collector_registry: CollectorRegistry
    ) -> None:
        outcome = service.list("Products", QueryOptions())

        assert outcome.kind is OutcomeKind.NOT_FOUND
        assert operations(collector_registry, "unknown", "list", "not_found") == 1

    def test_bad_query_is_invalid_input(
        self, service: ResourceService, collector_registry: CollectorRegistry
    ) -> None:
        outcome = service.list("Orders", QueryOptions(filter="Amount gt 'x'"))

        assert outcome.kind is OutcomeKind.INVALID_INPUT
        assert "Amount" in outcome.message
        assert collector_registry.get_sample_value(
            "resource_query_parse_errors_total", {"entity_set": "Orders"}
        ) == 1

    @pytest.mark.parametrize(
        "options",
        [
            QueryOptions(filter="1 lt 'a'"),
            QueryOptions(filter=" or ".join(["Id eq 1"] * 600)),
            QueryOptions(skip="²"),
            QueryOptions(top="9" * 5000),
        ],
    )
    def test_malformed_options_are_invalid_input(
        self, service: ResourceService, options: QueryOptions
    ) -> None:
        assert service.list("Orders", options).kind is OutcomeKind.INVALID_INPUT

    def test_long_filter_chain(self, service: ResourceService) -> None:
        outcome = service.list("Orders", QueryOptions(filter=" and ".join(["Id gt 0"] * 450)))

        assert [r["Id"] for r in outcome.value.records()] == [1, 2, 3, 4, 5]

    def test_get_by_key(self, service: ResourceService) -> None:
        outcome = service.get_by_key("Customers", 1, QueryOptions(expand="Orders"))

        assert isinstance(outcome.value, EntityView)
        assert [o["Id"] for o in outcome.value.to_record()["Orders"]] == [2, 3, 5]

    def test_get_by_key_missing(self, service: ResourceService) -> None:
        assert service.get_by_key("Customers", 42).kind is OutcomeKind.NOT_FOUND

    def test_get_by_key_rejects_collection_options(self, service: ResourceService) -> None:
        outcome = service.get_by_key("Customers", 1, QueryOptions(top="1"))

        assert outcome.kind is OutcomeKind.INVALID_INPUT
        assert "$top" in outcome.message

    def test_operations_are_counted(
        self, service: ResourceService, collector_registry: CollectorRegistry
    ) -> None:
        service.list("Orders", QueryOptions())
        service.list("Orders", QueryOptions())

        assert operations(collector_registry, "Orders", "list", "ok") == 2
        assert collector_registry.get_sample_value(
            "resource_operation_latency_seconds_count",
            {"entity_set": "Orders", "operation": "list"},
        ) == 2


@pytest.mark.unit
class TestWrites:
    """Tests for the write operations."""

    def test_create(self, service: ResourceService) -> None:
        outcome = service.create("Customers", {"Id": 4, "Name": "Ann", "City": "KSM"})

        assert outcome.kind is OutcomeKind.CREATED
        assert outcome.value.to_record() == {"Id": 4, "Name": "Ann", "City": "KSM"}

    def test_create_conflict(
        self, service: ResourceService, collector_registry: CollectorRegistry
    ) -> None:
        outcome = service.create("Customers", {"Id": 1, "Name": "Again"})

        assert outcome.kind is OutcomeKind.CONFLICT
        assert service.store.counts()["Customers"] == 3
        assert operations(collector_registry, "Customers", "create", "conflict") == 1

    @pytest.mark.parametrize("payload", [None, {}, {"Id": 0}, {"Id": 5, "Bogus": 1}])
    def test_create_invalid(self, service: ResourceService, payload: dict | None) -> None:
        assert service.create("Customers", payload).kind is OutcomeKind.INVALID_INPUT

    def test_replace(self, service: ResourceService) -> None:
        outcome = service.replace("Customers", 3, {"Name": "Jim"})

        assert outcome.value.to_record() == {"Id": 3, "Name": "Jim", "City": None}

    def test_replace_not_found(self, service: ResourceService) -> None:
        assert service.replace("Customers", 42, {"Name": "Jim"}).kind is OutcomeKind.NOT_FOUND

    def test_merge_patch(self, service: ResourceService) -> None:
        outcome = service.merge_patch("Customers", 3, {"Name": "Jim"})

        assert outcome.value.to_record() == {"Id": 3, "Name": "Jim", "City": "NBI"}

    @pytest.mark.parametrize("payload", [None, {}, {"Id": 3}])
    def test_merge_patch_empty(self, service: ResourceService, payload: dict | None) -> None:
        assert service.merge_patch("Customers", 3, payload).kind is OutcomeKind.INVALID_INPUT

    def test_delete_twice(self, service: ResourceService) -> None:
        assert service.delete("Orders", 1).value is True
        assert service.delete("Orders", 1).value is False

    def test_delete_unknown_set(self, service: ResourceService) -> None:
        assert service.delete("Products", 1).kind is OutcomeKind.NOT_FOUND

    def test_link(self, service: ResourceService) -> None:
        outcome = service.link("Orders", 5, "Customer", 3)

        assert outcome.value.to_record()["CustomerId"] == 3

    def test_link_missing_order(self, service: ResourceService) -> None:
        assert service.link("Orders", 6, "Customer", 1).kind is OutcomeKind.INVALID_INPUT

    def test_link_reference(self, service: ResourceService) -> None:
        outcome = service.link_reference("Orders", 5, "Customer", {"@odata.id": "Customers(3)"})

        assert outcome.kind is OutcomeKind.OK
        assert service.store.orders.get(5).customer_id == 3

    def test_link_reference_wrong_target(self, service: ResourceService) -> None:
        outcome = service.link_reference("Orders", 5, "Customer", {"@odata.id": "Orders(3)"})

        assert outcome.kind is OutcomeKind.INVALID_INPUT
        assert service.store.orders.get(5).customer_id == 1

    def test_link_reference_malformed(self, service: ResourceService) -> None:
        outcome = service.link_reference("Orders", 5, "Customer", {"@odata.id": "nonsense"})

        assert outcome.kind is OutcomeKind.INVALID_INPUT

    def test_stats(self, service: ResourceService) -> None:
        assert service.stats() == {
            "entity_sets": {"Customers": 3, "Orders": 5},
            "relationships": 5,
            "delete_policy": "nullify",
        }


@pytest.mark.unit
class TestContainer:
    """Tests for component wiring."""

    def test_build_container_applies_config(self, metrics_registry: MetricsRegistry) -> None:
        config = Config(
            store=StoreConfig(delete_policy="cascade"),
            query=QueryConfig(max_top=5),
        )

        container = build_container(config, metrics=metrics_registry)
        container.service.seed()

        assert container.mutation_engine.delete_policy == "cascade"
        assert container.service.list("Orders", QueryOptions(top="6")).kind is OutcomeKind.INVALID_INPUT
        container.service.delete("Customers", 1)
        assert container.store.counts() == {"Customers": 2, "Orders": 2}

    def test_get_container_builds_once(self, metrics_registry: MetricsRegistry) -> None:
        config = Config(store=StoreConfig(delete_policy="cascade"))

        first = get_container(config, metrics=metrics_registry)
        second = get_container()

        assert first is second
        assert second.config is config
        assert second.mutation_engine.delete_policy == "cascade"

    def test_reset(self) -> None:
        Container.reset()

        assert Container._instance is None
