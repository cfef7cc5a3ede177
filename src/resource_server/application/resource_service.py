"""Resource facade.

``ResourceService`` is the single entry point used by transport adapters.
It resolves entity-set names, decodes payloads and query options, runs
the query and mutation engines and returns their ``Outcome`` unchanged.

Every operation is:
    - wrapped in an OpenTelemetry span (``resource.<operation>``)
    - counted and timed in Prometheus
    - logged once with its outcome

Usage:
    from resource_server.application import build_container

    service = build_container().service
    service.seed()
    outcome = service.list("Orders", QueryOptions(filter="Amount gt 100"))
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping

import structlog

from resource_server.adapters.inbound.query_parser import QueryParseError, QueryParser
from resource_server.application.payloads import (
    PayloadError,
    decode_changes,
    decode_entity,
    parse_reference,
)
from resource_server.application.seed import seed_store
from resource_server.domain.entities import SCHEMAS
from resource_server.domain.services import (
    EntityStore,
    EntityView,
    MutationEngine,
    QueryEngine,
)
from resource_server.domain.value_objects import (
    EntityId,
    EntityType,
    Outcome,
    StoreCorruptionError,
)
from resource_server.infrastructure.logging import get_logger
from resource_server.infrastructure.metrics import MetricsRegistry, get_metrics
from resource_server.infrastructure.tracing import trace_span
from resource_server.ports.inbound import QueryOptions

# Label used for entity-set names that are not served
_UNKNOWN_SET = "unknown"


class ResourceService:
    """Resource facade over the query and mutation engines.

    Thread Safety:
        Safe to share between request handlers. Reads evaluate on a store
        snapshot; writes are serialized by the store's collection locks.
    """

    def __init__(
        self,
        store: EntityStore,
        query_engine: QueryEngine | None = None,
        mutation_engine: MutationEngine | None = None,
        parser: QueryParser | None = None,
        metrics: MetricsRegistry | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        """Initialize the facade.

        Args:
            store: The entity store.
            query_engine: Read path. Defaults to a new QueryEngine.
            mutation_engine: Write path. Defaults to a nullify-policy engine.
            parser: Query option parser. Defaults to QueryParser().
            metrics: Metrics registry. Defaults to the global registry.
            logger: Logger. Defaults to this module's logger.
        """
        self._store = store
        self._query_engine = query_engine or QueryEngine()
        self._mutation_engine = mutation_engine or MutationEngine(store)
        self._parser = parser or QueryParser()
        self._metrics = metrics or get_metrics()
        self._logger = logger or get_logger(__name__)

    @property
    def store(self) -> EntityStore:
        return self._store

    # =========================================================================
    # Reads
    # =========================================================================

    def list(self, entity_set: str, options: QueryOptions) -> Outcome:
        """Entities, or aggregate rows, matching the query options."""

        def run(entity_type: EntityType) -> Outcome:
            try:
                spec = self._parser.parse(SCHEMAS[entity_type.value], options)
            except QueryParseError as e:
                self._metrics.query_parse_errors_total.labels(entity_set=entity_type.value).inc()
                return Outcome.invalid(str(e))

            result = self._query_engine.evaluate(self._store.snapshot(), entity_type, spec)
            self._metrics.query_rows_returned.labels(entity_set=entity_type.value).observe(
                len(result.rows)
            )
            return Outcome.ok(result)

        return self._run(entity_set, "list", run)

    def get_by_key(self, entity_set: str, key: int, options: QueryOptions | None = None) -> Outcome:
        """One entity by key. Only $expand and $select apply."""
        options = options or QueryOptions()

        def run(entity_type: EntityType) -> Outcome:
            unsupported = [
                name
                for name in ("filter", "orderby", "skip", "top", "count", "apply")
                if getattr(options, name) is not None
            ]
            if unsupported:
                return Outcome.invalid(
                    f"${unsupported[0]} cannot be applied to a single entity"
                )
            try:
                spec = self._parser.parse(
                    SCHEMAS[entity_type.value],
                    QueryOptions(expand=options.expand, select=options.select),
                )
            except QueryParseError as e:
                self._metrics.query_parse_errors_total.labels(entity_set=entity_type.value).inc()
                return Outcome.invalid(str(e))

            view = self._query_engine.get_by_key(self._store.snapshot(), entity_type, key, spec)
            if view is None:
                return Outcome.not_found(f"{entity_type.value}({key}) not found")
            return Outcome.ok(view)

        return self._run(entity_set, "get", run, key=key)

    # =========================================================================
    # Writes
    # =========================================================================

    def create(self, entity_set: str, payload: Mapping[str, Any] | None) -> Outcome:
        def run(entity_type: EntityType) -> Outcome:
            try:
                entity = decode_entity(entity_type, payload)
            except PayloadError as e:
                return Outcome.invalid(str(e))
            return self._as_view(entity_type, self._mutation_engine.create(entity_type, entity))

        return self._run(entity_set, "create", run)

    def replace(self, entity_set: str, key: int, payload: Mapping[str, Any] | None) -> Outcome:
        def run(entity_type: EntityType) -> Outcome:
            try:
                entity = decode_entity(entity_type, payload, key=EntityId(key))
            except PayloadError as e:
                return Outcome.invalid(str(e))
            return self._as_view(
                entity_type, self._mutation_engine.replace(entity_type, EntityId(key), entity)
            )

        return self._run(entity_set, "replace", run, key=key)

    def merge_patch(self, entity_set: str, key: int, payload: Mapping[str, Any] | None) -> Outcome:
        def run(entity_type: EntityType) -> Outcome:
            try:
                changes = decode_changes(entity_type, payload, EntityId(key))
            except PayloadError as e:
                return Outcome.invalid(str(e))
            return self._as_view(
                entity_type, self._mutation_engine.merge_patch(entity_type, EntityId(key), changes)
            )

        return self._run(entity_set, "patch", run, key=key)

    def delete(self, entity_set: str, key: int) -> Outcome:
        def run(entity_type: EntityType) -> Outcome:
            outcome = self._mutation_engine.delete(entity_type, EntityId(key))
            if outcome.value:
                self._logger.debug("entity_deleted", entity_set=entity_type.value, key=key)
            return outcome

        return self._run(entity_set, "delete", run, key=key)

    def link(self, entity_set: str, key: int, relationship: str, related_key: int) -> Outcome:
        def run(entity_type: EntityType) -> Outcome:
            return self._as_view(
                entity_type,
                self._mutation_engine.link(
                    entity_type, EntityId(key), relationship, EntityId(related_key)
                ),
            )

        return self._run(
            entity_set, "link", run, key=key, relationship=relationship, related_key=related_key
        )

    def link_reference(
        self,
        entity_set: str,
        key: int,
        relationship: str,
        payload: Mapping[str, Any] | None,
    ) -> Outcome:
        """LINK with the related entity named by an ``@odata.id`` body."""
        try:
            related_set, related_key = parse_reference(payload)
        except PayloadError as e:
            return self._run(entity_set, "link", lambda _: Outcome.invalid(str(e)), key=key)

        entity_type = EntityType.from_set_name(entity_set)
        nav = SCHEMAS[entity_type.value].navigation(relationship) if entity_type else None
        if nav is not None and nav.target != related_set:
            message = f"'{relationship}' must reference {nav.target}, not {related_set}"
            return self._run(entity_set, "link", lambda _: Outcome.invalid(message), key=key)
        return self.link(entity_set, key, relationship, related_key)

    # =========================================================================
    # Administration
    # =========================================================================

    def seed(self) -> dict[str, int]:
        """Load the seed dataset into empty collections."""
        inserted = seed_store(self._store)
        self._refresh_store_gauge()
        self._logger.info("store_seeded", **inserted)
        return inserted

    def stats(self) -> dict[str, Any]:
        return {
            "entity_sets": self._store.counts(),
            "relationships": sum(1 for _ in self._store.order_links.edges()),
            "delete_policy": self._mutation_engine.delete_policy,
        }

    # =========================================================================
    # Internals
    # =========================================================================

    def _run(
        self,
        entity_set: str,
        operation: str,
        action: Callable[[EntityType], Outcome],
        **attributes: Any,
    ) -> Outcome:
        entity_type = EntityType.from_set_name(entity_set)
        label = entity_type.value if entity_type else _UNKNOWN_SET
        span_attributes = {
            "resource.entity_set": entity_set,
            **{f"resource.{k}": v for k, v in attributes.items()},
        }

        start = time.perf_counter()
        with trace_span(f"resource.{operation}", span_attributes) as span:
            if entity_type is None:
                outcome = Outcome.not_found(f"Unknown entity set '{entity_set}'")
            else:
                try:
                    outcome = action(entity_type)
                except StoreCorruptionError:
                    self._logger.critical(
                        "store_corrupted", entity_set=entity_set, operation=operation, exc_info=True
                    )
                    raise
            span.set_attribute("resource.outcome", outcome.kind.value)
        elapsed = time.perf_counter() - start

        self._metrics.operations_total.labels(
            entity_set=label, operation=operation, outcome=outcome.kind.value
        ).inc()
        self._metrics.operation_latency_seconds.labels(
            entity_set=label, operation=operation
        ).observe(elapsed)
        if outcome.success and operation not in ("list", "get"):
            self._refresh_store_gauge()

        log = self._logger.bind(
            entity_set=entity_set,
            operation=operation,
            outcome=outcome.kind.value,
            duration_ms=round(elapsed * 1000, 3),
            **attributes,
        )
        if outcome.success:
            log.info("resource_operation")
        else:
            log.info("resource_operation_rejected", reason=outcome.message)
        return outcome

    def _as_view(self, entity_type: EntityType, outcome: Outcome) -> Outcome:
        if not outcome.success or outcome.value is None:
            return outcome
        view = EntityView(entity=outcome.value, schema=SCHEMAS[entity_type.value])
        return Outcome(outcome.kind, view, outcome.message)

    def _refresh_store_gauge(self) -> None:
        for name, count in self._store.counts().items():
            self._metrics.store_entities.labels(entity_set=name).set(count)
