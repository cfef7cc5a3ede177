"""REST API adapter for the resource server.

This module maps OData-flavoured HTTP routes onto the resource facade
and serializes its outcomes. It holds no business rules: every decision
is made by ``ResourceService``.

Endpoints:
    GET    /{set}                                  - List (query options)
    POST   /{set}                                  - Create
    GET    /{set}({key})                           - Get by key ($expand, $select)
    PUT    /{set}({key})                           - Replace
    PATCH  /{set}({key})                           - Merge-patch
    DELETE /{set}({key})                           - Delete (always 200)
    PUT    /{set}({key})/{nav}/$ref                - Link, body {"@odata.id": ...}
    POST   /{set}({key})/{nav}({related})/$ref     - Link
    GET    /health                                 - Health check
    GET    /stats                                  - Store statistics

Wire format:
    Decimals are written as JSON strings so that amounts survive clients
    that parse numbers as doubles; timestamps are ISO-8601 with offset.
    Errors are ``{"error": {"code": ..., "message": ...}}``.

Usage:
    from resource_server.adapters.inbound.rest_api import create_app
    from resource_server.application import build_container

    service = build_container().service
    service.seed()
    app = create_app(service)
    # Run with uvicorn: uvicorn app:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from fastapi import Body, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from resource_server import __version__
from resource_server.application import ResourceService, get_container
from resource_server.domain.services import QueryResult
from resource_server.domain.value_objects import Outcome, OutcomeKind
from resource_server.infrastructure.config import Config, get_config
from resource_server.infrastructure.logging import bind_request_context, setup_logging
from resource_server.infrastructure.metrics import setup_metrics
from resource_server.infrastructure.tracing import setup_tracing
from resource_server.ports.inbound import QueryOptions


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")


class StatsResponse(BaseModel):
    """Response model for store statistics."""

    entity_sets: dict[str, int] = Field(default_factory=dict, description="Entities per set")
    relationships: int = Field(0, description="Linked customer/order pairs")
    delete_policy: str = Field(..., description="Customer delete policy")


_STATUS_CODES: dict[OutcomeKind, int] = {
    OutcomeKind.OK: status.HTTP_200_OK,
    OutcomeKind.CREATED: status.HTTP_201_CREATED,
    OutcomeKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    OutcomeKind.CONFLICT: status.HTTP_409_CONFLICT,
    OutcomeKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
}

_ERROR_CODES: dict[OutcomeKind, str] = {
    OutcomeKind.NOT_FOUND: "NotFound",
    OutcomeKind.CONFLICT: "Conflict",
    OutcomeKind.INVALID_INPUT: "InvalidInput",
}


def _encode(content: Any) -> Any:
    return jsonable_encoder(content, custom_encoder={Decimal: str})


def _error_response(kind: OutcomeKind, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=_STATUS_CODES[kind],
        content={"error": {"code": _ERROR_CODES[kind], "message": message}},
    )


def _outcome_response(outcome: Outcome, headers: dict[str, str] | None = None) -> JSONResponse:
    """Convert a facade outcome to an HTTP response."""
    if not outcome.success:
        return _error_response(outcome.kind, outcome.message)

    value = outcome.value
    if isinstance(value, QueryResult):
        body: dict[str, Any] = {}
        if value.count is not None:
            body["@odata.count"] = value.count
        body["value"] = value.records()
        content: Any = body
    elif hasattr(value, "to_record"):
        content = value.to_record()
    else:
        content = value
    return JSONResponse(
        status_code=_STATUS_CODES[outcome.kind],
        content=_encode(content),
        headers=headers,
    )


def create_app(service: ResourceService) -> FastAPI:
    """Create a FastAPI application for the resource server.

    Args:
        service: The resource facade to expose.

    Returns:
        A configured FastAPI application.
    """
    app = FastAPI(
        title="Resource Server API",
        description="Customers and Orders with OData-style queries",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        bind_request_context(request_id=request_id, method=request.method, path=request.url.path)
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        return _error_response(OutcomeKind.INVALID_INPUT, problems)

    # -------------------------------------------------------------------------
    # Service endpoints
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.get("/stats", response_model=StatsResponse, tags=["Stats"])
    def get_stats() -> StatsResponse:
        """Get store statistics."""
        return StatsResponse(**service.stats())

    # -------------------------------------------------------------------------
    # Single entity. Registered before the collection routes, whose
    # entity-set segment would also match "Customers(1)".
    # -------------------------------------------------------------------------

    @app.get("/{entity_set}({key:int})", tags=["Entities"])
    def get_entity(
        entity_set: str,
        key: int,
        expand: str | None = Query(None, alias="$expand"),
        select: str | None = Query(None, alias="$select"),
        filter: str | None = Query(None, alias="$filter"),
        orderby: str | None = Query(None, alias="$orderby"),
        skip: str | None = Query(None, alias="$skip"),
        top: str | None = Query(None, alias="$top"),
        count: str | None = Query(None, alias="$count"),
        apply: str | None = Query(None, alias="$apply"),
    ) -> JSONResponse:
        """Get one entity by key."""
        options = QueryOptions(
            expand=expand,
            select=select,
            filter=filter,
            orderby=orderby,
            skip=skip,
            top=top,
            count=count,
            apply=apply,
        )
        return _outcome_response(service.get_by_key(entity_set, key, options))

    @app.put("/{entity_set}({key:int})", tags=["Entities"])
    def replace_entity(entity_set: str, key: int, payload: Any = Body(None)) -> JSONResponse:
        """Replace every field of an entity."""
        return _outcome_response(service.replace(entity_set, key, payload))

    @app.patch("/{entity_set}({key:int})", tags=["Entities"])
    def patch_entity(entity_set: str, key: int, payload: Any = Body(None)) -> JSONResponse:
        """Change only the supplied fields of an entity."""
        return _outcome_response(service.merge_patch(entity_set, key, payload))

    @app.delete("/{entity_set}({key:int})", tags=["Entities"])
    def delete_entity(entity_set: str, key: int) -> JSONResponse:
        """Delete an entity. Deleting a missing entity also succeeds."""
        outcome = service.delete(entity_set, key)
        if not outcome.success:
            return _outcome_response(outcome)
        return JSONResponse(status_code=status.HTTP_200_OK, content={"deleted": bool(outcome.value)})

    @app.put("/{entity_set}({key:int})/{relationship}/$ref", tags=["References"])
    def put_reference(
        entity_set: str, key: int, relationship: str, payload: Any = Body(None)
    ) -> JSONResponse:
        """Link an entity to the entity named by ``@odata.id``."""
        return _outcome_response(service.link_reference(entity_set, key, relationship, payload))

    @app.post("/{entity_set}({key:int})/{relationship}({related_key:int})/$ref", tags=["References"])
    def post_reference(
        entity_set: str, key: int, relationship: str, related_key: int
    ) -> JSONResponse:
        """Link an entity to a related entity given in the path."""
        return _outcome_response(service.link(entity_set, key, relationship, related_key))

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    @app.get("/{entity_set}", tags=["Collections"])
    def list_entities(
        entity_set: str,
        filter: str | None = Query(None, alias="$filter"),
        orderby: str | None = Query(None, alias="$orderby"),
        skip: str | None = Query(None, alias="$skip"),
        top: str | None = Query(None, alias="$top"),
        expand: str | None = Query(None, alias="$expand"),
        select: str | None = Query(None, alias="$select"),
        count: str | None = Query(None, alias="$count"),
        apply: str | None = Query(None, alias="$apply"),
    ) -> JSONResponse:
        """List entities or aggregate rows."""
        options = QueryOptions(
            filter=filter,
            orderby=orderby,
            skip=skip,
            top=top,
            expand=expand,
            select=select,
            count=count,
            apply=apply,
        )
        return _outcome_response(service.list(entity_set, options))

    @app.post("/{entity_set}", tags=["Collections"])
    def create_entity(entity_set: str, payload: Any = Body(None)) -> JSONResponse:
        """Create an entity with a caller-assigned key."""
        outcome = service.create(entity_set, payload)
        headers = None
        if outcome.kind is OutcomeKind.CREATED:
            headers = {"Location": f"/{entity_set}({outcome.value.entity.id})"}
        return _outcome_response(outcome, headers=headers)

    return app


def run_server(
    service: ResourceService,
    host: str = "0.0.0.0",
    port: int = 8000,
) -> None:
    """Run the REST API server.

    Args:
        service: The resource facade.
        host: Host to bind to.
        port: Port to bind to.
    """
    import uvicorn

    app = create_app(service)
    uvicorn.run(app, host=host, port=port, log_config=None)


def main(config: Config | None = None) -> None:
    """Console entry point: configure, seed and serve."""
    config = config or get_config()
    logger = setup_logging(config.observability.log_level, config.observability.log_format)
    setup_tracing(
        service_name=config.observability.otel_service_name,
        otlp_endpoint=config.observability.otel_endpoint,
    )
    metrics = setup_metrics(config.server.metrics_port) if config.server.metrics_enabled else None

    container = get_container(config, metrics=metrics)
    if config.store.seed_on_startup:
        container.service.seed()

    logger.info("resource_server_starting", host=config.server.host, port=config.server.port)
    run_server(container.service, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
