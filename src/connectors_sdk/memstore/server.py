"""REST server exposing a memstore connector.

Endpoints:
    GET    /objects/{object}              → read a page of records
    POST   /objects/{object}              → create a record
    GET    /objects/{object}/{id}         → get one record
    PATCH  /objects/{object}/{id}         → update a record
    DELETE /objects/{object}/{id}         → delete a record
    GET    /metadata                      → object metadata

Control-plane endpoints:
    GET  /_memstore/health
    POST /_memstore/reset
    POST /_memstore/seed
    GET  /_memstore/info

Run with the schemas file named by ``CONNECTORS_MEMSTORE_SCHEMAS``::

    CONNECTORS_MEMSTORE_SCHEMAS=schemas.yaml python -m connectors_sdk.memstore.server
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from connectors_sdk.config import Settings
from connectors_sdk.errors import ConnectorError, MissingParameterError, NextPageInvalidError
from connectors_sdk.memstore.connector import MemstoreConnector
from connectors_sdk.memstore.errors import (
    InvalidForeignKeyError,
    RecordNotFoundError,
    SchemaNotFoundError,
    ValidationFailedError,
)
from connectors_sdk.memstore.schema import SchemaRegistry
from connectors_sdk.models import DeleteParams, ReadParams, WriteParams

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _split(value: Optional[str]) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def _status_for(exc: ConnectorError) -> int:
    if isinstance(exc, (RecordNotFoundError, SchemaNotFoundError)):
        return 404
    if isinstance(exc, (ValidationFailedError, InvalidForeignKeyError)):
        return 422
    if isinstance(exc, (MissingParameterError, NextPageInvalidError)):
        return 400
    return 500


def _error_body(exc: ConnectorError) -> dict[str, Any]:
    body: dict[str, Any] = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, ValidationFailedError):
        body["errors"] = exc.errors
    return body


# =============================================================================
# App
# =============================================================================

def create_app(connector: MemstoreConnector) -> FastAPI:
    app = FastAPI(
        title="Memstore",
        description="In-memory schema-validated mock provider",
        version="1.0.0",
    )
    app.state.connector = connector

    @app.exception_handler(ConnectorError)
    async def connector_error(_request: Request, exc: ConnectorError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error("Memstore request failed: %s", exc)
        return JSONResponse(status_code=status, content=_error_body(exc))

    # -------------------------------------------------------------------------
    # Control plane
    # -------------------------------------------------------------------------

    @app.get("/_memstore/health")
    async def health():
        return {"status": "healthy"}

    @app.post("/_memstore/reset")
    async def reset():
        connector.reset()
        return {"status": "ok"}

    @app.post("/_memstore/seed")
    async def seed(request: Request):
        """Seed objects.  Values are a record count to generate, or a list of records."""
        body = await request.json()
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail={"error": "invalid_body", "expected": "object"})
        seeded: dict[str, int] = {}
        for object_name, spec in body.items():
            if isinstance(spec, int):
                results = await connector.seed(object_name, spec)
            elif isinstance(spec, list):
                results = [
                    await connector.write(WriteParams(object_name, record_data=record)) for record in spec
                ]
            else:
                raise HTTPException(status_code=400, detail={"error": "invalid_seed", "object": object_name})
            seeded[object_name] = len(results)
        return {"status": "ok", "seeded": seeded}

    @app.get("/_memstore/info")
    async def info():
        return {
            "name": "memstore",
            "version": "1.0",
            "objects": {name: connector.storage.count(name) for name in connector.schemas.names()},
            "subscriptions": len(connector.storage.observers),
        }

    # -------------------------------------------------------------------------
    # Metadata
    # -------------------------------------------------------------------------

    @app.get("/metadata")
    async def metadata(objects: Optional[str] = Query(default=None)):
        names = _split(objects) or connector.schemas.names()
        result = await connector.list_object_metadata(names)
        return {
            "result": {name: m.to_dict() for name, m in result.result.items()},
            "errors": {name: str(err) for name, err in result.errors.items()},
        }

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    @app.get("/objects/{object_name}")
    async def read(
        object_name: str,
        fields: Optional[str] = Query(default=None),
        since: Optional[datetime] = Query(default=None),
        until: Optional[datetime] = Query(default=None),
        next_page: str = Query(default=""),
        page_size: int = Query(default=0, ge=0),
        associations: Optional[str] = Query(default=None),
    ):
        params = ReadParams(
            object_name,
            fields=_split(fields),
            since=since,
            until=until,
            next_page=next_page,
            page_size=page_size,
            associated_objects=_split(associations),
        )
        result = await connector.read(params)
        return result.to_dict()

    @app.post("/objects/{object_name}", status_code=201)
    async def create(object_name: str, request: Request):
        body = await request.json()
        result = await connector.write(WriteParams(object_name, record_data=body))
        return result.to_dict()

    @app.get("/objects/{object_name}/{record_id}")
    async def get_record(object_name: str, record_id: str, associations: Optional[str] = Query(default=None)):
        rows = await connector.get_records_by_ids(object_name, [record_id], associated_objects=_split(associations))
        if not rows:
            raise HTTPException(status_code=404, detail={
                "error": "not_found",
                "object": object_name,
                "record_id": record_id,
            })
        return rows[0].to_dict()

    @app.patch("/objects/{object_name}/{record_id}")
    async def update(object_name: str, record_id: str, request: Request):
        body = await request.json()
        result = await connector.write(WriteParams(object_name, record_id=record_id, record_data=body))
        return result.to_dict()

    @app.delete("/objects/{object_name}/{record_id}")
    async def delete(object_name: str, record_id: str):
        result = await connector.delete(DeleteParams(object_name, record_id=record_id))
        return result.to_dict()

    return app


def app_from_settings(settings: Settings) -> FastAPI:
    if not settings.memstore_schemas:
        raise SystemExit("CONNECTORS_MEMSTORE_SCHEMAS is not set")
    connector = MemstoreConnector(SchemaRegistry.load(settings.memstore_schemas))
    return create_app(connector)


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app_from_settings(settings), host="0.0.0.0", port=settings.port, log_level="warning")
