"""REST routes for the generic table API.

Handlers only translate HTTP into service calls. Blocking database work runs
in a worker thread so the event loop never waits on the driver.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Body, Depends, Query, Request
from fastapi.responses import JSONResponse

from ..auth import require_identity
from ..service import TableService

health_router = APIRouter(prefix="/api", tags=["health"])
router = APIRouter(prefix="/api", tags=["tables"], dependencies=[Depends(require_identity)])


def get_service(request: Request) -> TableService:
    return request.app.state.service


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


@health_router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/tables")
async def list_tables(
    request: Request, service: TableService = Depends(get_service)
) -> dict[str, Any]:
    """List every exposed schema/table pair."""
    return await asyncio.to_thread(service.list_tables, _request_id(request))


@router.get("/tables/{schema}/{table}/schema")
async def table_schema(
    request: Request, schema: str, table: str, service: TableService = Depends(get_service)
) -> dict[str, Any]:
    """Column metadata for one exposed table."""
    return await asyncio.to_thread(service.table_schema, schema, table, _request_id(request))


@router.get("/{schema}/{table}")
async def list_rows(
    request: Request,
    schema: str,
    table: str,
    page: int | None = Query(None),
    page_size: int | None = Query(None, alias="pageSize"),
    search: str | None = Query(None),
    sort_by: str | None = Query(None, alias="sortBy"),
    sort_descending: bool = Query(False, alias="sortDescending"),
    filters: list[str] = Query([], alias="filter"),
    service: TableService = Depends(get_service),
) -> dict[str, Any]:
    """One page of rows. Filters use the ``field:operator:value`` form and may repeat."""
    intent = service.build_intent(
        page=page,
        page_size=page_size,
        search=search,
        sort_by=sort_by,
        sort_descending=sort_descending,
        filters=filters,
    )
    result = await asyncio.to_thread(service.list_rows, schema, table, intent, _request_id(request))
    return result.to_dict()


@router.get("/{schema}/{table}/{id}")
async def get_row(
    request: Request,
    schema: str,
    table: str,
    id: str,
    service: TableService = Depends(get_service),
) -> dict[str, Any]:
    return await asyncio.to_thread(service.get_row, schema, table, id, _request_id(request))


@router.post("/{schema}/{table}", status_code=201)
async def create_row(
    request: Request,
    schema: str,
    table: str,
    payload: dict[str, Any] = Body(...),
    service: TableService = Depends(get_service),
) -> JSONResponse:
    created, key = await asyncio.to_thread(
        service.create_row, schema, table, payload, _request_id(request)
    )
    headers = None
    if key is not None:
        headers = {"Location": f"/api/{schema}/{table}/{quote(str(key), safe='')}"}
    return JSONResponse(status_code=201, content=created, headers=headers)


@router.put("/{schema}/{table}/{id}")
async def update_row(
    request: Request,
    schema: str,
    table: str,
    id: str,
    payload: dict[str, Any] = Body(...),
    service: TableService = Depends(get_service),
) -> dict[str, Any]:
    return await asyncio.to_thread(
        service.update_row, schema, table, id, payload, _request_id(request)
    )


@router.delete("/{schema}/{table}/{id}")
async def delete_row(
    request: Request,
    schema: str,
    table: str,
    id: str,
    service: TableService = Depends(get_service),
) -> dict[str, Any]:
    return await asyncio.to_thread(service.delete_row, schema, table, id, _request_id(request))
