"""Response envelopes shared by the HTTP routes and the MCP tools."""

from __future__ import annotations

import base64
import math
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from fastapi.encoders import jsonable_encoder

from .db.models import TableRef, TableSchema

DELETED_MESSAGE = "Record deleted successfully"

_ENCODERS = {
    bytes: lambda value: base64.b64encode(value).decode("ascii"),
    memoryview: lambda value: base64.b64encode(value.tobytes()).decode("ascii"),
}


def entity(row: Mapping[str, Any]) -> dict[str, Any]:
    """JSON-safe copy of one row; binary columns become base64 strings."""
    return jsonable_encoder(dict(row), custom_encoder=_ENCODERS)


@dataclass(frozen=True)
class PaginatedResult:
    data: list[dict[str, Any]]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": [entity(row) for row in self.data],
            "totalCount": self.total_count,
            "page": self.page,
            "pageSize": self.page_size,
            "totalPages": self.total_pages,
            "hasPrevious": self.has_previous,
            "hasNext": self.has_next,
        }


def table_list(tables: Iterable[TableRef]) -> dict[str, Any]:
    items = [
        {"schema": ref.schema, "name": ref.table, "fullName": ref.full_name}
        for ref in tables
    ]
    return {"tables": items, "totalCount": len(items)}


def table_columns(schema: TableSchema) -> dict[str, Any]:
    return {
        "schema": schema.table.schema,
        "table": schema.table.table,
        "columns": [column.to_dict() for column in schema.columns],
    }


def deleted(key: Any) -> dict[str, Any]:
    return {"message": DELETED_MESSAGE, "id": key}


def error_body(status_code: int, message: str, error: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"statusCode": status_code, "message": message}
    if error:
        body["error"] = error
    return body
