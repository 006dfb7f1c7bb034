"""MCP tools over the table service.

The tools mirror the read side of the REST surface so AI assistants can
browse the exposed tables. Writes stay on the REST surface only.
"""

import asyncio
from typing import Any, Callable

from fastmcp.exceptions import ToolError

from ..errors import ApiError
from ..logging_utils import new_request_id
from ..service import TableService


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    try:
        return await asyncio.to_thread(func, *args)
    except ApiError as exc:
        raise ToolError(f"{exc.status_code}: {exc.message}") from exc


def register_tools(mcp_server: Any, service: TableService) -> None:
    """Register the table tools with ``mcp_server``.

    Args:
        mcp_server: The FastMCP server instance to register tools with
        service: TableService shared with the REST routes
    """

    @mcp_server.tool()
    async def list_tables(request_id: str | None = None) -> dict[str, Any]:
        """List the schema/table pairs exposed by this API.

        Returns:
            dict: ``tables`` with schema, name and fullName entries, and ``totalCount``
        """
        return await _call(service.list_tables, new_request_id(request_id))

    @mcp_server.tool()
    async def describe_table(
        schema: str, table: str, request_id: str | None = None
    ) -> dict[str, Any]:
        """Describe the columns of an exposed table.

        Args:
            schema: The schema name
            table: The table name
            request_id: Optional request ID for tracing

        Returns:
            dict: Column name, type, nullability and primary-key flags
        """
        return await _call(service.table_schema, schema, table, new_request_id(request_id))

    @mcp_server.tool()
    async def list_rows(
        schema: str,
        table: str,
        page: int = 1,
        page_size: int | None = None,
        search: str | None = None,
        sort_by: str | None = None,
        sort_descending: bool = False,
        filters: list[str] | None = None,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """Read one page of rows from an exposed table.

        Args:
            schema: The schema name
            table: The table name
            page: 1-based page number
            page_size: Rows per page; values above the server cap are clamped
            search: Text matched against the table's text columns
            sort_by: Column to order by
            sort_descending: Reverse the sort order
            filters: Expressions of the form ``field:operator:value`` where the
                operator is one of eq, ne, gt, gte, lt, lte, like, in
            request_id: Optional request ID for tracing

        Returns:
            dict: Paginated envelope with data, totalCount, page, pageSize,
                totalPages, hasPrevious and hasNext
        """
        rid = new_request_id(request_id)
        try:
            intent = service.build_intent(
                page=page,
                page_size=page_size,
                search=search,
                sort_by=sort_by,
                sort_descending=sort_descending,
                filters=filters or (),
            )
        except ApiError as exc:
            raise ToolError(f"{exc.status_code}: {exc.message}") from exc
        result = await _call(service.list_rows, schema, table, intent, rid)
        return result.to_dict()

    @mcp_server.tool()
    async def get_row(
        schema: str, table: str, id: str, request_id: str | None = None
    ) -> dict[str, Any]:
        """Fetch a single row by primary key.

        Args:
            schema: The schema name
            table: The table name
            id: Primary key value
            request_id: Optional request ID for tracing

        Returns:
            dict: The row
        """
        return await _call(service.get_row, schema, table, id, new_request_id(request_id))

    @mcp_server.tool()
    async def refresh_catalog(request_id: str | None = None) -> dict[str, Any]:
        """Re-run schema discovery and return the refreshed table list.

        Use this after tables were created or dropped in the database.
        """
        return await _call(service.refresh_tables, new_request_id(request_id))
