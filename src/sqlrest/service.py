"""Catalog-gated execution of the generic table operations.

Every operation resolves ``(schema, table)`` against the current catalog
snapshot and the access policy before any statement is built. Unknown and
hidden tables both answer :class:`NotFoundError`.

Listing runs COUNT and the page query one after the other on the same
connection, without a snapshot transaction. Under concurrent writes the
``totalCount`` may disagree with the page contents; with no concurrent
writes they always agree.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .catalog import CatalogSnapshot, SchemaCatalog
from .config import PAGE_SIZE_CAP, LimitsConfig
from .db.client import SQLClient
from .db.models import Filter, Operation, QueryIntent, TableSchema
from .errors import ExecutionError, NotFoundError, ValidationError
from .guardrails import clamp_page_size, parse_filter, validate_page
from .logging_utils import log_extra
from .policy import AccessPolicy, exposed_set, is_exposed
from .query_builder import QueryBuilder
from .responses import PaginatedResult, deleted, entity, table_columns, table_list

RECORD_NOT_FOUND = "Record not found"


class TableService:
    def __init__(
        self,
        client: SQLClient,
        catalog: SchemaCatalog,
        policy: AccessPolicy,
        limits: LimitsConfig,
    ) -> None:
        self._client = client
        self._catalog = catalog
        self._policy = policy
        self._limits = limits
        self._builder = QueryBuilder(client.backend)
        self._log = logging.getLogger(__name__)

    @property
    def catalog(self) -> SchemaCatalog:
        return self._catalog

    @property
    def policy(self) -> AccessPolicy:
        return self._policy

    def build_intent(
        self,
        page: int | None = None,
        page_size: int | None = None,
        search: str | None = None,
        sort_by: str | None = None,
        sort_descending: bool = False,
        filters: Iterable[str | Filter] = (),
    ) -> QueryIntent:
        """
        Validate raw listing parameters into a :class:`QueryIntent`.

        ``page`` below 1 is rejected; ``page_size`` above the configured cap
        is clamped. Filters may be ``field:operator:value`` strings or
        :class:`Filter` objects.

        Raises:
        ValidationError: If page, page size or a filter expression is invalid
        """
        parsed = tuple(
            item if isinstance(item, Filter) else parse_filter(item) for item in filters
        )
        return QueryIntent(
            operation=Operation.SELECT,
            page=validate_page(page),
            page_size=clamp_page_size(
                page_size,
                self._limits.default_page_size,
                min(self._limits.max_page_size, PAGE_SIZE_CAP),
            ),
            search=search.strip() if search and search.strip() else None,
            sort_column=sort_by or None,
            sort_descending=sort_descending,
            filters=parsed,
        )

    def exposed_tables(self, request_id: str | None = None) -> CatalogSnapshot:
        return exposed_set(self._catalog.discover(request_id), self._policy)

    def resolve(self, schema: str, table: str, request_id: str | None = None) -> TableSchema:
        snapshot = self._catalog.discover(request_id)
        ref = snapshot.lookup(schema, table)
        if ref is None or not is_exposed(ref.schema, ref.table, snapshot, self._policy):
            raise NotFoundError(f"Table {schema}.{table} not found")
        table_schema = self._catalog.columns(ref, request_id)
        if not table_schema.columns:
            # Dropped after discovery.
            raise NotFoundError(f"Table {schema}.{table} not found")
        return table_schema

    def list_tables(self, request_id: str | None = None) -> dict[str, Any]:
        snapshot = self.exposed_tables(request_id)
        entries = sorted(snapshot.entries(), key=lambda ref: (ref.schema, ref.table))
        return table_list(entries)

    def refresh_tables(self, request_id: str | None = None) -> dict[str, Any]:
        self._catalog.refresh(request_id)
        return self.list_tables(request_id)

    def table_schema(self, schema: str, table: str, request_id: str | None = None) -> dict[str, Any]:
        return table_columns(self.resolve(schema, table, request_id))

    def list_rows(
        self, schema: str, table: str, intent: QueryIntent, request_id: str | None = None
    ) -> PaginatedResult:
        table_schema = self.resolve(schema, table, request_id)
        count_statement = self._builder.count(table_schema, intent)
        page_statement = self._builder.statement(table_schema, intent)

        with self._client.session(request_id) as session:
            total = session.run(count_statement).scalar() or 0
            rows = session.run(page_statement).rows

        return PaginatedResult(
            data=rows, total_count=int(total), page=intent.page, page_size=intent.page_size
        )

    def get_row(
        self, schema: str, table: str, key: Any, request_id: str | None = None
    ) -> dict[str, Any]:
        table_schema = self.resolve(schema, table, request_id)
        intent = QueryIntent(operation=Operation.SELECT, id=key)
        rows = self._client.execute(self._builder.statement(table_schema, intent), request_id).rows
        if not rows:
            raise NotFoundError(RECORD_NOT_FOUND)
        return entity(rows[0])

    def create_row(
        self,
        schema: str,
        table: str,
        payload: Mapping[str, Any],
        request_id: str | None = None,
    ) -> tuple[dict[str, Any], Any]:
        """
        Insert a row and return the stored row with the key that addresses it.

        The row is read back by every key column when the payload supplies
        them all, otherwise by the rowid the insert produced. The returned key
        is ``None`` when the table cannot be addressed by id.
        """
        table_schema = self.resolve(schema, table, request_id)
        intent = QueryIntent(operation=Operation.INSERT, payload=payload)
        statement = self._builder.statement(table_schema, intent)
        backend = self._client.backend
        key_values = self._payload_key_values(table_schema, payload)
        if key_values is None and not backend.supports_last_insert_id:
            raise ValidationError("Primary key value is required to create a record")

        with self._client.session(request_id) as session:
            result = session.run(statement)
            if key_values is not None:
                reread = self._builder.get_by_key_values(table_schema, key_values)
            else:
                reread = self._builder.get_by_id(table_schema, result.lastrowid, by_rowid=True)
            rows = session.run(reread).rows

        if not rows:
            raise ExecutionError(
                "Created record could not be read back",
                detail="inserted row was not visible to the follow-up lookup",
            )
        created = entity(rows[0])
        primary_key = table_schema.primary_key
        if primary_key is not None:
            key = created.get(primary_key.name)
        elif backend.rowid_column:
            key = result.lastrowid
        else:
            key = None
        self._log.info(
            "Record created",
            extra=log_extra(request_id=request_id, table=table_schema.table.full_name),
        )
        return created, key

    def update_row(
        self,
        schema: str,
        table: str,
        key: Any,
        payload: Mapping[str, Any],
        request_id: str | None = None,
    ) -> dict[str, Any]:
        table_schema = self.resolve(schema, table, request_id)
        intent = QueryIntent(operation=Operation.UPDATE, id=key, payload=payload)
        statement = self._builder.statement(table_schema, intent)
        new_key = self._payload_key(table_schema, payload)

        with self._client.session(request_id) as session:
            result = session.run(statement)
            if result.rowcount == 0:
                raise NotFoundError(RECORD_NOT_FOUND)
            reread = self._builder.get_by_id(table_schema, key if new_key is None else new_key)
            rows = session.run(reread).rows

        if not rows:
            raise NotFoundError(RECORD_NOT_FOUND)
        self._log.info(
            "Record updated",
            extra=log_extra(request_id=request_id, table=table_schema.table.full_name),
        )
        return entity(rows[0])

    def delete_row(
        self, schema: str, table: str, key: Any, request_id: str | None = None
    ) -> dict[str, Any]:
        table_schema = self.resolve(schema, table, request_id)
        intent = QueryIntent(operation=Operation.DELETE, id=key)
        result = self._client.execute(self._builder.statement(table_schema, intent), request_id)
        if result.rowcount == 0:
            raise NotFoundError(RECORD_NOT_FOUND)
        self._log.info(
            "Record deleted",
            extra=log_extra(request_id=request_id, table=table_schema.table.full_name),
        )
        return deleted(key)

    @staticmethod
    def _payload_key(table_schema: TableSchema, payload: Mapping[str, Any]) -> Any:
        primary_key = table_schema.primary_key
        if primary_key is None:
            return None
        return (TableService._payload_key_values(table_schema, payload) or {}).get(
            primary_key.name
        )

    @staticmethod
    def _payload_key_values(
        table_schema: TableSchema, payload: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        """Non-null payload values for every key column, or None if any is missing."""
        keys = table_schema.key_columns
        if not keys:
            return None
        supplied = {name.lower(): value for name, value in payload.items()}
        values = {column.name: supplied.get(column.name.lower()) for column in keys}
        if any(value is None for value in values.values()):
            return None
        return values
