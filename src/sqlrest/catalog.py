"""Schema discovery and the cached catalog snapshot.

Staleness: a snapshot lives until ``refresh()`` or ``invalidate()`` is called.
Tables created after discovery answer 404 until then; tables dropped after
discovery fail at execution time.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable, Iterator, Mapping

from .db.client import SQLClient
from .db.models import TableRef, TableSchema
from .errors import DiscoveryError, ExecutionError
from .logging_utils import log_extra

SYSTEM_SCHEMAS = frozenset({"sys", "information_schema", "pg_catalog", "temp"})
SYSTEM_TABLE_PREFIXES = ("sqlite_", "__")


class CatalogSnapshot:
    """Immutable schema -> tables mapping in discovery order."""

    def __init__(self, schemas: Mapping[str, Iterable[str]] | None = None) -> None:
        self._schemas: dict[str, tuple[str, ...]] = {
            schema: tuple(tables) for schema, tables in (schemas or {}).items()
        }
        self._index: dict[tuple[str, str], TableRef] = {}
        for schema, tables in self._schemas.items():
            for table in tables:
                self._index.setdefault((schema.lower(), table.lower()), TableRef(schema, table))

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> CatalogSnapshot:
        schemas: dict[str, list[str]] = {}
        for schema, table in pairs:
            tables = schemas.setdefault(schema, [])
            if table not in tables:
                tables.append(table)
        return cls(schemas)

    @property
    def schemas(self) -> Mapping[str, tuple[str, ...]]:
        return dict(self._schemas)

    def lookup(self, schema: str, table: str) -> TableRef | None:
        exact = TableRef(schema, table)
        if table in self._schemas.get(schema, ()):
            return exact
        return self._index.get((schema.lower(), table.lower()))

    def entries(self) -> Iterator[TableRef]:
        for schema, tables in self._schemas.items():
            for table in tables:
                yield TableRef(schema, table)

    def __len__(self) -> int:
        return sum(len(tables) for tables in self._schemas.values())

    def __contains__(self, item: object) -> bool:
        return isinstance(item, TableRef) and item.table in self._schemas.get(item.schema, ())


def is_system_table(schema: str, table: str, extra_schemas: Iterable[str] = ()) -> bool:
    lowered = schema.lower()
    if lowered in SYSTEM_SCHEMAS or lowered in {s.lower() for s in extra_schemas}:
        return True
    return table.lower().startswith(SYSTEM_TABLE_PREFIXES)


class SchemaCatalog:
    """Owns the discovered catalog and per-table column metadata.

    Reads of an existing snapshot never block. Discovery, refresh and
    invalidation serialize on one lock, so concurrent callers that find no
    snapshot share a single metadata query.
    """

    def __init__(self, client: SQLClient) -> None:
        self._client = client
        self._log = logging.getLogger(__name__)
        self._lock = Lock()
        self._snapshot: CatalogSnapshot | None = None
        self._generation = 0
        self._columns: dict[TableRef, TableSchema] = {}

    @property
    def cached(self) -> CatalogSnapshot | None:
        return self._snapshot

    def discover(self, request_id: str | None = None) -> CatalogSnapshot:
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot
        with self._lock:
            if self._snapshot is None:
                self._snapshot = self._query(request_id)
                self._generation += 1
            return self._snapshot

    def refresh(self, request_id: str | None = None) -> CatalogSnapshot:
        seen = self._generation
        with self._lock:
            # Another caller refreshed while we waited; share its result.
            if self._generation != seen and self._snapshot is not None:
                return self._snapshot
            snapshot = self._query(request_id)
            self._columns = {}
            self._snapshot = snapshot
            self._generation += 1
            return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None
            self._columns = {}
            self._generation += 1

    def columns(self, table: TableRef, request_id: str | None = None) -> TableSchema:
        cache = self._columns
        cached = cache.get(table)
        if cached is not None:
            return cached
        try:
            with self._client.session(request_id) as session:
                columns = self._client.backend.fetch_columns(session, table)
        except ExecutionError as exc:
            raise DiscoveryError(
                "Failed to read table metadata", detail=exc.detail
            ) from exc
        schema = TableSchema(
            table=table, columns=tuple(sorted(columns, key=lambda column: column.ordinal))
        )
        cache[table] = schema
        return schema

    def _query(self, request_id: str | None) -> CatalogSnapshot:
        backend = self._client.backend
        try:
            with self._client.session(request_id) as session:
                pairs = backend.discover_tables(session)
        except ExecutionError as exc:
            self._log.error(
                "Schema discovery failed",
                extra=log_extra(request_id=request_id, backend=backend.name),
            )
            raise DiscoveryError("Schema discovery failed", detail=exc.detail) from exc

        snapshot = CatalogSnapshot.from_pairs(
            (schema, table)
            for schema, table in pairs
            if not is_system_table(schema, table, backend.system_schemas)
        )
        self._log.info(
            "Schema discovery complete",
            extra=log_extra(
                request_id=request_id,
                backend=backend.name,
                schema_count=len(snapshot.schemas),
                table_count=len(snapshot),
            ),
        )
        return snapshot
