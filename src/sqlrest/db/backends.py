"""Backing-store adapters.

A backend owns three things the rest of the engine must not hard-code:
how to open a connection, how to quote an identifier, and where the store
keeps its metadata (tables, columns, primary keys).
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

import databricks.sql
from databricks.sql.exc import Error as DatabricksError

from ..config import AppConfig, DatabaseConfig
from ..errors import ConfigError
from ..guardrails import sanitize_identifier
from .models import ColumnInfo, Statement, TableRef

if TYPE_CHECKING:
    from ..auth import OAuthTokenProvider
    from .client import Session


class Backend:
    name = "generic"
    quote_char = '"'
    text_cast = "TEXT"
    like_operator = "LIKE"
    # Backslash escapes wildcards in LIKE patterns.
    like_escape = " ESCAPE '\\'"
    # Implicit row identifier usable as a key when a table declares none.
    rowid_column: str | None = None
    supports_last_insert_id = False
    system_schemas: frozenset[str] = frozenset()
    driver_errors: tuple[type[BaseException], ...] = ()

    def quote(self, identifier: str) -> str:
        q = self.quote_char
        return f"{q}{identifier.replace(q, q * 2)}{q}"

    def qualified(self, table: TableRef) -> str:
        return f"{self.quote(table.schema)}.{self.quote(table.table)}"

    def connect(self) -> Any:
        raise NotImplementedError

    def discover_tables(self, session: Session) -> list[tuple[str, str]]:
        raise NotImplementedError

    def fetch_columns(self, session: Session, table: TableRef) -> list[ColumnInfo]:
        raise NotImplementedError

    def affected_rows(self, cursor: Any, rows: list[dict[str, Any]]) -> int:
        return cursor.rowcount

    def last_insert_id(self, cursor: Any) -> Any:
        return None


class SQLiteBackend(Backend):
    """SQLite file database; extra files are attached as additional schemas."""

    name = "sqlite"
    rowid_column = "rowid"
    supports_last_insert_id = True
    system_schemas = frozenset({"temp"})
    driver_errors = (sqlite3.Error,)

    def __init__(
        self,
        path: str,
        attach: dict[str, str] | None = None,
        timeout_seconds: int = -1,
    ) -> None:
        self._path = path
        self._attach = {
            sanitize_identifier(alias, "schema alias"): file
            for alias, file in (attach or {}).items()
        }
        self._timeout = float(timeout_seconds) if timeout_seconds != -1 else 5.0

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        connection = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        try:
            for alias, file in self._attach.items():
                connection.execute(f"ATTACH DATABASE ? AS {self.quote(alias)}", (file,))
            yield connection
            connection.commit()
        except BaseException:
            connection.rollback()
            raise
        finally:
            connection.close()

    def discover_tables(self, session: Session) -> list[tuple[str, str]]:
        databases = session.run(Statement("PRAGMA database_list")).rows
        pairs: list[tuple[str, str]] = []
        for database in databases:
            schema = database["name"]
            if schema.lower() in self.system_schemas:
                continue
            tables = session.run(
                Statement(
                    f"SELECT name FROM {self.quote(schema)}.sqlite_master "
                    "WHERE type = 'table' ORDER BY name"
                )
            ).rows
            pairs.extend((schema, row["name"]) for row in tables)
        return pairs

    def fetch_columns(self, session: Session, table: TableRef) -> list[ColumnInfo]:
        rows = session.run(
            Statement(f"PRAGMA {self.quote(table.schema)}.table_info({self.quote(table.table)})")
        ).rows
        key_count = sum(1 for row in rows if row["pk"])
        columns = []
        for row in rows:
            data_type = row["type"] or ""
            # A lone INTEGER PRIMARY KEY aliases the rowid and is assigned by the store.
            is_identity = bool(row["pk"]) and key_count == 1 and data_type.upper() == "INTEGER"
            columns.append(
                ColumnInfo(
                    name=row["name"],
                    data_type=data_type,
                    nullable=not row["notnull"],
                    primary_key=bool(row["pk"]),
                    has_default=row["dflt_value"] is not None,
                    is_identity=is_identity,
                    ordinal=row["cid"] + 1,
                )
            )
        return columns

    def last_insert_id(self, cursor: Any) -> Any:
        return cursor.lastrowid


class DatabricksBackend(Backend):
    """Databricks SQL warehouse; schemas live inside one Unity Catalog catalog."""

    name = "databricks"
    quote_char = "`"
    text_cast = "STRING"
    # Case-insensitive match to line up with SQLite LIKE.
    like_operator = "ILIKE"
    # Backslash is already the default escape, and string literals treat it specially.
    like_escape = ""
    driver_errors = (DatabricksError,)

    def __init__(
        self,
        database: DatabaseConfig,
        token_provider: OAuthTokenProvider,
        timeout_seconds: int = -1,
    ) -> None:
        self._database = database
        self._catalog = sanitize_identifier(database.catalog or "", "catalog")
        self._token_provider = token_provider
        self._session_configuration = {"ansi_mode": "true"}
        if timeout_seconds != -1:
            self._session_configuration["statement_timeout"] = str(timeout_seconds)

    def qualified(self, table: TableRef) -> str:
        return f"{self.quote(self._catalog)}.{super().qualified(table)}"

    @contextmanager
    def connect(self) -> Iterator[Any]:
        access_token = self._token_provider.get_token()
        with databricks.sql.connect(
            server_hostname=self._database.host,
            http_path=self._database.http_path,
            access_token=access_token,
            session_configuration=self._session_configuration,
        ) as connection:
            yield connection

    def discover_tables(self, session: Session) -> list[tuple[str, str]]:
        sql = (
            "SELECT table_schema, table_name "
            "FROM system.information_schema.tables "
            "WHERE table_catalog = ? AND table_type <> 'VIEW' "
            "ORDER BY table_schema, table_name"
        )
        rows = session.run(Statement(sql, (self._catalog,))).rows
        return [(row["table_schema"], row["table_name"]) for row in rows]

    def fetch_columns(self, session: Session, table: TableRef) -> list[ColumnInfo]:
        columns_sql = (
            "SELECT column_name, data_type, is_nullable, column_default, is_identity, "
            "ordinal_position "
            "FROM system.information_schema.columns "
            "WHERE table_catalog = ? AND table_schema = ? AND table_name = ? "
            "ORDER BY ordinal_position"
        )
        pk_sql = (
            "SELECT kcu.column_name "
            "FROM system.information_schema.table_constraints tc "
            "JOIN system.information_schema.key_column_usage kcu "
            "ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema "
            "WHERE tc.table_catalog = ? AND tc.table_schema = ? AND tc.table_name = ? "
            "AND tc.constraint_type = 'PRIMARY KEY' "
            "ORDER BY kcu.ordinal_position"
        )
        params = (self._catalog, table.schema, table.table)
        rows = session.run(Statement(columns_sql, params)).rows
        primary_keys = {row["column_name"] for row in session.run(Statement(pk_sql, params)).rows}
        return [
            ColumnInfo(
                name=row["column_name"],
                data_type=row["data_type"] or "",
                nullable=str(row.get("is_nullable", "YES")).upper() == "YES",
                primary_key=row["column_name"] in primary_keys,
                has_default=row.get("column_default") is not None,
                is_identity=str(row.get("is_identity", "NO")).upper() == "YES",
                ordinal=int(row.get("ordinal_position") or 0),
            )
            for row in rows
        ]

    def affected_rows(self, cursor: Any, rows: list[dict[str, Any]]) -> int:
        # DML reports its count as a result row rather than through rowcount.
        if rows and "num_affected_rows" in rows[0]:
            return int(rows[0]["num_affected_rows"])
        return cursor.rowcount


def build_backend(config: AppConfig) -> Backend:
    timeout = config.limits.query_timeout_seconds
    if config.database.backend == "databricks":
        from ..auth import OAuthTokenProvider

        if config.auth.oauth is None:
            raise ConfigError("Databricks backend requires OAuth settings")
        return DatabricksBackend(config.database, OAuthTokenProvider(config.auth.oauth), timeout)
    return SQLiteBackend(config.database.path or "", config.database.attach, timeout)
