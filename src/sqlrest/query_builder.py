"""Parameterized statement construction for the generic table operations.

Identifiers only reach SQL text after they are resolved against a
:class:`TableSchema` built from discovery, and are always quoted by the
backend. Every user-supplied value is a bind parameter.

``like`` filters and search match their term literally: ``%``, ``_`` and the
escape character itself are escaped before the term is wrapped in wildcards.
"""

from __future__ import annotations

from typing import Any, Mapping

from .db.backends import Backend
from .db.models import ColumnInfo, Filter, Operation, QueryIntent, Statement, TableSchema
from .errors import ValidationError
from .guardrails import ensure_scalar, normalize_operator, split_in_values

_COMPARISONS = {
    "eq": "=",
    "ne": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}

LIKE_ESCAPE = "\\"


def like_pattern(term: Any) -> str:
    """Wrap ``term`` in wildcards with its own wildcard characters escaped."""
    text = str(term)
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return f"%{text}%"


class QueryBuilder:
    def __init__(self, backend: Backend) -> None:
        self._backend = backend

    def statement(self, schema: TableSchema, intent: QueryIntent) -> Statement:
        """Build the statement an intent describes.

        A SELECT intent carrying an ``id`` reads one row; without one it reads
        a page. INSERT uses ``payload``, UPDATE uses ``id`` and ``payload``,
        DELETE uses ``id``.
        """
        if intent.operation is Operation.SELECT:
            if intent.id is None:
                return self.select(schema, intent)
            return self.get_by_id(schema, intent.id)
        if intent.operation is Operation.INSERT:
            return self.insert(schema, intent.payload or {})
        if intent.operation is Operation.UPDATE:
            return self.update(schema, intent.id, intent.payload or {})
        return self.delete(schema, intent.id)

    def select(self, schema: TableSchema, intent: QueryIntent) -> Statement:
        where, params = self._predicate(schema, intent)
        sql = (
            f"SELECT * FROM {self._table(schema)}{where}"
            f" ORDER BY {self._order_by(schema, intent)} LIMIT ? OFFSET ?"
        )
        return Statement(sql, (*params, intent.page_size, intent.offset))

    def count(self, schema: TableSchema, intent: QueryIntent) -> Statement:
        where, params = self._predicate(schema, intent)
        return Statement(
            f"SELECT COUNT(*) AS total_count FROM {self._table(schema)}{where}", tuple(params)
        )

    def get_by_id(self, schema: TableSchema, key: Any, by_rowid: bool = False) -> Statement:
        return Statement(
            f"SELECT * FROM {self._table(schema)} WHERE {self._key(schema, by_rowid)} = ?",
            (key,),
        )

    def get_by_key_values(self, schema: TableSchema, values: Mapping[str, Any]) -> Statement:
        """Read one row by a value for every key column, composite keys included."""
        keys = schema.key_columns
        if not keys or any(column.name not in values for column in keys):
            raise ValidationError(f"Table {schema.table.full_name} needs every key column")
        condition = " AND ".join(f"{self._backend.quote(column.name)} = ?" for column in keys)
        return Statement(
            f"SELECT * FROM {self._table(schema)} WHERE {condition}",
            tuple(values[column.name] for column in keys),
        )

    def insert(self, schema: TableSchema, payload: Mapping[str, Any]) -> Statement:
        columns = self._payload_columns(schema, payload)
        if not columns:
            raise ValidationError("Request body must contain at least one column")

        provided = {column.name for column, _ in columns}
        missing = [c.name for c in schema.columns if c.required and c.name not in provided]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        names = ", ".join(self._backend.quote(column.name) for column, _ in columns)
        placeholders = ", ".join("?" for _ in columns)
        return Statement(
            f"INSERT INTO {self._table(schema)} ({names}) VALUES ({placeholders})",
            tuple(value for _, value in columns),
        )

    def update(self, schema: TableSchema, key: Any, payload: Mapping[str, Any]) -> Statement:
        columns = self._payload_columns(schema, payload)
        if not columns:
            raise ValidationError("No fields to update")
        assignments = ", ".join(f"{self._backend.quote(column.name)} = ?" for column, _ in columns)
        return Statement(
            f"UPDATE {self._table(schema)} SET {assignments} WHERE {self._key(schema)} = ?",
            (*(value for _, value in columns), key),
        )

    def delete(self, schema: TableSchema, key: Any) -> Statement:
        return Statement(
            f"DELETE FROM {self._table(schema)} WHERE {self._key(schema)} = ?", (key,)
        )

    def _table(self, schema: TableSchema) -> str:
        return self._backend.qualified(schema.table)

    def _key(self, schema: TableSchema, by_rowid: bool = False) -> str:
        """Column matched by by-id operations: a single key column, else rowid."""
        primary_key = schema.primary_key
        if primary_key is not None and not by_rowid:
            return self._backend.quote(primary_key.name)
        if self._backend.rowid_column:
            return self._backend.rowid_column
        if schema.key_columns:
            raise ValidationError(
                f"Table {schema.table.full_name} has a composite primary key"
                " and cannot be addressed by id"
            )
        raise ValidationError(f"Table {schema.table.full_name} has no primary key")

    def _order_columns(self, schema: TableSchema) -> list[str]:
        """Deterministic ordering: every key column, then rowid, then first column."""
        if schema.key_columns:
            return [self._backend.quote(column.name) for column in schema.key_columns]
        if self._backend.rowid_column:
            return [self._backend.rowid_column]
        if not schema.columns:
            raise ValidationError(f"Table {schema.table.full_name} has no columns")
        return [self._backend.quote(schema.columns[0].name)]

    def _order_by(self, schema: TableSchema, intent: QueryIntent) -> str:
        fallback = self._order_columns(schema)
        column = schema.column(intent.sort_column) if intent.sort_column else None
        if column is None:
            return ", ".join(fallback)
        quoted = self._backend.quote(column.name)
        sort = f"{quoted} {'DESC' if intent.sort_descending else 'ASC'}"
        # Tie-breaker keeps pages stable when the sort column has duplicates.
        return ", ".join([sort, *(name for name in fallback if name != quoted)])

    def _predicate(self, schema: TableSchema, intent: QueryIntent) -> tuple[str, list[Any]]:
        """WHERE clause shared by the page query and its COUNT."""
        clauses: list[str] = []
        params: list[Any] = []
        for item in intent.filters:
            clause, values = self._filter(schema, item)
            clauses.append(clause)
            params.extend(values)
        if intent.search:
            clause, values = self._search(schema, intent.search)
            clauses.append(clause)
            params.extend(values)
        if not clauses:
            return "", []
        return " WHERE " + " AND ".join(clauses), params

    def _filter(self, schema: TableSchema, item: Filter) -> tuple[str, list[Any]]:
        column = schema.column(item.field)
        if column is None:
            raise ValidationError(f"Unknown filter field '{item.field}'")
        operator = normalize_operator(item.operator)
        name = self._backend.quote(column.name)

        if operator == "in":
            values = [ensure_scalar(column.name, v) for v in split_in_values(item.value)]
            return f"{name} IN ({', '.join('?' for _ in values)})", values
        if item.value is None:
            if operator == "eq":
                return f"{name} IS NULL", []
            if operator == "ne":
                return f"{name} IS NOT NULL", []
            raise ValidationError(f"Operator '{operator}' needs a value")
        if operator == "like":
            return self._like(name), [like_pattern(ensure_scalar(column.name, item.value))]
        return f"{name} {_COMPARISONS[operator]} ?", [ensure_scalar(column.name, item.value)]

    def _like(self, expression: str) -> str:
        return f"{expression} {self._backend.like_operator} ?{self._backend.like_escape}"

    def _search(self, schema: TableSchema, search: str) -> tuple[str, list[Any]]:
        pattern = like_pattern(search)
        columns: list[ColumnInfo] = schema.searchable_columns
        if columns:
            terms = [self._like(self._backend.quote(column.name)) for column in columns]
            return f"({' OR '.join(terms)})", [pattern] * len(terms)
        fallback = self._order_columns(schema)[0]
        return self._like(f"CAST({fallback} AS {self._backend.text_cast})"), [pattern]

    def _payload_columns(
        self, schema: TableSchema, payload: Mapping[str, Any]
    ) -> list[tuple[ColumnInfo, Any]]:
        resolved: list[tuple[ColumnInfo, Any]] = []
        seen: set[str] = set()
        unknown: list[str] = []
        for key, value in payload.items():
            column = schema.column(key)
            if column is None:
                unknown.append(key)
                continue
            if column.name in seen:
                raise ValidationError(f"Column '{column.name}' supplied more than once")
            seen.add(column.name)
            resolved.append((column, ensure_scalar(column.name, value)))
        if unknown:
            raise ValidationError(f"Unknown column(s): {', '.join(unknown)}")
        return resolved
