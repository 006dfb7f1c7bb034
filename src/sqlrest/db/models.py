"""Data types shared by the catalog, query builder and service layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

FILTER_OPERATORS = frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "like", "in"})

_TEXT_TYPE_MARKERS = ("char", "text", "string", "clob")


class Operation(str, Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class TableRef:
    """A (schema, table) pair as spelled by discovery.

    Instances are handed out by ``CatalogSnapshot.lookup``; holding one means
    the pair was present in a snapshot.
    """

    schema: str
    table: str

    @property
    def full_name(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    data_type: str
    nullable: bool = True
    primary_key: bool = False
    has_default: bool = False
    is_identity: bool = False
    ordinal: int = 0

    @property
    def is_text(self) -> bool:
        data_type = self.data_type.lower()
        return any(marker in data_type for marker in _TEXT_TYPE_MARKERS)

    @property
    def required(self) -> bool:
        return not (self.nullable or self.has_default or self.is_identity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.data_type,
            "isNullable": self.nullable,
            "isPrimaryKey": self.primary_key,
            "isIdentity": self.is_identity,
            "hasDefault": self.has_default,
        }


@dataclass(frozen=True)
class TableSchema:
    """A validated table together with its discovered columns."""

    table: TableRef
    columns: tuple[ColumnInfo, ...]
    _by_name: Mapping[str, ColumnInfo] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_by_name", {column.name.lower(): column for column in self.columns}
        )

    def column(self, name: str) -> ColumnInfo | None:
        return self._by_name.get(name.lower())

    @property
    def key_columns(self) -> tuple[ColumnInfo, ...]:
        return tuple(column for column in self.columns if column.primary_key)

    @property
    def primary_key(self) -> ColumnInfo | None:
        """The key column when the key has exactly one; composite keys give None."""
        keys = self.key_columns
        return keys[0] if len(keys) == 1 else None

    @property
    def searchable_columns(self) -> list[ColumnInfo]:
        return [column for column in self.columns if column.is_text]


@dataclass(frozen=True)
class Filter:
    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class QueryIntent:
    operation: Operation = Operation.SELECT
    page: int = 1
    page_size: int = 100
    search: str | None = None
    sort_column: str | None = None
    sort_descending: bool = False
    filters: tuple[Filter, ...] = ()
    id: Any = None
    payload: Mapping[str, Any] | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass(frozen=True)
class Statement:
    sql: str
    params: tuple[Any, ...] = ()


@dataclass
class QueryResult:
    rows: list[dict[str, Any]]
    rowcount: int = -1
    lastrowid: Any = None

    def scalar(self) -> Any:
        if not self.rows:
            return None
        return next(iter(self.rows[0].values()))
