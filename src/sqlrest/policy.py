"""Allow/deny filtering of the discovered catalog.

All checks are pure and run per request against the current snapshot.
Name comparisons ignore case.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .catalog import CatalogSnapshot
from .config import AccessConfig


def _lowered(values: Iterable[str]) -> frozenset[str]:
    return frozenset(value.lower() for value in values)


@dataclass(frozen=True)
class AccessPolicy:
    allowed_schemas: frozenset[str] = field(default_factory=frozenset)
    excluded_schemas: frozenset[str] = field(default_factory=frozenset)
    # Bare table names or schema-qualified "schema.table" entries.
    excluded_tables: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        for name in ("allowed_schemas", "excluded_schemas", "excluded_tables"):
            object.__setattr__(self, name, _lowered(getattr(self, name)))

    @classmethod
    def from_config(cls, access: AccessConfig) -> AccessPolicy:
        return cls(
            allowed_schemas=_lowered(access.allowed_schemas),
            excluded_schemas=_lowered(access.excluded_schemas),
            excluded_tables=_lowered(access.excluded_tables),
        )

    def permits(self, schema: str, table: str) -> bool:
        schema_key = schema.lower()
        table_key = table.lower()
        if self.allowed_schemas and schema_key not in self.allowed_schemas:
            return False
        if schema_key in self.excluded_schemas:
            return False
        return (
            table_key not in self.excluded_tables
            and f"{schema_key}.{table_key}" not in self.excluded_tables
        )


def is_exposed(schema: str, table: str, catalog: CatalogSnapshot, policy: AccessPolicy) -> bool:
    """True when the pair exists in ``catalog`` and survives ``policy``."""
    ref = catalog.lookup(schema, table)
    if ref is None:
        return False
    return policy.permits(ref.schema, ref.table)


def exposed_set(catalog: CatalogSnapshot, policy: AccessPolicy) -> CatalogSnapshot:
    return CatalogSnapshot.from_pairs(
        (ref.schema, ref.table)
        for ref in catalog.entries()
        if policy.permits(ref.schema, ref.table)
    )
