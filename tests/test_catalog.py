import threading
import time
from contextlib import contextmanager
from typing import Iterator

import pytest

from sqlrest.catalog import CatalogSnapshot, SchemaCatalog, is_system_table
from sqlrest.db.backends import Backend
from sqlrest.db.models import ColumnInfo, TableRef
from sqlrest.errors import DiscoveryError, ExecutionError


class FakeBackend(Backend):
    name = "fake"

    def __init__(self, pairs: list[tuple[str, str]], delay: float = 0.0) -> None:
        self.pairs = pairs
        self.delay = delay
        self.discover_calls = 0
        self.column_calls = 0
        self.fail = False
        self._counter_lock = threading.Lock()

    def discover_tables(self, session: object) -> list[tuple[str, str]]:
        with self._counter_lock:
            self.discover_calls += 1
        time.sleep(self.delay)
        if self.fail:
            raise ExecutionError("Query execution failed", detail="SELECT statement rejected")
        return list(self.pairs)

    def fetch_columns(self, session: object, table: TableRef) -> list[ColumnInfo]:
        self.column_calls += 1
        return [
            ColumnInfo("name", "TEXT", ordinal=2),
            ColumnInfo("id", "INTEGER", primary_key=True, ordinal=1),
        ]


class FakeClient:
    def __init__(self, backend: FakeBackend) -> None:
        self.backend = backend

    @contextmanager
    def session(self, request_id: str | None = None) -> Iterator[None]:
        yield None


def make_catalog(pairs: list[tuple[str, str]], delay: float = 0.0) -> tuple[SchemaCatalog, FakeBackend]:
    backend = FakeBackend(pairs, delay)
    return SchemaCatalog(FakeClient(backend)), backend


def test_concurrent_discovery_runs_one_query() -> None:
    catalog, backend = make_catalog([("sales", "customer")], delay=0.05)
    barrier = threading.Barrier(8)
    results = []

    def worker() -> None:
        barrier.wait()
        results.append(catalog.discover())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert backend.discover_calls == 1
    assert len(results) == 8
    assert all(result is results[0] for result in results)


def test_system_tables_are_excluded() -> None:
    catalog, _ = make_catalog(
        [
            ("sys", "internal"),
            ("INFORMATION_SCHEMA", "tables"),
            ("main", "sqlite_sequence"),
            ("main", "__migrations"),
            ("main", "products"),
            ("sales", "customer"),
        ]
    )
    snapshot = catalog.discover()
    assert list(snapshot.entries()) == [TableRef("main", "products"), TableRef("sales", "customer")]
    assert is_system_table("Pg_Catalog", "anything")
    assert is_system_table("audit", "log", extra_schemas=["AUDIT"])
    assert not is_system_table("sales", "customer")


def test_empty_store_is_not_an_error() -> None:
    catalog, _ = make_catalog([])
    snapshot = catalog.discover()
    assert len(snapshot) == 0
    assert snapshot.schemas == {}


def test_failed_discovery_raises_and_retries() -> None:
    catalog, backend = make_catalog([("sales", "customer")])
    backend.fail = True
    with pytest.raises(DiscoveryError) as excinfo:
        catalog.discover()
    assert excinfo.value.status_code == 500
    assert catalog.cached is None

    backend.fail = False
    assert TableRef("sales", "customer") in catalog.discover()
    assert backend.discover_calls == 2


def test_snapshot_is_cached_until_refresh() -> None:
    catalog, backend = make_catalog([("sales", "customer")])
    first = catalog.discover()
    backend.pairs = [("sales", "customer"), ("sales", "orders")]

    assert catalog.discover() is first
    refreshed = catalog.refresh()
    assert refreshed is not first
    assert catalog.discover() is refreshed
    assert refreshed.lookup("sales", "orders") == TableRef("sales", "orders")
    assert backend.discover_calls == 2


def test_invalidate_forces_rediscovery() -> None:
    catalog, backend = make_catalog([("sales", "customer")])
    catalog.discover()
    catalog.invalidate()
    assert catalog.cached is None
    catalog.discover()
    assert backend.discover_calls == 2


def test_columns_are_ordered_and_cached() -> None:
    catalog, backend = make_catalog([("sales", "customer")])
    ref = catalog.discover().lookup("sales", "customer")
    schema = catalog.columns(ref)
    assert [column.name for column in schema.columns] == ["id", "name"]
    assert schema.primary_key.name == "id"
    assert catalog.columns(ref) is schema
    assert backend.column_calls == 1

    catalog.refresh()
    catalog.columns(ref)
    assert backend.column_calls == 2


def test_snapshot_lookup_prefers_exact_spelling() -> None:
    snapshot = CatalogSnapshot.from_pairs(
        [("Sales", "Customer"), ("sales", "customer"), ("sales", "customer")]
    )
    assert len(snapshot) == 2
    assert snapshot.lookup("sales", "customer") == TableRef("sales", "customer")
    assert snapshot.lookup("SALES", "CUSTOMER") == TableRef("Sales", "Customer")
    assert snapshot.lookup("sales", "missing") is None
