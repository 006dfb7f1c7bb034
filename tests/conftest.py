import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from sqlrest.config import (
    AccessConfig,
    ApiToken,
    AppConfig,
    AuthConfig,
    DatabaseConfig,
    LimitsConfig,
    ServerConfig,
)
from sqlrest.server.app import create_app

TOKEN = "test-token"
AUTH_HEADERS = {"Authorization": f"Bearer {TOKEN}"}

CUSTOMERS = [
    (1, "Alice", "alice@example.com", "London"),
    (2, "Bob", "bob@example.com", "Paris"),
    (3, "Carol", "carol@example.com", "London"),
    (4, "Dave", "dave@example.com", "Berlin"),
    (5, "Eve", "eve@example.com", "Paris"),
    (6, "Frank", "frank@example.com", "Madrid"),
    (7, "Grace", "grace@example.com", "London"),
    (8, "Heidi", "heidi@example.com", "Rome"),
    (9, "Ivan", "ivan@example.com", "Berlin"),
    (10, "Judy", "judy@example.com", "Oslo"),
]

MAIN_SCHEMA = """
CREATE TABLE products (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    price REAL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE events (label TEXT, amount INTEGER);
CREATE TABLE attachments (id INTEGER PRIMARY KEY, content BLOB);
CREATE TABLE __migrations (version INTEGER);
INSERT INTO products (name, price) VALUES ('Widget', 9.5), ('Gadget', 20.0);
INSERT INTO events (label, amount) VALUES ('signup', 1), ('login', 2);
"""

SALES_SCHEMA = """
CREATE TABLE customer (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    city TEXT
);
CREATE TABLE secrets (id INTEGER PRIMARY KEY, value TEXT);
INSERT INTO secrets (value) VALUES ('hunter2');
"""

SYS_SCHEMA = """
CREATE TABLE internal (id INTEGER PRIMARY KEY, note TEXT);
INSERT INTO internal (note) VALUES ('hidden');
"""


def create_database(path: Path, script: str = "") -> Path:
    with closing(sqlite3.connect(path)) as connection:
        connection.executescript(script)
        connection.commit()
    return path


def seed_customers(path: Path) -> None:
    with closing(sqlite3.connect(path)) as connection:
        connection.executemany(
            "INSERT INTO customer (id, name, email, city) VALUES (?, ?, ?, ?)", CUSTOMERS
        )
        connection.commit()


def make_config(database: DatabaseConfig, **access: list[str]) -> AppConfig:
    return AppConfig(
        database=database,
        auth=AuthConfig(tokens=[ApiToken(token=TOKEN, identity="tester")]),
        access=AccessConfig(**access),
        limits=LimitsConfig(),
        server=ServerConfig(mcp_enabled=False),
    )


@pytest.fixture
def database_config(tmp_path: Path) -> DatabaseConfig:
    main = create_database(tmp_path / "main.db", MAIN_SCHEMA)
    sales = create_database(tmp_path / "sales.db", SALES_SCHEMA)
    seed_customers(sales)
    system = create_database(tmp_path / "sys.db", SYS_SCHEMA)
    return DatabaseConfig(
        backend="sqlite",
        path=str(main),
        attach={"sales": str(sales), "sys": str(system)},
    )


@pytest.fixture
def app_config(database_config: DatabaseConfig) -> AppConfig:
    return make_config(database_config, excluded_tables=["secrets"])


@pytest.fixture
def client(app_config: AppConfig) -> Iterator[TestClient]:
    with TestClient(create_app(config=app_config)) as test_client:
        yield test_client
