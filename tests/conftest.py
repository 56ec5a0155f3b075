# File: tests/conftest.py
# Contains pytest fixtures shared by the unit, pipeline and reader integration tests.

import os
from pathlib import Path
from typing import Any, Dict, Generator

import pytest

from schema_codegen.introspection_django import setup_django
from tests.schema_fixtures import FakeSchemaReader, account_table, order_tables, shop_tables

# The PostgreSQL integration tests need Docker; they only run when asked for
PG_TESTS_ENABLED = os.environ.get("SCHEMA_CODEGEN_PG_TESTS") == "1"
PG_ALIAS = "postgres"

SQLITE_SHOP_SCHEMA = [
    """
    CREATE TABLE category (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(100) NOT NULL UNIQUE,
        parent_id INTEGER NULL REFERENCES category (id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE product (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        category_id INTEGER NOT NULL REFERENCES category (id) ON DELETE CASCADE,
        name VARCHAR(200) NOT NULL,
        status VARCHAR(10) NOT NULL DEFAULT 'draft' CHECK (status IN ('draft', 'active', 'archived')),
        price DECIMAL(10, 2) DEFAULT 0.00,
        created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX product_category_id_idx ON product (category_id)",
    """
    CREATE TABLE order_line (
        order_id INTEGER NOT NULL,
        line_no INTEGER NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1,
        PRIMARY KEY (order_id, line_no)
    )
    """,
    """
    CREATE TABLE shipment (
        id INTEGER PRIMARY KEY,
        order_id INTEGER NOT NULL,
        line_no INTEGER NOT NULL,
        FOREIGN KEY (order_id, line_no) REFERENCES order_line (order_id, line_no)
    )
    """,
    "CREATE VIEW product_names AS SELECT name FROM product",
]


# --- In-memory readers ---


@pytest.fixture
def shop_reader() -> FakeSchemaReader:
    """category (self-referencing) and product (enum column, FK to category)."""
    return FakeSchemaReader(shop_tables())


@pytest.fixture
def full_reader() -> FakeSchemaReader:
    """Every sample table: shop, account (2fa enum) and the composite-key order tables."""
    return FakeSchemaReader(shop_tables() + [account_table()] + order_tables())


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "generated"


# --- Fixture for Database Container (using Testcontainers) ---
@pytest.fixture(scope="session")
def pg_service() -> Generator[Dict[str, Any], Any, None]:
    """
    Starts/stops a PostgreSQL container for the test session using testcontainers.
    Yields a dictionary with database connection details.
    """
    from testcontainers.postgres import PostgresContainer

    pg_container = PostgresContainer(
        image="postgres:15-alpine",
        username="testuser",
        password="testpassword",
        dbname="testdb",
    )
    pg_container.with_exposed_ports(5432)

    with pg_container as pg:
        yield {
            "host": pg.get_container_host_ip(),
            "port": int(pg.get_exposed_port(5432)),
            "user": pg.username,
            "password": pg.password,
            "dbname": pg.dbname,
        }


# --- Django configuration ---
@pytest.fixture(scope="session")
def django_databases(tmp_path_factory, request) -> Dict[str, Dict[str, Any]]:
    """
    Configures Django once per session: a SQLite file as 'default' and,
    when the PostgreSQL tests are enabled, the container as 'postgres'.
    """
    sqlite_path = tmp_path_factory.mktemp("sqlite") / "shop.sqlite3"
    databases: Dict[str, Dict[str, Any]] = {
        "default": {"ENGINE": "django.db.backends.sqlite3", "NAME": str(sqlite_path)},
    }
    if PG_TESTS_ENABLED:
        pg = request.getfixturevalue("pg_service")
        databases[PG_ALIAS] = {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": pg["dbname"],
            "USER": pg["user"],
            "PASSWORD": pg["password"],
            "HOST": pg["host"],
            "PORT": pg["port"],
        }
    setup_django(databases)
    return databases


@pytest.fixture(scope="session")
def sqlite_shop_db(django_databases) -> str:
    """Creates the sample schema in the SQLite database and returns its alias."""
    from django.db import connections

    connection = connections["default"]
    with connection.cursor() as cursor:
        for statement in SQLITE_SHOP_SCHEMA:
            cursor.execute(statement)
    connection.close()
    return "default"
