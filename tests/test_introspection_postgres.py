"""
Schema reader tests against PostgreSQL in a Docker container.

Run with ``SCHEMA_CODEGEN_PG_TESTS=1 pytest tests/test_introspection_postgres.py``.
"""

import pytest

from schema_codegen.domain.models import ArtifactKind, Dialect, RunStatus
from schema_codegen.introspection_django import DjangoSchemaReader
from schema_codegen.mapper import read_raw_table
from schema_codegen.pipeline import GenerationOptions, generate
from tests.conftest import PG_ALIAS, PG_TESTS_ENABLED

pytestmark = pytest.mark.skipif(not PG_TESTS_ENABLED, reason="set SCHEMA_CODEGEN_PG_TESTS=1 to run (needs Docker)")

PG_SHOP_SCHEMA = [
    "CREATE TYPE product_status AS ENUM ('draft', 'active', 'archived')",
    "CREATE TYPE security_level AS ENUM ('none', '2fa_enabled')",
    """
    CREATE TABLE category (
        id SERIAL PRIMARY KEY,
        name VARCHAR(100) NOT NULL UNIQUE,
        parent_id INTEGER NULL REFERENCES category (id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE product (
        id BIGINT GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
        category_id INTEGER NOT NULL REFERENCES category (id) ON DELETE CASCADE,
        name VARCHAR(200) NOT NULL,
        status product_status NOT NULL DEFAULT 'draft',
        price NUMERIC(10, 2) DEFAULT 0.00,
        attributes JSONB,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "COMMENT ON COLUMN product.price IS 'Unit price in EUR'",
    "CREATE INDEX product_category_id_idx ON product (category_id)",
    """
    CREATE TABLE account (
        id SERIAL PRIMARY KEY,
        security_level security_level NOT NULL DEFAULT 'none'
    )
    """,
    """
    CREATE TABLE order_line (
        order_id INTEGER NOT NULL,
        line_no INTEGER NOT NULL,
        PRIMARY KEY (order_id, line_no)
    )
    """,
    """
    CREATE TABLE shipment (
        id SERIAL PRIMARY KEY,
        order_id INTEGER NOT NULL,
        line_no INTEGER NOT NULL,
        CONSTRAINT shipment_order_line_fkey FOREIGN KEY (order_id, line_no)
            REFERENCES order_line (order_id, line_no) ON DELETE CASCADE
    )
    """,
]


@pytest.fixture(scope="module")
def pg_shop_db(django_databases):
    from django.db import connections

    connection = connections[PG_ALIAS]
    with connection.cursor() as cursor:
        for statement in PG_SHOP_SCHEMA:
            cursor.execute(statement)
    connection.close()
    return PG_ALIAS


@pytest.fixture
def reader(pg_shop_db):
    with DjangoSchemaReader(pg_shop_db) as schema_reader:
        yield schema_reader


def test_dialect_and_tables(reader):
    assert reader.dialect == Dialect.POSTGRESQL
    assert reader.list_tables() == ["account", "category", "order_line", "product", "shipment"]


def test_columns(reader):
    columns = {column.name: column for column in reader.read_columns("product")}
    assert columns["id"].auto_increment
    assert columns["status"].native_type == "product_status"
    assert columns["price"].native_type == "numeric"
    assert (columns["price"].precision, columns["price"].scale) == (10, 2)
    assert columns["price"].comment == "Unit price in EUR"
    assert columns["name"].length == 200
    assert columns["attributes"].native_type == "jsonb"


def test_serial_is_auto_increment(reader):
    (id_column,) = [c for c in reader.read_columns("category") if c.name == "id"]
    assert id_column.auto_increment
    assert id_column.default.startswith("nextval(")


def test_enum_labels_keep_declaration_order(reader):
    declarations = reader.read_enumerated_declarations("product")
    assert [(d.column, d.values) for d in declarations] == [("status", ("draft", "active", "archived"))]


def test_composite_foreign_key(reader):
    (foreign_key,) = reader.read_foreign_keys("shipment")
    assert foreign_key.name == "shipment_order_line_fkey"
    assert foreign_key.source_columns == ("order_id", "line_no")
    assert foreign_key.target_columns == ("order_id", "line_no")
    assert foreign_key.on_delete == "CASCADE"


def test_referential_actions(reader):
    (self_reference,) = reader.read_foreign_keys("category")
    assert self_reference.on_delete == "SET NULL"
    assert self_reference.on_update == "NO ACTION"


def test_primary_keys(reader):
    assert read_raw_table(reader, "order_line").primary_key == ("order_id", "line_no")
    assert read_raw_table(reader, "product").primary_key == ("id",)


def test_generate_end_to_end(pg_shop_db, output_dir):
    result = generate(GenerationOptions(db_alias=pg_shop_db, output_root=output_dir, namespace="shop"))

    assert result.status == RunStatus.SUCCESS
    enums = {record.logical_name: record for record in result.artifacts_of_kind(ArtifactKind.ENUM)}
    assert sorted(enums) == ["AccountSecurityLevelEnum", "ProductStatusEnum"]
    assert '_2FA_ENABLED = "2fa_enabled"' in enums["AccountSecurityLevelEnum"].content

    product = next(a for a in result.artifacts if a.logical_name == "Product")
    assert "attributes: Optional[Any] = field(" in product.content
    assert "# Unit price in EUR" in product.content
