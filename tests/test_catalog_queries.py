"""
Tests for the dialect catalog queries, run against recorded catalog rows.
"""

import unittest

from schema_codegen.catalog_queries import (
    CatalogQueries,
    MySQLCatalog,
    PostgreSQLCatalog,
    catalog_for,
    parse_quoted_list,
    parse_type_arguments,
)
from schema_codegen.domain.models import Dialect


class RecordedCursor:
    """Answers every query with the same recorded rows."""

    def __init__(self, rows):
        self.rows = rows
        self.executed = []

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def fetchall(self):
        return list(self.rows)

    def fetchone(self):
        return self.rows[0] if self.rows else None


def quote_name(name):
    return f'"{name}"'


class TestParsers(unittest.TestCase):
    def test_parse_quoted_list(self):
        assert parse_quoted_list("'draft','active'") == ("draft", "active")
        assert parse_quoted_list("'a', 'b c'") == ("a", "b c")
        assert parse_quoted_list("'it''s','x,y'") == ("it's", "x,y")
        assert parse_quoted_list("") == ()

    def test_parse_type_arguments(self):
        assert parse_type_arguments("varchar(20)") == (20, None, None)
        assert parse_type_arguments("DECIMAL(10, 2)") == (None, 10, 2)
        assert parse_type_arguments("numeric(8)") == (None, 8, None)
        assert parse_type_arguments("text") == (None, None, None)
        assert parse_type_arguments(None) == (None, None, None)


class TestGroupForeignKeys(unittest.TestCase):
    def test_rows_are_grouped_per_constraint(self):
        rows = [
            ("shipment_order_line_fkey", "order_id", "order_line", "order_id", "c", "a"),
            ("shipment_order_line_fkey", "line_no", "order_line", "line_no", "c", "a"),
            ("shipment_carrier_fkey", "carrier_id", "carrier", "id", "n", "r"),
        ]
        foreign_keys = CatalogQueries.group_foreign_keys(rows)
        assert [(fk.name, fk.source_columns, fk.target_columns, fk.on_delete, fk.on_update) for fk in foreign_keys] == [
            ("shipment_order_line_fkey", ("order_id", "line_no"), ("order_id", "line_no"), "CASCADE", "NO ACTION"),
            ("shipment_carrier_fkey", ("carrier_id",), ("id",), "SET NULL", "RESTRICT"),
        ]

    def test_missing_target_columns_stay_empty(self):
        (foreign_key,) = CatalogQueries.group_foreign_keys([("fk", "order_id", "orders", None, None, None)])
        assert foreign_key.target_columns == ()
        assert foreign_key.on_delete == "NO ACTION"


class TestPostgreSQLCatalog(unittest.TestCase):
    def setUp(self):
        self.catalog = catalog_for(Dialect.POSTGRESQL, quote_name)

    def test_factory(self):
        assert isinstance(self.catalog, PostgreSQLCatalog)

    def test_columns(self):
        cursor = RecordedCursor([
            ("id", "integer", "int4", "NO", "nextval('product_id_seq'::regclass)", None, 32, 0, "NO", 1, None),
            ("status", "USER-DEFINED", "product_status", "NO", "'draft'::product_status", None, None, None, "NO", 2, None),
            ("price", "numeric", "numeric", "YES", "0.00", None, 10, 2, "NO", 3, "Unit price"),
            ("tags", "ARRAY", "_text", "YES", None, None, None, None, "NO", 4, None),
        ])
        columns = self.catalog.columns(cursor, "product")
        assert cursor.executed[0][1] == ["product"]
        assert [(c.name, c.native_type) for c in columns] == [
            ("id", "integer"), ("status", "product_status"), ("price", "numeric"), ("tags", "array"),
        ]
        assert columns[0].auto_increment
        assert columns[0].precision is None
        assert (columns[2].precision, columns[2].scale, columns[2].comment) == (10, 2, "Unit price")
        assert not columns[1].nullable

    def test_enum_labels_grouped_per_column(self):
        cursor = RecordedCursor([("status", "draft"), ("status", "active"), ("visibility", "public")])
        declarations = self.catalog.enum_columns(cursor, "product")
        assert [(d.column, d.values) for d in declarations] == [
            ("status", ("draft", "active")),
            ("visibility", ("public",)),
        ]


class TestMySQLCatalog(unittest.TestCase):
    def setUp(self):
        self.catalog = MySQLCatalog(quote_name)

    def test_default_expressions(self):
        assert MySQLCatalog._default_expression(None, "") is None
        assert MySQLCatalog._default_expression("NULL", "") is None
        assert MySQLCatalog._default_expression("draft", "") == "'draft'"
        assert MySQLCatalog._default_expression("it's", "") == "'it''s'"
        assert MySQLCatalog._default_expression("'draft'", "") == "'draft'"
        assert MySQLCatalog._default_expression("CURRENT_TIMESTAMP", "default_generated") == "CURRENT_TIMESTAMP"
        assert MySQLCatalog._default_expression("uuid()", "default_generated") == "uuid()"

    def test_columns(self):
        cursor = RecordedCursor([
            ("id", "int unsigned", "int", "NO", None, None, 10, 0, "auto_increment", "", 1),
            ("status", "enum('draft','active')", "enum", "NO", "draft", 6, None, None, "", "", 2),
            ("price", "decimal(10,2)", "decimal", "YES", "0.00", None, 10, 2, "", "Unit price", 3),
        ])
        columns = self.catalog.columns(cursor, "product")
        assert columns[0].auto_increment
        assert columns[0].comment is None
        assert columns[1].length is None
        assert columns[1].default == "'draft'"
        assert (columns[2].precision, columns[2].scale) == (10, 2)
        assert columns[2].comment == "Unit price"

    def test_enum_and_set_declarations(self):
        cursor = RecordedCursor([
            ("status", "enum('draft','active','it''s')", "enum"),
            ("flags", "set('pinned','locked')", "set"),
            ("broken", "enum", "enum"),
        ])
        declarations = self.catalog.enum_columns(cursor, "post")
        assert [(d.column, d.values, d.multiple) for d in declarations] == [
            ("status", ("draft", "active", "it's"), False),
            ("flags", ("pinned", "locked"), True),
        ]
