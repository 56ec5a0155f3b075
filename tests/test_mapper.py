"""
Tests for the metadata assembler.
"""

import unittest

import pytest

from schema_codegen.constants import PYTHON_RESERVED_WORDS
from schema_codegen.domain.models import (
    AssemblyState,
    Dialect,
    IndexDescriptor,
    RawEnumColumn,
    RawTable,
    SemanticType,
    Severity,
)
from schema_codegen.domain.naming import NameNormalizer
from schema_codegen.mapper import TYPE_FALLBACK, MetadataAssembler, read_raw_table
from tests.schema_fixtures import (
    FakeSchemaReader,
    account_table,
    col,
    order_tables,
    partial_key_table,
    pk_column,
    pk_index,
    shop_tables,
)


def assemble(raw_tables, names=None, **kwargs):
    assembler = MetadataAssembler(Dialect.POSTGRESQL, NameNormalizer(PYTHON_RESERVED_WORDS), **kwargs)
    by_name = {table.name: table for table in raw_tables}
    return assembler.assemble(names if names is not None else list(by_name), by_name)


def signature(result):
    """Everything naming-related in an assembly result, for comparisons."""
    return {
        name: (
            table.type_name,
            [(c.name, c.field_name, c.semantic_type) for c in table.columns],
            [(a.name, a.column_pairs, a.target_table) for a in table.associations],
            [(e.type_name, e.cases) for e in table.enums],
            [(i.name, i.columns, i.unique) for i in table.indexes],
        )
        for name, table in result.tables.items()
    }


class TestShopAssembly(unittest.TestCase):
    def setUp(self):
        self.result = assemble(shop_tables())
        self.category = self.result.tables["category"]
        self.product = self.result.tables["product"]

    def test_every_table_is_finalized(self):
        assert self.result.failures == {}
        assert [t.name for t in self.result.ordered_tables()] == ["category", "product"]
        for table in self.result.tables.values():
            assert table.state == AssemblyState.FINALIZED
            assert table.is_finalized

    def test_type_and_companion_names(self):
        assert self.category.type_name == "Category"
        assert self.product.type_name == "Product"
        assert self.product.companion_name == "ProductRepository"

    def test_product_links_to_the_category_descriptor(self):
        association = self.product.associations[0]
        assert association.name == "category"
        assert association.target is self.category

    def test_category_self_reference(self):
        association = self.category.associations[0]
        assert association.is_self_referencing
        assert association.target is self.category
        assert association.name == "parent"
        assert association.name != "category"

    def test_columns(self):
        columns = {column.name: column for column in self.product.columns}
        assert [column.field_name for column in self.product.columns] == [
            "id", "categoryId", "name", "status", "price", "createdAt",
        ]
        assert columns["id"].is_primary and not columns["id"].nullable and columns["id"].auto_increment
        assert columns["category_id"].is_foreign_key
        assert columns["price"].semantic_type == SemanticType.DECIMAL_STRING
        assert columns["price"].default == "0.00"
        assert (columns["price"].precision, columns["price"].scale) == (10, 2)
        assert columns["created_at"].semantic_type == SemanticType.DATETIME
        assert columns["created_at"].default is None

    def test_enumerated_column(self):
        status = self.product.get_column("status")
        assert status.semantic_type == SemanticType.ENUMERATED
        assert status.enum.type_name == "ProductStatusEnum"
        assert status.enum.raw_values == ["draft", "active", "archived"]
        assert status.default == "draft"
        assert status.comment == "Possible values: 'draft', 'active', 'archived'"
        assert self.product.enums == (status.enum,)

    def test_indexes_exclude_the_primary_key(self):
        assert self.product.primary_key == ("id",)
        assert self.product.indexes == (IndexDescriptor("product_category_id_idx", ("category_id",), False),)
        assert self.category.indexes == (IndexDescriptor("category_name_key", ("name",), True),)

    def test_field_names_form_a_set(self):
        for table in self.result.tables.values():
            members = table.field_names + [a.name for a in table.associations]
            assert len(members) == len(set(members))

    def test_descriptors_are_read_only(self):
        with pytest.raises(AttributeError):
            self.product.type_name = "Other"
        assert isinstance(self.product.columns, tuple)
        assert isinstance(self.product.associations, tuple)

    def test_no_diagnostics(self):
        assert self.result.diagnostics == []


class TestAssemblyRules(unittest.TestCase):
    def test_enum_and_entity_names_share_one_scope(self):
        clashing = RawTable(
            name="product_status_enum",
            columns=(pk_column(),),
            indexes=(pk_index("product_status_enum"),),
        )
        result = assemble(shop_tables() + [clashing])
        # 'product.status' sorts before 'product_status_enum', so the enum keeps the base name
        assert result.tables["product"].enums[0].type_name == "ProductStatusEnum"
        assert result.tables["product_status_enum"].type_name == "ProductStatusEnum_product_status_enum"

    def test_enums_disabled(self):
        result = assemble(shop_tables(), emit_enums=False)
        status = result.tables["product"].get_column("status")
        assert status.semantic_type == SemanticType.TEXT
        assert status.enum is None
        assert result.tables["product"].enums == ()
        assert result.diagnostics == []
        assert status.comment == "Possible values: 'draft', 'active', 'archived'"
        assert status.value_constants == (
            ("STATUS_DRAFT", "draft"),
            ("STATUS_ACTIVE", "active"),
            ("STATUS_ARCHIVED", "archived"),
        )

    def test_enum_columns_carry_no_value_constants(self):
        status = assemble(shop_tables()).tables["product"].get_column("status")
        assert status.enum is not None
        assert status.value_constants == ()
        assert status.comment.startswith("Possible values:")

    def test_repository_disabled(self):
        result = assemble(shop_tables(), generate_repository=False)
        assert result.tables["product"].companion_name is None

    def test_leading_digit_enum_case(self):
        result = assemble([account_table()])
        enum = result.tables["account"].enums[0]
        assert enum.type_name == "AccountSecurityLevelEnum"
        assert enum.case_name_for("2fa_enabled") == "_2FA_ENABLED"

    def test_unknown_type_records_a_fallback_warning(self):
        table = RawTable(
            name="document",
            columns=(pk_column(), col("search", "tsvector", 2)),
            indexes=(pk_index("document"),),
        )
        result = assemble([table])
        assert result.tables["document"].get_column("search").semantic_type == SemanticType.OPAQUE
        assert len(result.diagnostics) == 1
        diagnostic = result.diagnostics[0]
        assert diagnostic.code == TYPE_FALLBACK
        assert diagnostic.severity == Severity.WARNING
        assert diagnostic.artifact == "search"

    def test_primary_key_is_never_nullable(self):
        table = RawTable(
            name="country",
            columns=(col("code", "text", 1, nullable=True),),
            indexes=(pk_index("country", "code"),),
        )
        column = assemble([table]).tables["country"].get_column("code")
        assert column.is_primary
        assert not column.nullable

    def test_composite_keys(self):
        result = assemble(order_tables())
        assert result.tables["order_line"].primary_key == ("order_id", "line_no")
        association = result.tables["shipment"].associations[0]
        assert association.is_composite
        assert len(association.column_pairs) == 2
        assert association.target is result.tables["order_line"]


class TestAssemblyFailures(unittest.TestCase):
    def test_partial_key_excludes_only_the_offending_table(self):
        result = assemble(order_tables() + [partial_key_table()])
        assert "line_note" in result.failures
        assert set(result.tables) == {"orders", "order_line", "shipment"}
        codes = [(d.table_name, d.code, d.severity) for d in result.diagnostics]
        assert ("line_note", "partial_key_error", Severity.ERROR) in codes

    def test_enum_collision_excludes_the_table(self):
        broken = RawTable(
            name="task",
            columns=(pk_column(), col("state", "task_state", 2)),
            indexes=(pk_index("task"),),
            enum_columns=(RawEnumColumn("state", ("in-progress", "in progress")),),
        )
        result = assemble(shop_tables() + [broken])
        assert "task" in result.failures
        assert set(result.tables) == {"category", "product"}
        assert result.diagnostics[0].code == "enum_collision_error"

    def test_links_to_an_excluded_table_are_unresolved(self):
        broken = RawTable(
            name="category",
            columns=(pk_column(), col("kind", "category_kind", 2)),
            indexes=(pk_index("category"),),
            enum_columns=(RawEnumColumn("kind", ("a-b", "a b")),),
        )
        product = shop_tables()[1]
        result = assemble([broken, product])
        association = result.tables["product"].associations[0]
        assert association.unresolved_target
        assert association.target is None
        codes = {d.code for d in result.diagnostics}
        assert codes == {"enum_collision_error", "unresolved_association"}

    def test_read_failures_are_carried_over(self):
        assembler = MetadataAssembler(Dialect.POSTGRESQL, NameNormalizer())
        tables = {table.name: table for table in shop_tables()}
        result = assembler.assemble(["category", "gone", "product"], tables, {"gone": "Table 'gone' disappeared"})
        assert result.failures == {"gone": "Table 'gone' disappeared"}
        assert result.diagnostics == []

    def test_table_that_was_never_read_fails_extraction(self):
        result = assemble(shop_tables(), names=["category", "product", "ghost"])
        assert "ghost" in result.failures
        assert result.diagnostics[0].code == "metadata_extraction_error"
        assert result.diagnostics[0].table_name == "ghost"


class TestDeterminism(unittest.TestCase):
    def read_all(self, reader):
        return [read_raw_table(reader, name) for name in reader.list_tables()]

    def test_reversed_reader_order_gives_identical_descriptors(self):
        tables = shop_tables() + [account_table()] + order_tables()
        forward = assemble(self.read_all(FakeSchemaReader(tables)))
        backward = assemble(self.read_all(FakeSchemaReader(tables, reverse=True)))
        assert signature(forward) == signature(backward)

    def test_assembly_is_repeatable(self):
        assert signature(assemble(shop_tables())) == signature(assemble(shop_tables()))
