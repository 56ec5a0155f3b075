"""
Metadata assembly for schema-codegen.

This module turns the raw structural facts returned by a schema reader into
finalized TableDescriptors, combining the type mapper, the name normalizer,
the enum extractor and the relationship resolver.

Assembly is an explicit multi-pass process so that ordering stays
deterministic and a foreign key may point at a table that sorts later:

1. Names: entity and enum type names of the whole run are assigned in one
   batch in the run-wide type scope.
2. Columns: every table is taken from ``Pending`` to ``ColumnsExtracted``.
3. Links: associations are resolved across all extracted tables
   (``AssociationsLinked``).
4. Finalize: descriptors become read-only (``Finalized``).

Errors that concern a single table exclude that table only and are reported
as diagnostics.

Example:
    >>> assembler = MetadataAssembler(Dialect.SQLITE, NameNormalizer())
    >>> result = assembler.assemble(["category", "product"], raw_tables)
    >>> result.tables["product"].associations[0].target is result.tables["category"]
    True
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from schema_codegen.domain.enums import EnumExtractor, describe_values, value_constants
from schema_codegen.domain.models import (
    AssemblyState,
    ColumnDescriptor,
    Diagnostic,
    Dialect,
    EnumDescriptor,
    IndexDescriptor,
    RawTable,
    SemanticType,
    Severity,
    TableDescriptor,
)
from schema_codegen.domain.naming import NameNormalizer, NameScope
from schema_codegen.domain.relationships import RelationshipResolver
from schema_codegen.domain.type_mapping import TypeMapper, parse_static_default
from schema_codegen.exceptions import (
    EnumCollisionError,
    MetadataExtractionError,
    PartialKeyError,
    SchemaCodegenError,
    SchemaReadError,
)

logger = logging.getLogger(__name__)

TYPE_FALLBACK = "type_fallback"


def read_raw_table(reader, table_name: str) -> RawTable:
    """Collect every raw fact the reader knows about ``table_name``."""
    columns = sorted(reader.read_columns(table_name), key=lambda column: (column.ordinal, column.name))
    return RawTable(
        name=table_name,
        columns=tuple(columns),
        foreign_keys=tuple(reader.read_foreign_keys(table_name)),
        indexes=tuple(reader.read_indexes(table_name)),
        enum_columns=tuple(reader.read_enumerated_declarations(table_name)),
    )


def error_diagnostic(table_name: Optional[str], error: SchemaCodegenError, artifact: Optional[str] = None) -> Diagnostic:
    """Turn a per-table or per-artifact error into an error diagnostic."""
    return Diagnostic(
        table_name=table_name,
        severity=Severity.ERROR,
        code=error.error_code.lower(),
        message=error.message,
        artifact=artifact,
    )


@dataclass
class AssemblyResult:
    """Finalized descriptors by table name, plus what went wrong on the way."""

    tables: Dict[str, TableDescriptor] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def ordered_tables(self) -> List[TableDescriptor]:
        return [self.tables[name] for name in sorted(self.tables)]


class MetadataAssembler:
    """
    Builds finalized TableDescriptors for one generation run.

    Args:
        dialect: Engine the raw facts come from.
        normalizer: Name normalizer of the selected template set.
        type_mapper: Injected type lookup. Defaults to the built-in table.
        emit_enums: Extract EnumDescriptors for enumerated columns. When
            off, enumerated columns are plain text.
        generate_repository: Give every table a repository companion name.
    """

    def __init__(
        self,
        dialect: Dialect,
        normalizer: NameNormalizer,
        type_mapper: Optional[TypeMapper] = None,
        emit_enums: bool = True,
        generate_repository: bool = True,
    ):
        self.dialect = dialect
        self.normalizer = normalizer
        self.type_mapper = type_mapper or TypeMapper()
        self.emit_enums = emit_enums
        self.generate_repository = generate_repository
        self.enum_extractor = EnumExtractor(normalizer)
        self.relationship_resolver = RelationshipResolver(normalizer)

    def assemble(
        self,
        table_names: Sequence[str],
        raw_tables: Mapping[str, RawTable],
        read_failures: Optional[Mapping[str, str]] = None,
    ) -> AssemblyResult:
        """
        Assemble every table of the run.

        Args:
            table_names: The full selected table set.
            raw_tables: Raw facts of the tables that were read successfully.
            read_failures: Tables whose read already failed (and was already
                reported), mapped to the reason.
        """
        result = AssemblyResult()
        result.failures.update(read_failures or {})
        raw_tables = {name: raw_tables[name] for name in sorted(raw_tables)}

        pending: Dict[str, TableDescriptor] = {}
        type_names = self._assign_type_names(raw_tables.values())

        # --- Pass 1: columns ---
        for name, raw_table in raw_tables.items():
            descriptor = TableDescriptor(name=name, type_name=type_names[name])
            pending[name] = descriptor
            try:
                self.relationship_resolver.validate(raw_table, raw_tables)
                self._extract_columns(descriptor, raw_table, type_names, result.diagnostics)
            except (SchemaReadError, PartialKeyError, EnumCollisionError) as e:
                self._fail(result, name, e)
            except ValueError as e:
                self._fail(
                    result,
                    name,
                    MetadataExtractionError(
                        f"Could not extract columns of '{name}': {e}",
                        table=name,
                        state=descriptor.state.value,
                    ),
                )

        extracted = {
            name: descriptor
            for name, descriptor in pending.items()
            if descriptor.state == AssemblyState.COLUMNS_EXTRACTED
        }

        # --- Pass 2: associations ---
        for name, descriptor in extracted.items():
            associations, diagnostics = self.relationship_resolver.link(
                descriptor, raw_tables[name], extracted, raw_tables
            )
            descriptor.associations = associations
            descriptor.state = AssemblyState.ASSOCIATIONS_LINKED
            result.diagnostics.extend(diagnostics)

        # --- Pass 3: finalize ---
        for name, descriptor in extracted.items():
            descriptor.finalize()
            result.tables[name] = descriptor
            logger.info(
                f"Mapped table '{name}' to '{descriptor.type_name}' "
                f"({len(descriptor.columns)} columns, {len(descriptor.associations)} associations)"
            )

        for name in sorted(set(table_names)):
            if name in result.tables or name in result.failures:
                continue
            state = pending[name].state if name in pending else AssemblyState.PENDING
            self._fail(
                result,
                name,
                MetadataExtractionError(
                    f"Table '{name}' never left the {state.value} state",
                    table=name,
                    state=state.value,
                ),
            )

        return result

    # --- Helpers ---

    def _assign_type_names(self, raw_tables) -> Dict[str, str]:
        candidates = []
        for raw_table in raw_tables:
            candidates.append((raw_table.name, self.normalizer.type_name(raw_table.name)))
            if self.emit_enums:
                candidates.extend(self.enum_extractor.type_name_candidates(raw_table))
        return NameScope().assign(candidates)

    def _extract_columns(
        self,
        descriptor: TableDescriptor,
        raw_table: RawTable,
        type_names: Dict[str, str],
        diagnostics: List[Diagnostic],
    ) -> None:
        enums: Dict[str, EnumDescriptor] = {}
        if self.emit_enums:
            enums = self.enum_extractor.extract(raw_table, type_names)
        declared_enums = {raw_enum.column: raw_enum for raw_enum in raw_table.enum_columns}

        primary_key = raw_table.primary_key
        foreign_key_columns = {
            column for foreign_key in raw_table.foreign_keys for column in foreign_key.source_columns
        }
        field_names = NameScope().assign(
            (column.name, self.normalizer.field_name(column.name)) for column in raw_table.columns
        )

        columns = []
        for raw_column in raw_table.columns:
            mapping = self.type_mapper.map(self.dialect, raw_column.native_type)
            semantic_type = mapping.semantic_type
            enum = enums.get(raw_column.name)
            declared = declared_enums.get(raw_column.name)
            comment = raw_column.comment
            constants = ()
            if declared is not None and declared.values:
                comment = describe_values(declared, comment)

            if enum is not None:
                semantic_type = SemanticType.ENUMERATED
            elif declared is not None or semantic_type == SemanticType.ENUMERATED:
                semantic_type = SemanticType.TEXT
                if declared is not None and declared.values:
                    constants = value_constants(declared)
            elif mapping.is_fallback:
                message = (
                    f"Unknown native type '{raw_column.native_type}' for column "
                    f"'{raw_table.name}.{raw_column.name}'; mapped to opaque text"
                )
                logger.warning(message)
                diagnostics.append(
                    Diagnostic(
                        table_name=raw_table.name,
                        severity=Severity.WARNING,
                        code=TYPE_FALLBACK,
                        message=message,
                        artifact=raw_column.name,
                    )
                )

            is_primary = raw_column.name in primary_key
            columns.append(
                ColumnDescriptor(
                    name=raw_column.name,
                    field_name=field_names[raw_column.name],
                    semantic_type=semantic_type,
                    native_type=raw_column.native_type,
                    nullable=raw_column.nullable and not is_primary,
                    is_primary=is_primary,
                    default=parse_static_default(raw_column.default, semantic_type),
                    enum=enum,
                    length=raw_column.length,
                    precision=raw_column.precision,
                    scale=raw_column.scale,
                    auto_increment=raw_column.auto_increment,
                    is_foreign_key=raw_column.name in foreign_key_columns,
                    comment=comment,
                    value_constants=constants,
                )
            )

        descriptor.columns = columns
        descriptor.primary_key = tuple(primary_key)
        descriptor.enums = [enums[name] for name in sorted(enums)]
        descriptor.indexes = [
            IndexDescriptor(name=index.name, columns=tuple(index.columns), unique=index.unique)
            for index in sorted(raw_table.indexes, key=lambda index: index.name)
            if not index.primary and tuple(index.columns) != tuple(primary_key)
        ]
        if self.generate_repository:
            descriptor.companion_name = self.normalizer.repository_name(descriptor.type_name)
        descriptor.state = AssemblyState.COLUMNS_EXTRACTED

    @staticmethod
    def _fail(result: AssemblyResult, table_name: str, error: SchemaCodegenError) -> None:
        logger.error(f"Excluding table '{table_name}': {error.message}")
        result.failures[table_name] = error.message
        result.diagnostics.append(error_diagnostic(table_name, error))
