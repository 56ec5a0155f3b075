"""
Enumerated-type extraction.

Every column whose declaration carries a closed value list gets its own
EnumDescriptor. Identical value lists in different columns are never merged.
"""

import logging
from typing import Dict, List, Optional, Tuple

from schema_codegen.domain.models import EnumDescriptor, RawEnumColumn, RawTable
from schema_codegen.domain.naming import NameNormalizer, NameScope, to_enum_case

logger = logging.getLogger(__name__)


def enum_scope_key(table_name: str, column_name: str) -> str:
    """Raw key of an enum type inside the run-wide type scope."""
    return f"{table_name}.{column_name}"


def describe_values(raw_enum: RawEnumColumn, original_comment: Optional[str] = None) -> str:
    """
    Column comment listing the possible values, appended to any existing one.

    Example:
        >>> describe_values(RawEnumColumn("status", ("draft", "active")))
        "Possible values: 'draft', 'active'"
    """
    label = "Possible SET values" if raw_enum.multiple else "Possible values"
    listed = ", ".join(f"'{value}'" for value in raw_enum.values)
    text = f"{label}: {listed}"
    if original_comment:
        return f"{original_comment} - {text}"
    return text


def value_constants(raw_enum: RawEnumColumn) -> Tuple[Tuple[str, str], ...]:
    """
    ``(constant name, raw value)`` pairs for a column rendered without an enum type.

    Example:
        >>> value_constants(RawEnumColumn("status", ("draft", "in-review")))
        (('STATUS_DRAFT', 'draft'), ('STATUS_IN_REVIEW', 'in-review'))
    """
    names = NameScope().assign((raw, to_enum_case(f"{raw_enum.column}_{raw}")) for raw in raw_enum.values)
    return tuple((names[raw], raw) for raw in dict.fromkeys(raw_enum.values))


class EnumExtractor:
    """
    Builds EnumDescriptors for the enumerated columns of a table.

    Type names are not decided here alone: they live in the run-wide type
    scope next to entity type names, so the assembler first collects the
    candidates of every table (``type_name_candidates``) and assigns them in
    one batch before calling ``extract``.
    """

    def __init__(self, normalizer: NameNormalizer):
        self.normalizer = normalizer

    def type_name_candidates(self, raw_table: RawTable) -> List[Tuple[str, str]]:
        """``(scope key, preferred type name)`` for each enumerated column."""
        candidates = []
        for raw_enum in self._enum_columns(raw_table):
            key = enum_scope_key(raw_table.name, raw_enum.column)
            candidates.append((key, self.normalizer.enum_type_name(raw_table.name, raw_enum.column)))
        return candidates

    def extract(self, raw_table: RawTable, type_names: Dict[str, str]) -> Dict[str, EnumDescriptor]:
        """
        Return ``column name -> EnumDescriptor`` for ``raw_table``.

        Raises:
            EnumCollisionError: two values of one column normalize to the same
                case name. The whole table is excluded by the caller.
        """
        descriptors: Dict[str, EnumDescriptor] = {}
        for raw_enum in self._enum_columns(raw_table):
            key = enum_scope_key(raw_table.name, raw_enum.column)
            type_name = type_names.get(key) or self.normalizer.enum_type_name(raw_table.name, raw_enum.column)
            cases = self.normalizer.enum_cases(raw_enum.values, table=raw_table.name, column=raw_enum.column)
            descriptors[raw_enum.column] = EnumDescriptor(
                type_name=type_name,
                cases=tuple(cases),
                table_name=raw_table.name,
                column_name=raw_enum.column,
                multiple=raw_enum.multiple,
            )
            logger.debug(f"Enum {type_name} for {raw_table.name}.{raw_enum.column}: {len(cases)} cases")
        return descriptors

    @staticmethod
    def _enum_columns(raw_table: RawTable) -> List[RawEnumColumn]:
        column_names = {column.name for column in raw_table.columns}
        enum_columns = []
        for raw_enum in raw_table.enum_columns:
            if raw_enum.column not in column_names:
                logger.warning(
                    f"Ignoring enumerated declaration for unknown column {raw_table.name}.{raw_enum.column}"
                )
                continue
            if not raw_enum.values:
                # An empty value list cannot produce a valid enum type
                logger.warning(f"Enumerated column {raw_table.name}.{raw_enum.column} declares no values")
                continue
            enum_columns.append(raw_enum)
        return sorted(enum_columns, key=lambda raw_enum: raw_enum.column)
