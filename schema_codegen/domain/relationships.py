"""
Relationship resolution domain logic for schema-codegen.

Each foreign key becomes one many-to-one AssociationDescriptor on the table
that owns it. Linking happens in a dedicated pass once every table of the run
has been assembled, so a foreign key may point at a table that sorts later.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

from schema_codegen.domain.models import (
    AssociationDescriptor,
    Diagnostic,
    RawForeignKey,
    RawTable,
    Severity,
    TableDescriptor,
)
from schema_codegen.domain.naming import NameNormalizer, NameScope, to_upper_camel
from schema_codegen.exceptions import PartialKeyError, SchemaReadError

logger = logging.getLogger(__name__)

UNRESOLVED_ASSOCIATION = "unresolved_association"

# Names a self-reference must never take
SELF_NAMES = frozenset({"self", "this"})

_ID_SUFFIX = re.compile(r"^(?P<stem>.+?)(_id|_ID|Id)$")


def strip_id_suffix(column_name: str) -> Optional[str]:
    """
    Return the column name without its ``_id`` / ``Id`` suffix, or None.

    Example:
        >>> strip_id_suffix("category_id")
        'category'
        >>> strip_id_suffix("parentId")
        'parent'
        >>> strip_id_suffix("owner") is None
        True
    """
    match = _ID_SUFFIX.match(column_name)
    if not match:
        return None
    return match.group("stem").rstrip("_") or None


def resolve_target_columns(
    foreign_key: RawForeignKey,
    source_table: str,
    target: Optional[RawTable],
) -> Tuple[str, ...]:
    """
    Work out the referenced columns of ``foreign_key`` and validate them
    against the target's keys.

    SQLite lets a foreign key omit the referenced columns, in which case the
    target's primary key is meant.

    Raises:
        PartialKeyError: the foreign key references a strict subset of the
            target's primary key that is not backed by a unique index.
        SchemaReadError: source and target column counts differ.
    """
    target_columns = tuple(foreign_key.target_columns)
    if target is None:
        return target_columns

    primary_key = target.primary_key
    if not target_columns:
        target_columns = primary_key

    if len(target_columns) != len(foreign_key.source_columns):
        if len(foreign_key.source_columns) < len(primary_key):
            raise PartialKeyError(
                f"Foreign key {foreign_key.name or foreign_key.source_columns} on '{source_table}' references "
                f"{len(foreign_key.source_columns)} of the {len(primary_key)} key columns of '{target.name}'",
                source_table=source_table,
                target_table=target.name,
                source_columns=list(foreign_key.source_columns),
                target_key=list(primary_key),
            )
        raise SchemaReadError(
            f"Foreign key {foreign_key.name or foreign_key.source_columns} on '{source_table}' has "
            f"{len(foreign_key.source_columns)} source columns but {len(target_columns)} target columns",
            table=source_table,
        )

    referenced = set(target_columns)
    if primary_key and referenced < set(primary_key):
        unique_indexes = [set(index.columns) for index in target.indexes if index.unique]
        if referenced not in unique_indexes:
            raise PartialKeyError(
                f"Foreign key {foreign_key.name or list(foreign_key.source_columns)} on '{source_table}' "
                f"references only part of the primary key of '{target.name}'",
                source_table=source_table,
                target_table=target.name,
                source_columns=list(foreign_key.source_columns),
                target_key=list(primary_key),
            )

    return target_columns


class RelationshipResolver:
    """
    Derives AssociationDescriptors for one table from its raw foreign keys.

    Association names share the table's member scope with field names.
    Foreign keys are handled in a stable order (by source columns, then
    constraint name) so that names never depend on catalog row order.
    """

    def __init__(self, normalizer: NameNormalizer):
        self.normalizer = normalizer

    def validate(self, raw_table: RawTable, raw_tables: Mapping[str, RawTable]) -> None:
        """
        Check every foreign key of ``raw_table`` against the keys of its
        target. Raises PartialKeyError or SchemaReadError for the table.
        """
        for foreign_key in raw_table.foreign_keys:
            resolve_target_columns(foreign_key, raw_table.name, raw_tables.get(foreign_key.target_table))

    def link(
        self,
        owner: TableDescriptor,
        raw_table: RawTable,
        descriptors: Mapping[str, TableDescriptor],
        raw_tables: Mapping[str, RawTable],
    ) -> Tuple[List[AssociationDescriptor], List[Diagnostic]]:
        """
        Build the associations of ``owner``.

        Args:
            owner: The table being linked.
            raw_table: Raw facts of ``owner``.
            descriptors: Every successfully assembled table of the run.
            raw_tables: Raw facts of every table that was read.

        Returns:
            ``(associations, diagnostics)``. A foreign key whose target is
            outside the run, or failed assembly, still yields an association
            flagged ``unresolved_target`` plus a warning diagnostic.
        """
        scope = NameScope(owner.field_names)
        associations: List[AssociationDescriptor] = []
        diagnostics: List[Diagnostic] = []
        nullable_columns = {column.name for column in owner.columns if column.nullable}

        ordered = sorted(raw_table.foreign_keys, key=lambda fk: (tuple(fk.source_columns), fk.name or ""))
        for foreign_key in ordered:
            target = descriptors.get(foreign_key.target_table)
            target_columns = resolve_target_columns(
                foreign_key, owner.name, raw_tables.get(foreign_key.target_table)
            )
            is_self = foreign_key.target_table == owner.name
            if is_self:
                target = owner

            target_type_name = (
                target.type_name if target is not None else self.normalizer.type_name(foreign_key.target_table)
            )
            name = scope.claim(self._candidate_names(foreign_key, owner, target_type_name, is_self))

            unresolved = target is None
            if unresolved:
                reason = (
                    "failed assembly" if foreign_key.target_table in raw_tables else "is not part of this run"
                )
                message = (
                    f"Association '{name}' on '{owner.name}' references table "
                    f"'{foreign_key.target_table}', which {reason}"
                )
                if not target_columns:
                    message += "; the referenced columns are implicit (its primary key) and stay unknown"
                logger.warning(message)
                diagnostics.append(
                    Diagnostic(
                        table_name=owner.name,
                        severity=Severity.WARNING,
                        code=UNRESOLVED_ASSOCIATION,
                        message=message,
                        artifact=name,
                    )
                )

            if target_columns:
                column_pairs = tuple(zip(foreign_key.source_columns, target_columns))
            else:
                column_pairs = tuple((source, None) for source in foreign_key.source_columns)
            associations.append(
                AssociationDescriptor(
                    name=name,
                    column_pairs=column_pairs,
                    target_table=foreign_key.target_table,
                    target=target,
                    on_delete=foreign_key.on_delete,
                    on_update=foreign_key.on_update,
                    nullable=any(column in nullable_columns for column in foreign_key.source_columns),
                    is_self_referencing=is_self,
                    unresolved_target=unresolved,
                    constraint_name=foreign_key.name or None,
                )
            )
            logger.debug(
                f"Association {owner.name}.{name} -> {foreign_key.target_table} "
                f"({', '.join(foreign_key.source_columns)})"
            )

        return associations, diagnostics

    def _candidate_names(
        self,
        foreign_key: RawForeignKey,
        owner: TableDescriptor,
        target_type_name: str,
        is_self: bool,
    ) -> List[str]:
        candidates = []
        stem = strip_id_suffix(foreign_key.source_columns[0]) if len(foreign_key.source_columns) == 1 else None
        if stem:
            candidates.append(self.normalizer.field_name(stem))
        candidates.append(self.normalizer.instance_name(target_type_name))
        first_column = self.normalizer.field_name(foreign_key.source_columns[0]).rstrip("_")
        candidates.append(f"{first_column}{to_upper_camel(target_type_name)}")

        if is_self:
            forbidden = {self.normalizer.instance_name(owner.type_name)} | SELF_NAMES
            candidates = [
                f"parent{to_upper_camel(name)}" if name in forbidden else name
                for name in candidates
            ]

        # Preserve order, drop duplicates
        return list(dict.fromkeys(candidates))
