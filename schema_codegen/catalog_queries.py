"""
Dialect-specific catalog queries.

Django's ``connection.introspection`` covers table lists, primary keys and
indexes, but it reports foreign keys per column (no composite keys, no
referential actions), hides column comments and knows nothing about
enumerated declarations. These queries run on the same Django cursor and
fill those gaps for each supported engine.
"""

import csv
import logging
import re
from collections import OrderedDict
from typing import Callable, List, Optional, Tuple

from schema_codegen.constants import normalize_fk_action
from schema_codegen.domain.models import Dialect, RawColumn, RawEnumColumn, RawForeignKey

logger = logging.getLogger(__name__)


def parse_quoted_list(text: str) -> Tuple[str, ...]:
    """
    Parse a comma-separated list of single-quoted SQL literals.

    Example:
        >>> parse_quoted_list("'draft','active','it''s'")
        ('draft', 'active', "it's")
    """
    if not text.strip():
        return ()
    reader = csv.reader([text], delimiter=",", quotechar="'", doublequote=True, skipinitialspace=True)
    return tuple(next(reader))


def parse_type_arguments(native_type: str) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """
    ``(length, precision, scale)`` declared in a type such as ``varchar(20)``
    or ``decimal(10,2)``.
    """
    match = re.search(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)", native_type or "")
    if not match:
        return None, None, None
    first = int(match.group(1))
    second = int(match.group(2)) if match.group(2) is not None else None
    base = native_type.lower()
    if any(name in base for name in ("dec", "numeric", "fixed", "float", "double", "real")):
        return None, first, second
    return first, None, None


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class CatalogQueries:
    """
    Base class for per-dialect catalog queries.

    Args:
        quote_name: The connection's identifier quoting function
            (``connection.ops.quote_name``).
    """

    dialect: Dialect

    def __init__(self, quote_name: Callable[[str], str]):
        self.quote_name = quote_name

    def columns(self, cursor, table_name: str) -> List[RawColumn]:
        raise NotImplementedError

    def foreign_keys(self, cursor, table_name: str) -> List[RawForeignKey]:
        raise NotImplementedError

    def enum_columns(self, cursor, table_name: str) -> List[RawEnumColumn]:
        raise NotImplementedError

    def primary_key(self, cursor, table_name: str) -> Optional[Tuple[str, ...]]:
        """Primary key columns in key order, or None to rely on Django's introspection."""
        return None

    @staticmethod
    def group_foreign_keys(rows) -> List[RawForeignKey]:
        """
        Group ``(name, source, target_table, target, on_delete, on_update)``
        rows, already ordered by constraint and position, into one raw
        foreign key per constraint.
        """
        grouped: "OrderedDict[str, dict]" = OrderedDict()
        for name, source, target_table, target, on_delete, on_update in rows:
            entry = grouped.setdefault(
                name,
                {
                    "target_table": target_table,
                    "source": [],
                    "target": [],
                    "on_delete": normalize_fk_action(on_delete),
                    "on_update": normalize_fk_action(on_update),
                },
            )
            entry["source"].append(source)
            if target is not None:
                entry["target"].append(target)

        return [
            RawForeignKey(
                name=name,
                source_columns=tuple(entry["source"]),
                target_table=entry["target_table"],
                target_columns=tuple(entry["target"]),
                on_delete=entry["on_delete"],
                on_update=entry["on_update"],
            )
            for name, entry in grouped.items()
        ]


class SQLiteCatalog(CatalogQueries):
    dialect = Dialect.SQLITE

    _CHECK_IN = re.compile(
        r"CHECK\s*\(\s*[\"`\[]?(?P<column>\w+)[\"`\]]?\s+IN\s*\((?P<values>(?:[^)']|'(?:[^']|'')*')*)\)\s*\)",
        re.IGNORECASE,
    )

    def columns(self, cursor, table_name: str) -> List[RawColumn]:
        cursor.execute(f"PRAGMA table_info({self.quote_name(table_name)})")
        rows = cursor.fetchall()
        primary_key = [row[1] for row in rows if row[5]]
        columns = []
        for cid, name, declared_type, notnull, default, pk in rows:
            declared_type = declared_type or ""
            length, precision, scale = parse_type_arguments(declared_type)
            # A lone INTEGER PRIMARY KEY aliases the rowid
            auto_increment = bool(pk) and len(primary_key) == 1 and declared_type.strip().upper() == "INTEGER"
            columns.append(
                RawColumn(
                    name=name,
                    native_type=declared_type,
                    nullable=not notnull and not pk,
                    default=default,
                    length=length,
                    precision=precision,
                    scale=scale,
                    auto_increment=auto_increment,
                    ordinal=cid,
                )
            )
        return columns

    def primary_key(self, cursor, table_name: str) -> Optional[Tuple[str, ...]]:
        cursor.execute(f"PRAGMA table_info({self.quote_name(table_name)})")
        # The pk column holds the 1-based position inside the key
        key_columns = sorted((row[5], row[1]) for row in cursor.fetchall() if row[5])
        return tuple(name for _, name in key_columns) or None

    def foreign_keys(self, cursor, table_name: str) -> List[RawForeignKey]:
        cursor.execute(f"PRAGMA foreign_key_list({self.quote_name(table_name)})")
        rows = sorted(cursor.fetchall(), key=lambda row: (row[0], row[1]))
        return self.group_foreign_keys(
            (f"{table_name}_fk_{fk_id}", source, target_table, target, on_delete, on_update)
            for fk_id, seq, target_table, source, target, on_update, on_delete, *_ in rows
        )

    def enum_columns(self, cursor, table_name: str) -> List[RawEnumColumn]:
        cursor.execute("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = %s", [table_name])
        row = cursor.fetchone()
        if not row or not row[0]:
            return []
        enum_columns = []
        for match in self._CHECK_IN.finditer(row[0]):
            values = parse_quoted_list(match.group("values"))
            enum_columns.append(RawEnumColumn(column=match.group("column"), values=values))
        return enum_columns


class PostgreSQLCatalog(CatalogQueries):
    dialect = Dialect.POSTGRESQL

    COLUMNS_SQL = """
        SELECT c.column_name, c.data_type, c.udt_name, c.is_nullable, c.column_default,
               c.character_maximum_length, c.numeric_precision, c.numeric_scale,
               c.is_identity, c.ordinal_position, pg_catalog.col_description(a.attrelid, a.attnum)
        FROM information_schema.columns c
        JOIN pg_catalog.pg_namespace ns ON ns.nspname = c.table_schema
        JOIN pg_catalog.pg_class cls ON cls.relname = c.table_name AND cls.relnamespace = ns.oid
        JOIN pg_catalog.pg_attribute a ON a.attrelid = cls.oid AND a.attname = c.column_name
        WHERE c.table_schema = current_schema() AND c.table_name = %s
        ORDER BY c.ordinal_position
    """

    FOREIGN_KEYS_SQL = """
        SELECT con.conname, src.attname, ref.relname, tgt.attname, con.confdeltype, con.confupdtype
        FROM pg_catalog.pg_constraint con
        JOIN pg_catalog.pg_class cls ON cls.oid = con.conrelid
        JOIN pg_catalog.pg_namespace ns ON ns.oid = cls.relnamespace
        JOIN pg_catalog.pg_class ref ON ref.oid = con.confrelid
        CROSS JOIN LATERAL unnest(con.conkey, con.confkey) WITH ORDINALITY AS k(src_num, tgt_num, position)
        JOIN pg_catalog.pg_attribute src ON src.attrelid = con.conrelid AND src.attnum = k.src_num
        JOIN pg_catalog.pg_attribute tgt ON tgt.attrelid = con.confrelid AND tgt.attnum = k.tgt_num
        WHERE con.contype = 'f' AND cls.relname = %s AND ns.nspname = current_schema()
        ORDER BY con.conname, k.position
    """

    ENUMS_SQL = """
        SELECT c.column_name, e.enumlabel
        FROM information_schema.columns c
        JOIN pg_catalog.pg_namespace tn ON tn.nspname = c.udt_schema
        JOIN pg_catalog.pg_type t ON t.typname = c.udt_name AND t.typnamespace = tn.oid
        JOIN pg_catalog.pg_enum e ON e.enumtypid = t.oid
        WHERE c.table_schema = current_schema() AND c.table_name = %s
        ORDER BY c.column_name, e.enumsortorder
    """

    def columns(self, cursor, table_name: str) -> List[RawColumn]:
        cursor.execute(self.COLUMNS_SQL, [table_name])
        columns = []
        for (
            name, data_type, udt_name, is_nullable, default,
            length, precision, scale, is_identity, ordinal, comment,
        ) in cursor.fetchall():
            if data_type == "USER-DEFINED":
                native_type = udt_name
            elif data_type == "ARRAY":
                native_type = "array"
            else:
                native_type = data_type
            columns.append(
                RawColumn(
                    name=name,
                    native_type=native_type,
                    nullable=is_nullable == "YES",
                    default=default,
                    length=length,
                    precision=precision if native_type in ("numeric", "decimal") else None,
                    scale=scale if native_type in ("numeric", "decimal") else None,
                    auto_increment=is_identity == "YES" or str(default or "").startswith("nextval("),
                    comment=comment,
                    ordinal=ordinal,
                )
            )
        return columns

    def foreign_keys(self, cursor, table_name: str) -> List[RawForeignKey]:
        cursor.execute(self.FOREIGN_KEYS_SQL, [table_name])
        return self.group_foreign_keys(cursor.fetchall())

    def enum_columns(self, cursor, table_name: str) -> List[RawEnumColumn]:
        cursor.execute(self.ENUMS_SQL, [table_name])
        values: "OrderedDict[str, List[str]]" = OrderedDict()
        for column, label in cursor.fetchall():
            values.setdefault(column, []).append(label)
        return [RawEnumColumn(column=column, values=tuple(labels)) for column, labels in values.items()]


class MySQLCatalog(CatalogQueries):
    dialect = Dialect.MYSQL

    COLUMNS_SQL = """
        SELECT COLUMN_NAME, COLUMN_TYPE, DATA_TYPE, IS_NULLABLE, COLUMN_DEFAULT,
               CHARACTER_MAXIMUM_LENGTH, NUMERIC_PRECISION, NUMERIC_SCALE,
               EXTRA, COLUMN_COMMENT, ORDINAL_POSITION
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s
        ORDER BY ORDINAL_POSITION
    """

    FOREIGN_KEYS_SQL = """
        SELECT k.CONSTRAINT_NAME, k.COLUMN_NAME, k.REFERENCED_TABLE_NAME, k.REFERENCED_COLUMN_NAME,
               r.DELETE_RULE, r.UPDATE_RULE
        FROM information_schema.KEY_COLUMN_USAGE k
        JOIN information_schema.REFERENTIAL_CONSTRAINTS r
          ON r.CONSTRAINT_SCHEMA = k.CONSTRAINT_SCHEMA
         AND r.CONSTRAINT_NAME = k.CONSTRAINT_NAME
         AND r.TABLE_NAME = k.TABLE_NAME
        WHERE k.TABLE_SCHEMA = DATABASE() AND k.TABLE_NAME = %s
          AND k.REFERENCED_TABLE_NAME IS NOT NULL
        ORDER BY k.CONSTRAINT_NAME, k.ORDINAL_POSITION
    """

    ENUMS_SQL = """
        SELECT COLUMN_NAME, COLUMN_TYPE, DATA_TYPE
        FROM information_schema.COLUMNS
        WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s AND DATA_TYPE IN ('enum', 'set')
        ORDER BY ORDINAL_POSITION
    """

    def columns(self, cursor, table_name: str) -> List[RawColumn]:
        cursor.execute(self.COLUMNS_SQL, [table_name])
        columns = []
        for (
            name, column_type, data_type, is_nullable, default,
            length, precision, scale, extra, comment, ordinal,
        ) in cursor.fetchall():
            extra = (extra or "").lower()
            columns.append(
                RawColumn(
                    name=name,
                    native_type=column_type,
                    nullable=is_nullable == "YES",
                    default=self._default_expression(default, extra),
                    length=length if data_type not in ("enum", "set") else None,
                    precision=precision if data_type in ("decimal", "numeric") else None,
                    scale=scale if data_type in ("decimal", "numeric") else None,
                    auto_increment="auto_increment" in extra,
                    comment=comment or None,
                    ordinal=ordinal,
                )
            )
        return columns

    @staticmethod
    def _default_expression(default: Optional[str], extra: str) -> Optional[str]:
        """
        MySQL 8 reports literal defaults unquoted and marks expressions with
        DEFAULT_GENERATED; quote literals so every dialect hands the same
        shape to the default parser.
        """
        if default is None or default == "NULL":
            return None
        if "default_generated" in extra or default.upper().startswith("CURRENT_TIMESTAMP"):
            return default
        if len(default) >= 2 and default[0] == "'" and default[-1] == "'":
            return default
        return _quote_literal(default)

    def foreign_keys(self, cursor, table_name: str) -> List[RawForeignKey]:
        cursor.execute(self.FOREIGN_KEYS_SQL, [table_name])
        return self.group_foreign_keys(cursor.fetchall())

    def enum_columns(self, cursor, table_name: str) -> List[RawEnumColumn]:
        cursor.execute(self.ENUMS_SQL, [table_name])
        enum_columns = []
        for name, column_type, data_type in cursor.fetchall():
            start, end = column_type.find("("), column_type.rfind(")")
            if start == -1 or end <= start:
                logger.warning(f"Cannot parse value list of {table_name}.{name}: {column_type}")
                continue
            enum_columns.append(
                RawEnumColumn(
                    column=name,
                    values=parse_quoted_list(column_type[start + 1:end]),
                    multiple=data_type == "set",
                )
            )
        return enum_columns


CATALOGS = {
    Dialect.SQLITE: SQLiteCatalog,
    Dialect.POSTGRESQL: PostgreSQLCatalog,
    Dialect.MYSQL: MySQLCatalog,
}


def catalog_for(dialect: Dialect, quote_name: Callable[[str], str]) -> CatalogQueries:
    return CATALOGS[dialect](quote_name)
