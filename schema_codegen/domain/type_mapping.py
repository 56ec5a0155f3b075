"""
Native type to semantic type mapping.

The mapper is a pure lookup keyed by ``(dialect, native base type)``. The
lookup table is injected and immutable, so several dialects (or a custom
table) can be exercised in isolation.

Unknown native types never fail the run: they map to ``SemanticType.OPAQUE``
(rendered as text) and the mapping is flagged as a fallback so the caller can
record a warning for the column. Fixed-point decimals deliberately map to
``DECIMAL_STRING``, trading arithmetic convenience for exactness.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from schema_codegen.domain.models import Dialect, SemanticType


_INTEGER = SemanticType.INTEGER
_FLOAT = SemanticType.FLOAT
_DECIMAL = SemanticType.DECIMAL_STRING
_BOOLEAN = SemanticType.BOOLEAN
_DATE = SemanticType.DATE
_DATETIME = SemanticType.DATETIME
_TIME = SemanticType.TIME
_TEXT = SemanticType.TEXT
_UUID = SemanticType.UUID
_BINARY = SemanticType.BINARY
_STRUCTURED = SemanticType.STRUCTURED
_ENUMERATED = SemanticType.ENUMERATED


MYSQL_TYPES: Dict[str, SemanticType] = {
    "tinyint": _INTEGER,
    "smallint": _INTEGER,
    "mediumint": _INTEGER,
    "int": _INTEGER,
    "integer": _INTEGER,
    "bigint": _INTEGER,
    "year": _INTEGER,
    "float": _FLOAT,
    "double": _FLOAT,
    "double precision": _FLOAT,
    "real": _FLOAT,
    "decimal": _DECIMAL,
    "numeric": _DECIMAL,
    "dec": _DECIMAL,
    "fixed": _DECIMAL,
    "bool": _BOOLEAN,
    "boolean": _BOOLEAN,
    "bit": _BOOLEAN,
    "date": _DATE,
    "datetime": _DATETIME,
    "timestamp": _DATETIME,
    "time": _TIME,
    "char": _TEXT,
    "varchar": _TEXT,
    "tinytext": _TEXT,
    "text": _TEXT,
    "mediumtext": _TEXT,
    "longtext": _TEXT,
    "binary": _BINARY,
    "varbinary": _BINARY,
    "tinyblob": _BINARY,
    "blob": _BINARY,
    "mediumblob": _BINARY,
    "longblob": _BINARY,
    "json": _STRUCTURED,
    "enum": _ENUMERATED,
    "set": _ENUMERATED,
}

POSTGRESQL_TYPES: Dict[str, SemanticType] = {
    "smallint": _INTEGER,
    "integer": _INTEGER,
    "bigint": _INTEGER,
    "int2": _INTEGER,
    "int4": _INTEGER,
    "int8": _INTEGER,
    "smallserial": _INTEGER,
    "serial": _INTEGER,
    "bigserial": _INTEGER,
    "real": _FLOAT,
    "double precision": _FLOAT,
    "float4": _FLOAT,
    "float8": _FLOAT,
    "numeric": _DECIMAL,
    "decimal": _DECIMAL,
    "money": _DECIMAL,
    "boolean": _BOOLEAN,
    "bool": _BOOLEAN,
    "date": _DATE,
    "timestamp": _DATETIME,
    "timestamp without time zone": _DATETIME,
    "timestamp with time zone": _DATETIME,
    "timestamptz": _DATETIME,
    "time": _TIME,
    "time without time zone": _TIME,
    "time with time zone": _TIME,
    "timetz": _TIME,
    "character varying": _TEXT,
    "varchar": _TEXT,
    "character": _TEXT,
    "char": _TEXT,
    "bpchar": _TEXT,
    "text": _TEXT,
    "citext": _TEXT,
    "name": _TEXT,
    "uuid": _UUID,
    "bytea": _BINARY,
    "json": _STRUCTURED,
    "jsonb": _STRUCTURED,
    "array": _STRUCTURED,
}

SQLITE_TYPES: Dict[str, SemanticType] = {
    "integer": _INTEGER,
    "int": _INTEGER,
    "tinyint": _INTEGER,
    "smallint": _INTEGER,
    "mediumint": _INTEGER,
    "bigint": _INTEGER,
    "unsigned big int": _INTEGER,
    "int2": _INTEGER,
    "int8": _INTEGER,
    "real": _FLOAT,
    "double": _FLOAT,
    "double precision": _FLOAT,
    "float": _FLOAT,
    "numeric": _DECIMAL,
    "decimal": _DECIMAL,
    "boolean": _BOOLEAN,
    "bool": _BOOLEAN,
    "date": _DATE,
    "datetime": _DATETIME,
    "timestamp": _DATETIME,
    "time": _TIME,
    "text": _TEXT,
    "varchar": _TEXT,
    "varying character": _TEXT,
    "nvarchar": _TEXT,
    "char": _TEXT,
    "character": _TEXT,
    "nchar": _TEXT,
    "native character": _TEXT,
    "clob": _TEXT,
    "uuid": _UUID,
    "blob": _BINARY,
    "json": _STRUCTURED,
}


def default_type_table() -> Mapping[Tuple[Dialect, str], SemanticType]:
    """The built-in ``(dialect, native base type) -> semantic type`` lookup."""
    table: Dict[Tuple[Dialect, str], SemanticType] = {}
    for dialect, types in (
        (Dialect.MYSQL, MYSQL_TYPES),
        (Dialect.POSTGRESQL, POSTGRESQL_TYPES),
        (Dialect.SQLITE, SQLITE_TYPES),
    ):
        for native, semantic in types.items():
            table[(dialect, native)] = semantic
    return MappingProxyType(table)


_MODIFIERS = re.compile(r"\b(unsigned|signed|zerofill)\b", re.IGNORECASE)
_PARAMETERS = re.compile(r"\(.*\)", re.DOTALL)


def normalize_native_type(native_type: str) -> str:
    """
    Reduce a native type declaration to its lookup key.

    Example:
        >>> normalize_native_type("DECIMAL(10,2) UNSIGNED")
        'decimal'
        >>> normalize_native_type("character varying(255)")
        'character varying'
        >>> normalize_native_type("integer[]")
        'array'
    """
    text = (native_type or "").strip().lower()
    if text.endswith("[]") or text == "array":
        return "array"
    text = _MODIFIERS.sub(" ", text)
    text = _PARAMETERS.sub(" ", text)
    return " ".join(text.split())


@dataclass(frozen=True)
class TypeMapping:
    semantic_type: SemanticType
    native_base: str
    is_fallback: bool = False


class TypeMapper:
    """
    Maps ``(dialect, native type)`` to a semantic type.

    Args:
        table: Immutable lookup keyed by ``(dialect, native base type)``.
            Defaults to the built-in table.
    """

    def __init__(self, table: Optional[Mapping[Tuple[Dialect, str], SemanticType]] = None):
        self.table = MappingProxyType(dict(table)) if table is not None else default_type_table()

    def map(self, dialect: Dialect, native_type: str) -> TypeMapping:
        base = normalize_native_type(native_type)

        # MySQL spells booleans as tinyint(1) / bit(1)
        if dialect == Dialect.MYSQL and re.fullmatch(r"(tinyint|bit)\s*\(\s*1\s*\)", (native_type or "").strip().lower()):
            return TypeMapping(SemanticType.BOOLEAN, base)

        semantic = self.table.get((dialect, base))
        if semantic is None:
            return TypeMapping(SemanticType.OPAQUE, base, is_fallback=True)
        return TypeMapping(semantic, base)

    def semantic_type(self, dialect: Dialect, native_type: str) -> SemanticType:
        return self.map(dialect, native_type).semantic_type


# =============================================================================
# STATIC DEFAULTS
# =============================================================================

_CAST_SUFFIX = re.compile(r"^(.*?)::[\w\s\[\]\".]+$", re.DOTALL)
_INTEGER_LITERAL = re.compile(r"^[+-]?\d+$")
_NUMBER_LITERAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_TRUE_LITERALS = {"true", "1", "b'1'", "t", "yes", "on"}
_FALSE_LITERALS = {"false", "0", "b'0'", "f", "no", "off"}


def _unwrap(expression: str) -> str:
    text = expression.strip()
    while True:
        cast = _CAST_SUFFIX.match(text)
        if cast:
            text = cast.group(1).strip()
            continue
        if text.startswith("(") and text.endswith(")"):
            text = text[1:-1].strip()
            continue
        return text


def parse_static_default(raw_default: Optional[str], semantic_type: SemanticType) -> Optional[Any]:
    """
    Turn a catalog default expression into a static value.

    Returns None when there is no default or when the default is an
    expression evaluated by the database (``CURRENT_TIMESTAMP``,
    ``nextval(...)``, ``gen_random_uuid()``...).

    Example:
        >>> parse_static_default("'draft'::product_status", SemanticType.ENUMERATED)
        'draft'
        >>> parse_static_default("0", SemanticType.INTEGER)
        0
        >>> parse_static_default("CURRENT_TIMESTAMP", SemanticType.DATETIME) is None
        True
    """
    if raw_default is None:
        return None
    text = _unwrap(str(raw_default))
    if not text or text.upper() == "NULL":
        return None

    quoted = len(text) >= 2 and text[0] == "'" and text[-1] == "'"
    literal = text[1:-1].replace("''", "'") if quoted else text

    if semantic_type in (SemanticType.BINARY, SemanticType.STRUCTURED):
        return None

    if semantic_type == SemanticType.BOOLEAN:
        lowered = text.lower() if not quoted else literal.lower()
        if lowered in _TRUE_LITERALS:
            return True
        if lowered in _FALSE_LITERALS:
            return False
        return None

    if semantic_type == SemanticType.INTEGER:
        return int(literal) if _INTEGER_LITERAL.match(literal) else None

    if semantic_type == SemanticType.FLOAT:
        return float(literal) if _NUMBER_LITERAL.match(literal) else None

    if semantic_type == SemanticType.DECIMAL_STRING:
        return literal if _NUMBER_LITERAL.match(literal) else None

    # Textual, temporal and enumerated values are only static when quoted
    return literal if quoted else None
