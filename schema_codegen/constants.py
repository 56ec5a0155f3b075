"""
Centralized constants for schema-codegen.

Defaults, supported engines, referential actions and reserved words of the
built-in template sets live here so that behavior can be changed in one
place.
"""

import keyword
from types import MappingProxyType
from typing import FrozenSet, Mapping, Tuple

from schema_codegen.domain.models import Dialect


# =============================================================================
# CORE CONFIGURATION
# =============================================================================


class DefaultConfig:
    """Default configuration values."""

    OUTPUT_DIR = "./generated"
    NAMESPACE = "app"
    TEMPLATE_SET = "python"
    CONFLICT_POLICY = "fail-on-exists"
    GENERATE_REPOSITORY = True
    EMIT_ENUMS = True
    SINGULARIZE_ENTITY_NAMES = False
    WORKERS = 1
    MAX_WORKERS = 32
    BLACK_LINE_LENGTH = 120


class SupportedDatabases:
    """Django database engines the schema reader has catalog queries for."""

    POSTGRESQL = "django.db.backends.postgresql"
    SQLITE = "django.db.backends.sqlite3"
    MYSQL = "django.db.backends.mysql"

    SUPPORTED = [POSTGRESQL, SQLITE, MYSQL]

    # connection.vendor -> dialect
    VENDOR_DIALECTS: Mapping[str, Dialect] = MappingProxyType({
        "postgresql": Dialect.POSTGRESQL,
        "sqlite": Dialect.SQLITE,
        "mysql": Dialect.MYSQL,
    })


# Tables that belong to the engine rather than the application
SYSTEM_TABLE_PREFIXES: Tuple[str, ...] = (
    "sqlite_",
    "pg_",
    "information_schema",
    "performance_schema",
)

# Canonical spelling of referential actions
FK_ACTIONS: Mapping[str, str] = MappingProxyType({
    "CASCADE": "CASCADE",
    "RESTRICT": "RESTRICT",
    "SET NULL": "SET NULL",
    "SET DEFAULT": "SET DEFAULT",
    "NO ACTION": "NO ACTION",
    # pg_constraint confdeltype / confupdtype codes
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
})


def normalize_fk_action(action) -> str:
    """Return the canonical spelling of a referential action (default NO ACTION)."""
    if not action:
        return "NO ACTION"
    action = str(action).strip()
    return FK_ACTIONS.get(action, FK_ACTIONS.get(action.upper(), "NO ACTION"))


# =============================================================================
# RESERVED WORDS OF THE BUILT-IN TEMPLATE SETS
# =============================================================================

PYTHON_RESERVED_WORDS: FrozenSet[str] = frozenset(keyword.kwlist) | frozenset(
    # Names the generated entity modules import at class level
    {"self", "cls", "field", "dataclass"}
)

PHP_RESERVED_WORDS: FrozenSet[str] = frozenset({
    "abstract", "and", "array", "as", "break", "callable", "case", "catch",
    "class", "clone", "const", "continue", "declare", "default", "do", "echo",
    "else", "elseif", "empty", "enddeclare", "endfor", "endforeach", "endif",
    "endswitch", "endwhile", "enum", "eval", "exit", "extends", "final",
    "finally", "fn", "for", "foreach", "function", "global", "goto", "if",
    "implements", "include", "instanceof", "insteadof", "interface", "isset",
    "list", "match", "namespace", "new", "or", "print", "private",
    "protected", "public", "readonly", "require", "return", "static",
    "switch", "this", "throw", "trait", "try", "unset", "use", "var", "while",
    "xor", "yield", "int", "float", "bool", "string", "true", "false", "null",
    "void", "iterable", "object", "mixed", "never",
})

BUILTIN_RESERVED_WORDS: Mapping[str, FrozenSet[str]] = MappingProxyType({
    "python": PYTHON_RESERVED_WORDS,
    "php": PHP_RESERVED_WORDS,
})
