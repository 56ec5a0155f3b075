import fnmatch
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

import django
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import DEFAULT_DB_ALIAS, DatabaseError, connections

from schema_codegen.catalog_queries import CatalogQueries, catalog_for
from schema_codegen.constants import SYSTEM_TABLE_PREFIXES, SupportedDatabases
from schema_codegen.domain.models import Dialect, RawColumn, RawEnumColumn, RawForeignKey, RawIndex
from schema_codegen.exceptions import ConfigurationError, DatabaseConnectionError, SchemaReadError

logger = logging.getLogger(__name__)


# --- Django Setup Helper ---
_django_setup_done = False


def setup_django(db_settings: Dict[str, Any], secret_key: str = "schema-codegen-introspection"):
    """Configures minimal Django settings and runs django.setup()."""
    global _django_setup_done
    if _django_setup_done or settings.configured:
        logger.debug("Django setup already performed.")
        _django_setup_done = True
        return

    logger.info("Configuring Django settings for introspection...")
    plain_db_settings: Dict[str, Dict[str, Any]] = {}
    for alias, db_model in db_settings.items():
        # Pydantic models are converted to the plain dicts Django expects
        if hasattr(db_model, "model_dump") and callable(db_model.model_dump):
            plain_db_settings[alias] = db_model.model_dump(exclude_none=True)
        elif isinstance(db_model, dict):
            plain_db_settings[alias] = dict(db_model)
        else:
            raise ConfigurationError(
                f"Invalid database settings type for alias '{alias}': {type(db_model).__name__}"
            )

    settings.configure(
        SECRET_KEY=secret_key,
        DATABASES=plain_db_settings,
        TIME_ZONE="UTC",
        USE_TZ=True,
        DEFAULT_AUTO_FIELD="django.db.models.BigAutoField",
    )
    django.setup()
    _django_setup_done = True
    logger.info("Django setup complete.")


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    """True when ``name`` equals one of ``patterns`` or matches it as a shell glob."""
    return any(name == pattern or fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def is_system_table(name: str) -> bool:
    return name.lower().startswith(SYSTEM_TABLE_PREFIXES)


def filter_tables(
    names: Iterable[str],
    include: Optional[Iterable[str]] = None,
    exclude: Optional[Iterable[str]] = None,
) -> List[str]:
    """Apply include/exclude name filters and return the survivors sorted by name."""
    include = list(include or [])
    exclude = list(exclude or [])
    selected = []
    for name in names:
        if is_system_table(name):
            logger.debug(f"Skipping system table '{name}'.")
            continue
        if exclude and matches_any(name, exclude):
            logger.info(f"Excluding table: {name}")
            continue
        if include and not matches_any(name, include):
            logger.debug(f"Skipping table '{name}' (not in include list).")
            continue
        selected.append(name)
    return sorted(selected)


class SchemaReader(Protocol):
    """Read-only access to the structure of one database."""

    dialect: Dialect

    def open(self) -> None:
        ...

    def close(self) -> None:
        ...

    def list_tables(self, include: Optional[List[str]] = None, exclude: Optional[List[str]] = None) -> List[str]:
        ...

    def read_columns(self, table_name: str) -> List[RawColumn]:
        ...

    def read_foreign_keys(self, table_name: str) -> List[RawForeignKey]:
        ...

    def read_indexes(self, table_name: str) -> List[RawIndex]:
        ...

    def read_enumerated_declarations(self, table_name: str) -> List[RawEnumColumn]:
        ...


class DjangoSchemaReader:
    """
    Schema reader backed by a configured Django database connection.

    Tables, primary keys and indexes come from ``connection.introspection``;
    columns, foreign keys and enumerated declarations from the dialect's
    catalog queries. The connection is only ever used for reads.

    Args:
        db_alias: Alias of the connection in ``settings.DATABASES``.
    """

    def __init__(self, db_alias: str = DEFAULT_DB_ALIAS):
        self.db_alias = db_alias
        self._connection = None
        self._catalog: Optional[CatalogQueries] = None
        self.dialect: Optional[Dialect] = None

    # --- Connection lifecycle ---

    def open(self) -> None:
        try:
            connection = connections[self.db_alias]
        except Exception as e:
            raise DatabaseConnectionError(
                f"No database configured under alias '{self.db_alias}': {e}"
            ) from e

        engine = connection.settings_dict.get("ENGINE")
        dialect = SupportedDatabases.VENDOR_DIALECTS.get(connection.vendor)
        if dialect is None:
            raise ConfigurationError(
                f"Database vendor '{connection.vendor}' is not supported",
                suggestions=[f"Use one of: {', '.join(SupportedDatabases.SUPPORTED)}"],
            )

        try:
            connection.ensure_connection()
        except (DatabaseError, ImproperlyConfigured) as e:
            raise DatabaseConnectionError(
                f"Could not connect to database '{connection.settings_dict.get('NAME')}': {e}",
                engine=engine,
            ) from e

        self._connection = connection
        self._catalog = catalog_for(dialect, connection.ops.quote_name)
        self.dialect = dialect
        logger.info(f"Connected to {dialect.value} database '{connection.settings_dict.get('NAME')}'.")

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            logger.debug(f"Closed database connection '{self.db_alias}'.")
        self._connection = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def connection(self):
        if self._connection is None:
            raise DatabaseConnectionError("Schema reader is not open. Call open() first.")
        return self._connection

    # --- Reads ---

    def list_tables(self, include: Optional[List[str]] = None, exclude: Optional[List[str]] = None) -> List[str]:
        try:
            with self.connection.cursor() as cursor:
                items = self.connection.introspection.get_table_list(cursor)
        except DatabaseError as e:
            raise DatabaseConnectionError(f"Could not list tables: {e}") from e

        logger.info(f"Found {len(items)} database items (tables/views).")
        # Views ('v') are not generated
        table_names = [item.name for item in items if getattr(item, "type", "t") == "t"]
        selected = filter_tables(table_names, include, exclude)
        if not selected:
            logger.warning("No tables selected for introspection after filtering.")
        return selected

    def read_columns(self, table_name: str) -> List[RawColumn]:
        columns = self._read(table_name, "columns", self._catalog.columns)
        if not columns:
            raise SchemaReadError(
                f"Table '{table_name}' has no columns; it was probably dropped during the run",
                table=table_name,
            )
        return columns

    def read_foreign_keys(self, table_name: str) -> List[RawForeignKey]:
        return self._read(table_name, "foreign keys", self._catalog.foreign_keys)

    def read_enumerated_declarations(self, table_name: str) -> List[RawEnumColumn]:
        return self._read(table_name, "enumerated declarations", self._catalog.enum_columns)

    def read_indexes(self, table_name: str) -> List[RawIndex]:
        constraints = self._read(
            table_name,
            "constraints",
            lambda cursor, name: self.connection.introspection.get_constraints(cursor, name),
        )
        logger.debug(f"Constraints for '{table_name}': {constraints}")

        indexes: List[RawIndex] = []
        for name in sorted(constraints):
            data = constraints[name]
            columns = tuple(column for column in data.get("columns") or [] if column)
            if not columns:
                continue
            if data.get("primary_key"):
                indexes.append(RawIndex(name=name, columns=columns, unique=True, primary=True))
            elif data.get("unique") or data.get("index"):
                if data.get("foreign_key") and not data.get("index"):
                    continue
                indexes.append(RawIndex(name=name, columns=columns, unique=bool(data.get("unique"))))

        catalog_key = self._read(table_name, "primary key", self._catalog.primary_key)
        if catalog_key:
            indexes = [index for index in indexes if not index.primary]
            indexes.insert(0, RawIndex(name="__primary__", columns=catalog_key, unique=True, primary=True))
        elif not any(index.primary for index in indexes):
            primary_key = self._read(
                table_name, "primary key", self.connection.introspection.get_primary_key_columns
            )
            if primary_key:
                indexes.insert(
                    0, RawIndex(name="__primary__", columns=tuple(primary_key), unique=True, primary=True)
                )
        return indexes

    def _read(self, table_name: str, what: str, query):
        try:
            with self.connection.cursor() as cursor:
                return query(cursor, table_name)
        except DatabaseError as e:
            raise SchemaReadError(
                f"Could not read {what} of table '{table_name}': {e}",
                table=table_name,
            ) from e
