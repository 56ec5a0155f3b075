"""
Exception hierarchy for schema-codegen.

Every error carries a context dictionary (table, column, artifact, path...)
and a list of recovery suggestions so that diagnostics collected into a
GenerationResult stay actionable without a traceback.

Scope of each error inside a generation run:

- DatabaseConnectionError: fatal, the run aborts before any table is read.
- SchemaReadError, PartialKeyError, EnumCollisionError,
  MetadataExtractionError: the offending table is excluded, siblings go on.
- TemplateError, FileWriteError: only the offending artifact is affected.
"""

import re
from typing import Dict, Any, Optional, List


class SchemaCodegenError(Exception):
    """
    Base exception for all schema-codegen errors.

    Provides rich context and error recovery guidance.
    """

    default_error_code = "SCHEMA_CODEGEN_ERROR"
    default_suggestions: List[str] = []

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        error_code: Optional[str] = None,
    ):
        """
        Initialize the exception with context and recovery suggestions.

        Args:
            message: Human-readable error message
            context: Additional context about where/why the error occurred
            suggestions: List of potential solutions or next steps
            error_code: Unique error code for programmatic handling
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.suggestions = suggestions or list(self.default_suggestions)
        self.error_code = error_code or self.default_error_code

    def __str__(self) -> str:
        """Return formatted error message with context."""
        lines = [self.message]

        if self.error_code:
            lines.append(f"Error Code: {self.error_code}")

        if self.context:
            lines.append("Context:")
            for key, value in self.context.items():
                lines.append(f"  {key}: {value}")

        if self.suggestions:
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  • {suggestion}")

        return "\n".join(lines)


class ConfigurationError(SchemaCodegenError):
    """Raised when configuration is invalid or missing."""

    default_error_code = "CONFIG_ERROR"
    default_suggestions = [
        "Check the configuration file syntax",
        "Verify all required fields are present",
        "Check the documentation for configuration examples",
    ]

    def __init__(self, message: str, config_file: str = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if config_file:
            context["config_file"] = config_file
        super().__init__(message, context=context, **kwargs)


class DatabaseConnectionError(SchemaCodegenError):
    """Raised when the database is unreachable or rejects the credentials."""

    default_error_code = "DATABASE_CONNECTION_ERROR"
    default_suggestions = [
        "Check database server is running",
        "Verify connection credentials",
        "Check network connectivity",
        "Ensure database driver is installed",
    ]

    def __init__(self, message: str, database_url: str = None, engine: str = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if database_url:
            context["database_url"] = mask_credentials(database_url)
        if engine:
            context["engine"] = engine
        super().__init__(message, context=context, **kwargs)


class SchemaReadError(SchemaCodegenError):
    """Raised when the structure of a table cannot be read."""

    default_error_code = "SCHEMA_READ_ERROR"
    default_suggestions = [
        "Verify the table still exists (concurrent DDL can drop it mid-run)",
        "Check database user permissions on the catalog tables",
        "Review the include/exclude table filters",
    ]

    def __init__(self, message: str, table: str = None, column: str = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if table:
            context["table"] = table
        if column:
            context["column"] = column
        super().__init__(message, context=context, **kwargs)
        self.table = table


class MetadataExtractionError(SchemaCodegenError):
    """Raised when a table never leaves the Pending assembly state."""

    default_error_code = "METADATA_EXTRACTION_ERROR"
    default_suggestions = [
        "Check earlier diagnostics for this table",
        "Re-run with --verbose to see the schema reader output",
    ]

    def __init__(self, message: str, table: str = None, state: str = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if table:
            context["table"] = table
        if state:
            context["state"] = state
        super().__init__(message, context=context, **kwargs)
        self.table = table


class PartialKeyError(SchemaCodegenError):
    """Raised when a foreign key references only part of a composite key."""

    default_error_code = "PARTIAL_KEY_ERROR"
    default_suggestions = [
        "Reference every column of the target key in the foreign key",
        "Add a unique constraint on the referenced columns",
        "Exclude the table from generation",
    ]

    def __init__(
        self,
        message: str,
        source_table: str = None,
        target_table: str = None,
        source_columns: List[str] = None,
        target_key: List[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or {}
        if source_table:
            context["source_table"] = source_table
        if target_table:
            context["target_table"] = target_table
        if source_columns:
            context["source_columns"] = ", ".join(source_columns)
        if target_key:
            context["target_key"] = ", ".join(target_key)
        super().__init__(message, context=context, **kwargs)
        self.table = source_table


class EnumCollisionError(SchemaCodegenError):
    """Raised when two enum values normalize to the same case name."""

    default_error_code = "ENUM_COLLISION_ERROR"
    default_suggestions = [
        "Rename one of the enumerated values in the schema",
        "Disable enum generation with --no-enums",
    ]

    def __init__(
        self,
        message: str,
        table: str = None,
        column: str = None,
        case_name: str = None,
        values: List[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or {}
        if table:
            context["table"] = table
        if column:
            context["column"] = column
        if case_name:
            context["case_name"] = case_name
        if values:
            context["values"] = ", ".join(repr(v) for v in values)
        super().__init__(message, context=context, **kwargs)
        self.table = table


class TemplateError(SchemaCodegenError):
    """Raised when rendering a template for a descriptor fails."""

    default_error_code = "TEMPLATE_ERROR"
    default_suggestions = [
        "Check the template for undefined attributes",
        "Verify the template set manifest lists every artifact kind",
    ]

    def __init__(
        self,
        message: str,
        table: str = None,
        artifact_kind: str = None,
        logical_name: str = None,
        template: str = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or {}
        if table:
            context["table"] = table
        if artifact_kind:
            context["artifact_kind"] = artifact_kind
        if logical_name:
            context["logical_name"] = logical_name
        if template:
            context["template"] = template
        super().__init__(message, context=context, **kwargs)
        self.table = table
        self.artifact_kind = artifact_kind
        self.logical_name = logical_name


class FileWriteError(SchemaCodegenError):
    """Raised when an artifact cannot be written to disk."""

    default_error_code = "FILE_WRITE_ERROR"
    default_suggestions = [
        "Check the output directory is writable",
        "Check the disk is not full",
    ]

    def __init__(self, message: str, path: str = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if path:
            context["path"] = path
        super().__init__(message, context=context, **kwargs)
        self.path = path


class GenerationCancelled(SchemaCodegenError):
    """Raised inside the pipeline when the cancellation token fires."""

    default_error_code = "CANCELLED"
    default_suggestions = ["Increase --timeout or re-run to finish the remaining tables"]

    def __init__(self, message: str = "Generation cancelled", reason: str = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if reason:
            context["reason"] = reason
        super().__init__(message, context=context, **kwargs)


def mask_credentials(url: str) -> str:
    """Mask the password part of a database URL."""
    return re.sub(r"://([^:/@]+):([^@]+)@", r"://\1:***@", url)
