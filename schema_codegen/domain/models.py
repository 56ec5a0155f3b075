"""
Core domain models for schema-codegen.

Two families live here:

- Raw structural facts returned by a schema reader (``Raw*``). They are plain
  records in database vocabulary: native names and native types.
- Descriptors built by the metadata assembler (``*Descriptor``). They carry
  the generated code identifiers and semantic types consumed by templates.
  Descriptors are scoped to a single generation run and are read-only once
  the assembler finalizes them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Dialect(Enum):
    """Relational engines whose catalogs the schema reader understands."""

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class SemanticType(Enum):
    """Engine-agnostic value categories a native column type maps to."""

    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL_STRING = "decimal_string"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    TEXT = "text"
    UUID = "uuid"
    BINARY = "binary"
    STRUCTURED = "structured"
    ENUMERATED = "enumerated"
    OPAQUE = "opaque"

    @property
    def is_temporal(self) -> bool:
        return self in (SemanticType.DATE, SemanticType.DATETIME, SemanticType.TIME)

    @property
    def is_textual(self) -> bool:
        return self in (SemanticType.TEXT, SemanticType.UUID, SemanticType.OPAQUE, SemanticType.DECIMAL_STRING)


class AssemblyState(Enum):
    """Lifecycle of a table inside the metadata assembler."""

    PENDING = "pending"
    COLUMNS_EXTRACTED = "columns_extracted"
    ASSOCIATIONS_LINKED = "associations_linked"
    FINALIZED = "finalized"


class ArtifactKind(Enum):
    """Kinds of emitted source files."""

    ENTITY = "entity"
    REPOSITORY = "repository"
    ENUM = "enum"


class ConflictPolicy(Enum):
    """What the file sink does when a target file already exists."""

    FAIL_ON_EXISTS = "fail-on-exists"
    FORCE_OVERWRITE = "force-overwrite"
    DRY_RUN = "dry-run"


class WriteStatus(Enum):
    WRITTEN = "written"
    SKIPPED = "skipped"
    PLANNED = "planned"
    ERROR = "error"


class RunStatus(Enum):
    """Overall outcome of a generation run."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class Severity(Enum):
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# RAW SCHEMA FACTS
# =============================================================================


@dataclass(frozen=True)
class RawColumn:
    """A column exactly as the database catalog describes it."""

    name: str
    native_type: str
    nullable: bool = True
    default: Optional[str] = None
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    auto_increment: bool = False
    comment: Optional[str] = None
    ordinal: int = 0


@dataclass(frozen=True)
class RawForeignKey:
    """
    A foreign key constraint, grouped across all of its columns.

    ``target_columns`` may be empty when the engine lets a foreign key
    reference the target's primary key implicitly (SQLite).
    """

    name: str
    source_columns: Tuple[str, ...]
    target_table: str
    target_columns: Tuple[str, ...]
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"


@dataclass(frozen=True)
class RawIndex:
    name: str
    columns: Tuple[str, ...]
    unique: bool = False
    primary: bool = False


@dataclass(frozen=True)
class RawEnumColumn:
    """A column whose declaration restricts values to a closed list."""

    column: str
    values: Tuple[str, ...]
    multiple: bool = False  # MySQL SET


@dataclass(frozen=True)
class RawTable:
    """Everything a schema reader returned for one table."""

    name: str
    columns: Tuple[RawColumn, ...]
    foreign_keys: Tuple[RawForeignKey, ...] = ()
    indexes: Tuple[RawIndex, ...] = ()
    enum_columns: Tuple[RawEnumColumn, ...] = ()

    @property
    def primary_key(self) -> Tuple[str, ...]:
        for index in self.indexes:
            if index.primary:
                return index.columns
        return ()


# =============================================================================
# DESCRIPTORS
# =============================================================================


@dataclass(frozen=True)
class EnumDescriptor:
    """
    Generated enumerated type for one column.

    ``cases`` keeps the declaration order of the schema. Case names are
    unique and there is at least one case; both are checked on creation.
    """

    type_name: str
    cases: Tuple[Tuple[str, str], ...]
    table_name: str
    column_name: str
    multiple: bool = False

    def __post_init__(self):
        if not self.cases:
            raise ValueError(f"Enum {self.type_name} must declare at least one case")
        case_names = [case_name for _, case_name in self.cases]
        if len(set(case_names)) != len(case_names):
            raise ValueError(f"Enum {self.type_name} has duplicate case names: {case_names}")

    @property
    def raw_values(self) -> List[str]:
        return [raw for raw, _ in self.cases]

    @property
    def case_names(self) -> List[str]:
        return [case_name for _, case_name in self.cases]

    def case_name_for(self, raw_value: str) -> str:
        for raw, case_name in self.cases:
            if raw == raw_value:
                return case_name
        raise KeyError(raw_value)

    def raw_value_for(self, case_name: str) -> str:
        for raw, name in self.cases:
            if name == case_name:
                return raw
        raise KeyError(case_name)


@dataclass(frozen=True)
class ColumnDescriptor:
    """A column with its generated field name and semantic type."""

    name: str
    field_name: str
    semantic_type: SemanticType
    native_type: str
    nullable: bool
    is_primary: bool = False
    default: Optional[Any] = None
    enum: Optional[EnumDescriptor] = None
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    auto_increment: bool = False
    is_foreign_key: bool = False
    comment: Optional[str] = None
    # (constant name, raw value) of a closed value list rendered without an enum type
    value_constants: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self):
        if self.is_primary and self.nullable:
            raise ValueError(f"Primary key column '{self.name}' cannot be nullable")


@dataclass(frozen=True)
class IndexDescriptor:
    name: str
    columns: Tuple[str, ...]
    unique: bool = False


@dataclass(frozen=True)
class AssociationDescriptor:
    """
    A many-to-one link derived from one foreign key.

    ``target`` is the TableDescriptor of the referenced table, and is the very
    same object as the owner for self-references. It is None when the
    referenced table is not part of the run (``unresolved_target``).
    The target side of a pair is None when the foreign key left its
    referenced columns implicit and the target is unresolved.
    """

    name: str
    column_pairs: Tuple[Tuple[str, Optional[str]], ...]
    target_table: str
    target: Optional["TableDescriptor"] = field(default=None, repr=False, compare=False)
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"
    nullable: bool = True
    is_self_referencing: bool = False
    unresolved_target: bool = False
    constraint_name: Optional[str] = None

    @property
    def is_composite(self) -> bool:
        return len(self.column_pairs) > 1

    @property
    def source_columns(self) -> List[str]:
        return [source for source, _ in self.column_pairs]

    @property
    def target_columns(self) -> List[Optional[str]]:
        return [target for _, target in self.column_pairs]

    @property
    def target_type_name(self) -> Optional[str]:
        return self.target.type_name if self.target is not None else None


class TableDescriptor:
    """
    One source table, described in code vocabulary.

    The assembler fills the descriptor while it walks through the assembly
    states and then calls ``finalize()``. After that, any attribute
    assignment raises AttributeError and the collections are tuples.
    """

    def __init__(
        self,
        name: str,
        type_name: str,
        columns: Optional[List[ColumnDescriptor]] = None,
        associations: Optional[List[AssociationDescriptor]] = None,
        companion_name: Optional[str] = None,
        primary_key: Tuple[str, ...] = (),
        indexes: Optional[List[IndexDescriptor]] = None,
        enums: Optional[List[EnumDescriptor]] = None,
    ):
        self._finalized = False
        self.name = name
        self.type_name = type_name
        self.columns = list(columns or [])
        self.associations = list(associations or [])
        self.companion_name = companion_name
        self.primary_key = tuple(primary_key)
        self.indexes = list(indexes or [])
        self.enums = list(enums or [])
        self.state = AssemblyState.PENDING

    def __setattr__(self, key, value):
        if getattr(self, "_finalized", False):
            raise AttributeError(f"TableDescriptor '{self.name}' is finalized; cannot set '{key}'")
        super().__setattr__(key, value)

    def __repr__(self) -> str:
        return f"TableDescriptor(name={self.name!r}, type_name={self.type_name!r}, state={self.state.value})"

    def finalize(self) -> None:
        self.columns = tuple(self.columns)
        self.associations = tuple(self.associations)
        self.indexes = tuple(self.indexes)
        self.enums = tuple(self.enums)
        self.state = AssemblyState.FINALIZED
        self._finalized = True

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def field_names(self) -> List[str]:
        return [column.field_name for column in self.columns]

    @property
    def primary_key_columns(self) -> List[ColumnDescriptor]:
        return [column for column in self.columns if column.is_primary]

    def get_column(self, name: str) -> Optional[ColumnDescriptor]:
        for column in self.columns:
            if column.name == name:
                return column
        return None


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class RenderedArtifact:
    """Source text produced by the code emitter, not yet written."""

    kind: ArtifactKind
    logical_name: str
    relative_path: str
    content: str
    table_name: str


@dataclass(frozen=True)
class Diagnostic:
    table_name: Optional[str]
    severity: Severity
    code: str
    message: str
    artifact: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table_name": self.table_name,
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "artifact": self.artifact,
        }


@dataclass(frozen=True)
class ArtifactRecord:
    kind: ArtifactKind
    logical_name: str
    path: str
    status: WriteStatus
    table_name: str
    content: str = field(default="", repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "logical_name": self.logical_name,
            "path": self.path,
            "status": self.status.value,
            "table_name": self.table_name,
        }


@dataclass(frozen=True)
class TableStatus:
    table_name: str
    succeeded: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class GenerationResult:
    """
    Aggregate outcome of a generation run.

    Built once by the pipeline at the end of the run and never mutated
    afterwards. In dry-run mode every artifact record carries the content
    that would have been written.
    """

    artifacts: Tuple[ArtifactRecord, ...] = ()
    tables: Tuple[TableStatus, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    cancelled: bool = False

    @property
    def status(self) -> RunStatus:
        if self.cancelled:
            return RunStatus.CANCELLED
        failed_tables = [t for t in self.tables if not t.succeeded]
        failed_artifacts = [a for a in self.artifacts if a.status == WriteStatus.ERROR]
        has_errors = any(d.severity == Severity.ERROR for d in self.diagnostics)
        if self.tables and len(failed_tables) == len(self.tables):
            return RunStatus.FAILURE
        if failed_tables or failed_artifacts or has_errors:
            return RunStatus.PARTIAL_FAILURE
        return RunStatus.SUCCESS

    @property
    def succeeded_tables(self) -> List[str]:
        return [t.table_name for t in self.tables if t.succeeded]

    @property
    def failed_tables(self) -> List[str]:
        return [t.table_name for t in self.tables if not t.succeeded]

    def artifacts_of_kind(self, kind: ArtifactKind) -> List[ArtifactRecord]:
        return [artifact for artifact in self.artifacts if artifact.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
            "tables": [
                {"table_name": t.table_name, "succeeded": t.succeeded, "reason": t.reason}
                for t in self.tables
            ],
            "diagnostics": [d.to_dict() for d in self.diagnostics],
        }
