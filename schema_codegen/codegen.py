"""
Template-driven code emission.

A template set is a directory holding a ``manifest.yaml`` and one Jinja2
template per artifact kind (entity, repository, enum). The code emitter
renders finalized TableDescriptors through such a set and returns
RenderedArtifacts; it never touches the file system except to load
templates.

Example:
    >>> template_set = load_template_set("python")
    >>> emitter = CodeEmitter(template_set)
    >>> artifacts = emitter.render(descriptor, RenderOptions(namespace="app"))
    >>> [artifact.relative_path for artifact in artifacts]
    ['entities/product.py', 'repositories/product_repository.py', 'enums/product_status_enum.py']
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

import jinja2
import yaml
from inflect import engine as inflect_engine
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2 import ext as jinja2_extensions
from pydantic import BaseModel, Field, ValidationError, field_validator

from schema_codegen.codegen_utils import FORMATTERS, get_formatter
from schema_codegen.constants import BUILTIN_RESERVED_WORDS, DefaultConfig
from schema_codegen.domain.models import (
    ArtifactKind,
    ColumnDescriptor,
    EnumDescriptor,
    RenderedArtifact,
    SemanticType,
    TableDescriptor,
)
from schema_codegen.domain.naming import NameNormalizer, to_snake_case
from schema_codegen.exceptions import ConfigurationError, TemplateError

logger = logging.getLogger(__name__)

# Built-in template sets live next to this file
TEMPLATE_DIR = Path(__file__).parent / "templates"

MANIFEST_FILE = "manifest.yaml"

_INFLECT_ENGINE_ = inflect_engine()


# =============================================================================
# TEMPLATE SETS
# =============================================================================


class ArtifactTemplate(BaseModel):
    template: str = Field(..., min_length=1, description="Template file, relative to the set directory.")
    directory: str = Field(default="", description="Output sub-directory for this artifact kind.")


class TemplateManifest(BaseModel):
    """Schema of a template set's ``manifest.yaml``."""

    name: str = Field(..., min_length=1)
    extension: str = Field(..., min_length=1, description="Output file extension, e.g. '.py'.")
    formatter: str = Field(default="none", description="Post-render formatter: " + ", ".join(sorted(FORMATTERS)))
    file_case: str = Field(default="as_is", description="'snake' or 'as_is' for output file names.")
    reserved_words: Union[str, List[str]] = Field(default_factory=list)
    reserved_words_case_insensitive: bool = False
    artifacts: Dict[ArtifactKind, ArtifactTemplate]

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        return v if v.startswith(".") else f".{v}"

    @field_validator("formatter")
    @classmethod
    def validate_formatter(cls, v: str) -> str:
        if v not in FORMATTERS:
            raise ValueError(f"Unknown formatter '{v}'. Available: {', '.join(sorted(FORMATTERS))}")
        return v

    @field_validator("file_case")
    @classmethod
    def validate_file_case(cls, v: str) -> str:
        if v not in ("snake", "as_is"):
            raise ValueError("file_case must be 'snake' or 'as_is'")
        return v

    @field_validator("reserved_words")
    @classmethod
    def validate_reserved_words(cls, v: Union[str, List[str]]) -> Union[str, List[str]]:
        if isinstance(v, str) and v not in BUILTIN_RESERVED_WORDS:
            raise ValueError(
                f"Unknown reserved word list '{v}'. Built-in lists: {', '.join(sorted(BUILTIN_RESERVED_WORDS))}"
            )
        return v

    @field_validator("artifacts")
    @classmethod
    def validate_artifacts(cls, v: Dict[ArtifactKind, ArtifactTemplate]) -> Dict[ArtifactKind, ArtifactTemplate]:
        if ArtifactKind.ENTITY not in v:
            raise ValueError("A template set must provide an 'entity' template")
        return v


@dataclass(frozen=True)
class TemplateSet:
    """A loaded template set: where its templates are and how output is named."""

    name: str
    directory: Path
    extension: str
    formatter: str
    file_case: str
    reserved_words: FrozenSet[str]
    reserved_words_case_insensitive: bool
    artifacts: Mapping[ArtifactKind, ArtifactTemplate]

    def supports(self, kind: ArtifactKind) -> bool:
        return kind in self.artifacts

    def make_normalizer(self, singularize_entity_names: bool = False) -> NameNormalizer:
        return NameNormalizer(
            reserved_words=self.reserved_words,
            reserved_case_insensitive=self.reserved_words_case_insensitive,
            singularize_entity_names=singularize_entity_names,
        )

    def relative_path(self, kind: ArtifactKind, logical_name: str) -> str:
        stem = to_snake_case(logical_name) if self.file_case == "snake" else logical_name
        directory = self.artifacts[kind].directory.strip("/")
        filename = f"{stem}{self.extension}"
        return f"{directory}/{filename}" if directory else filename


def load_template_set(name_or_path: Union[str, Path] = DefaultConfig.TEMPLATE_SET) -> TemplateSet:
    """
    Load a built-in template set by name, or a custom one from a directory.

    Raises:
        ConfigurationError: the set does not exist or its manifest is invalid.
    """
    directory = Path(name_or_path)
    if not (directory / MANIFEST_FILE).is_file():
        directory = TEMPLATE_DIR / str(name_or_path)
    manifest_path = directory / MANIFEST_FILE
    if not manifest_path.is_file():
        available = sorted(p.name for p in TEMPLATE_DIR.iterdir() if (p / MANIFEST_FILE).is_file())
        raise ConfigurationError(
            f"Template set '{name_or_path}' not found",
            suggestions=[f"Use one of the built-in sets: {', '.join(available)}", "Or pass a directory containing manifest.yaml"],
        )

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            raw_manifest = yaml.safe_load(f) or {}
        manifest = TemplateManifest(**raw_manifest)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing template manifest: {e}", config_file=str(manifest_path)) from e
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid template manifest: {e.error_count()} error(s)",
            config_file=str(manifest_path),
            context={"errors": "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors())},
        ) from e

    for kind, artifact in manifest.artifacts.items():
        if not (directory / artifact.template).is_file():
            raise ConfigurationError(
                f"Template '{artifact.template}' for {kind.value} artifacts is missing",
                config_file=str(manifest_path),
            )

    if isinstance(manifest.reserved_words, str):
        reserved = BUILTIN_RESERVED_WORDS[manifest.reserved_words]
    else:
        reserved = frozenset(manifest.reserved_words)

    logger.debug(f"Loaded template set '{manifest.name}' from {directory}")
    return TemplateSet(
        name=manifest.name,
        directory=directory,
        extension=manifest.extension,
        formatter=manifest.formatter,
        file_case=manifest.file_case,
        reserved_words=frozenset(reserved),
        reserved_words_case_insensitive=manifest.reserved_words_case_insensitive,
        artifacts=dict(manifest.artifacts),
    )


# =============================================================================
# JINJA FILTERS
# =============================================================================


def jinja2_pluralize_filter(word):
    """Pluralize a word using inflect, falling back to appending 's'."""
    if not isinstance(word, str) or not word:
        return ""
    plural = _INFLECT_ENGINE_.plural(word)
    return plural or word + "s"


def php_string_filter(value: Any) -> str:
    """Render a value as a single-quoted PHP string literal."""
    text = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{text}'"


_PYTHON_TYPES = {
    SemanticType.INTEGER: "int",
    SemanticType.FLOAT: "float",
    SemanticType.DECIMAL_STRING: "str",
    SemanticType.BOOLEAN: "bool",
    SemanticType.DATE: "date",
    SemanticType.DATETIME: "datetime",
    SemanticType.TIME: "time",
    SemanticType.TEXT: "str",
    SemanticType.UUID: "str",
    SemanticType.BINARY: "bytes",
    SemanticType.STRUCTURED: "Any",
    SemanticType.OPAQUE: "str",
}


def python_type_filter(column: ColumnDescriptor) -> str:
    """Annotation for a column, without Optional."""
    if column.enum is not None:
        if column.enum.multiple:
            return f"FrozenSet[{column.enum.type_name}]"
        return column.enum.type_name
    return _PYTHON_TYPES.get(column.semantic_type, "str")


def python_default_filter(column: ColumnDescriptor) -> Optional[str]:
    """
    Python expression for the column's static default, or None when the
    field has no usable default.
    """
    value = column.default
    if value is None or column.semantic_type.is_temporal or column.semantic_type == SemanticType.STRUCTURED:
        return None
    if column.enum is not None:
        if column.enum.multiple:
            members = [raw for raw in str(value).split(",") if raw in column.enum.raw_values]
            if not members:
                return None
            inner = ", ".join(f"{column.enum.type_name}.{column.enum.case_name_for(raw)}" for raw in members)
            return f"frozenset({{{inner}}})"
        if value not in column.enum.raw_values:
            return None
        return f"{column.enum.type_name}.{column.enum.case_name_for(value)}"
    return repr(value)


_DOCTRINE_TYPES = {
    SemanticType.INTEGER: ("INTEGER", "int"),
    SemanticType.FLOAT: ("FLOAT", "float"),
    SemanticType.DECIMAL_STRING: ("DECIMAL", "string"),
    SemanticType.BOOLEAN: ("BOOLEAN", "bool"),
    SemanticType.DATE: ("DATE_MUTABLE", "\\DateTimeInterface"),
    SemanticType.DATETIME: ("DATETIME_MUTABLE", "\\DateTimeInterface"),
    SemanticType.TIME: ("TIME_MUTABLE", "\\DateTimeInterface"),
    SemanticType.TEXT: ("STRING", "string"),
    SemanticType.UUID: ("GUID", "string"),
    SemanticType.BINARY: ("BLOB", "mixed"),
    SemanticType.STRUCTURED: ("JSON", "array"),
    SemanticType.OPAQUE: ("STRING", "string"),
}


def doctrine_type_filter(column: ColumnDescriptor) -> str:
    """Doctrine DBAL ``Types`` constant for a column."""
    if column.enum is not None:
        return "SIMPLE_ARRAY" if column.enum.multiple else "STRING"
    if column.semantic_type == SemanticType.INTEGER and "bigint" in column.native_type.lower():
        return "BIGINT"
    if column.semantic_type == SemanticType.INTEGER and "smallint" in column.native_type.lower():
        return "SMALLINT"
    if column.semantic_type == SemanticType.TEXT and column.length is None:
        return "TEXT"
    return _DOCTRINE_TYPES.get(column.semantic_type, ("STRING", "string"))[0]


def php_type_filter(column: ColumnDescriptor) -> str:
    """PHP property type for a column, including nullability."""
    if column.enum is not None:
        php_type = "array" if column.enum.multiple else column.enum.type_name
    else:
        php_type = _DOCTRINE_TYPES.get(column.semantic_type, ("STRING", "string"))[1]
    if php_type == "mixed":
        return php_type
    return f"?{php_type}" if column.nullable or column.auto_increment else php_type


def php_default_filter(column: ColumnDescriptor) -> Optional[str]:
    """PHP expression for the column's static default, or None."""
    value = column.default
    if column.nullable or column.auto_increment:
        if value is None or column.semantic_type.is_temporal:
            return "null"
    if value is None or column.semantic_type.is_temporal or column.semantic_type == SemanticType.STRUCTURED:
        return None
    if column.enum is not None:
        if column.enum.multiple:
            members = [raw for raw in str(value).split(",") if raw in column.enum.raw_values]
            return "[" + ", ".join(php_string_filter(raw) for raw in members) + "]"
        if value not in column.enum.raw_values:
            return None
        return f"{column.enum.type_name}::{column.enum.case_name_for(value)}"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    return php_string_filter(value)


def mapped_by_association(column: ColumnDescriptor, table: TableDescriptor) -> bool:
    """True when a resolved association owns this (non-key) column."""
    if column.is_primary:
        return False
    return any(
        column.name in association.source_columns and not association.unresolved_target
        for association in table.associations
    )


def referenced_types(table: TableDescriptor) -> List[str]:
    """Sorted type names of the other entities this table links to."""
    names = {
        association.target_type_name
        for association in table.associations
        if association.target is not None and not association.is_self_referencing
    }
    return sorted(names)


def setup_jinja_env(template_set: TemplateSet) -> Environment:
    """Sets up and returns the Jinja2 environment for one template set."""
    env = Environment(
        loader=FileSystemLoader(str(template_set.directory)),
        autoescape=select_autoescape(["html", "xml"]),
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        extensions=[
            jinja2_extensions.do,
            jinja2_extensions.loopcontrols,
        ],
    )
    env.filters["repr"] = repr
    env.filters["pluralize"] = jinja2_pluralize_filter
    env.filters["snake"] = to_snake_case
    env.filters["php_string"] = php_string_filter
    env.filters["python_type"] = python_type_filter
    env.filters["python_default"] = python_default_filter
    env.filters["doctrine_type"] = doctrine_type_filter
    env.filters["php_type"] = php_type_filter
    env.filters["php_default"] = php_default_filter
    env.globals["mapped_by_association"] = mapped_by_association
    env.globals["referenced_types"] = referenced_types
    env.globals["SemanticType"] = SemanticType
    return env


# =============================================================================
# CODE EMITTER
# =============================================================================


@dataclass(frozen=True)
class RenderOptions:
    namespace: str = DefaultConfig.NAMESPACE
    generate_repository: bool = DefaultConfig.GENERATE_REPOSITORY
    emit_enums: bool = DefaultConfig.EMIT_ENUMS


@dataclass(frozen=True)
class ArtifactPlan:
    """One artifact the emitter will render for a table."""

    kind: ArtifactKind
    logical_name: str
    table: TableDescriptor
    enum: Optional[EnumDescriptor] = None


class CodeEmitter:
    """
    Renders TableDescriptors into source text through one template set.

    Rendering is pure: the same descriptor and options always produce the
    same text, and nothing is written. The Jinja environment is built once
    and shared by worker threads.
    """

    def __init__(self, template_set: TemplateSet):
        self.template_set = template_set
        self.env = setup_jinja_env(template_set)
        self.formatter = get_formatter(template_set.formatter)

    def plan(self, table: TableDescriptor, options: RenderOptions) -> List[ArtifactPlan]:
        """The artifacts ``table`` produces, entity first."""
        plans = [ArtifactPlan(ArtifactKind.ENTITY, table.type_name, table)]
        if (
            options.generate_repository
            and table.companion_name
            and self.template_set.supports(ArtifactKind.REPOSITORY)
        ):
            plans.append(ArtifactPlan(ArtifactKind.REPOSITORY, table.companion_name, table))
        if options.emit_enums and self.template_set.supports(ArtifactKind.ENUM):
            for enum in table.enums:
                plans.append(ArtifactPlan(ArtifactKind.ENUM, enum.type_name, table, enum))
        return plans

    def render(self, table: TableDescriptor, options: RenderOptions) -> List[RenderedArtifact]:
        """
        Render every artifact of ``table``.

        Raises:
            TemplateError: on the first artifact that fails to render.
        """
        return [self.render_artifact(plan, options) for plan in self.plan(table, options)]

    def render_artifact(self, plan: ArtifactPlan, options: RenderOptions) -> RenderedArtifact:
        template_name = self.template_set.artifacts[plan.kind].template
        context = self._context(plan, options)
        try:
            template = self.env.get_template(template_name)
            rendered = template.render(context)
        except Exception as e:
            reason = str(e) if isinstance(e, jinja2.TemplateError) else f"{type(e).__name__}: {e}"
            raise TemplateError(
                f"Failed to render {plan.kind.value} '{plan.logical_name}' of table '{plan.table.name}': {reason}",
                table=plan.table.name,
                artifact_kind=plan.kind.value,
                logical_name=plan.logical_name,
                template=template_name,
            ) from e

        content = self.formatter(plan.logical_name, rendered)
        logger.debug(f"Rendered {plan.kind.value} '{plan.logical_name}' for table '{plan.table.name}'")
        return RenderedArtifact(
            kind=plan.kind,
            logical_name=plan.logical_name,
            relative_path=self.template_set.relative_path(plan.kind, plan.logical_name),
            content=content,
            table_name=plan.table.name,
        )

    def _context(self, plan: ArtifactPlan, options: RenderOptions) -> Dict[str, Any]:
        table = plan.table
        return {
            "table": table,
            "enum": plan.enum,
            "logical_name": plan.logical_name,
            "namespace": options.namespace,
            "generate_repository": options.generate_repository and bool(table.companion_name),
            "emit_enums": options.emit_enums,
            "module_of": self._module_paths(options),
        }

    def _module_paths(self, options: RenderOptions) -> Dict[str, str]:
        """Dotted module prefix per artifact kind, for import statements."""
        paths = {}
        for kind, artifact in self.template_set.artifacts.items():
            parts = [options.namespace] + [part for part in artifact.directory.split("/") if part]
            paths[kind.value] = ".".join(part for part in parts if part)
        return paths
