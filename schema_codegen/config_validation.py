import keyword
import logging
import os
from argparse import Namespace
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Self

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from schema_codegen.constants import DefaultConfig, SupportedDatabases
from schema_codegen.exceptions import ConfigurationError
from schema_codegen.pipeline import GenerationOptions

logger = logging.getLogger(__name__)


def is_valid_namespace(name: str) -> bool:
    """A dotted path of identifiers that are not Python keywords."""
    return all(part.isidentifier() and not keyword.iskeyword(part) for part in name.split("."))


class DatabaseSettings(BaseModel):
    """Schema for a single database connection within the DATABASES dict."""

    ENGINE: str = Field(
        ...,
        min_length=1,
        description="Django database engine (e.g., 'django.db.backends.postgresql').",
    )
    NAME: str = Field(..., min_length=1, description="Database name, or file path for SQLite.")
    USER: Optional[str] = Field(default=None, description="Database user.")
    PASSWORD: Optional[str] = Field(default=None, description="Database password.")
    HOST: Optional[str] = Field(default=None, description="Database host address.")
    PORT: Optional[int] = Field(default=None, description="Database port number.")
    OPTIONS: Dict[str, Any] = Field(default_factory=dict, description="Database engine specific options.")

    @field_validator("ENGINE")
    @classmethod
    def validate_engine(cls, v: str) -> str:
        if v not in SupportedDatabases.SUPPORTED:
            raise ValueError(
                f"Database engine: {v} is not supported. "
                f"Supported engines are: {', '.join(SupportedDatabases.SUPPORTED)}"
            )
        return v

    @field_validator("PORT", mode="before")
    @classmethod
    def validate_port(cls, v: Any) -> Optional[int]:
        """Accept a number or a string of digits within the port range."""
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            raise ValueError("Port must be an integer or string containing digits, got bool")
        if isinstance(v, int):
            port_num = v
        elif isinstance(v, str):
            if not v.isdigit():
                raise ValueError(f"Port must be a number or string containing only digits, got '{v}'")
            port_num = int(v)
        else:
            raise ValueError(f"Port must be an integer or string containing digits, got {type(v).__name__}")

        if not 0 <= port_num <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {port_num}")
        return port_num


class ToolConfigSchema(BaseModel):
    """Expected structure and types of the schema-codegen configuration."""

    databases: Dict[str, DatabaseSettings] = Field(
        ...,
        description="Django DATABASES setting dictionary. Must contain a 'default' key.",
    )
    output_dir: str = Field(
        DefaultConfig.OUTPUT_DIR,
        min_length=1,
        description="Root directory generated files are written under.",
    )
    namespace: str = Field(
        DefaultConfig.NAMESPACE,
        min_length=1,
        description="Dotted namespace prefix of generated modules / PHP namespaces.",
    )
    template_set: str = Field(
        DefaultConfig.TEMPLATE_SET,
        min_length=1,
        description="Built-in template set name ('python', 'doctrine') or a template set directory.",
    )
    conflict_policy: Literal["fail-on-exists", "force-overwrite", "dry-run"] = Field(
        default=DefaultConfig.CONFLICT_POLICY,
        description="What to do when a target file already exists.",
    )
    include_tables: Optional[List[str]] = Field(
        default=None,
        description="Table names or glob patterns to include.",
    )
    exclude_tables: Optional[List[str]] = Field(
        default=None,
        description="Table names or glob patterns to exclude.",
    )
    generate_repository: bool = Field(default=DefaultConfig.GENERATE_REPOSITORY)
    emit_enums: bool = Field(default=DefaultConfig.EMIT_ENUMS)
    singularize_entity_names: bool = Field(default=DefaultConfig.SINGULARIZE_ENTITY_NAMES)
    workers: int = Field(default=DefaultConfig.WORKERS, ge=1, le=DefaultConfig.MAX_WORKERS)
    timeout: Optional[float] = Field(default=None, gt=0, description="Run deadline in seconds.")

    # Internal field, added by load_config when not provided (needed by django.setup)
    SECRET_KEY: Optional[str] = Field(default=None, description="Internal secret key for Django setup.")

    model_config = ConfigDict(extra="ignore")

    @field_validator("namespace")
    @classmethod
    def check_namespace(cls, v: str) -> str:
        if not is_valid_namespace(v):
            raise ValueError(f"'{v}' is not a dotted path of valid identifiers.")
        return v

    @field_validator("include_tables", "exclude_tables", mode="before")
    @classmethod
    def check_table_names_list(cls, v: Optional[List[Any]]) -> Optional[List[str]]:
        """Ensure items in table lists are non-empty strings."""
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            raise ValueError("include_tables/exclude_tables must be a list.")
        processed_list = []
        for index, item in enumerate(v):
            if not isinstance(item, str):
                raise ValueError(f"Item at index {index} must be a string, found: {type(item).__name__}")
            stripped_item = item.strip()
            if not stripped_item:
                raise ValueError(f"Item at index {index} cannot be empty or just whitespace.")
            processed_list.append(stripped_item)
        return processed_list

    @model_validator(mode="after")
    def check_default_database(self) -> Self:
        if "default" not in self.databases:
            raise ValueError("The 'databases' configuration dictionary must contain a 'default' key.")
        overlap = set(self.include_tables or ()) & set(self.exclude_tables or ())
        if overlap:
            logger.warning(f"Tables both included and excluded will be excluded: {', '.join(sorted(overlap))}")
        return self

    def to_generation_options(self) -> GenerationOptions:
        return GenerationOptions(
            databases={alias: db.model_dump(exclude_none=True) for alias, db in self.databases.items()},
            include=tuple(self.include_tables or ()),
            exclude=tuple(self.exclude_tables or ()),
            namespace=self.namespace,
            output_root=Path(self.output_dir),
            conflict_policy=self.conflict_policy,
            generate_repository=self.generate_repository,
            emit_enums=self.emit_enums,
            template_set=self.template_set,
            workers=self.workers,
            timeout=self.timeout,
            singularize_entity_names=self.singularize_entity_names,
            secret_key=self.SECRET_KEY or "schema-codegen-introspection",
        )


def format_validation_errors(error: ValidationError) -> List[str]:
    """One ``location: message`` line per pydantic error."""
    lines = []
    for detail in error.errors():
        loc_parts = [str(loc_item) for loc_item in detail.get("loc", ())]
        loc_str = " -> ".join(loc_parts) if loc_parts else "Model Level"
        lines.append(f"{loc_str}: {detail.get('msg', 'Unknown validation error')}")
    return lines


def validate_and_parse_config(config_dict: Dict[str, Any], config_file: Optional[str] = None) -> ToolConfigSchema:
    """
    Validate a raw configuration dictionary against ToolConfigSchema.

    Raises:
        ConfigurationError: listing every invalid field location.
    """
    try:
        validated_config = ToolConfigSchema.model_validate(config_dict)
    except ValidationError as e:
        lines = format_validation_errors(e)
        raise ConfigurationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(lines),
            config_file=config_file,
            context={"errors": len(lines)},
        ) from e
    logger.debug("Configuration dictionary parsed and validated successfully against schema.")
    return validated_config


def read_config_file(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)
    if not config_file.is_file():
        raise ConfigurationError(f"Config file not found at {config_path}", config_file=config_path)
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML file {config_path}: {e}", config_file=config_path) from e
    except OSError as e:
        raise ConfigurationError(f"Error reading config file {config_path}: {e}", config_file=config_path) from e

    if yaml_config is None:
        return {}
    if not isinstance(yaml_config, dict):
        raise ConfigurationError(
            f"Content of config file {config_path} must be a mapping, got {type(yaml_config).__name__}",
            config_file=config_path,
        )
    logger.debug(f"Loaded configuration from {config_path}")
    return yaml_config


def load_config(config_path: Optional[str], cli_args: Optional[Namespace] = None) -> ToolConfigSchema:
    """
    Load configuration from a YAML file, override it with the CLI arguments
    that were explicitly given, and validate the result.

    Raises:
        ConfigurationError: the file cannot be read or the merged
            configuration is invalid.
    """
    raw_config: Dict[str, Any] = read_config_file(config_path) if config_path else {}

    # Only arguments that were actually given (not None) override the file
    overridden_keys = set()
    for key, value in vars(cli_args or Namespace()).items():
        if value is not None and key != "databases" and key in ToolConfigSchema.model_fields:
            raw_config[key] = value
            overridden_keys.add(key)
    if overridden_keys:
        logger.debug(f"Overridden config keys from CLI arguments: {sorted(overridden_keys)}")

    if "SECRET_KEY" not in raw_config:
        raw_config["SECRET_KEY"] = os.urandom(50).hex()

    logger.info("Validating final configuration...")
    validated_config = validate_and_parse_config(raw_config, config_file=config_path)
    validated_config.output_dir = str(Path(validated_config.output_dir).resolve())
    return validated_config
