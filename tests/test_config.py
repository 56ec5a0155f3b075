"""
Tests for configuration loading and validation.
"""

from argparse import Namespace
from pathlib import Path

import pytest
import yaml

from schema_codegen.config_validation import (
    ToolConfigSchema,
    is_valid_namespace,
    load_config,
    read_config_file,
    validate_and_parse_config,
)
from schema_codegen.domain.models import ConflictPolicy
from schema_codegen.exceptions import ConfigurationError

SQLITE_DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": "shop.sqlite3"}}
POSTGRES_DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": "shop",
        "USER": "codegen",
        "PASSWORD": "secret",
        "HOST": "localhost",
        "PORT": "5432",
    }
}


@pytest.fixture
def config_file(tmp_path):
    def write(content) -> str:
        path = tmp_path / "codegen.yaml"
        if isinstance(content, str):
            path.write_text(content, encoding="utf-8")
        else:
            path.write_text(yaml.safe_dump(content), encoding="utf-8")
        return str(path)

    return write


def validation_message(config):
    with pytest.raises(ConfigurationError) as excinfo:
        validate_and_parse_config(config)
    return excinfo.value.message


class TestToolConfigSchema:
    def test_defaults(self):
        config = validate_and_parse_config({"databases": SQLITE_DATABASES})
        assert config.output_dir == "./generated"
        assert config.namespace == "app"
        assert config.template_set == "python"
        assert config.conflict_policy == "fail-on-exists"
        assert config.generate_repository and config.emit_enums
        assert not config.singularize_entity_names
        assert config.workers == 1
        assert config.timeout is None

    def test_port_accepts_digit_strings(self):
        config = validate_and_parse_config({"databases": POSTGRES_DATABASES})
        assert config.databases["default"].PORT == 5432

    @pytest.mark.parametrize("port", ["54a2", True, 70000])
    def test_invalid_ports(self, port):
        databases = {"default": dict(POSTGRES_DATABASES["default"], PORT=port)}
        assert "PORT" in validation_message({"databases": databases})

    def test_default_database_is_required(self):
        assert "'default' key" in validation_message({"databases": {"other": SQLITE_DATABASES["default"]}})

    def test_unsupported_engine(self):
        databases = {"default": {"ENGINE": "django.db.backends.oracle", "NAME": "shop"}}
        assert "is not supported" in validation_message({"databases": databases})

    def test_databases_are_required(self):
        assert "databases" in validation_message({})

    @pytest.mark.parametrize("namespace", ["app.class", "1app", "app..models", "app-models"])
    def test_invalid_namespaces(self, namespace):
        assert "namespace" in validation_message({"databases": SQLITE_DATABASES, "namespace": namespace})

    def test_namespace_helper(self):
        assert is_valid_namespace("App")
        assert is_valid_namespace("shop.models")
        assert not is_valid_namespace("shop.def")

    def test_table_lists(self):
        config = validate_and_parse_config(
            {"databases": SQLITE_DATABASES, "include_tables": "product", "exclude_tables": [" audit_* "]}
        )
        assert config.include_tables == ["product"]
        assert config.exclude_tables == ["audit_*"]

    @pytest.mark.parametrize("tables", [[""], [1], {"a": 1}])
    def test_invalid_table_lists(self, tables):
        validation_message({"databases": SQLITE_DATABASES, "include_tables": tables})

    @pytest.mark.parametrize(
        "field, value",
        [("conflict_policy", "ask"), ("workers", 0), ("workers", 33), ("timeout", 0), ("namespace", "")],
    )
    def test_invalid_values(self, field, value):
        assert field in validation_message({"databases": SQLITE_DATABASES, field: value})

    def test_unknown_keys_are_ignored(self):
        config = validate_and_parse_config({"databases": SQLITE_DATABASES, "report_title": "x"})
        assert not hasattr(config, "report_title")

    def test_to_generation_options(self):
        config = ToolConfigSchema(
            databases=POSTGRES_DATABASES,
            include_tables=["product"],
            conflict_policy="dry-run",
            workers=4,
            timeout=30,
            SECRET_KEY="abc",
        )
        options = config.to_generation_options()
        assert options.databases["default"]["PORT"] == 5432
        assert "OPTIONS" in options.databases["default"]
        assert options.include == ("product",)
        assert options.exclude == ()
        assert options.conflict_policy == ConflictPolicy.DRY_RUN
        assert options.output_root == Path("./generated")
        assert (options.workers, options.timeout, options.secret_key) == (4, 30, "abc")


class TestReadConfigFile:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as excinfo:
            read_config_file(str(tmp_path / "missing.yaml"))
        assert "not found" in excinfo.value.message

    def test_invalid_yaml(self, config_file):
        with pytest.raises(ConfigurationError) as excinfo:
            read_config_file(config_file("databases: [unclosed"))
        assert "Error parsing YAML" in excinfo.value.message

    def test_not_a_mapping(self, config_file):
        with pytest.raises(ConfigurationError):
            read_config_file(config_file("- a\n- b\n"))

    def test_empty_file(self, config_file):
        assert read_config_file(config_file("")) == {}


class TestLoadConfig:
    def test_file_only(self, config_file):
        config = load_config(config_file({"databases": SQLITE_DATABASES, "output_dir": "out"}))
        assert Path(config.output_dir).is_absolute()
        assert Path(config.output_dir).name == "out"
        assert len(config.SECRET_KEY) == 100

    def test_cli_arguments_override_the_file(self, config_file, tmp_path):
        path = config_file({"databases": SQLITE_DATABASES, "namespace": "shop", "workers": 2, "emit_enums": True})
        args = Namespace(
            config=path,
            output_dir=str(tmp_path / "cli"),
            namespace=None,
            workers=8,
            emit_enums=False,
            conflict_policy=None,
            verbose=True,
        )
        config = load_config(path, args)
        assert config.output_dir == str((tmp_path / "cli").resolve())
        assert config.namespace == "shop"
        assert config.workers == 8
        assert config.emit_enums is False
        assert config.conflict_policy == "fail-on-exists"

    def test_cli_cannot_replace_databases(self, config_file):
        path = config_file({"databases": SQLITE_DATABASES})
        config = load_config(path, Namespace(databases={"default": {"ENGINE": "x", "NAME": "y"}}))
        assert config.databases["default"].ENGINE == "django.db.backends.sqlite3"

    def test_given_secret_key_is_kept(self, config_file):
        config = load_config(config_file({"databases": SQLITE_DATABASES, "SECRET_KEY": "fixed"}))
        assert config.SECRET_KEY == "fixed"

    def test_invalid_file_content_names_the_file(self, config_file):
        path = config_file({"databases": {}})
        with pytest.raises(ConfigurationError) as excinfo:
            load_config(path)
        assert excinfo.value.context["config_file"] == path

    def test_no_file_and_no_databases(self):
        with pytest.raises(ConfigurationError):
            load_config(None)
