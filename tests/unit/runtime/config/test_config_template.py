"""Unit tests for config_template module."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from src.contacts.runtime.config.config_data import ConfigData
from src.contacts.runtime.config.config_template import (
    apply_environment_overrides,
    load_templated_yaml,
    substitute_env_vars,
)


class TestSubstituteEnvVars:
    """Test cases for substitute_env_vars function."""

    def test_substitute_simple_env_var(self):
        with patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            assert substitute_env_vars("${TEST_VAR}") == "test_value"

    def test_substitute_env_var_with_default(self):
        """Test substitution with default value when env var is not set."""
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars("${MISSING_VAR:-default_value}") == "default_value"

    def test_substitute_env_var_with_empty_default(self):
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars("path: ${MISSING_VAR:-}") == "path: "

    def test_substitute_required_env_var_missing(self):
        """Test substitution fails when required env var is missing."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(
                ValueError, match="Required environment variable MISSING_VAR not set"
            ):
                substitute_env_vars("${MISSING_VAR}")

    def test_substitute_required_env_var_custom_message(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="store passphrase needed"):
                substitute_env_vars("${SECRET:?store passphrase needed}")


class TestApplyEnvironmentOverrides:
    """Test environment-prefixed variable promotion."""

    def test_prefixed_variable_promoted(self):
        with patch.dict(
            os.environ, {"PRODUCTION_CONTACTS_DB_PATH": "/srv/contacts.db"}, clear=True
        ):
            apply_environment_overrides("production")
            assert os.environ["CONTACTS_DB_PATH"] == "/srv/contacts.db"

    def test_other_environments_ignored(self):
        with patch.dict(os.environ, {"TEST_CONTACTS_DB_PATH": "/tmp/x.db"}, clear=True):
            apply_environment_overrides("production")
            assert "CONTACTS_DB_PATH" not in os.environ


class TestLoadTemplatedYaml:
    """Test cases for load_templated_yaml function."""

    def test_load_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "config:\n"
            "  app:\n"
            "    name: contacts\n"
            "  database:\n"
            "    path: ${DB_PATH:-data/default.db}\n"
            "    kdf_iterations: 1000\n"
        )

        with patch.dict(os.environ, {"DB_PATH": "/tmp/contacts.db"}, clear=True):
            config = load_templated_yaml(config_file)

        assert isinstance(config, ConfigData)
        assert config.database.path == "/tmp/contacts.db"
        assert config.database.kdf_iterations == 1000
        assert config.logging.level == "INFO"

    def test_environment_override_applied(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("config:\n  database:\n    path: ${CONTACTS_DB_PATH:-a.db}\n")

        with patch.dict(
            os.environ,
            {"CONTACTS_ENVIRONMENT": "test", "TEST_CONTACTS_DB_PATH": "b.db"},
            clear=True,
        ):
            config = load_templated_yaml(config_file)

        assert config.database.path == "b.db"

    def test_empty_file_raises(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        with pytest.raises(ValueError, match="Failed to parse YAML"):
            load_templated_yaml(config_file)

    def test_invalid_yaml_raises(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("config: [unclosed\n")

        with pytest.raises(ValueError, match="Error parsing YAML"):
            load_templated_yaml(config_file)

    def test_invalid_values_raise(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("config:\n  database:\n    kdf_iterations: 0\n")

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="Invalid configuration"):
                load_templated_yaml(config_file)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_templated_yaml(tmp_path / "missing.yaml")

    def test_repository_config_loads(self):
        """The shipped config.yaml parses with defaults for every variable."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_templated_yaml(Path(__file__).parents[4] / "config.yaml")

        assert config.database.path == "data/contacts.db"
        assert config.database.destructive_migration_fallback is False
