"""Tests for secretbridge.common.config module."""

from __future__ import annotations

import json

import pytest

from secretbridge.common.config import EnvReader, find_config_file, load_config_file
from secretbridge.common.exceptions import ConfigurationError


class TestEnvReader:
    """Tests for EnvReader."""

    def test_get_with_prefix(self, monkeypatch):
        """Test prefixed lookup."""
        monkeypatch.setenv("SECRET_BRIDGE_TYPE", "mdb")
        assert EnvReader("SECRET_BRIDGE").get("TYPE") == "mdb"

    def test_get_without_prefix(self, monkeypatch):
        """Test lookup with an empty prefix."""
        monkeypatch.setenv("AWS_REGION", "eu-west-1")
        assert EnvReader("").get("AWS_REGION") == "eu-west-1"

    def test_empty_value_is_unset(self, monkeypatch):
        """Test empty values fall back to the default."""
        monkeypatch.setenv("SECRET_BRIDGE_FLOW", "")
        assert EnvReader().get("FLOW", "default") == "default"

    def test_variable_name(self):
        assert EnvReader("SECRET_BRIDGE_CLOUD").variable("REGION") == "SECRET_BRIDGE_CLOUD_REGION"
        assert EnvReader("").variable("MDB_URI") == "MDB_URI"


class TestConfigFiles:
    """Tests for config file loading and discovery."""

    def test_load_json(self, tmp_path):
        """Test JSON file loading."""
        path = tmp_path / "secretbridge.json"
        path.write_text(json.dumps({"type": "mdb"}))
        assert load_config_file(path) == {"type": "mdb"}

    def test_load_yaml(self, tmp_path):
        """Test YAML file loading."""
        path = tmp_path / "secretbridge.yaml"
        path.write_text("type: mdb\ndocument:\n  database: app\n")
        assert load_config_file(path) == {"type": "mdb", "document": {"database": "app"}}

    def test_non_mapping_file(self, tmp_path):
        """Test a file holding a list yields an empty mapping."""
        path = tmp_path / "secretbridge.yaml"
        path.write_text("- aws\n- mdb\n")
        assert load_config_file(path) == {}

    def test_load_invalid_json(self, tmp_path):
        """Test parse errors are configuration errors."""
        path = tmp_path / "secretbridge.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError):
            load_config_file(path)

    def test_load_missing_file(self, tmp_path):
        """Test a missing file raises."""
        with pytest.raises(ConfigurationError):
            load_config_file(tmp_path / "missing.json")

    def test_unsupported_suffix(self, tmp_path):
        """Test unsupported formats raise."""
        path = tmp_path / "secretbridge.toml"
        path.write_text("type = 'mdb'")
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_file(path)
        assert exc_info.value.details["path"] == str(path)

    def test_find_config_file_in_parent(self, tmp_path):
        """Test discovery walks up the directory tree."""
        config = tmp_path / "secretbridge.yml"
        config.write_text("type: aws\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_file(nested) == config

    def test_find_config_file_none(self, tmp_path):
        """Test discovery returns None when nothing is found."""
        assert find_config_file(tmp_path, max_depth=1) is None
