"""
Tests for configuration loading and error diagnostics.
"""

import json

import pytest
import yaml

from luatypes import MarshalConfig, load_config, State, Diagnostic, ErrorSeverity
from luatypes.config import DEFAULT_MAX_STACK, get_default_config
from luatypes.errors import error_type_mismatch, error_unsupported_type


class TestMarshalConfig:
    """Test config defaults and validation."""

    def test_defaults(self):
        config = MarshalConfig()
        assert config.string_encoding == "utf-8"
        assert config.max_stack == DEFAULT_MAX_STACK
        assert config.log_level == "WARNING"

    def test_dict_roundtrip(self):
        config = MarshalConfig(string_encoding="latin-1", max_stack=64)
        assert MarshalConfig.from_dict(config.to_dict()) == config

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="unknown config keys"):
            MarshalConfig.from_dict({"max_stak": 10})

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            MarshalConfig(max_stack=0)
        with pytest.raises(LookupError):
            MarshalConfig(string_encoding="no-such-codec")

    def test_state_uses_default(self):
        assert State().config is get_default_config()


class TestLoadConfig:
    """Test YAML/JSON loading."""

    def test_yaml(self, tmp_path):
        path = tmp_path / "luatypes.yaml"
        path.write_text(yaml.safe_dump({"max_stack": 128, "log_level": "DEBUG"}))
        config = load_config(path)
        assert config.max_stack == 128
        assert config.log_level == "DEBUG"
        assert config.string_encoding == "utf-8"

    def test_json(self, tmp_path):
        path = tmp_path / "luatypes.json"
        path.write_text(json.dumps({"string_encoding": "utf-16-le"}))
        assert load_config(path).string_encoding == "utf-16-le"

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == MarshalConfig()

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError):
            load_config(path)


class TestDiagnostics:
    """Test diagnostic formatting."""

    def test_format(self):
        err = error_type_mismatch(2, "integer", "string")
        text = err.diagnostic.format()
        assert text.startswith("error[E510]:")
        assert "stack index 2" in text

    def test_hints(self):
        err = error_unsupported_type("complex")
        assert "hint:" in str(err)
        assert isinstance(err, TypeError)

    def test_to_json(self):
        diag = Diagnostic(code="E510", message="m", severity=ErrorSeverity.WARNING, index=-1)
        data = diag.to_json()
        assert data["severity"] == "warning"
        assert data["index"] == -1
        assert json.dumps(data)
