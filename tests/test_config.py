# [TEMPLATE: CUI // SP-CTI]
"""Tests for assessment_engine.compat: config loading, datetime and DB path helpers."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from assessment_engine.compat.config import DEFAULT_CONFIG, get_setting, load_config
from assessment_engine.compat.datetime_utils import parse_timestamp, to_iso
from assessment_engine.compat.db_utils import get_db_connection, get_ledger_db_path
from assessment_engine.resilience.errors import ConfigurationError


class TestLoadConfig:
    """YAML config overlay on built-in defaults."""

    def test_missing_file_returns_defaults(self, tmp_path):
        assert load_config(tmp_path / "absent.yaml") == DEFAULT_CONFIG

    def test_defaults_are_copied(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        config["compliance"]["frameworks"].append("X")
        assert "X" not in DEFAULT_CONFIG["compliance"]["frameworks"]

    def test_overlay_merges_nested_sections(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("ledger:\n  default_classification: CONFIDENTIAL\n")
        config = load_config(path)
        assert config["ledger"]["default_classification"] == "CONFIDENTIAL"
        assert config["ledger"]["default_source_system"] == "Local"
        assert config["compliance"] == DEFAULT_CONFIG["compliance"]

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_config(path)

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("ledger: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = tmp_path / "engine.yaml"
        path.write_text("compliance:\n  frameworks: [SOC2]\n")
        monkeypatch.setenv("ASSESSMENT_CONFIG_PATH", str(path))
        assert get_setting("compliance", "frameworks") == ["SOC2"]

    def test_shipped_config_lists_frameworks(self, monkeypatch):
        monkeypatch.delenv("ASSESSMENT_CONFIG_PATH", raising=False)
        assert "FRE902" in load_config()["compliance"]["frameworks"]


class TestDatetimeUtils:
    """ISO 8601 parsing and rendering."""

    def test_z_suffix(self):
        assert parse_timestamp("2026-03-01T09:00:00Z") == \
            datetime(2026, 3, 1, 9, tzinfo=timezone.utc)

    def test_offset_is_normalized_to_utc(self):
        parsed = parse_timestamp("2026-03-01T11:00:00+02:00")
        assert to_iso(parsed) == "2026-03-01T09:00:00+00:00"

    def test_naive_is_assumed_utc(self):
        assert parse_timestamp("2026-03-01T09:00:00").utcoffset() == timedelta(0)

    @pytest.mark.parametrize("value", [None, "", "   ", "yesterday"])
    def test_unparseable_returns_none(self, value):
        assert parse_timestamp(value) is None


class TestDbUtils:
    """Ledger database path resolution."""

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ASSESSMENT_DB_PATH", str(tmp_path / "env.db"))
        assert get_ledger_db_path(tmp_path / "explicit.db") == tmp_path / "explicit.db"

    def test_env_var_used_without_explicit(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ASSESSMENT_DB_PATH", str(tmp_path / "env.db"))
        assert get_ledger_db_path() == tmp_path / "env.db"

    def test_validate_missing_db_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_db_connection(tmp_path / "missing.db", validate=True)

    def test_connection_creates_parent_dirs(self, tmp_path):
        conn = get_db_connection(tmp_path / "nested" / "ledger.db")
        conn.close()
        assert (tmp_path / "nested").is_dir()
