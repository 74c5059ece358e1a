"""
Unit tests for configuration loading.
"""
import json

import pytest

from config import Config, SETTINGS_FILE


@pytest.mark.unit
class TestConfig:
    """Tests for Config defaults and overrides."""

    def test_environment_overrides(self, temp_dir, monkeypatch):
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        monkeypatch.setenv("DB_PATH", str(temp_dir / "orders.db"))
        monkeypatch.setenv("WEBHOOK_EXPORT_ENABLED", "true")
        monkeypatch.setenv("BACKUP_RETENTION_COUNT", "2")

        config = Config()

        assert config.config_dir == temp_dir
        assert config.db_path == temp_dir / "orders.db"
        assert config.webhook_export_enabled is True
        assert config.backup_retention_count == 2

    def test_settings_file_overrides_environment(self, temp_dir, monkeypatch):
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        monkeypatch.setenv("BACKUP_RETENTION_COUNT", "2")
        (temp_dir / SETTINGS_FILE).write_text(json.dumps({
            "backup_retention_count": "5",
            "category_fuzzy_threshold": 70,
            "db_path": "/elsewhere.db",
            "_comment": "ignored",
        }))

        config = Config()

        assert config.backup_retention_count == 5
        assert config.category_fuzzy_threshold == 70
        # Locations are not overridable from the settings file
        assert str(config.db_path) != "/elsewhere.db"

    def test_bad_settings_are_ignored(self, temp_dir, monkeypatch):
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        (temp_dir / SETTINGS_FILE).write_text(json.dumps({"backup_retention_count": "many"}))

        assert Config().backup_retention_count == 7

    def test_corrupt_settings_file(self, temp_dir, monkeypatch):
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        (temp_dir / SETTINGS_FILE).write_text("{")

        assert Config().category_fuzzy_threshold == 85

    def test_settings_file_flags_and_nulls(self, temp_dir, monkeypatch):
        """Test that string flags are parsed and JSON null clears optional values."""
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        monkeypatch.setenv("WEBHOOK_EXPORT_ENABLED", "true")
        monkeypatch.setenv("WEBHOOK_EXPORT_URL", "https://hooks.example.com/po")
        (temp_dir / SETTINGS_FILE).write_text(json.dumps({
            "webhook_export_enabled": "false",
            "webhook_export_url": None,
        }))

        config = Config()

        assert config.webhook_export_enabled is False
        assert config.webhook_export_url is None

    def test_settings_file_boolean_flag(self, temp_dir, monkeypatch):
        monkeypatch.setenv("CONFIG_DIR", str(temp_dir))
        (temp_dir / SETTINGS_FILE).write_text(json.dumps({"webhook_export_enabled": True}))

        assert Config().webhook_export_enabled is True
