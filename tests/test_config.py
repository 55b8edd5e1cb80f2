"""Tests for configuration loading and editing."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest

from htmlcatalog.core.config import ConfigManager, StorageConfig, default_storage_path
from htmlcatalog.core.exceptions import ConfigurationError


class TestConfigManager:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_file = self.temp_dir / "config.ini"

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_defaults_without_file(self):
        config = ConfigManager(self.config_file).get_config()

        assert config.storage.backend == "json"
        assert config.storage.path == default_storage_path("json")
        assert config.scan.default_category == "Uncategorized"
        assert config.web.port == 5000

    def test_set_value_coerces_and_saves(self):
        manager = ConfigManager(self.config_file)

        assert manager.set_value("web.port", "8080") == 8080
        assert manager.set_value("web.debug", "yes") is True
        assert manager.set_value("scan.default_max_depth", "None") is None

        reloaded = ConfigManager(self.config_file).get_config()
        assert reloaded.web.port == 8080
        assert reloaded.web.debug is True
        assert reloaded.scan.default_max_depth is None

    def test_switching_backend_follows_default_path(self):
        manager = ConfigManager(self.config_file)
        manager.set_value("storage.backend", "sqlite")

        assert manager.get_config().storage.path.suffix == ".db"

    def test_switching_backend_keeps_custom_path(self):
        manager = ConfigManager(self.config_file)
        custom = self.temp_dir / "mine.json"
        manager.set_value("storage.path", str(custom))
        manager.set_value("storage.backend", "sqlite")

        assert manager.get_config().storage.path == custom

    @pytest.mark.parametrize("key,value", [
        ("web", "8080"),
        ("nope.port", "1"),
        ("web.nope", "1"),
        ("web.port", "eighty"),
        ("storage.backend", "mongo"),
    ])
    def test_invalid_settings(self, key, value):
        with pytest.raises(ConfigurationError):
            ConfigManager(self.config_file).set_value(key, value)

    def test_bad_entries_in_file_are_ignored(self):
        self.config_file.write_text(
            "[web]\nport = eighty\nhost = 0.0.0.0\n[storage]\nunknown = 1\n",
            encoding="utf-8",
        )
        config = ConfigManager(self.config_file).get_config()

        assert config.web.port == 5000
        assert config.web.host == "0.0.0.0"

    def test_reset_to_defaults(self):
        manager = ConfigManager(self.config_file)
        manager.set_value("web.port", "9000")
        manager.reset_to_defaults()

        assert ConfigManager(self.config_file).get_config().web.port == 5000

    def test_export_to_json(self):
        manager = ConfigManager(self.config_file)
        target = self.temp_dir / "config.json"
        manager.export_to_json(target)

        data = json.loads(target.read_text())
        assert set(data) == {"storage", "scan", "web", "logging"}
        assert isinstance(data["storage"]["path"], str)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ConfigurationError):
            StorageConfig(backend="mongo")
