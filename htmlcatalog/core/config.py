"""Configuration management for the HTML Catalog."""

import logging
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field, fields
import configparser
import json

from .exceptions import ConfigurationError


DEFAULT_DATA_DIR = Path.home() / ".html_catalog"

STORAGE_BACKENDS = ("json", "sqlite", "memory")


def default_storage_path(backend: str) -> Path:
    suffix = "db" if backend == "sqlite" else "json"
    return DEFAULT_DATA_DIR / f"catalog.{suffix}"


@dataclass
class StorageConfig:
    """Catalog and uploaded content storage settings."""
    backend: str = "json"
    path: Optional[Path] = None
    blob_dir: Optional[Path] = None
    backup_enabled: bool = True
    timeout: float = 30.0

    def __post_init__(self):
        if self.backend not in STORAGE_BACKENDS:
            raise ConfigurationError(
                f"Unknown storage backend '{self.backend}'. Valid backends: {', '.join(STORAGE_BACKENDS)}"
            )
        if self.path is None:
            self.path = default_storage_path(self.backend)
        if self.blob_dir is None:
            self.blob_dir = DEFAULT_DATA_DIR / "html-files"


@dataclass
class ScanConfig:
    """Scanning configuration settings."""
    default_recursive: bool = True
    default_include_hidden: bool = False
    default_max_depth: Optional[int] = None
    default_category: str = "Uncategorized"
    max_file_size_mb: int = 10


@dataclass
class WebConfig:
    """Web API configuration settings."""
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    secret_key: str = "dev-key-change-in-production"
    max_content_length: int = 16 * 1024 * 1024  # 16MB
    default_page_size: int = 50


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_enabled: bool = True
    file_path: Optional[Path] = None
    file_max_size_mb: int = 10
    file_backup_count: int = 5
    console_enabled: bool = True
    audit_enabled: bool = True

    def __post_init__(self):
        if self.file_path is None:
            self.file_path = DEFAULT_DATA_DIR / "logs" / "app.log"


@dataclass
class AppConfig:
    """Main application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_name: str = "HTML Catalog"
    version: str = "0.1.0"

    SECTIONS = ("storage", "scan", "web", "logging")


def _coerce(raw: str, current, annotation: str):
    """Convert an INI string to the type of the dataclass field."""
    if raw == "None" and "Optional" in annotation:
        return None
    if isinstance(current, bool) or "bool" in annotation:
        return raw.strip().lower() in ("true", "1", "yes", "on")
    if isinstance(current, int) or "int" in annotation:
        return int(raw)
    if isinstance(current, float) or "float" in annotation:
        return float(raw)
    if isinstance(current, Path) or "Path" in annotation:
        return Path(raw).expanduser()
    return raw


def set_section_value(section_obj, setting: str, value: str):
    """
    Set one field of a configuration section from its string form.

    Raises:
        ConfigurationError: If the setting is unknown or the value invalid
    """
    field_types = {f.name: str(f.type) for f in fields(section_obj)}
    if setting not in field_types:
        raise ConfigurationError(f"Unknown setting '{setting}' in section '{type(section_obj).__name__}'")
    try:
        converted = _coerce(value, getattr(section_obj, setting), field_types[setting])
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {setting}: {value}") from e
    if setting == "backend":
        if converted not in STORAGE_BACKENDS:
            raise ConfigurationError(f"Unknown storage backend '{converted}'")
        # Keep the file extension in step with the backend while on the default path
        if section_obj.path == default_storage_path(section_obj.backend):
            section_obj.path = default_storage_path(converted)
    setattr(section_obj, setting, converted)
    return converted


class ConfigManager:
    """Manages application configuration stored in an INI file."""

    def __init__(self, config_file: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to configuration file. If None, uses default location.
        """
        if config_file is None:
            config_file = DEFAULT_DATA_DIR / "config.ini"

        self.config_file = Path(config_file)
        self.config = AppConfig()
        self.logger = logging.getLogger(__name__)

        if self.config_file.exists():
            self.load_from_file()

    def load_from_file(self) -> None:
        """Load configuration from INI file; unknown keys are ignored with a warning."""
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(self.config_file)
        except configparser.Error as e:
            self.logger.error(f"Error loading configuration from {self.config_file}: {e}")
            return

        for section in AppConfig.SECTIONS:
            if section not in parser:
                continue
            section_obj = getattr(self.config, section)
            for key, value in parser[section].items():
                try:
                    set_section_value(section_obj, key, value)
                except ConfigurationError as e:
                    self.logger.warning(f"Ignoring configuration entry {section}.{key}: {e}")

        self.logger.info(f"Configuration loaded from {self.config_file}")

    def save_to_file(self) -> None:
        """Save current configuration to INI file."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)

            parser = configparser.ConfigParser(interpolation=None)
            for section, values in self.to_dict().items():
                parser[section] = {key: str(value) for key, value in values.items()}

            with open(self.config_file, 'w') as f:
                parser.write(f)

            self.logger.info(f"Configuration saved to {self.config_file}")

        except OSError as e:
            self.logger.error(f"Error saving configuration to {self.config_file}: {e}")
            raise ConfigurationError(f"Cannot write configuration file {self.config_file}: {e}") from e

    def get_config(self) -> AppConfig:
        """Get the current configuration."""
        return self.config

    def set_value(self, key: str, value: str):
        """
        Set a value using ``section.key`` notation and save the file.

        Returns:
            The converted value that was stored
        """
        keys = key.split('.')
        if len(keys) != 2:
            raise ConfigurationError("Key must be in format 'section.key' (e.g., 'storage.backend')")

        section, setting = keys
        if section not in AppConfig.SECTIONS:
            raise ConfigurationError(f"Unknown configuration section: {section}")

        converted = set_section_value(getattr(self.config, section), setting, value)
        self.save_to_file()
        return converted

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self.config = AppConfig()
        self.save_to_file()
        self.logger.info("Configuration reset to defaults")

    def to_dict(self) -> dict:
        result = {}
        for section in AppConfig.SECTIONS:
            section_obj = getattr(self.config, section)
            result[section] = {f.name: getattr(section_obj, f.name) for f in fields(section_obj)}
        return result

    def export_to_json(self, file_path: Path) -> None:
        """
        Export configuration to JSON format.

        Args:
            file_path: Path to save JSON file
        """
        config_dict = {
            section: {
                key: str(value) if isinstance(value, Path) else value
                for key, value in values.items()
            }
            for section, values in self.to_dict().items()
        }

        with open(file_path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        self.logger.info(f"Configuration exported to {file_path}")
