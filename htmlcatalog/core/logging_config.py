"""Logging configuration and utilities for the HTML Catalog."""

import logging
import logging.handlers
import sys
from typing import Optional
from .config import LoggingConfig


AUDIT_LOGGER_NAME = "htmlcatalog.audit"


class ColoredFormatter(logging.Formatter):
    """Custom formatter that adds colors to console output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        """Format log record with colors."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class LoggingManager:
    """Manages logging configuration and setup."""

    def __init__(self, config: Optional[LoggingConfig] = None):
        """
        Initialize logging manager.

        Args:
            config: Logging configuration. If None, uses defaults.
        """
        self.config = config or LoggingConfig()
        self.handlers = {}
        self._setup_root_logger()

    def _setup_root_logger(self):
        """Set up the root logger with configured handlers."""
        root_logger = logging.getLogger()
        root_logger.handlers.clear()

        try:
            root_logger.setLevel(getattr(logging, self.config.level.upper()))
        except AttributeError:
            root_logger.setLevel(logging.INFO)
            root_logger.warning(f"Invalid log level '{self.config.level}', using INFO")

        if self.config.console_enabled:
            console_handler = self._create_console_handler()
            root_logger.addHandler(console_handler)
            self.handlers['console'] = console_handler

        if self.config.file_enabled and self.config.file_path:
            file_handler = self._create_file_handler()
            if file_handler:
                root_logger.addHandler(file_handler)
                self.handlers['file'] = file_handler

    def _create_console_handler(self) -> logging.Handler:
        """Create and configure console handler."""
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(ColoredFormatter(self.config.format))
        return handler

    def _create_file_handler(self) -> Optional[logging.Handler]:
        """Create and configure rotating file handler."""
        try:
            self.config.file_path.parent.mkdir(parents=True, exist_ok=True)

            max_bytes = self.config.file_max_size_mb * 1024 * 1024
            handler = logging.handlers.RotatingFileHandler(
                self.config.file_path,
                maxBytes=max_bytes,
                backupCount=self.config.file_backup_count
            )
            handler.setFormatter(logging.Formatter(self.config.format))
            return handler

        except OSError as e:
            # Keep running with console logging only
            logging.getLogger(__name__).error(f"Failed to create file handler: {e}")
            return None

    def set_level(self, level: str):
        """
        Set the logging level for all loggers.

        Args:
            level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        try:
            log_level = getattr(logging, level.upper())
        except AttributeError:
            logging.getLogger(__name__).error(f"Invalid log level: {level}")
            return
        logging.getLogger().setLevel(log_level)
        self.config.level = level.upper()

    def enable_debug_logging(self):
        """Enable debug logging for development."""
        self.set_level('DEBUG')

        debug_format = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(funcName)s - %(message)s'

        for handler in self.handlers.values():
            if isinstance(handler, logging.handlers.RotatingFileHandler):
                handler.setFormatter(logging.Formatter(debug_format))
            else:
                handler.setFormatter(ColoredFormatter(debug_format))

    def create_audit_logger(self) -> logging.Logger:
        """
        Attach a dedicated file to the audit logger.

        The catalog store writes one line per committed mutation to this
        logger; records do not propagate to the root handlers.

        Returns:
            Audit logger instance
        """
        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        audit_logger.setLevel(logging.INFO)

        if 'audit' in self.handlers or not self.config.file_path:
            return audit_logger

        audit_file = self.config.file_path.parent / 'audit.log'

        try:
            audit_file.parent.mkdir(parents=True, exist_ok=True)
            audit_handler = logging.handlers.RotatingFileHandler(
                audit_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5
            )
            audit_handler.setFormatter(logging.Formatter('%(asctime)s - AUDIT - %(message)s'))

            audit_logger.addHandler(audit_handler)
            audit_logger.propagate = False
            self.handlers['audit'] = audit_handler

        except OSError as e:
            logging.getLogger(__name__).error(f"Failed to create audit logger: {e}")

        return audit_logger


def setup_logging(config: Optional[LoggingConfig] = None) -> LoggingManager:
    """
    Configure process logging from a LoggingConfig.

    Args:
        config: Optional logging configuration

    Returns:
        LoggingManager instance
    """
    manager = LoggingManager(config)
    if manager.config.audit_enabled:
        manager.create_audit_logger()
    return manager
