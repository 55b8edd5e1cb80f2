"""Persistence backends that load and save whole catalog snapshots."""

import json
import logging
import os
import shutil
import sqlite3
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import StorageConfig
from .exceptions import ConfigurationError, SnapshotFormatError, RetryablePersistenceError
from .error_handler import ErrorHandler, retry_on_error, safe_persistence_operation
from .models import Snapshot


class PersistenceBackend(ABC):
    """Interface the catalog store persists through."""

    @abstractmethod
    def load(self) -> Optional[Snapshot]:
        """
        Read the stored snapshot.

        Returns:
            The snapshot, or None if nothing has been stored yet

        Raises:
            SnapshotFormatError: If the stored document is malformed
            PersistenceError: If the storage cannot be read
        """

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        """
        Store a snapshot, replacing the previous one.

        Raises:
            PersistenceError: If the write fails; the previous snapshot stays intact
        """

    def describe(self) -> str:
        return type(self).__name__


def _parse_document(raw: str, source) -> Snapshot:
    try:
        return Snapshot.from_dict(json.loads(raw))
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise SnapshotFormatError(f"Malformed catalog snapshot in {source}: {e}") from e


def _dump_document(snapshot: Snapshot) -> str:
    return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)


class MemoryBackend(PersistenceBackend):
    """Keeps the serialized snapshot in process memory."""

    def __init__(self, document: Optional[str] = None):
        self._document = document

    def load(self) -> Optional[Snapshot]:
        if self._document is None:
            return None
        return _parse_document(self._document, "memory")

    def save(self, snapshot: Snapshot) -> None:
        self._document = _dump_document(snapshot)

    @property
    def document(self) -> Optional[str]:
        return self._document


class JsonFileBackend(PersistenceBackend):
    """Stores the snapshot as one JSON document on disk."""

    def __init__(self, path: Path, backup_enabled: bool = True):
        """
        Args:
            path: Location of the JSON document
            backup_enabled: Copy the previous document to ``<name>.bak`` before each write
        """
        self.path = Path(path)
        self.backup_enabled = backup_enabled
        self.logger = logging.getLogger(__name__)

    @safe_persistence_operation("catalog load")
    def load(self) -> Optional[Snapshot]:
        if not self.path.exists():
            self.logger.info(f"No catalog file at {self.path}")
            return None

        with open(self.path, "r", encoding="utf-8") as f:
            raw = f.read()
        return _parse_document(raw, self.path)

    @safe_persistence_operation("catalog save")
    def save(self, snapshot: Snapshot) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if self.backup_enabled and self.path.exists():
            shutil.copy2(self.path, self.backup_path)

        # Write to a sibling temp file and swap it in so readers never see a partial document
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(_dump_document(snapshot))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        self.logger.debug(f"Catalog saved to {self.path}")

    @property
    def backup_path(self) -> Path:
        return self.path.with_name(self.path.name + ".bak")

    def describe(self) -> str:
        return f"json:{self.path}"


class SqliteBackend(PersistenceBackend):
    """Stores the snapshot document in a single-row SQLite table."""

    def __init__(self, path: Path, timeout: float = 30.0):
        self.path = Path(path)
        self.timeout = timeout
        self.error_handler = ErrorHandler()
        self.logger = logging.getLogger(__name__)
        self._initialized = False

    def get_connection(self) -> sqlite3.Connection:
        """
        Open a connection configured for the catalog database.

        Raises:
            PersistenceError: If the connection cannot be established
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(self.path, timeout=self.timeout)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            return conn
        except sqlite3.Error as e:
            self.error_handler.handle_database_error(e, "connect")

    def initialize(self, conn: sqlite3.Connection) -> None:
        """Create the snapshot table if it doesn't exist."""
        if self._initialized:
            return
        conn.execute("""
            CREATE TABLE IF NOT EXISTS catalog_snapshot (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                document TEXT NOT NULL,
                saved_at TEXT NOT NULL
            )
        """)
        conn.commit()
        self._initialized = True

    @retry_on_error(max_retries=3, delay=0.1, exceptions=(RetryablePersistenceError,))
    @safe_persistence_operation("catalog load")
    def load(self) -> Optional[Snapshot]:
        conn = self.get_connection()
        try:
            self.initialize(conn)
            row = conn.execute("SELECT document FROM catalog_snapshot WHERE id = 1").fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return _parse_document(row[0], self.path)

    @retry_on_error(max_retries=3, delay=0.1, exceptions=(RetryablePersistenceError,))
    @safe_persistence_operation("catalog save")
    def save(self, snapshot: Snapshot) -> None:
        document = _dump_document(snapshot)
        conn = self.get_connection()
        try:
            self.initialize(conn)
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO catalog_snapshot (id, document, saved_at) VALUES (1, ?, ?)",
                    (document, datetime.now().isoformat())
                )
        finally:
            conn.close()

    def health_check(self) -> bool:
        """
        Perform an integrity check on the database.

        Returns:
            True if database is healthy, False otherwise
        """
        try:
            conn = self.get_connection()
            try:
                result = conn.execute("PRAGMA integrity_check").fetchone()
            finally:
                conn.close()
            return bool(result) and result[0] == "ok"
        except Exception as e:
            self.logger.error(f"Database health check failed: {e}")
            return False

    def describe(self) -> str:
        return f"sqlite:{self.path}"


def create_backend(config: StorageConfig) -> PersistenceBackend:
    """Select the persistence backend named in the storage configuration."""
    if config.backend == "json":
        return JsonFileBackend(config.path, backup_enabled=config.backup_enabled)
    if config.backend == "sqlite":
        return SqliteBackend(config.path, timeout=config.timeout)
    if config.backend == "memory":
        return MemoryBackend()
    raise ConfigurationError(f"Unknown storage backend '{config.backend}'")
