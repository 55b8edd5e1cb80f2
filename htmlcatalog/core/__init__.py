"""Core engine: catalog store, rules, search and persistence."""

from .models import (
    FileRecord, FileStatus, EntityKind, Tag, Model, Category, Snapshot,
    SearchFilters, StatsSnapshot, ScanOptions, ScanResult
)
from .store import CatalogStore, open_store
from .persistence import JsonFileBackend, SqliteBackend, MemoryBackend, create_backend
from .blobs import FileSystemBlobStorage
from .scanner import HtmlScanner

__all__ = [
    "FileRecord",
    "FileStatus",
    "EntityKind",
    "Tag",
    "Model",
    "Category",
    "Snapshot",
    "SearchFilters",
    "StatsSnapshot",
    "ScanOptions",
    "ScanResult",
    "CatalogStore",
    "open_store",
    "JsonFileBackend",
    "SqliteBackend",
    "MemoryBackend",
    "create_backend",
    "FileSystemBlobStorage",
    "HtmlScanner"
]
