"""HTML Catalog - Organize HTML documents with tags, models and categories."""

__version__ = "0.1.0"
__author__ = "HTML Catalog Team"
__description__ = "A catalog of HTML documents with tags, models and categories"

# Import main components for programmatic access
from .core.models import FileRecord, Tag, Model, Category, SearchFilters, Snapshot
from .core.store import CatalogStore, open_store
from .core.persistence import create_backend
from .cli.main import cli

__all__ = [
    "FileRecord",
    "Tag",
    "Model",
    "Category",
    "SearchFilters",
    "Snapshot",
    "CatalogStore",
    "open_store",
    "create_backend",
    "cli"
]
