"""Tests for directory scanning and ingestion."""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from htmlcatalog.core.blobs import FileSystemBlobStorage
from htmlcatalog.core.config import ScanConfig
from htmlcatalog.core.exceptions import ScanError
from htmlcatalog.core.models import EntityKind, ScanOptions
from htmlcatalog.core.persistence import MemoryBackend
from htmlcatalog.core.scanner import HtmlScanner
from htmlcatalog.core.store import CatalogStore


class TestHtmlScanner:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.source = self.temp_dir / "pages"
        self.create_test_structure()

        self.store = CatalogStore(MemoryBackend())
        self.store.load()
        self.blobs = FileSystemBlobStorage(self.temp_dir / "blobs")
        self.scanner = HtmlScanner(self.store, self.blobs)

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def create_test_structure(self):
        (self.source / "sub").mkdir(parents=True)
        (self.source / ".cache").mkdir()
        (self.source / "a.html").write_text("<html><body>A</body></html>")
        (self.source / "b.HTM").write_text("<html><body>B</body></html>")
        (self.source / "notes.txt").write_text("not html")
        (self.source / ".hidden.html").write_text("<html></html>")
        (self.source / ".cache" / "cached.html").write_text("<html></html>")
        (self.source / "sub" / "c.html").write_text("<html><body>C</body></html>")

    def titles(self):
        return sorted(record.title for record in self.store.search())

    def test_recursive_scan(self):
        result = self.scanner.scan_directory(self.source, ScanOptions(recursive=True))

        assert result.total_files == 3
        assert result.ingested_files == 3
        assert result.errors == []
        assert self.titles() == ["a.html", "b.HTM", "c.html"]

    def test_non_recursive_scan(self):
        result = self.scanner.scan_directory(self.source, ScanOptions(recursive=False))

        assert result.ingested_files == 2
        assert self.titles() == ["a.html", "b.HTM"]

    def test_max_depth_zero(self):
        result = self.scanner.scan_directory(self.source, ScanOptions(recursive=True, max_depth=0))
        assert result.ingested_files == 2

    def test_include_hidden(self):
        result = self.scanner.scan_directory(self.source, ScanOptions(include_hidden=True))
        assert result.ingested_files == 5

    def test_content_is_copied_to_blob_storage(self):
        self.scanner.scan_directory(self.source, ScanOptions(recursive=False))
        record = next(r for r in self.store.search() if r.original_name == "a.html")

        assert self.blobs.fetch(record.storage_ref) == b"<html><body>A</body></html>"

    def test_default_category_is_created_once(self):
        self.scanner.scan_directory(self.source, ScanOptions(recursive=False))
        self.scanner.scan_directory(self.source, ScanOptions(recursive=False))

        categories = self.store.list_categories()
        assert [category.name for category in categories] == ["Uncategorized"]
        assert self.store.usage_count(EntityKind.CATEGORY, categories[0].id) == 4

    def test_shared_metadata_applies_to_every_file(self):
        tag = self.store.create_tag("Imported")
        category = self.store.create_category("Landing pages")

        self.scanner.scan_directory(
            self.source, ScanOptions(), shared_meta={"tags": [tag.id], "category": category.id}
        )

        assert self.store.usage_count(EntityKind.TAG, tag.id) == 3
        assert self.store.usage_count(EntityKind.CATEGORY, category.id) == 3
        assert self.store.find_entity_by_name(EntityKind.CATEGORY, "Uncategorized") is None

    def test_failed_registration_is_reported(self):
        result = self.scanner.scan_directory(
            self.source, ScanOptions(recursive=False), shared_meta={"tags": ["missing-tag"]}
        )

        assert result.ingested_files == 0
        assert len(result.errors) == 2
        assert not list((self.temp_dir / "blobs").glob("*.html"))

    def test_size_limit_skips_files(self):
        scanner = HtmlScanner(self.store, self.blobs, ScanConfig(max_file_size_mb=0))
        result = scanner.scan_directory(self.source, ScanOptions())

        assert result.skipped_files == 3
        assert result.ingested_files == 0
        assert self.store.search() == []

    def test_progress_callback(self):
        calls = []
        scanner = HtmlScanner(self.store, self.blobs, progress_callback=lambda done, total: calls.append((done, total)))
        scanner.scan_directory(self.source, ScanOptions())

        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_invalid_paths(self):
        with pytest.raises(ScanError):
            self.scanner.scan_directory(self.temp_dir / "missing", ScanOptions())
        with pytest.raises(ScanError):
            self.scanner.scan_directory(self.source / "a.html", ScanOptions())

    def test_special_characters_in_names(self):
        for name in ("file with spaces.html", "file-ü-ñ.html", "file(1).html"):
            (self.source / name).write_text("<html></html>", encoding="utf-8")

        result = self.scanner.scan_directory(self.source, ScanOptions(recursive=False))

        assert result.ingested_files == 5
        assert {"file with spaces.html", "file-ü-ñ.html", "file(1).html"} <= set(self.titles())

    def test_unreadable_files_are_reported(self):
        with patch.object(Path, "read_bytes", side_effect=PermissionError("denied")):
            result = self.scanner.scan_directory(self.source, ScanOptions(recursive=False))

        assert result.ingested_files == 0
        assert len(result.errors) == 2
        assert all("denied" in error for error in result.errors)
