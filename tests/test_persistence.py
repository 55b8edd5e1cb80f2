"""Tests for persistence backends, blob storage and legacy snapshot loading."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest

from htmlcatalog.core.blobs import FileSystemBlobStorage
from htmlcatalog.core.config import StorageConfig
from htmlcatalog.core.exceptions import BlobStorageError, PersistenceError, SnapshotFormatError
from htmlcatalog.core.models import EntityKind, FileRecord, Snapshot, Tag, Model, Category
from htmlcatalog.core.persistence import (
    JsonFileBackend, MemoryBackend, SqliteBackend, create_backend
)
from htmlcatalog.core.store import CatalogStore
from htmlcatalog.core.validation import UNCATEGORIZED, resolve_references, verify_invariants


def sample_snapshot():
    category = Category(id="c1", name="Pages", description="Full pages")
    tag = Tag(id="t1", name="UI", color="#336699")
    model = Model(id="m1", name="gpt", version="4o")
    record = FileRecord.create(
        {"category": "c1", "tags": ["t1"], "model": "m1", "title": "Landing", "prompt_text": "Make a landing page"},
        "0123456789abcdef0123456789abcdef",
    )
    return Snapshot(files=[record], tags=[tag], models=[model], categories=[category])


class TestJsonFileBackend:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.path = self.temp_dir / "data" / "catalog.json"
        self.backend = JsonFileBackend(self.path)

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_missing_file_loads_none(self):
        assert self.backend.load() is None

    def test_round_trip(self):
        snapshot = sample_snapshot()
        self.backend.save(snapshot)

        loaded = self.backend.load()

        assert loaded.files == snapshot.files
        assert loaded.tags == snapshot.tags
        assert loaded.models == snapshot.models
        assert loaded.categories == snapshot.categories

    def test_backup_keeps_previous_document(self):
        snapshot = sample_snapshot()
        self.backend.save(snapshot)
        first = self.path.read_text(encoding="utf-8")

        snapshot.tags.append(Tag(id="t2", name="Forms"))
        self.backend.save(snapshot)

        assert self.backend.backup_path.read_text(encoding="utf-8") == first
        assert [tag["name"] for tag in json.loads(self.path.read_text(encoding="utf-8"))["tags"]] == ["UI", "Forms"]

    def test_no_temp_files_left_behind(self):
        self.backend.save(sample_snapshot())
        self.backend.save(sample_snapshot())
        assert sorted(p.name for p in self.path.parent.iterdir()) == ["catalog.json", "catalog.json.bak"]

    def test_malformed_document(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{broken", encoding="utf-8")

        with pytest.raises(SnapshotFormatError):
            self.backend.load()

    def test_wrong_shape_document(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text(json.dumps({"files": "not a list"}), encoding="utf-8")

        with pytest.raises(SnapshotFormatError):
            self.backend.load()

    def test_store_starts_empty_on_malformed_document(self):
        self.path.parent.mkdir(parents=True)
        self.path.write_text("[]", encoding="utf-8")

        store = CatalogStore(self.backend)
        store.load()

        assert store.snapshot().files == []

    def test_unwritable_location_raises_persistence_error(self):
        blocker = self.temp_dir / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        backend = JsonFileBackend(blocker / "catalog.json")

        with pytest.raises(PersistenceError):
            backend.save(sample_snapshot())


class TestSqliteBackend:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.backend = SqliteBackend(self.temp_dir / "catalog.db")

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_empty_database_loads_none(self):
        assert self.backend.load() is None

    def test_round_trip_replaces_single_document(self):
        snapshot = sample_snapshot()
        self.backend.save(snapshot)
        snapshot.models.append(Model(id="m2", name="claude"))
        self.backend.save(snapshot)

        loaded = self.backend.load()

        assert [model.name for model in loaded.models] == ["gpt", "claude"]
        assert loaded.files == snapshot.files

    def test_health_check(self):
        self.backend.save(sample_snapshot())
        assert self.backend.health_check() is True

    def test_store_on_sqlite(self):
        store = CatalogStore(self.backend)
        store.load()
        tag = store.create_tag("UI")

        reopened = CatalogStore(SqliteBackend(self.temp_dir / "catalog.db"))
        reopened.load()

        assert reopened.get_entity(EntityKind.TAG, tag.id) == tag


class TestCreateBackend:

    def test_selects_backend_from_config(self):
        temp_dir = Path(tempfile.mkdtemp())
        try:
            assert isinstance(create_backend(StorageConfig(backend="json", path=temp_dir / "c.json")), JsonFileBackend)
            assert isinstance(create_backend(StorageConfig(backend="sqlite", path=temp_dir / "c.db")), SqliteBackend)
            assert isinstance(create_backend(StorageConfig(backend="memory")), MemoryBackend)
        finally:
            shutil.rmtree(temp_dir)


class TestBlobStorage:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.blobs = FileSystemBlobStorage(self.temp_dir / "html-files")

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_store_fetch_delete(self):
        ref = self.blobs.store(b"<html><body>hi</body></html>")

        assert self.blobs.exists(ref)
        assert self.blobs.fetch(ref) == b"<html><body>hi</body></html>"

        self.blobs.delete(ref)
        assert not self.blobs.exists(ref)
        self.blobs.delete(ref)

    def test_fetch_missing(self):
        with pytest.raises(BlobStorageError):
            self.blobs.fetch("0" * 32)

    @pytest.mark.parametrize("ref", ["../etc/passwd", "abc", "0" * 31 + "/", None])
    def test_rejects_invalid_refs(self, ref):
        with pytest.raises(BlobStorageError):
            self.blobs.fetch(ref)
        assert not self.blobs.exists(ref)

    def test_rejects_non_bytes(self):
        with pytest.raises(BlobStorageError):
            self.blobs.store("text")


class TestLegacySnapshots:
    """Older catalogs stored names on files instead of ids."""

    LEGACY = {
        "html_files": [
            {
                "id": "a1",
                "originalName": "login.html",
                "encryptedName": "ffffffffffffffffffffffffffffffff",
                "title": "Login",
                "background": "Blue theme",
                "prompt": "Build a login page",
                "tags": ["UI", "Forms"],
                "model": "gpt",
                "category": "",
                "accessCount": 3,
                "uploadTime": "2024-01-02T03:04:05.000Z",
                "status": "active",
            },
            {
                "id": "a2",
                "originalName": "old.html",
                "tags": ["Legacy"],
                "models": [{"name": "claude"}],
                "category": "Archive",
                "status": "deleted",
            },
        ],
        "preset_tags": ["UI", {"name": "Forms", "color": "green"}],
        "preset_models": [{"name": "gpt", "description": "OpenAI"}],
        "lastUpdate": "2024-01-02T03:04:05.000Z",
    }

    def test_resolves_names_to_ids(self):
        snapshot, issues = resolve_references(Snapshot.from_dict(self.LEGACY))

        tags = {tag.name: tag.id for tag in snapshot.tags}
        models = {model.name: model.id for model in snapshot.models}
        categories = {category.name: category.id for category in snapshot.categories}
        login, old = snapshot.files

        assert login.tags == (tags["UI"], tags["Forms"])
        assert login.model == models["gpt"]
        assert login.category == categories[UNCATEGORIZED]
        assert login.background_text == "Blue theme"
        assert login.prompt_text == "Build a login page"
        assert login.storage_ref == "ffffffffffffffffffffffffffffffff"
        assert login.access_count == 3
        assert old.tags == (tags["Legacy"],)
        assert old.model == models["claude"]
        assert old.category == categories["Archive"]
        assert any("Legacy" in issue for issue in issues)
        assert verify_invariants(snapshot) == []

    def test_duplicate_names_are_merged(self):
        document = {
            "tags": [{"id": "x", "name": "UI"}, {"id": "y", "name": "UI"}],
            "categories": [{"id": "c", "name": "Pages"}],
            "files": [{"id": "f", "category": "c", "tags": ["y"]}],
        }
        snapshot, issues = resolve_references(Snapshot.from_dict(document))

        assert [tag.id for tag in snapshot.tags] == ["x"]
        assert snapshot.files[0].tags == ("x",)
        assert issues

    def test_store_loads_legacy_document(self):
        store = CatalogStore(MemoryBackend(json.dumps(self.LEGACY)))
        issues = store.load()

        assert issues
        assert store.get_stats().total_files == 1
        ui = store.find_entity_by_name(EntityKind.TAG, "UI")
        assert store.usage_count(EntityKind.TAG, ui.id) == 1
        legacy = store.find_entity_by_name(EntityKind.TAG, "Legacy")
        assert store.usage_count(EntityKind.TAG, legacy.id) == 0


class TestExportImport:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.store = CatalogStore(MemoryBackend())
        self.store.load()
        category = self.store.create_category("Pages")
        self.tag = self.store.create_tag("UI")
        self.store.create_file({"category": category.id, "tags": [self.tag.id], "title": "Login"}, "r1")
        deleted = self.store.create_file({"category": category.id, "title": "Old"}, "r2")
        self.store.soft_delete_file(deleted.id)

    def teardown_method(self):
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_export_includes_deleted_files(self):
        target = self.temp_dir / "export.json"

        assert self.store.export_to(target) == 2

        document = json.loads(target.read_text(encoding="utf-8"))
        assert "exported_at" in document
        assert {item["status"] for item in document["data"]["files"]} == {"active", "deleted"}

    def test_import_replaces_catalog(self):
        target = self.temp_dir / "export.json"
        self.store.export_to(target)

        other = CatalogStore(MemoryBackend())
        other.load()
        other.create_tag("Replaced")
        events = []
        other.subscribe(events.append)

        assert other.import_from(target) == []

        assert [tag.name for tag in other.list_tags()] == ["UI"]
        assert [record.title for record in other.search()] == ["Login"]
        assert other.usage_count(EntityKind.TAG, self.tag.id) == 1
        assert [(event.action, event.kind) for event in events] == [("import", "catalog")]

    def test_import_accepts_raw_snapshot(self):
        target = self.temp_dir / "raw.json"
        target.write_text(json.dumps(self.store.snapshot().to_dict()), encoding="utf-8")

        other = CatalogStore(MemoryBackend())
        other.import_from(target)

        assert len(other.snapshot().files) == 2

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", '{"files": 3}'])
    def test_import_rejects_other_documents(self, content):
        target = self.temp_dir / "bad.json"
        target.write_text(content, encoding="utf-8")

        with pytest.raises(SnapshotFormatError):
            self.store.import_from(target)
        assert [tag.name for tag in self.store.list_tags()] == ["UI"]

    def test_import_missing_file(self):
        with pytest.raises(PersistenceError):
            self.store.import_from(self.temp_dir / "missing.json")
