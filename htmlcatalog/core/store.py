"""The catalog store: canonical collections and the single mutation entry point."""

import dataclasses
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .error_handler import safe_persistence_operation
from .exceptions import (
    NotFoundError, PersistenceError, SnapshotFormatError, ValidationError
)
from .guards import DeleteGuard, RenameCascade, ensure_name_available, normalize_name
from .logging_config import AUDIT_LOGGER_NAME
from .models import (
    ENTITY_TYPES, EntityKind, FileRecord, FileStatus, SearchFilters, Snapshot,
    StatsSnapshot, new_id, unique_ids
)
from .notifier import ChangeEvent, ChangeNotifier
from .persistence import PersistenceBackend
from .query import QueryEngine
from .stats import StatsAggregator
from .validation import resolve_references


@dataclass
class _CatalogState:
    """Id-keyed collections; dict order is insertion order."""
    files: Dict[str, FileRecord] = field(default_factory=dict)
    tags: Dict[str, Any] = field(default_factory=dict)
    models: Dict[str, Any] = field(default_factory=dict)
    categories: Dict[str, Any] = field(default_factory=dict)

    def entities(self, kind: EntityKind) -> Dict[str, Any]:
        return getattr(self, kind.plural)

    def copy(self) -> "_CatalogState":
        # Records are immutable, so copying the dicts is enough
        return _CatalogState(dict(self.files), dict(self.tags), dict(self.models), dict(self.categories))

    def to_snapshot(self, last_updated: Optional[datetime] = None) -> Snapshot:
        return Snapshot(
            files=list(self.files.values()),
            tags=list(self.tags.values()),
            models=list(self.models.values()),
            categories=list(self.categories.values()),
            last_updated=last_updated,
        )

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "_CatalogState":
        return cls(
            files={record.id: record for record in snapshot.files},
            tags={tag.id: tag for tag in snapshot.tags},
            models={model.id: model for model in snapshot.models},
            categories={category.id: category for category in snapshot.categories},
        )


@dataclass(frozen=True)
class _Committed:
    """State and the stats derived from it, published together."""
    state: _CatalogState
    stats: StatsSnapshot
    last_updated: Optional[datetime]


class _Unchanged:
    """Returned by a mutation that turned out to be a no-op."""

    def __init__(self, result):
        self.result = result


class CatalogStore:
    """
    Owns the catalog and mediates every change to it.

    A mutation is built on a copy of the current state, validated, handed to
    the persistence backend, and only then swapped in as the committed
    state. If any step fails the copy is discarded, so callers never observe
    a half-applied change. After the swap the usage statistics are
    recomputed and subscribers are notified once.

    Writers are serialized by an instance lock. Readers never take the lock;
    they always see the last committed state.
    """

    def __init__(self, backend: PersistenceBackend, notifier: Optional[ChangeNotifier] = None):
        """
        Args:
            backend: Persistence collaborator the catalog is saved through
            notifier: Optional notifier to publish changes on; a new one is created if omitted
        """
        self.backend = backend
        self.notifier = notifier or ChangeNotifier()
        self.logger = logging.getLogger(__name__)
        self.audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)

        self._lock = threading.RLock()
        self._aggregator = StatsAggregator()
        self._query = QueryEngine()
        self._rename = RenameCascade()
        self._delete_guard = DeleteGuard()

        empty = _CatalogState()
        self._committed = _Committed(empty, self._aggregator.compute(empty.to_snapshot()), None)

    # ------------------------------------------------------------------
    # Loading and committing

    def load(self) -> List[str]:
        """
        Replace the in-memory catalog with the backend's snapshot.

        A missing or malformed snapshot leaves an empty catalog and logs a
        warning. Legacy name-based references are resolved to ids.

        Returns:
            Repairs made while resolving references

        Raises:
            PersistenceError: If the storage exists but cannot be read
        """
        with self._lock:
            try:
                snapshot = self.backend.load()
            except SnapshotFormatError as e:
                self.logger.warning(f"Catalog snapshot is malformed, starting with an empty catalog: {e}")
                snapshot = None
            except PersistenceError as e:
                self.logger.error(f"Catalog snapshot could not be read from {self.backend.describe()}: {e}")
                raise

            issues: List[str] = []
            if snapshot is None:
                self.logger.warning(f"No catalog found in {self.backend.describe()}; using an empty catalog")
                state = _CatalogState()
                last_updated = None
            else:
                snapshot, issues = resolve_references(snapshot)
                for issue in issues:
                    self.logger.warning(f"Catalog load: {issue}")
                state = _CatalogState.from_snapshot(snapshot)
                last_updated = snapshot.last_updated

            self._committed = _Committed(state, self._aggregator.compute(state.to_snapshot()), last_updated)
            self.logger.info(
                f"Loaded catalog from {self.backend.describe()}: "
                f"{len(state.files)} files, {len(state.tags)} tags, "
                f"{len(state.models)} models, {len(state.categories)} categories"
            )
            return issues

    def _commit(self, action: str, kind: str, mutate: Callable[[_CatalogState], Any]):
        """
        Run one mutation as a unit.

        ``mutate`` edits the working copy it is given and returns the result
        for the caller. Any exception it raises aborts the mutation. A
        result wrapped in ``_Unchanged`` is returned without saving or
        notifying.
        """
        with self._lock:
            working = self._committed.state.copy()
            result = mutate(working)
            if isinstance(result, _Unchanged):
                return result.result

            now = datetime.now()
            snapshot = working.to_snapshot(last_updated=now)
            try:
                self.backend.save(snapshot)
            except PersistenceError as e:
                self.logger.error(f"Could not persist {action} {kind}; catalog left unchanged: {e}")
                raise

            stats = self._aggregator.compute(snapshot)
            self._committed = _Committed(working, stats, now)

            entity_id = getattr(result, "id", None)
            self.audit_logger.info(f"{action} {kind} {entity_id or ''}".rstrip())
            self.notifier.publish(ChangeEvent(action, kind, entity_id, working.to_snapshot(last_updated=now)))
            return result

    # ------------------------------------------------------------------
    # Reads

    def snapshot(self) -> Snapshot:
        """Copy of the committed catalog."""
        committed = self._committed
        return committed.state.to_snapshot(last_updated=committed.last_updated)

    def get_stats(self) -> StatsSnapshot:
        return self._committed.stats

    def search(self, filters: Optional[SearchFilters] = None) -> List[FileRecord]:
        """Active files matching the filters, in catalog order."""
        state = self._committed.state
        return self._query.search(state.files.values(), state.categories, filters)

    get_files = search

    def search_page(self, filters: Optional[SearchFilters] = None) -> Tuple[List[FileRecord], int]:
        """A page of matching files and the match count, read from one committed state."""
        state = self._committed.state
        return self._query.search_page(state.files.values(), state.categories, filters)

    def peek_file(self, file_id: str) -> FileRecord:
        """
        Look up an active file without counting an access.

        Raises:
            NotFoundError: For unknown or deleted ids
        """
        record = self._committed.state.files.get(file_id)
        if record is None or not record.is_active:
            raise NotFoundError("file", file_id)
        return record

    def list_entities(self, kind: EntityKind) -> list:
        return list(self._committed.state.entities(kind).values())

    def get_entity(self, kind: EntityKind, entity_id: str):
        entity = self._committed.state.entities(kind).get(entity_id)
        if entity is None:
            raise NotFoundError(kind.value, entity_id)
        return entity

    def find_entity_by_name(self, kind: EntityKind, name: str):
        """Entity with exactly this name, or None."""
        for entity in self._committed.state.entities(kind).values():
            if entity.name == name:
                return entity
        return None

    def usage_count(self, kind: EntityKind, entity_id: str) -> int:
        """Number of active files referencing the entity."""
        committed = self._committed
        if entity_id not in committed.state.entities(kind):
            raise NotFoundError(kind.value, entity_id)
        return committed.stats.usage(kind).get(entity_id, 0)

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        return self.notifier.subscribe(callback)

    # ------------------------------------------------------------------
    # Files

    def create_file(self, meta: Dict[str, Any], storage_ref: str) -> FileRecord:
        """
        Register an ingested file.

        Args:
            meta: Metadata; ``category`` is required, ``tags``/``model`` optional
            storage_ref: Blob storage reference of the uploaded content

        Raises:
            ValidationError: On missing category, unknown keys or bad values
            NotFoundError: If a referenced tag, model or category doesn't exist
        """
        if not isinstance(storage_ref, str) or not storage_ref:
            raise ValidationError("storage_ref must be a non-empty string")
        values = self._clean_file_fields(meta, allowed=FileRecord.EDITABLE_FIELDS[:-1])
        if not values.get("category"):
            raise ValidationError("A category is required")

        def mutate(state: _CatalogState) -> FileRecord:
            self._check_references(state, values)
            record = FileRecord.create(values, storage_ref)
            state.files[record.id] = record
            return record

        return self._commit("create", "file", mutate)

    def update_file(self, file_id: str, partial: Dict[str, Any]) -> FileRecord:
        """
        Merge new field values into an active file.

        Raises:
            NotFoundError: If the file is unknown or deleted, or a reference is unknown
            ValidationError: On unknown keys or bad values
        """
        values = self._clean_file_fields(partial, allowed=FileRecord.EDITABLE_FIELDS)
        if "category" in values and not values["category"]:
            raise ValidationError("A category is required")
        if "storage_ref" in values and not values["storage_ref"]:
            raise ValidationError("storage_ref must be a non-empty string")

        def mutate(state: _CatalogState) -> FileRecord:
            record = self._active_file(state, file_id)
            self._check_references(state, values)
            changes = {key: value for key, value in values.items() if getattr(record, key) != value}
            if not changes:
                return _Unchanged(record)
            updated = dataclasses.replace(record, updated_at=datetime.now(), **changes)
            state.files[file_id] = updated
            return updated

        return self._commit("update", "file", mutate)

    def soft_delete_file(self, file_id: str) -> FileRecord:
        """
        Hide a file from every active view.

        Deleting an already deleted file succeeds without any change.

        Raises:
            NotFoundError: If the id was never catalogued
        """
        def mutate(state: _CatalogState):
            record = state.files.get(file_id)
            if record is None:
                raise NotFoundError("file", file_id)
            if not record.is_active:
                return _Unchanged(record)
            deleted = dataclasses.replace(record, status=FileStatus.DELETED, updated_at=datetime.now())
            state.files[file_id] = deleted
            return deleted

        return self._commit("delete", "file", mutate)

    def get_file(self, file_id: str) -> FileRecord:
        """
        Open a file: returns it and records the access.

        Raises:
            NotFoundError: For unknown or deleted ids
        """
        def mutate(state: _CatalogState) -> FileRecord:
            record = self._active_file(state, file_id)
            opened = dataclasses.replace(
                record, access_count=record.access_count + 1, updated_at=datetime.now()
            )
            state.files[file_id] = opened
            return opened

        return self._commit("access", "file", mutate)

    # ------------------------------------------------------------------
    # Tags, models, categories

    def create_entity(self, kind: EntityKind, name: str, **fields):
        """
        Raises:
            ValidationError: On an empty name or unknown fields
            DuplicateNameError: If the name is taken
        """
        name = normalize_name(name)
        values = self._clean_entity_fields(kind, fields)

        def mutate(state: _CatalogState):
            entities = state.entities(kind)
            ensure_name_available(kind, entities, name)
            entity = ENTITY_TYPES[kind](id=new_id(), name=name, **values)
            entities[entity.id] = entity
            return entity

        return self._commit("create", kind.value, mutate)

    def rename_entity(self, kind: EntityKind, entity_id: str, new_name: str):
        """
        Raises:
            NotFoundError: If the id is unknown
            DuplicateNameError: If another entity has the name
        """
        def mutate(state: _CatalogState):
            entities = state.entities(kind)
            current = entities.get(entity_id)
            renamed = self._rename.apply(kind, entities, entity_id, new_name)
            if renamed is current:
                return _Unchanged(current)
            entities[entity_id] = renamed
            return renamed

        return self._commit("rename", kind.value, mutate)

    def update_entity(self, kind: EntityKind, entity_id: str, **fields):
        """
        Edit the descriptive fields of an entity.

        A ``name`` among the fields is applied through the rename rules in
        the same mutation.
        """
        new_name = fields.pop("name", None)
        values = self._clean_entity_fields(kind, fields)

        def mutate(state: _CatalogState):
            entities = state.entities(kind)
            entity = entities.get(entity_id)
            if entity is None:
                raise NotFoundError(kind.value, entity_id)
            updated = entity
            if new_name is not None:
                updated = self._rename.apply(kind, entities, entity_id, new_name)
            changes = {key: value for key, value in values.items() if getattr(updated, key) != value}
            if changes:
                updated = dataclasses.replace(updated, **changes)
            if updated is entity:
                return _Unchanged(entity)
            entities[entity_id] = updated
            return updated

        return self._commit("update", kind.value, mutate)

    def delete_entity(self, kind: EntityKind, entity_id: str):
        """
        Remove an entity no active file references.

        Raises:
            NotFoundError: If the id is unknown
            EntityInUseError: If active files still reference it
        """
        def mutate(state: _CatalogState):
            entities = state.entities(kind)
            self._delete_guard.check(kind, entities, entity_id, state.files.values())
            return entities.pop(entity_id)

        return self._commit("delete", kind.value, mutate)

    def create_tag(self, name: str, description: str = "", color: str = ""):
        return self.create_entity(EntityKind.TAG, name, description=description, color=color)

    def rename_tag(self, tag_id: str, new_name: str):
        return self.rename_entity(EntityKind.TAG, tag_id, new_name)

    def update_tag(self, tag_id: str, **fields):
        return self.update_entity(EntityKind.TAG, tag_id, **fields)

    def delete_tag(self, tag_id: str):
        return self.delete_entity(EntityKind.TAG, tag_id)

    def list_tags(self) -> list:
        return self.list_entities(EntityKind.TAG)

    def create_model(self, name: str, description: str = "", version: str = ""):
        return self.create_entity(EntityKind.MODEL, name, description=description, version=version)

    def rename_model(self, model_id: str, new_name: str):
        return self.rename_entity(EntityKind.MODEL, model_id, new_name)

    def update_model(self, model_id: str, **fields):
        return self.update_entity(EntityKind.MODEL, model_id, **fields)

    def delete_model(self, model_id: str):
        return self.delete_entity(EntityKind.MODEL, model_id)

    def list_models(self) -> list:
        return self.list_entities(EntityKind.MODEL)

    def create_category(self, name: str, description: str = ""):
        return self.create_entity(EntityKind.CATEGORY, name, description=description)

    def rename_category(self, category_id: str, new_name: str):
        return self.rename_entity(EntityKind.CATEGORY, category_id, new_name)

    def update_category(self, category_id: str, **fields):
        return self.update_entity(EntityKind.CATEGORY, category_id, **fields)

    def delete_category(self, category_id: str):
        return self.delete_entity(EntityKind.CATEGORY, category_id)

    def list_categories(self) -> list:
        return self.list_entities(EntityKind.CATEGORY)

    # ------------------------------------------------------------------
    # Export / import

    @safe_persistence_operation("catalog export")
    def export_to(self, path: Path) -> int:
        """
        Write the committed catalog, deleted files included, to a JSON file.

        Returns:
            Number of file records exported
        """
        snapshot = self.snapshot()
        document = {
            "exported_at": datetime.now().isoformat(),
            "data": snapshot.to_dict(),
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
        self.logger.info(f"Exported {len(snapshot.files)} files to {path}")
        return len(snapshot.files)

    def import_from(self, path: Path) -> List[str]:
        """
        Replace the whole catalog with the contents of an export file.

        Plain snapshot documents and older catalog layouts are accepted.
        The replacement is one committed mutation.

        Returns:
            Repairs made while resolving references

        Raises:
            SnapshotFormatError: If the file is not a catalog document
            PersistenceError: If the file cannot be read or the result cannot be saved
        """
        snapshot = self._read_import(Path(path))
        resolved, issues = resolve_references(snapshot)

        def mutate(state: _CatalogState):
            imported = _CatalogState.from_snapshot(resolved)
            state.files = imported.files
            state.tags = imported.tags
            state.models = imported.models
            state.categories = imported.categories
            return None

        self._commit("import", "catalog", mutate)
        self.logger.info(f"Imported {len(resolved.files)} files from {path}")
        return issues

    @safe_persistence_operation("catalog import")
    def _read_import(self, path: Path) -> Snapshot:
        with open(path, "r", encoding="utf-8") as f:
            try:
                document = json.load(f)
            except ValueError as e:
                raise SnapshotFormatError(f"{path} is not valid JSON: {e}") from e
        if isinstance(document, dict) and isinstance(document.get("data"), dict):
            document = document["data"]
        try:
            return Snapshot.from_dict(document)
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise SnapshotFormatError(f"{path} is not a catalog export: {e}") from e

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def _active_file(state: _CatalogState, file_id: str) -> FileRecord:
        record = state.files.get(file_id)
        if record is None or not record.is_active:
            raise NotFoundError("file", file_id)
        return record

    @staticmethod
    def _check_references(state: _CatalogState, values: Dict[str, Any]) -> None:
        if values.get("category") and values["category"] not in state.categories:
            raise NotFoundError("category", values["category"])
        if values.get("model") and values["model"] not in state.models:
            raise NotFoundError("model", values["model"])
        for tag_id in values.get("tags", ()):
            if tag_id not in state.tags:
                raise NotFoundError("tag", tag_id)

    @staticmethod
    def _clean_file_fields(values: Any, allowed) -> Dict[str, Any]:
        if not isinstance(values, dict):
            raise ValidationError("File metadata must be a mapping")
        unknown = sorted(set(values) - set(allowed))
        if unknown:
            raise ValidationError(f"Unknown file fields: {', '.join(unknown)}")

        cleaned = {}
        for key, value in values.items():
            if key == "tags":
                if value is None:
                    value = ()
                if not isinstance(value, (list, tuple)) or not all(isinstance(tag, str) for tag in value):
                    raise ValidationError("tags must be a list of tag ids")
                cleaned[key] = unique_ids(value)
            elif key == "model":
                if value is not None and not isinstance(value, str):
                    raise ValidationError("model must be a model id or null")
                cleaned[key] = value or None
            else:
                if value is None:
                    value = ""
                if not isinstance(value, str):
                    raise ValidationError(f"{key} must be a string")
                cleaned[key] = value
        return cleaned

    @staticmethod
    def _clean_entity_fields(kind: EntityKind, values: Dict[str, Any]) -> Dict[str, str]:
        allowed = ENTITY_TYPES[kind].EDITABLE_FIELDS
        unknown = sorted(set(values) - set(allowed))
        if unknown:
            raise ValidationError(f"Unknown {kind.value} fields: {', '.join(unknown)}")
        cleaned = {}
        for key, value in values.items():
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"{key} must be a string")
            cleaned[key] = value
        return cleaned


def open_store(backend: PersistenceBackend, notifier: Optional[ChangeNotifier] = None) -> CatalogStore:
    """Construct a store and load its catalog."""
    store = CatalogStore(backend, notifier=notifier)
    store.load()
    return store
