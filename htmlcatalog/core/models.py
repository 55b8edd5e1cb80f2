"""Core data models and enums for the HTML Catalog."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any, Tuple
import uuid


class FileStatus(Enum):
    """Lifecycle status of a catalogued file."""
    ACTIVE = "active"
    DELETED = "deleted"


class EntityKind(Enum):
    """Kinds of preset entities a file can reference."""
    TAG = "tag"
    MODEL = "model"
    CATEGORY = "category"

    @property
    def plural(self) -> str:
        """Collection name used in snapshots and API routes."""
        return {
            EntityKind.TAG: "tags",
            EntityKind.MODEL: "models",
            EntityKind.CATEGORY: "categories",
        }[self]

    @classmethod
    def from_plural(cls, plural: str) -> "EntityKind":
        for kind in cls:
            if kind.plural == plural:
                return kind
        raise ValueError(f"Unknown entity collection: {plural}")


def new_id() -> str:
    return str(uuid.uuid4())


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        try:
            return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now()


def unique_ids(values) -> Tuple[str, ...]:
    """Deduplicate while keeping first-seen order."""
    seen = []
    for value in values or ():
        if value not in seen:
            seen.append(value)
    return tuple(seen)


@dataclass(frozen=True)
class FileRecord:
    """Represents a catalogued HTML file."""
    id: str
    storage_ref: str
    category: str
    title: str = ""
    original_name: str = ""
    description: str = ""
    background_text: str = ""
    prompt_text: str = ""
    tags: Tuple[str, ...] = ()
    model: Optional[str] = None
    access_count: int = 0
    status: FileStatus = FileStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    # Fields callers may set through create/update
    EDITABLE_FIELDS = (
        "title", "original_name", "description", "background_text",
        "prompt_text", "category", "tags", "model", "storage_ref",
    )

    @property
    def is_active(self) -> bool:
        return self.status is FileStatus.ACTIVE

    def references(self, kind: EntityKind, entity_id: str) -> bool:
        """Check whether this file points at the given entity."""
        if kind is EntityKind.TAG:
            return entity_id in self.tags
        if kind is EntityKind.MODEL:
            return self.model == entity_id
        return self.category == entity_id

    def referenced_ids(self, kind: EntityKind) -> Tuple[str, ...]:
        if kind is EntityKind.TAG:
            return self.tags
        if kind is EntityKind.MODEL:
            return (self.model,) if self.model else ()
        return (self.category,) if self.category else ()

    @classmethod
    def create(cls, meta: Dict[str, Any], storage_ref: str) -> "FileRecord":
        """Create a new active FileRecord from ingestion metadata."""
        now = datetime.now()
        return cls(
            id=new_id(),
            storage_ref=storage_ref,
            category=meta["category"],
            title=meta.get("title") or meta.get("original_name") or "",
            original_name=meta.get("original_name") or "",
            description=meta.get("description") or "",
            background_text=meta.get("background_text") or "",
            prompt_text=meta.get("prompt_text") or "",
            tags=unique_ids(meta.get("tags")),
            model=meta.get("model") or None,
            created_at=now,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "storage_ref": self.storage_ref,
            "original_name": self.original_name,
            "title": self.title,
            "description": self.description,
            "background_text": self.background_text,
            "prompt_text": self.prompt_text,
            "category": self.category,
            "tags": list(self.tags),
            "model": self.model,
            "access_count": self.access_count,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        """
        Build a record from a stored dictionary.

        Accepts the field names written by older catalog versions
        (``background``, ``prompt``, ``originalName``, ``encryptedName``,
        ``uploadTime``, a ``models`` list of ``{"name": ...}`` objects).
        References are copied as-is; resolving name-based references to ids
        is done by the validation pass.
        """
        model = data.get("model")
        if model is None and data.get("models"):
            first = data["models"][0]
            model = first.get("name") if isinstance(first, dict) else first
        status = data.get("status") or FileStatus.ACTIVE.value
        return cls(
            id=str(data.get("id") or new_id()),
            storage_ref=str(data.get("storage_ref") or data.get("encryptedName") or data.get("id") or ""),
            category=data.get("category") or "",
            title=data.get("title") or "",
            original_name=data.get("original_name") or data.get("originalName") or "",
            description=data.get("description") or "",
            background_text=data.get("background_text") or data.get("background") or data.get("scene") or "",
            prompt_text=data.get("prompt_text") or data.get("prompt") or "",
            tags=unique_ids(data.get("tags")),
            model=model or None,
            access_count=max(int(data.get("access_count") or data.get("accessCount") or 0), 0),
            status=FileStatus(status),
            created_at=_parse_datetime(data.get("created_at") or data.get("uploadTime")),
            updated_at=_parse_datetime(data.get("updated_at") or data.get("updatedAt") or data.get("uploadTime")),
        )


@dataclass(frozen=True)
class Tag:
    """A preset tag."""
    id: str
    name: str
    description: str = ""
    color: str = ""

    kind = EntityKind.TAG
    EDITABLE_FIELDS = ("description", "color")


@dataclass(frozen=True)
class Model:
    """A preset model that produced a file."""
    id: str
    name: str
    description: str = ""
    version: str = ""

    kind = EntityKind.MODEL
    EDITABLE_FIELDS = ("description", "version")


@dataclass(frozen=True)
class Category:
    """A preset category."""
    id: str
    name: str
    description: str = ""

    kind = EntityKind.CATEGORY
    EDITABLE_FIELDS = ("description",)


ENTITY_TYPES = {
    EntityKind.TAG: Tag,
    EntityKind.MODEL: Model,
    EntityKind.CATEGORY: Category,
}


def entity_to_dict(entity) -> Dict[str, Any]:
    return asdict(entity)


def entity_from_dict(kind: EntityKind, data: Any):
    """Build an entity; bare strings are treated as legacy name-only entries."""
    entity_type = ENTITY_TYPES[kind]
    if isinstance(data, str):
        return entity_type(id=new_id(), name=data.strip())
    values = {
        key: str(data[key]) for key in entity_type.EDITABLE_FIELDS
        if data.get(key) is not None
    }
    return entity_type(
        id=str(data.get("id") or new_id()),
        name=str(data.get("name") or "").strip(),
        **values
    )


@dataclass
class Snapshot:
    """Full catalog contents as exchanged with a persistence backend."""
    files: List[FileRecord] = field(default_factory=list)
    tags: List[Tag] = field(default_factory=list)
    models: List[Model] = field(default_factory=list)
    categories: List[Category] = field(default_factory=list)
    version: str = "2.0"
    last_updated: Optional[datetime] = None

    def entities(self, kind: EntityKind) -> list:
        return getattr(self, kind.plural)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "files": [record.to_dict() for record in self.files],
            "tags": [entity_to_dict(tag) for tag in self.tags],
            "models": [entity_to_dict(model) for model in self.models],
            "categories": [entity_to_dict(category) for category in self.categories],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        """
        Parse a snapshot document.

        Older documents keep files under ``html_files`` and presets under
        ``preset_tags`` / ``preset_models``; both layouts are accepted.

        Raises:
            ValueError, KeyError, TypeError: If the document is malformed
        """
        if not isinstance(data, dict):
            raise TypeError("Snapshot document must be a JSON object")

        files = data.get("files", data.get("html_files", []))
        tags = data.get("tags", data.get("preset_tags", []))
        models = data.get("models", data.get("preset_models", []))
        categories = data.get("categories", [])
        for name, value in (("files", files), ("tags", tags), ("models", models), ("categories", categories)):
            if not isinstance(value, list):
                raise TypeError(f"Snapshot field '{name}' must be a list")

        last_updated = data.get("last_updated") or data.get("lastUpdate")
        return cls(
            files=[FileRecord.from_dict(item) for item in files],
            tags=[entity_from_dict(EntityKind.TAG, item) for item in tags],
            models=[entity_from_dict(EntityKind.MODEL, item) for item in models],
            categories=[entity_from_dict(EntityKind.CATEGORY, item) for item in categories],
            version=str(data.get("version") or "2.0"),
            last_updated=_parse_datetime(last_updated) if last_updated else None,
        )


@dataclass
class SearchFilters:
    """Criteria for searching catalogued files."""
    text: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    model: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


@dataclass
class StatsSnapshot:
    """Derived counters for the current catalog state."""
    total_files: int
    total_tags: int
    total_models: int
    total_categories: int
    total_access: int
    tag_usage: Dict[str, int]
    model_usage: Dict[str, int]
    category_usage: Dict[str, int]
    computed_at: datetime = field(default_factory=datetime.now)

    def usage(self, kind: EntityKind) -> Dict[str, int]:
        return {
            EntityKind.TAG: self.tag_usage,
            EntityKind.MODEL: self.model_usage,
            EntityKind.CATEGORY: self.category_usage,
        }[kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_files": self.total_files,
            "total_tags": self.total_tags,
            "total_models": self.total_models,
            "total_categories": self.total_categories,
            "total_access": self.total_access,
            "tag_usage": dict(self.tag_usage),
            "model_usage": dict(self.model_usage),
            "category_usage": dict(self.category_usage),
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass
class ScanOptions:
    """Options for directory scanning operations."""
    recursive: bool = True
    verbose: bool = False
    max_depth: Optional[int] = None
    include_hidden: bool = False


@dataclass
class ScanResult:
    """Result of a directory scan operation."""
    total_files: int
    ingested_files: int
    skipped_files: int
    errors: List[str]
    duration: float

    @property
    def success_rate(self) -> float:
        """Calculate the success rate of the scan."""
        if self.total_files == 0:
            return 1.0
        return self.ingested_files / self.total_files
