"""Load-time reference resolution and invariant checks for catalog snapshots."""

import dataclasses
import logging
from typing import Dict, List, Optional, Tuple

from .models import ENTITY_TYPES, EntityKind, FileRecord, Snapshot, StatsSnapshot, new_id
from .stats import StatsAggregator


logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


class _Resolver:
    """Maps stored reference values of one kind onto entity ids."""

    def __init__(self, kind: EntityKind, entities: list, issues: List[str]):
        self.kind = kind
        self.issues = issues
        self.entities = []
        self.by_id: Dict[str, str] = {}
        self.by_name: Dict[str, str] = {}

        for entity in entities:
            if not entity.name:
                entity = dataclasses.replace(entity, name=entity.id)
                issues.append(f"{kind.value} {entity.id} had an empty name; renamed to its id")
            if entity.id in self.by_id:
                issues.append(f"Dropped {kind.value} with duplicate id {entity.id}")
                continue
            if entity.name in self.by_name:
                # Merge into the first entity carrying the name
                self.by_id[entity.id] = self.by_name[entity.name]
                issues.append(
                    f"Merged duplicate {kind.value} '{entity.name}' ({entity.id}) into {self.by_name[entity.name]}"
                )
                continue
            self.entities.append(entity)
            self.by_id[entity.id] = entity.id
            self.by_name[entity.name] = entity.id

    def resolve(self, value: Optional[str]) -> Optional[str]:
        """
        Resolve a stored reference.

        Known ids map to themselves (or to the entity a duplicate was merged
        into); anything else is a legacy name, resolved by name and created
        when no entity carries it yet.
        """
        if not value:
            return None
        if value in self.by_id:
            return self.by_id[value]
        name = value.strip()
        if name in self.by_name:
            return self.by_name[name]

        entity = ENTITY_TYPES[self.kind](id=new_id(), name=name)
        self.entities.append(entity)
        self.by_id[entity.id] = entity.id
        self.by_name[name] = entity.id
        self.issues.append(f"Created {self.kind.value} '{name}' for a name-only reference")
        return entity.id


def resolve_references(snapshot: Snapshot) -> Tuple[Snapshot, List[str]]:
    """
    Rewrite a loaded snapshot so that every file reference is an entity id.

    Older catalogs stored tag, model and category names directly on files.
    Those are matched against entity names; names with no matching entity
    get a new entity so no reference is lost. Files without a category are
    assigned to "Uncategorized".

    Returns:
        The resolved snapshot and a list of human-readable repairs made
    """
    issues: List[str] = []
    tags = _Resolver(EntityKind.TAG, snapshot.tags, issues)
    models = _Resolver(EntityKind.MODEL, snapshot.models, issues)
    categories = _Resolver(EntityKind.CATEGORY, snapshot.categories, issues)

    files: List[FileRecord] = []
    seen_ids = set()
    for record in snapshot.files:
        if record.id in seen_ids:
            issues.append(f"Dropped file with duplicate id {record.id}")
            continue
        seen_ids.add(record.id)

        category = categories.resolve(record.category) or categories.resolve(UNCATEGORIZED)
        resolved_tags = []
        for value in record.tags:
            tag_id = tags.resolve(value)
            if tag_id and tag_id not in resolved_tags:
                resolved_tags.append(tag_id)

        files.append(dataclasses.replace(
            record,
            category=category,
            tags=tuple(resolved_tags),
            model=models.resolve(record.model),
        ))

    resolved = Snapshot(
        files=files,
        tags=tags.entities,
        models=models.entities,
        categories=categories.entities,
        version=snapshot.version,
        last_updated=snapshot.last_updated,
    )
    return resolved, issues


def verify_invariants(snapshot: Snapshot, stats: Optional[StatsSnapshot] = None) -> List[str]:
    """
    Check catalog consistency.

    Args:
        snapshot: Catalog contents to check
        stats: Optional stats to compare against a fresh recount

    Returns:
        List of problems found; empty when the catalog is consistent
    """
    problems = []

    for kind in EntityKind:
        names = set()
        for entity in snapshot.entities(kind):
            if entity.name in names:
                problems.append(f"Duplicate {kind.value} name '{entity.name}'")
            names.add(entity.name)

    known = {kind: {entity.id for entity in snapshot.entities(kind)} for kind in EntityKind}
    for record in snapshot.files:
        if not record.is_active:
            continue
        if not record.category:
            problems.append(f"File {record.id} has no category")
        for kind in EntityKind:
            for entity_id in record.referenced_ids(kind):
                if entity_id not in known[kind]:
                    problems.append(f"File {record.id} references unknown {kind.value} {entity_id}")

    if stats is not None:
        expected = StatsAggregator().compute(snapshot)
        for kind in EntityKind:
            if stats.usage(kind) != expected.usage(kind):
                problems.append(f"{kind.value} usage counts are out of date")
        if stats.total_files != expected.total_files:
            problems.append("Active file count is out of date")

    return problems
