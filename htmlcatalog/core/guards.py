"""Rename and delete rules for tags, models and categories."""

import dataclasses
import logging
from typing import Any, Iterable, Mapping, Optional

from .exceptions import DuplicateNameError, EntityInUseError, NotFoundError, ValidationError
from .models import EntityKind, FileRecord


logger = logging.getLogger(__name__)


def normalize_name(name: Any) -> str:
    """
    Strip a proposed entity name.

    Raises:
        ValidationError: If the name is not a non-empty string
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name must be a non-empty string")
    return name.strip()


def ensure_name_available(kind: EntityKind, entities: Mapping[str, Any], name: str,
                          exclude_id: Optional[str] = None) -> None:
    """
    Check that no other entity of this kind already uses ``name``.

    Comparison is case-sensitive: "UI" and "ui" are different names.

    Raises:
        DuplicateNameError: On collision
    """
    for entity_id, entity in entities.items():
        if entity_id != exclude_id and entity.name == name:
            raise DuplicateNameError(kind.value, name)


class RenameCascade:
    """
    Renames an entity.

    Files reference entities by id, so a rename touches the entity record
    only and never rewrites files.
    """

    def apply(self, kind: EntityKind, entities: Mapping[str, Any], entity_id: str, new_name: Any):
        """
        Compute the renamed entity.

        Args:
            kind: Kind of the entity
            entities: Current entities of that kind, keyed by id
            entity_id: Id of the entity to rename
            new_name: Requested name

        Returns:
            The renamed entity, or the unchanged entity when the name is the same

        Raises:
            NotFoundError: If the id is unknown
            ValidationError: If the name is empty
            DuplicateNameError: If another entity already has the name
        """
        entity = entities.get(entity_id)
        if entity is None:
            raise NotFoundError(kind.value, entity_id)

        name = normalize_name(new_name)
        if name == entity.name:
            return entity

        ensure_name_available(kind, entities, name, exclude_id=entity_id)
        logger.debug(f"Renaming {kind.value} {entity_id}: '{entity.name}' -> '{name}'")
        return dataclasses.replace(entity, name=name)


class DeleteGuard:
    """Blocks deletion of entities still referenced by active files."""

    def usage(self, kind: EntityKind, entity_id: str, files: Iterable[FileRecord]) -> int:
        """Number of active files referencing the entity."""
        return sum(
            1 for record in files
            if record.is_active and record.references(kind, entity_id)
        )

    def check(self, kind: EntityKind, entities: Mapping[str, Any], entity_id: str,
              files: Iterable[FileRecord]) -> None:
        """
        Raises:
            NotFoundError: If the id is unknown
            EntityInUseError: If any active file references the entity
        """
        if entity_id not in entities:
            raise NotFoundError(kind.value, entity_id)

        count = self.usage(kind, entity_id, files)
        if count > 0:
            raise EntityInUseError(kind.value, entity_id, count)
