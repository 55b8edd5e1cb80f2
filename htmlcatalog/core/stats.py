"""Derived usage statistics for the catalog."""

from datetime import datetime
from typing import Dict, Iterable

from .models import EntityKind, FileRecord, Snapshot, StatsSnapshot


class StatsAggregator:
    """
    Recomputes catalog counters from scratch.

    Nothing is patched incrementally: every call scans the active files, so
    the counts cannot drift from the records they describe.
    """

    def compute(self, snapshot: Snapshot) -> StatsSnapshot:
        active = [record for record in snapshot.files if record.is_active]

        return StatsSnapshot(
            total_files=len(active),
            total_tags=len(snapshot.tags),
            total_models=len(snapshot.models),
            total_categories=len(snapshot.categories),
            total_access=sum(record.access_count for record in active),
            tag_usage=self.usage_map(EntityKind.TAG, snapshot.tags, active),
            model_usage=self.usage_map(EntityKind.MODEL, snapshot.models, active),
            category_usage=self.usage_map(EntityKind.CATEGORY, snapshot.categories, active),
            computed_at=datetime.now(),
        )

    @staticmethod
    def usage_map(kind: EntityKind, entities: Iterable, active_files: Iterable[FileRecord]) -> Dict[str, int]:
        """
        Count active references per entity id.

        Every known entity appears in the result, unused ones with 0, in
        catalog order.
        """
        usage = {entity.id: 0 for entity in entities}
        for record in active_files:
            for entity_id in record.referenced_ids(kind):
                if entity_id in usage:
                    usage[entity_id] += 1
        return usage
