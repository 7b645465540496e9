"""Partition filters for reads that include relationships."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from tablespine.entity import BELONGS_TO_LINK
from tablespine.metadata.definitions import OWNING_KINDS, EntityDefinition, Relationship


def included_relationships_filter(
    entity: EntityDefinition, relationships: Sequence[Relationship]
) -> dict[str, Any]:
    """Filter a partition query down to the entity item and the links it needs.

    Owning relationships (BelongsTo/OwnedBy) are resolved from the entity
    item's own foreign keys, so only the entity itself is needed for them.
    Any other requested relationship also pulls in the links whose
    ``foreign_entity_type`` is one of the requested targets.
    """
    linked_targets: list[str] = []
    for relationship in relationships:
        if relationship.kind not in OWNING_KINDS and relationship.target not in linked_targets:
            linked_targets.append(relationship.target)

    if not linked_targets:
        return {"type": entity.name}
    return {
        "$or": [
            {"type": entity.name},
            {"type": BELONGS_TO_LINK, "foreign_entity_type": linked_targets},
        ]
    }


__all__ = ["included_relationships_filter"]
