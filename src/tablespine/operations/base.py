"""Shared plumbing for entity operations.

Every operation is bound to one entity definition and one store. This base
class holds the key/link construction helpers and attribute validation the
individual operations share.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from tablespine.codec.attribute import to_store_value
from tablespine.core.errors import ValidationError
from tablespine.core.protocols import ConditionCheckAction, Item, ItemStore
from tablespine.entity import BELONGS_TO_LINK
from tablespine.metadata.definitions import (
    ENTITY_DEFAULT_FIELDS,
    PARTITION_KEY,
    SORT_KEY,
    EntityDefinition,
)
from tablespine.metadata.registry import EntityRef, MetadataRegistry
from tablespine.query.attributes import ExpressionAttributes

RESERVED_FIELDS = frozenset({PARTITION_KEY, SORT_KEY, *ENTITY_DEFAULT_FIELDS})


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class OperationBase:
    """Base for create/update/delete/find/query operations.

    Parameters:
        registry: Metadata registry (frozen on first lookup).
        store: Any object satisfying :class:`~tablespine.core.protocols.ItemStore`.
        entity: Entity class or registered entity name.
    """

    def __init__(self, registry: MetadataRegistry, store: ItemStore, entity: EntityRef) -> None:
        self.registry = registry
        self.store = store
        self.entity: EntityDefinition = registry.lookup(entity)
        self.table = self.entity.table

    @property
    def partition_key_alias(self) -> str:
        return self.table.partition_key.alias

    @property
    def sort_key_alias(self) -> str:
        return self.table.sort_key.alias

    # -- Keys -----------------------------------------------------------------

    def entity_key(self, entity_id: str, entity_name: str | None = None) -> Item:
        return self.table.entity_key(entity_name or self.entity.name, entity_id)

    def link_item(
        self,
        owner: str,
        owner_id: str,
        linked: str,
        linked_id: str,
        timestamp: datetime,
    ) -> Item:
        """A BelongsToLink in ``owner``'s partition that points back at ``linked``."""
        stamp = timestamp.isoformat()
        return {
            **self.table.link_key(owner, owner_id, linked, linked_id),
            self.table.alias_of("id"): new_id(),
            self.table.alias_of("type"): BELONGS_TO_LINK,
            self.table.alias_of("foreign_entity_type"): linked,
            self.table.alias_of("foreign_key"): linked_id,
            self.table.alias_of("created_at"): stamp,
            self.table.alias_of("updated_at"): stamp,
        }

    def exists_check(self, entity_name: str, entity_id: str) -> tuple[ConditionCheckAction, str]:
        attrs = ExpressionAttributes()
        action = ConditionCheckAction(
            table=self.table.name,
            key=self.table.entity_key(entity_name, entity_id),
            condition=attrs.exists(self.partition_key_alias),
            names=attrs.names,
        )
        return action, f"{entity_name} with ID '{entity_id}' does not exist"

    # -- Attribute validation ---------------------------------------------------

    def encode_input(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Validate user-supplied attributes and encode them by name.

        Nullable attributes set to ``None`` encode to ``None``.
        """
        encoded: dict[str, Any] = {}
        for name, value in values.items():
            if name in RESERVED_FIELDS:
                raise ValidationError(
                    f"'{name}' is managed by the mapper and cannot be set on {self.entity.name}",
                    attribute=name,
                )
            attribute = self.entity.attributes.get(name)
            if attribute is None:
                raise ValidationError(
                    f"'{name}' is not an attribute of {self.entity.name}",
                    attribute=name,
                )
            try:
                encoded[name] = to_store_value(attribute, value)
            except ValidationError as exc:
                exc.with_context(entity=self.entity.name)
                raise
        return encoded


__all__ = ["OperationBase", "RESERVED_FIELDS", "utc_now", "new_id"]
