"""Whole-item mapping between entity attribute names and store aliases."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from tablespine.codec.attribute import to_entity_value, to_store_value
from tablespine.entity import BelongsToLink, Entity

if TYPE_CHECKING:
    from tablespine.metadata.definitions import EntityDefinition, TableDefinition


def entity_to_item(definition: EntityDefinition, values: Mapping[str, Any]) -> dict[str, Any]:
    """Encode ``{name: entity value}`` into ``{alias: store value}``.

    Nullable attributes set to ``None`` are omitted.
    """
    item: dict[str, Any] = {}
    for name, value in values.items():
        attribute = definition.attributes[name]
        encoded = to_store_value(attribute, value)
        if encoded is not None:
            item[attribute.alias] = encoded
    return item


def item_to_values(definition: EntityDefinition, item: Mapping[str, Any]) -> dict[str, Any]:
    """Decode every item field whose alias is a known attribute of the entity.

    Nullable attributes absent from the item decode to ``None``.
    """
    values: dict[str, Any] = {}
    for alias, raw in item.items():
        attribute = definition.attributes_by_alias.get(alias)
        if attribute is not None:
            values[attribute.name] = to_entity_value(attribute, raw)
    for attribute in definition.attributes.values():
        if attribute.nullable:
            values.setdefault(attribute.name, None)
    return values


def build_entity(definition: EntityDefinition, item: Mapping[str, Any]) -> Entity:
    return definition.entity_class(**item_to_values(definition, item))


def build_link(table: TableDefinition, item: Mapping[str, Any]) -> BelongsToLink:
    """Decode a BelongsToLink item using the table's key and default aliases."""
    values: dict[str, Any] = {}
    for attribute in (table.partition_key, table.sort_key, *table.default_attributes.values()):
        if attribute.alias in item:
            values[attribute.name] = to_entity_value(attribute, item[attribute.alias])
    return BelongsToLink(**values)


__all__ = ["entity_to_item", "item_to_values", "build_entity", "build_link"]
