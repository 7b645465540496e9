"""Attribute codecs and item <-> entity mapping."""

from tablespine.codec.attribute import (
    AttributeCodec,
    DateCodec,
    array_codec,
    boolean_codec,
    date_codec,
    enum_codec,
    foreign_key_codec,
    number_codec,
    object_codec,
    string_codec,
    to_entity_value,
    to_store_value,
)
from tablespine.codec.items import build_entity, build_link, entity_to_item, item_to_values

__all__ = [
    "AttributeCodec",
    "DateCodec",
    "string_codec",
    "number_codec",
    "boolean_codec",
    "date_codec",
    "enum_codec",
    "object_codec",
    "array_codec",
    "foreign_key_codec",
    "to_store_value",
    "to_entity_value",
    "entity_to_item",
    "item_to_values",
    "build_entity",
    "build_link",
]
