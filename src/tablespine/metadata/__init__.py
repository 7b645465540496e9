"""Schema metadata: definitions, registry and the fluent builder."""

from tablespine.metadata.builder import EntityBuilder, SchemaBuilder
from tablespine.metadata.definitions import (
    AttributeDefinition,
    BelongsTo,
    EntityDefinition,
    HasAndBelongsToMany,
    HasMany,
    HasOne,
    JoinTableDefinition,
    JoinTableRole,
    OwnedBy,
    Relationship,
    RelationshipKind,
    TableDefinition,
)
from tablespine.metadata.registry import EntityRef, MetadataRegistry, entity_name_of

__all__ = [
    "AttributeDefinition",
    "TableDefinition",
    "EntityDefinition",
    "RelationshipKind",
    "Relationship",
    "BelongsTo",
    "OwnedBy",
    "HasOne",
    "HasMany",
    "HasAndBelongsToMany",
    "JoinTableRole",
    "JoinTableDefinition",
    "MetadataRegistry",
    "EntityRef",
    "entity_name_of",
    "EntityBuilder",
    "SchemaBuilder",
]
