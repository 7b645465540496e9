"""
Table, entity, attribute and relationship definitions.

These are the records the registry stores. They are built by
:class:`~tablespine.metadata.builder.SchemaBuilder` (or registered directly)
and read by every other layer: the codec maps aliases through them, the
compiler resolves filter names through them, and the consistency engine walks
their relationships.

Architecture:
    ::

        TableDefinition ──────────────┐
        │ name, delimiter             │ owns
        │ partition_key / sort_key    ▼
        │ default_attributes      EntityDefinition
        │   id, type,             │ attributes        (name  -> AttributeDefinition)
        │   created_at,           │ attributes_by_alias (alias -> AttributeDefinition)
        │   updated_at,           │ relationships     (property -> Relationship)
        │   foreign_key,          └ id_field
        │   foreign_entity_type
        └──────────────────────────────

        Relationship (tagged by ``kind``)
        ├── BelongsTo              FK on self, link in target partition
        ├── OwnedBy                FK on self, no link
        ├── HasOne / HasMany       FK on target, link in own partition
        └── HasAndBelongsToMany    JoinTableDefinition, link in both partitions

Tags:
    metadata, schema, relationships, single-table-design, tablespine
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from tablespine.codec.attribute import AttributeCodec, date_codec, string_codec
from tablespine.core.errors import ConfigError
from tablespine.entity import Entity

# Entity-side names of the table default attributes and their default aliases
DEFAULT_FIELD_ALIASES: dict[str, str] = {
    "id": "id",
    "type": "type",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "foreign_key": "foreignKey",
    "foreign_entity_type": "foreignEntityType",
}

# Defaults every entity carries; foreign_key / foreign_entity_type are link-only
ENTITY_DEFAULT_FIELDS = ("id", "type", "created_at", "updated_at")

PARTITION_KEY = "pk"
SORT_KEY = "sk"


@dataclass
class AttributeDefinition:
    """One mapped attribute.

    ``alias`` is the store-side name and defaults to ``name``. A non-nullable
    attribute never serializes to an absent value.
    """

    name: str
    alias: str = ""
    nullable: bool = False
    codec: AttributeCodec | None = None
    validator: Callable[[Any], Any] | None = None
    foreign_key_target: str | None = None

    def __post_init__(self) -> None:
        if not self.alias:
            self.alias = self.name

    @property
    def is_foreign_key(self) -> bool:
        return self.foreign_key_target is not None


@dataclass
class TableDefinition:
    name: str
    delimiter: str = "#"
    partition_key: AttributeDefinition = field(
        default_factory=lambda: AttributeDefinition(PARTITION_KEY, "PK", codec=string_codec())
    )
    sort_key: AttributeDefinition = field(
        default_factory=lambda: AttributeDefinition(SORT_KEY, "SK", codec=string_codec())
    )
    default_attributes: dict[str, AttributeDefinition] = field(default_factory=dict)
    entities: dict[str, EntityDefinition] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        name: str,
        *,
        delimiter: str = "#",
        partition_key: str = "PK",
        sort_key: str = "SK",
        default_fields: Mapping[str, str] | None = None,
    ) -> TableDefinition:
        """Build a table with key aliases and optional default-field alias overrides.

        ``default_fields`` maps entity-side default names (``id``,
        ``created_at``, ...) to store aliases.
        """
        overrides = dict(default_fields or {})
        unknown = set(overrides) - set(DEFAULT_FIELD_ALIASES)
        if unknown:
            raise ConfigError(
                f"Unknown default fields for table '{name}': {sorted(unknown)}"
            )
        if not delimiter:
            raise ConfigError(f"Table '{name}' needs a non-empty key delimiter")

        defaults: dict[str, AttributeDefinition] = {}
        for field_name, alias in DEFAULT_FIELD_ALIASES.items():
            codec = date_codec() if field_name in ("created_at", "updated_at") else string_codec()
            defaults[field_name] = AttributeDefinition(
                field_name, overrides.get(field_name, alias), codec=codec
            )
        return cls(
            name=name,
            delimiter=delimiter,
            partition_key=AttributeDefinition(PARTITION_KEY, partition_key, codec=string_codec()),
            sort_key=AttributeDefinition(SORT_KEY, sort_key, codec=string_codec()),
            default_attributes=defaults,
        )

    def alias_of(self, default_field: str) -> str:
        return self.default_attributes[default_field].alias

    def partition_key_value(self, entity_name: str, entity_id: str) -> str:
        return f"{entity_name}{self.delimiter}{entity_id}"

    def entity_key(self, entity_name: str, entity_id: str) -> dict[str, str]:
        """Primary key of an entity's own item."""
        return {
            self.partition_key.alias: self.partition_key_value(entity_name, entity_id),
            self.sort_key.alias: entity_name,
        }

    def link_key(
        self, owner: str, owner_id: str, linked: str, linked_id: str
    ) -> dict[str, str]:
        """Primary key of a link in ``owner``'s partition pointing at ``linked``."""
        return {
            self.partition_key.alias: self.partition_key_value(owner, owner_id),
            self.sort_key.alias: self.partition_key_value(linked, linked_id),
        }

    def split_key_value(self, value: str) -> tuple[str, str]:
        """``"Order#123"`` -> ``("Order", "123")``."""
        entity_name, sep, entity_id = value.partition(self.delimiter)
        if not sep:
            raise ValueError(f"Key value {value!r} has no '{self.delimiter}' delimiter")
        return entity_name, entity_id


@dataclass
class EntityDefinition:
    name: str
    table: TableDefinition
    entity_class: type[Entity]
    attributes: dict[str, AttributeDefinition] = field(default_factory=dict)
    attributes_by_alias: dict[str, AttributeDefinition] = field(default_factory=dict)
    relationships: dict[str, Relationship] = field(default_factory=dict)
    id_field: str | None = None

    def add_attribute(self, attribute: AttributeDefinition) -> None:
        self.attributes[attribute.name] = attribute
        self.attributes_by_alias[attribute.alias] = attribute

    @property
    def user_attributes(self) -> list[AttributeDefinition]:
        """Attributes other than the key attributes and table defaults."""
        reserved = {PARTITION_KEY, SORT_KEY, *ENTITY_DEFAULT_FIELDS}
        return [a for a in self.attributes.values() if a.name not in reserved]

    def relationships_of(self, *kinds: RelationshipKind) -> list[Relationship]:
        return [r for r in self.relationships.values() if r.kind in kinds]


# =============================================================================
# Relationships
# =============================================================================


class RelationshipKind(str, Enum):
    BELONGS_TO = "BelongsTo"
    OWNED_BY = "OwnedBy"
    HAS_ONE = "HasOne"
    HAS_MANY = "HasMany"
    HAS_AND_BELONGS_TO_MANY = "HasAndBelongsToMany"


@dataclass(frozen=True)
class Relationship:
    """Base record: ``property_name`` on the owner, ``target`` entity name."""

    kind: ClassVar[RelationshipKind]
    to_many: ClassVar[bool] = False

    property_name: str
    target: str


@dataclass(frozen=True)
class BelongsTo(Relationship):
    kind: ClassVar[RelationshipKind] = RelationshipKind.BELONGS_TO

    foreign_key: str = ""


@dataclass(frozen=True)
class OwnedBy(Relationship):
    kind: ClassVar[RelationshipKind] = RelationshipKind.OWNED_BY

    foreign_key: str = ""


@dataclass(frozen=True)
class HasOne(Relationship):
    kind: ClassVar[RelationshipKind] = RelationshipKind.HAS_ONE

    foreign_key: str = ""


@dataclass(frozen=True)
class HasMany(Relationship):
    kind: ClassVar[RelationshipKind] = RelationshipKind.HAS_MANY
    to_many: ClassVar[bool] = True

    foreign_key: str = ""


@dataclass(frozen=True)
class HasAndBelongsToMany(Relationship):
    kind: ClassVar[RelationshipKind] = RelationshipKind.HAS_AND_BELONGS_TO_MANY
    to_many: ClassVar[bool] = True

    join_table: str = ""


# Relationships whose foreign key lives on the owning entity
OWNING_KINDS = (RelationshipKind.BELONGS_TO, RelationshipKind.OWNED_BY)
# Relationships resolved through links in the owner's partition
LINKED_KINDS = (
    RelationshipKind.HAS_ONE,
    RelationshipKind.HAS_MANY,
    RelationshipKind.HAS_AND_BELONGS_TO_MANY,
)


@dataclass(frozen=True)
class JoinTableRole:
    entity: str
    foreign_key: str


@dataclass(frozen=True)
class JoinTableDefinition:
    """Virtual many-to-many association; never persisted as its own item."""

    name: str
    roles: tuple[JoinTableRole, JoinTableRole]

    def role_for(self, entity: str) -> JoinTableRole:
        for role in self.roles:
            if role.entity == entity:
                return role
        raise ConfigError(f"Join table '{self.name}' has no role for entity '{entity}'")

    def other(self, role: JoinTableRole) -> JoinTableRole:
        first, second = self.roles
        return second if role == first else first


__all__ = [
    "DEFAULT_FIELD_ALIASES",
    "ENTITY_DEFAULT_FIELDS",
    "PARTITION_KEY",
    "SORT_KEY",
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
    "OWNING_KINDS",
    "LINKED_KINDS",
    "JoinTableRole",
    "JoinTableDefinition",
]
