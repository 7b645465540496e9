"""Fluent schema builder over :class:`MetadataRegistry`.

Example::

    registry = MetadataRegistry()
    schema = SchemaBuilder(registry)
    schema.table("app", partition_key="PK", sort_key="SK")

    (schema.entity(Customer, table="app")
        .string("name")
        .has_many("orders", "Order", foreign_key="customer_id"))

    (schema.entity(Order, table="app")
        .foreign_key("customer_id", "Customer")
        .date("ordered_at")
        .belongs_to("customer", "Customer", foreign_key="customer_id"))
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from tablespine.codec.attribute import (
    AttributeCodec,
    array_codec,
    boolean_codec,
    date_codec,
    enum_codec,
    foreign_key_codec,
    number_codec,
    object_codec,
    string_codec,
)
from tablespine.codec.shapes import FieldDef
from tablespine.entity import Entity, entity_class_for
from tablespine.metadata.definitions import (
    AttributeDefinition,
    BelongsTo,
    HasAndBelongsToMany,
    HasMany,
    HasOne,
    JoinTableDefinition,
    JoinTableRole,
    OwnedBy,
    TableDefinition,
)
from tablespine.metadata.registry import EntityRef, MetadataRegistry, entity_name_of

Validator = Callable[[Any], Any]


class EntityBuilder:
    """Registers attributes and relationships of one entity. Every method chains."""

    def __init__(self, registry: MetadataRegistry, name: str) -> None:
        self._registry = registry
        self.name = name

    def _attribute(
        self,
        name: str,
        codec: AttributeCodec,
        *,
        alias: str | None,
        nullable: bool,
        validator: Validator | None = None,
        foreign_key_target: str | None = None,
    ) -> EntityBuilder:
        self._registry.register_attribute(
            self.name,
            AttributeDefinition(
                name=name,
                alias=alias or name,
                nullable=nullable,
                codec=codec,
                validator=validator,
                foreign_key_target=foreign_key_target,
            ),
        )
        return self

    # -- Attributes -------------------------------------------------------

    def string(
        self, name: str, *, alias: str | None = None, nullable: bool = False,
        validator: Validator | None = None,
    ) -> EntityBuilder:
        return self._attribute(name, string_codec(), alias=alias, nullable=nullable, validator=validator)

    def number(
        self, name: str, *, alias: str | None = None, nullable: bool = False,
        validator: Validator | None = None,
    ) -> EntityBuilder:
        return self._attribute(name, number_codec(), alias=alias, nullable=nullable, validator=validator)

    def boolean(self, name: str, *, alias: str | None = None, nullable: bool = False) -> EntityBuilder:
        return self._attribute(name, boolean_codec(), alias=alias, nullable=nullable)

    def date(self, name: str, *, alias: str | None = None, nullable: bool = False) -> EntityBuilder:
        return self._attribute(name, date_codec(), alias=alias, nullable=nullable)

    def enum(
        self, name: str, values: list[str] | tuple[str, ...], *,
        alias: str | None = None, nullable: bool = False,
    ) -> EntityBuilder:
        return self._attribute(name, enum_codec(values), alias=alias, nullable=nullable)

    def object(
        self, name: str, fields: Mapping[str, FieldDef], *,
        alias: str | None = None, nullable: bool = False,
    ) -> EntityBuilder:
        codec = object_codec(f"{self.name}_{name}", fields)
        return self._attribute(name, codec, alias=alias, nullable=nullable)

    def array(
        self, name: str, items: FieldDef, *,
        alias: str | None = None, nullable: bool = False,
    ) -> EntityBuilder:
        codec = array_codec(f"{self.name}_{name}", items)
        return self._attribute(name, codec, alias=alias, nullable=nullable)

    def foreign_key(
        self, name: str, target: EntityRef, *, alias: str | None = None, nullable: bool = False,
    ) -> EntityBuilder:
        return self._attribute(
            name,
            foreign_key_codec(),
            alias=alias,
            nullable=nullable,
            foreign_key_target=entity_name_of(target),
        )

    # -- Relationships ----------------------------------------------------

    def belongs_to(self, prop: str, target: EntityRef, *, foreign_key: str) -> EntityBuilder:
        self._registry.register_relationship(
            self.name, BelongsTo(prop, entity_name_of(target), foreign_key=foreign_key)
        )
        return self

    def owned_by(self, prop: str, target: EntityRef, *, foreign_key: str) -> EntityBuilder:
        self._registry.register_relationship(
            self.name, OwnedBy(prop, entity_name_of(target), foreign_key=foreign_key)
        )
        return self

    def has_one(self, prop: str, target: EntityRef, *, foreign_key: str) -> EntityBuilder:
        self._registry.register_relationship(
            self.name, HasOne(prop, entity_name_of(target), foreign_key=foreign_key)
        )
        return self

    def has_many(self, prop: str, target: EntityRef, *, foreign_key: str) -> EntityBuilder:
        self._registry.register_relationship(
            self.name, HasMany(prop, entity_name_of(target), foreign_key=foreign_key)
        )
        return self

    def has_and_belongs_to_many(
        self, prop: str, target: EntityRef, *, through: str
    ) -> EntityBuilder:
        self._registry.register_relationship(
            self.name, HasAndBelongsToMany(prop, entity_name_of(target), join_table=through)
        )
        return self


class SchemaBuilder:
    """Entry point for declaring tables, entities and join tables."""

    def __init__(self, registry: MetadataRegistry) -> None:
        self.registry = registry

    def table(
        self,
        name: str,
        *,
        delimiter: str = "#",
        partition_key: str = "PK",
        sort_key: str = "SK",
        default_fields: Mapping[str, str] | None = None,
    ) -> TableDefinition:
        return self.registry.register_table(
            TableDefinition.create(
                name,
                delimiter=delimiter,
                partition_key=partition_key,
                sort_key=sort_key,
                default_fields=default_fields,
            )
        )

    def entity(
        self, entity: EntityRef, *, table: str, id_field: str | None = None
    ) -> EntityBuilder:
        if isinstance(entity, str):
            name, entity_class = entity, entity_class_for(entity)
        else:
            name, entity_class = entity.entity_name(), entity
        self.registry.register_entity(name, table, entity_class=entity_class, id_field=id_field)
        return EntityBuilder(self.registry, name)

    def join_table(
        self, name: str, first: tuple[EntityRef, str], second: tuple[EntityRef, str]
    ) -> JoinTableDefinition:
        roles = (
            JoinTableRole(entity_name_of(first[0]), first[1]),
            JoinTableRole(entity_name_of(second[0]), second[1]),
        )
        return self.registry.register_join_table(JoinTableDefinition(name, roles))


__all__ = ["EntityBuilder", "SchemaBuilder"]
