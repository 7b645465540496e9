"""
Metadata registry: single source of truth for tables, entities and links.

Registration is append-only and idempotent. Re-registering a table, entity,
attribute or relationship that already exists returns the existing
definition. The first lookup runs any deferred registrations, validates the
relationship topology and freezes the registry; later registration raises
:class:`~tablespine.core.errors.RegistryFrozenError`.

Lifecycle:
    ::

        register_table / register_entity / register_attribute / defer(...)
              │              (append-only, idempotent)
              ▼
        lookup(...)  ──► run deferred callbacks ──► validate topology ──► frozen
              │
              ▼
        read-only for the rest of the process

Examples:
    >>> registry = MetadataRegistry()
    >>> registry.register_table(TableDefinition.create("app"))
    >>> registry.register_entity("Customer", "app")
    >>> registry.lookup("Customer").table.name
    'app'

Tags:
    metadata, registry, configuration, tablespine
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from tablespine.core.errors import ConfigError, MetadataNotFoundError, RegistryFrozenError
from tablespine.core.logging import get_logger
from tablespine.entity import Entity, entity_class_for
from tablespine.metadata.definitions import (
    ENTITY_DEFAULT_FIELDS,
    AttributeDefinition,
    BelongsTo,
    EntityDefinition,
    HasAndBelongsToMany,
    HasMany,
    HasOne,
    JoinTableDefinition,
    OwnedBy,
    Relationship,
    TableDefinition,
)

logger = get_logger(__name__)

EntityRef = str | type[Entity]


def entity_name_of(entity: EntityRef) -> str:
    if isinstance(entity, str):
        return entity
    return entity.entity_name()


def _table_attribute_by_alias(
    definition: EntityDefinition, alias: str
) -> AttributeDefinition | None:
    """Key or default attribute of the entity's table stored under ``alias``."""
    table = definition.table
    for attribute in (table.partition_key, table.sort_key, *table.default_attributes.values()):
        if attribute.alias == alias:
            return attribute
    return None


class MetadataRegistry:
    """Registry of table/entity/relationship/join-table definitions."""

    def __init__(self) -> None:
        self._tables: dict[str, TableDefinition] = {}
        self._entities: dict[str, EntityDefinition] = {}
        self._join_tables: dict[str, JoinTableDefinition] = {}
        self._deferred: list[Callable[[MetadataRegistry], Any]] = []
        self._frozen = False
        self._lock = threading.RLock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ── Registration ─────────────────────────────────────────────────

    def _ensure_mutable(self, what: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(
                f"Cannot register {what}: the registry is frozen after first use"
            )

    def defer(self, callback: Callable[[MetadataRegistry], Any]) -> None:
        """Queue a registration callback run on first lookup."""
        self._ensure_mutable("deferred definitions")
        self._deferred.append(callback)

    def register_table(self, table: TableDefinition) -> TableDefinition:
        self._ensure_mutable(f"table '{table.name}'")
        return self._tables.setdefault(table.name, table)

    def register_entity(
        self,
        name: str,
        table_name: str,
        entity_class: type[Entity] | None = None,
        id_field: str | None = None,
    ) -> EntityDefinition:
        self._ensure_mutable(f"entity '{name}'")
        existing = self._entities.get(name)
        if existing is not None:
            if existing.table.name != table_name:
                raise ConfigError(
                    f"Entity '{name}' is already registered on table '{existing.table.name}'"
                )
            return existing

        table = self._tables.get(table_name)
        if table is None:
            raise MetadataNotFoundError(
                f"Table '{table_name}' is not registered (entity '{name}')"
            )

        definition = EntityDefinition(
            name=name,
            table=table,
            entity_class=entity_class or entity_class_for(name),
            id_field=id_field,
        )
        definition.add_attribute(table.partition_key)
        definition.add_attribute(table.sort_key)
        for default_name in ENTITY_DEFAULT_FIELDS:
            definition.add_attribute(table.default_attributes[default_name])

        table.entities[name] = definition
        self._entities[name] = definition
        return definition

    def register_attribute(
        self, entity: EntityRef, attribute: AttributeDefinition
    ) -> AttributeDefinition:
        """Add an attribute. A table key or default named by field or alias resolves to it."""
        name = entity_name_of(entity)
        self._ensure_mutable(f"attribute '{name}.{attribute.name}'")
        definition = self._entity_for_registration(name)

        existing = definition.attributes.get(attribute.name)
        if existing is not None:
            return existing
        existing = _table_attribute_by_alias(definition, attribute.name)
        if existing is not None:
            return existing

        clash = definition.attributes_by_alias.get(attribute.alias)
        if clash is not None:
            raise ConfigError(
                f"Alias '{attribute.alias}' of '{name}.{attribute.name}' is already "
                f"used by '{clash.name}'"
            )
        definition.add_attribute(attribute)
        return attribute

    def register_relationship(self, entity: EntityRef, relationship: Relationship) -> Relationship:
        name = entity_name_of(entity)
        self._ensure_mutable(f"relationship '{name}.{relationship.property_name}'")
        definition = self._entity_for_registration(name)

        existing = definition.relationships.get(relationship.property_name)
        if existing is not None:
            return existing
        if relationship.property_name in definition.attributes:
            raise ConfigError(
                f"Relationship '{name}.{relationship.property_name}' collides with an attribute"
            )
        definition.relationships[relationship.property_name] = relationship
        return relationship

    def register_join_table(self, join_table: JoinTableDefinition) -> JoinTableDefinition:
        self._ensure_mutable(f"join table '{join_table.name}'")
        return self._join_tables.setdefault(join_table.name, join_table)

    def _entity_for_registration(self, name: str) -> EntityDefinition:
        definition = self._entities.get(name)
        if definition is None:
            raise MetadataNotFoundError(f"Entity '{name}' is not registered")
        return definition

    # ── Lookup ───────────────────────────────────────────────────────

    def lookup(self, entity: EntityRef) -> EntityDefinition:
        self.freeze()
        name = entity_name_of(entity)
        definition = self._entities.get(name)
        if definition is None:
            raise MetadataNotFoundError(f"Entity '{name}' is not registered")
        return definition

    def lookup_table(self, table_name: str) -> TableDefinition:
        self.freeze()
        table = self._tables.get(table_name)
        if table is None:
            raise MetadataNotFoundError(f"Table '{table_name}' is not registered")
        return table

    def lookup_join_table(self, name: str) -> JoinTableDefinition:
        self.freeze()
        join_table = self._join_tables.get(name)
        if join_table is None:
            raise MetadataNotFoundError(f"Join table '{name}' is not registered")
        return join_table

    def find(self, entity_name: str) -> EntityDefinition | None:
        """Like :meth:`lookup` but returns ``None`` for unknown names."""
        self.freeze()
        return self._entities.get(entity_name)

    # ── Freezing ─────────────────────────────────────────────────────

    def freeze(self) -> None:
        """Run deferred registrations, validate relationships and freeze."""
        if self._frozen:
            return
        with self._lock:
            if self._frozen:
                return
            while self._deferred:
                callback = self._deferred.pop(0)
                callback(self)
            self._validate()
            self._frozen = True
        logger.debug(
            "registry.frozen",
            tables=len(self._tables),
            entities=len(self._entities),
            join_tables=len(self._join_tables),
        )

    def _validate(self) -> None:
        for definition in self._entities.values():
            for relationship in definition.relationships.values():
                self._validate_relationship(definition, relationship)

    def _validate_relationship(
        self, owner: EntityDefinition, relationship: Relationship
    ) -> None:
        where = f"{owner.name}.{relationship.property_name}"
        target = self._entities.get(relationship.target)
        if target is None:
            raise MetadataNotFoundError(
                f"Relationship '{where}' targets unregistered entity '{relationship.target}'"
            )
        if target.table is not owner.table:
            raise ConfigError(
                f"Relationship '{where}' crosses tables ('{owner.table.name}' -> "
                f"'{target.table.name}')"
            )

        if isinstance(relationship, (BelongsTo, OwnedBy)):
            self._check_foreign_key(where, owner, relationship.foreign_key, target.name)
        elif isinstance(relationship, (HasOne, HasMany)):
            self._check_foreign_key(where, target, relationship.foreign_key, owner.name)
        elif isinstance(relationship, HasAndBelongsToMany):
            join_table = self._join_tables.get(relationship.join_table)
            if join_table is None:
                raise MetadataNotFoundError(
                    f"Relationship '{where}' uses unregistered join table "
                    f"'{relationship.join_table}'"
                )
            entities = {role.entity for role in join_table.roles}
            if entities != {owner.name, target.name}:
                raise ConfigError(
                    f"Join table '{join_table.name}' does not join "
                    f"'{owner.name}' and '{target.name}'"
                )

    @staticmethod
    def _check_foreign_key(
        where: str, holder: EntityDefinition, foreign_key: str, expected_target: str
    ) -> None:
        attribute = holder.attributes.get(foreign_key)
        if attribute is None:
            raise ConfigError(
                f"Relationship '{where}' names foreign key '{holder.name}.{foreign_key}' "
                f"which is not an attribute"
            )
        if attribute.foreign_key_target != expected_target:
            raise ConfigError(
                f"Foreign key '{holder.name}.{foreign_key}' references "
                f"'{attribute.foreign_key_target}', expected '{expected_target}' "
                f"(relationship '{where}')"
            )

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"MetadataRegistry({len(self._entities)} entities, {state})"


__all__ = ["EntityRef", "MetadataRegistry", "entity_name_of"]
