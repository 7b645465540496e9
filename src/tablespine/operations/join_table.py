"""Link and unlink the two sides of a many-to-many association.

A join table is never stored. ``link`` puts one BelongsToLink in each
entity's partition (each conditioned on not already existing) and checks
that both entities exist; ``unlink`` deletes both links, each conditioned on
existing. Either way the unit is atomic.
"""

from __future__ import annotations

from collections.abc import Mapping

from tablespine.core.errors import ValidationError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import DeleteAction, ItemStore, PutAction
from tablespine.metadata.definitions import JoinTableDefinition, JoinTableRole, TableDefinition
from tablespine.metadata.registry import MetadataRegistry
from tablespine.operations.base import utc_now
from tablespine.operations.create import Create
from tablespine.operations.transactions import TransactWriteBuilder
from tablespine.query.attributes import ExpressionAttributes

logger = get_logger(__name__)


class JoinTableOperations:
    def __init__(self, registry: MetadataRegistry, store: ItemStore, join_table: str) -> None:
        self.registry = registry
        self.store = store
        self.join_table: JoinTableDefinition = registry.lookup_join_table(join_table)
        first, second = self.join_table.roles
        # Link/exists helpers come from an operation bound to either side
        self._sides = {
            first.entity: Create(registry, store, first.entity),
            second.entity: Create(registry, store, second.entity),
        }
        self.table: TableDefinition = self._sides[first.entity].table

    def _ids(self, keys: Mapping[str, str]) -> dict[JoinTableRole, str]:
        ids: dict[JoinTableRole, str] = {}
        for role in self.join_table.roles:
            value = keys.get(role.foreign_key)
            if not isinstance(value, str) or not value:
                raise ValidationError(
                    f"Join table '{self.join_table.name}' needs '{role.foreign_key}'",
                    attribute=role.foreign_key,
                )
            ids[role] = value
        extra = set(keys) - {role.foreign_key for role in self.join_table.roles}
        if extra:
            raise ValidationError(
                f"Unknown keys for join table '{self.join_table.name}': {sorted(extra)}"
            )
        return ids

    async def link(self, keys: Mapping[str, str]) -> None:
        ids = self._ids(keys)
        now = utc_now()
        builder = TransactWriteBuilder()
        for role in self.join_table.roles:
            other = self.join_table.other(role)
            side = self._sides[role.entity]
            attrs = ExpressionAttributes()
            builder.add_put(
                PutAction(
                    table=self.table.name,
                    item=side.link_item(role.entity, ids[role], other.entity, ids[other], now),
                    condition=attrs.not_exists(self.table.partition_key.alias),
                    names=attrs.names,
                ),
                f"{role.entity} with ID '{ids[role]}' is already linked to "
                f"{other.entity} with ID '{ids[other]}'",
            )
            builder.add_condition_check(*side.exists_check(role.entity, ids[role]))

        await builder.execute(self.store)
        logger.info("join_table.linked", join_table=self.join_table.name, keys=dict(keys))

    async def unlink(self, keys: Mapping[str, str]) -> None:
        ids = self._ids(keys)
        builder = TransactWriteBuilder()
        for role in self.join_table.roles:
            other = self.join_table.other(role)
            attrs = ExpressionAttributes()
            builder.add_delete(
                DeleteAction(
                    table=self.table.name,
                    key=self.table.link_key(role.entity, ids[role], other.entity, ids[other]),
                    condition=attrs.exists(self.table.partition_key.alias),
                    names=attrs.names,
                ),
                f"{role.entity} with ID '{ids[role]}' is not linked to "
                f"{other.entity} with ID '{ids[other]}'",
            )

        await builder.execute(self.store)
        logger.info("join_table.unlinked", join_table=self.join_table.name, keys=dict(keys))


__all__ = ["JoinTableOperations"]
