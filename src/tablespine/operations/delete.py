"""Delete: the entity, its links, and every pointer to it, as one atomic unit.

The entity's partition is read first. Then these deletions and updates are
staged:

    - the entity item itself
    - every BelongsToLink in the entity's partition, and for each:
        * HasMany/HasOne child   → REMOVE the child's foreign key
                                   (NullConstraintViolationError if non-nullable)
        * HasAndBelongsToMany    → delete the reciprocal link in the other partition
    - for each BelongsTo with a non-null foreign key, the link this entity
      holds in the referenced entity's partition
"""

from __future__ import annotations

from typing import Any

from tablespine.core.errors import NotFoundError, NullConstraintViolationError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import DeleteAction, Item, UpdateAction
from tablespine.entity import BELONGS_TO_LINK
from tablespine.metadata.definitions import (
    PARTITION_KEY,
    HasAndBelongsToMany,
    HasMany,
    HasOne,
    Relationship,
    RelationshipKind,
)
from tablespine.operations.base import OperationBase, utc_now
from tablespine.operations.transactions import TransactWriteBuilder
from tablespine.query.attributes import ExpressionAttributes
from tablespine.query.compiler import QueryCompiler
from tablespine.query.update import build_update_expression

logger = get_logger(__name__)


class Delete(OperationBase):
    async def run(self, entity_id: str) -> None:
        builder = await self.stage(entity_id)
        await builder.execute(self.store)
        logger.info("delete.complete", entity=self.entity.name, id=entity_id, actions=len(builder))

    async def stage(self, entity_id: str) -> TransactWriteBuilder:
        items = await self._partition(entity_id)
        type_alias = self.table.alias_of("type")

        entity_item = next((i for i in items if i.get(type_alias) == self.entity.name), None)
        if entity_item is None:
            raise NotFoundError(
                f"{self.entity.name} with ID '{entity_id}' does not exist"
            ).with_context(entity=self.entity.name, operation="delete")

        builder = TransactWriteBuilder()
        attrs = ExpressionAttributes()
        builder.add_delete(
            DeleteAction(
                table=self.table.name,
                key=self.entity_key(entity_id),
                condition=attrs.exists(self.partition_key_alias),
                names=attrs.names,
            ),
            f"{self.entity.name} with ID '{entity_id}' does not exist",
        )

        linked_by_target = self._linked_relationships()
        for link in (i for i in items if i.get(type_alias) == BELONGS_TO_LINK):
            self._stage_link_removal(builder, entity_id, link, linked_by_target)

        for relationship in self.entity.relationships_of(RelationshipKind.BELONGS_TO):
            attribute = self.entity.attributes[relationship.foreign_key]  # type: ignore[attr-defined]
            foreign_id = entity_item.get(attribute.alias)
            if foreign_id is None:
                continue
            builder.add_delete(
                DeleteAction(
                    table=self.table.name,
                    key=self.table.link_key(
                        relationship.target, foreign_id, self.entity.name, entity_id
                    ),
                ),
                f"Failed to remove link from {relationship.target} '{foreign_id}'",
            )

        logger.debug("delete.staged", entity=self.entity.name, id=entity_id, actions=len(builder))
        return builder

    async def _partition(self, entity_id: str) -> list[Item]:
        compiled = QueryCompiler(self.entity).compile(
            {PARTITION_KEY: self.table.partition_key_value(self.entity.name, entity_id)}
        )
        return await self.store.query(compiled.to_request(self.table.name, consistent_read=True))

    def _linked_relationships(self) -> dict[str, Relationship]:
        return {
            r.target: r
            for r in self.entity.relationships_of(
                RelationshipKind.HAS_MANY,
                RelationshipKind.HAS_ONE,
                RelationshipKind.HAS_AND_BELONGS_TO_MANY,
            )
        }

    def _stage_link_removal(
        self,
        builder: TransactWriteBuilder,
        entity_id: str,
        link: Item,
        linked_by_target: dict[str, Relationship],
    ) -> None:
        sort_key = link[self.sort_key_alias]
        link_key = {
            self.partition_key_alias: link[self.partition_key_alias],
            self.sort_key_alias: sort_key,
        }
        builder.add_delete(
            DeleteAction(table=self.table.name, key=link_key),
            f"Failed to remove link {sort_key} from {self.entity.name} '{entity_id}'",
        )

        linked_type, linked_id = self.table.split_key_value(sort_key)
        relationship = linked_by_target.get(linked_type)
        if isinstance(relationship, (HasMany, HasOne)):
            builder.add_update(*self._nullify_foreign_key(relationship, linked_id, entity_id))
        elif isinstance(relationship, HasAndBelongsToMany):
            builder.add_delete(
                DeleteAction(
                    table=self.table.name,
                    key=self.table.link_key(linked_type, linked_id, self.entity.name, entity_id),
                ),
                f"Failed to remove link from {linked_type} '{linked_id}'",
            )

    def _nullify_foreign_key(
        self, relationship: HasMany | HasOne, child_id: str, entity_id: str
    ) -> tuple[UpdateAction, str]:
        child = self.registry.lookup(relationship.target)
        attribute = child.attributes[relationship.foreign_key]
        if not attribute.nullable:
            raise NullConstraintViolationError(
                f"Cannot delete {self.entity.name}: {child.name} '{child_id}' references it "
                f"through non-nullable '{attribute.name}'",
                attribute=attribute.name,
            ).with_context(entity=self.entity.name, operation="delete")

        updated_at = self.table.default_attributes["updated_at"]
        attrs = ExpressionAttributes()
        changes: dict[str, Any] = {
            attribute.alias: None,
            updated_at.alias: utc_now().isoformat(),
        }
        expression = build_update_expression(attrs, changes)
        return (
            UpdateAction(
                table=self.table.name,
                key=self.table.entity_key(child.name, child_id),
                update_expression=expression,
                condition=attrs.equals(attribute.alias, entity_id),
                names=attrs.names,
                values=attrs.values,
            ),
            f"{child.name} with ID '{child_id}' no longer references "
            f"{self.entity.name} '{entity_id}'",
        )


__all__ = ["Delete"]
