"""Update: SET/REMOVE the entity plus foreign-key link maintenance, atomically.

Before any I/O the supplied attributes are validated; nulling a
non-nullable attribute (foreign keys included) raises
``NullConstraintViolationError``. The current item is then read so changed
foreign keys can be diffed:

    ┌────────────────────┬───────────────────────────────────────────────────┐
    │ foreign key change │ staged actions                                    │
    ├────────────────────┼───────────────────────────────────────────────────┤
    │ X -> Y             │ check Y exists, delete link in X, put link in Y   │
    │ None -> Y          │ check Y exists, put link in Y                     │
    │ X -> None          │ delete link in X                                  │
    │ unchanged          │ nothing                                           │
    └────────────────────┴───────────────────────────────────────────────────┘

The entity update is conditioned on the item existing and, when a foreign
key changes, on that key still holding the value that was read. Links are
only maintained for BelongsTo; OwnedBy gets the existence check alone.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tablespine.codec.attribute import to_store_value
from tablespine.codec.items import build_entity
from tablespine.core.errors import NotFoundError, ValidationError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import DeleteAction, Item, PutAction, UpdateAction
from tablespine.entity import Entity
from tablespine.metadata.definitions import OWNING_KINDS, RelationshipKind
from tablespine.operations.base import OperationBase, utc_now
from tablespine.operations.transactions import TransactWriteBuilder
from tablespine.query.attributes import ExpressionAttributes
from tablespine.query.update import build_update_expression

logger = get_logger(__name__)


class Update(OperationBase):
    async def run(self, entity_id: str, attributes: Mapping[str, Any]) -> Entity:
        builder, merged = await self.stage(entity_id, attributes)
        await builder.execute(self.store)
        logger.info(
            "update.complete", entity=self.entity.name, id=entity_id, actions=len(builder)
        )
        return build_entity(self.entity, merged)

    async def dry_run(self, entity_id: str, attributes: Mapping[str, Any]) -> TransactWriteBuilder:
        """Stage the atomic unit and return it without submitting."""
        builder, _ = await self.stage(entity_id, attributes)
        logger.info("update.dry_run", entity=self.entity.name, id=entity_id, actions=len(builder))
        return builder

    async def stage(
        self, entity_id: str, attributes: Mapping[str, Any]
    ) -> tuple[TransactWriteBuilder, Item]:
        if not attributes:
            raise ValidationError(f"No attributes supplied to update {self.entity.name}")
        if self.entity.id_field is not None and self.entity.id_field in attributes:
            raise ValidationError(
                f"'{self.entity.id_field}' is the id of {self.entity.name} and cannot change",
                attribute=self.entity.id_field,
            )
        encoded = self.encode_input(attributes)

        key = self.entity_key(entity_id)
        current = await self.store.get_item(self.table.name, key, consistent_read=True)
        if current is None:
            raise NotFoundError(
                f"{self.entity.name} with ID '{entity_id}' does not exist"
            ).with_context(entity=self.entity.name, item_key=key, operation="update")

        now = utc_now()
        changes: dict[str, Any] = {
            self.entity.attributes[name].alias: value for name, value in encoded.items()
        }
        updated_at = self.table.default_attributes["updated_at"]
        changes[updated_at.alias] = to_store_value(updated_at, now)

        attrs = ExpressionAttributes()
        update_expression = build_update_expression(attrs, changes)
        conditions = [attrs.exists(self.partition_key_alias)]

        builder = TransactWriteBuilder()
        link_actions: list[tuple[Any, str]] = []

        for relationship in self.entity.relationships_of(*OWNING_KINDS):
            foreign_key = relationship.foreign_key  # type: ignore[attr-defined]
            if foreign_key not in encoded:
                continue
            attribute = self.entity.attributes[foreign_key]
            old_id = current.get(attribute.alias)
            new_id = encoded[foreign_key]
            if old_id == new_id:
                continue

            if old_id is None:
                conditions.append(attrs.not_exists(attribute.alias))
            else:
                conditions.append(attrs.equals(attribute.alias, old_id))

            if new_id is not None:
                link_actions.append(self.exists_check(relationship.target, new_id))

            if relationship.kind is not RelationshipKind.BELONGS_TO:
                continue
            if old_id is not None:
                link_actions.append(
                    (
                        DeleteAction(
                            table=self.table.name,
                            key=self.table.link_key(
                                relationship.target, old_id, self.entity.name, entity_id
                            ),
                        ),
                        f"Failed to remove link from {relationship.target} '{old_id}'",
                    )
                )
            if new_id is not None:
                link_attrs = ExpressionAttributes()
                link_actions.append(
                    (
                        PutAction(
                            table=self.table.name,
                            item=self.link_item(
                                relationship.target, new_id, self.entity.name, entity_id, now
                            ),
                            condition=link_attrs.not_exists(self.partition_key_alias),
                            names=link_attrs.names,
                        ),
                        f"{self.entity.name} with ID '{entity_id}' already belongs to "
                        f"{relationship.target} with Id '{new_id}'",
                    )
                )

        builder.add_update(
            UpdateAction(
                table=self.table.name,
                key=key,
                update_expression=update_expression,
                condition=" AND ".join(conditions),
                names=attrs.names,
                values=attrs.values,
            ),
            f"{self.entity.name} with ID '{entity_id}' does not exist or was modified concurrently",
        )
        for action, message in link_actions:
            if isinstance(action, PutAction):
                builder.add_put(action, message)
            elif isinstance(action, DeleteAction):
                builder.add_delete(action, message)
            else:
                builder.add_condition_check(action, message)

        merged = {k: v for k, v in current.items() if changes.get(k, v) is not None}
        merged.update({k: v for k, v in changes.items() if v is not None})
        logger.debug("update.staged", entity=self.entity.name, id=entity_id, actions=len(builder))
        return builder, merged


__all__ = ["Update"]
