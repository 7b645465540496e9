"""Create: entity item + existence checks + links, as one atomic unit.

Staged actions, in order:

    1. Put the entity item, conditioned on ``attribute_not_exists(PK)``
    2. For every BelongsTo/OwnedBy with a non-null foreign key:
       condition check that the referenced entity exists
    3. For every BelongsTo with a non-null foreign key:
       put a BelongsToLink in the referenced entity's partition
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tablespine.codec.items import build_entity, entity_to_item
from tablespine.core.errors import NullConstraintViolationError, ValidationError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import PutAction
from tablespine.entity import Entity
from tablespine.metadata.definitions import OWNING_KINDS, RelationshipKind
from tablespine.operations.base import OperationBase, new_id, utc_now
from tablespine.operations.transactions import TransactWriteBuilder
from tablespine.query.attributes import ExpressionAttributes

logger = get_logger(__name__)


class Create(OperationBase):
    async def run(self, attributes: Mapping[str, Any]) -> Entity:
        builder, item = self.stage(attributes)
        await builder.execute(self.store)
        logger.info(
            "create.complete",
            entity=self.entity.name,
            id=item[self.table.alias_of("id")],
            actions=len(builder),
        )
        return build_entity(self.entity, item)

    def stage(self, attributes: Mapping[str, Any]) -> tuple[TransactWriteBuilder, dict[str, Any]]:
        """Validate and stage the atomic unit without touching the store."""
        encoded = self.encode_input(attributes)
        for attribute in self.entity.user_attributes:
            if attribute.name not in encoded and not attribute.nullable:
                raise NullConstraintViolationError(
                    f"Attribute '{attribute.name}' is required by {self.entity.name}",
                    attribute=attribute.name,
                ).with_context(entity=self.entity.name, operation="create")

        entity_id = self._entity_id(encoded)
        now = utc_now()
        item = {
            **self.entity_key(entity_id),
            **entity_to_item(
                self.entity,
                {"id": entity_id, "type": self.entity.name, "created_at": now, "updated_at": now},
            ),
        }
        for name, value in encoded.items():
            if value is not None:
                item[self.entity.attributes[name].alias] = value

        builder = TransactWriteBuilder()
        attrs = ExpressionAttributes()
        builder.add_put(
            PutAction(
                table=self.table.name,
                item=item,
                condition=attrs.not_exists(self.partition_key_alias),
                names=attrs.names,
            ),
            f"{self.entity.name} with id: {entity_id} already exists",
        )

        for relationship in self.entity.relationships_of(*OWNING_KINDS):
            foreign_id = encoded.get(relationship.foreign_key)  # type: ignore[attr-defined]
            if foreign_id is None:
                continue
            builder.add_condition_check(*self.exists_check(relationship.target, foreign_id))
            if relationship.kind is RelationshipKind.BELONGS_TO:
                link_attrs = ExpressionAttributes()
                builder.add_put(
                    PutAction(
                        table=self.table.name,
                        item=self.link_item(
                            relationship.target, foreign_id, self.entity.name, entity_id, now
                        ),
                        condition=link_attrs.not_exists(self.partition_key_alias),
                        names=link_attrs.names,
                    ),
                    f"{self.entity.name} with ID '{entity_id}' already belongs to "
                    f"{relationship.target} with Id '{foreign_id}'",
                )

        logger.debug("create.staged", entity=self.entity.name, actions=len(builder))
        return builder, item

    def _entity_id(self, encoded: Mapping[str, Any]) -> str:
        if self.entity.id_field is None:
            return new_id()
        value = encoded.get(self.entity.id_field)
        if not isinstance(value, str) or not value:
            raise ValidationError(
                f"{self.entity.name} takes its id from '{self.entity.id_field}', "
                "which must be a non-empty string",
                attribute=self.entity.id_field,
            )
        return value


__all__ = ["Create"]
