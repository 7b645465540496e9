"""Query by entity id (its partition) or by explicit key conditions.

Results are resolved by type tag: the queried entity, ``BelongsToLink``
records, or any other entity registered on the same table. An unknown type
tag raises ``ResolutionError``.

Examples::

    # Everything in Customer#123's partition
    await Query(registry, store, Customer).run("123")

    # Only its links to orders
    await Query(registry, store, Customer).run(
        "123", sk_condition={"$beginsWith": "Order"}
    )

    # Secondary index
    await Query(registry, store, Order).run(
        {"status": "shipped"}, index_name="ByStatus",
        filter={"$or": [{"priority": True}, {"total": [10, 20]}]},
    )
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tablespine.codec.items import build_entity, build_link
from tablespine.core.errors import ResolutionError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import Item
from tablespine.entity import BELONGS_TO_LINK, Entity
from tablespine.metadata.definitions import PARTITION_KEY, SORT_KEY
from tablespine.operations.base import OperationBase
from tablespine.query.compiler import QueryCompiler

logger = get_logger(__name__)

KeyOrId = str | Mapping[str, Any]


class Query(OperationBase):
    async def run(
        self,
        key: KeyOrId,
        *,
        filter: Mapping[str, Any] | None = None,
        index_name: str | None = None,
        sk_condition: Any = None,
        consistent_read: bool = False,
    ) -> list[Entity]:
        items = await self.fetch_items(
            key,
            filter=filter,
            index_name=index_name,
            sk_condition=sk_condition,
            consistent_read=consistent_read,
        )
        return [self.resolve(item) for item in items]

    async def fetch_items(
        self,
        key: KeyOrId,
        *,
        filter: Mapping[str, Any] | None = None,
        index_name: str | None = None,
        sk_condition: Any = None,
        consistent_read: bool = False,
    ) -> list[Item]:
        """Compile and run the query, returning raw items."""
        if isinstance(key, str):
            key_condition: dict[str, Any] = {
                PARTITION_KEY: self.table.partition_key_value(self.entity.name, key)
            }
            if sk_condition is not None:
                key_condition[SORT_KEY] = sk_condition
        else:
            key_condition = dict(key)

        compiled = QueryCompiler(self.entity).compile(key_condition, filter, index_name)
        request = compiled.to_request(
            self.table.name, consistent_read=consistent_read and index_name is None
        )
        items = await self.store.query(request)
        logger.debug(
            "query.complete",
            entity=self.entity.name,
            index=index_name,
            filtered=compiled.filter_expression is not None,
            items=len(items),
        )
        return items

    def resolve(self, item: Item) -> Entity:
        type_tag = item.get(self.table.alias_of("type"))
        if type_tag == BELONGS_TO_LINK:
            return build_link(self.table, item)
        definition = self.table.entities.get(type_tag) if isinstance(type_tag, str) else None
        if definition is None:
            raise ResolutionError(
                f"Query on {self.entity.name} returned an item of unknown type {type_tag!r}"
            ).with_context(entity=self.entity.name, table=self.table.name)
        return build_entity(definition, item)


__all__ = ["Query"]
