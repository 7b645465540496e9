"""Find an entity by id, optionally including one hop of relationships."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from tablespine.core.errors import NotFoundError, ValidationError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import ItemStore
from tablespine.entity import Entity
from tablespine.metadata.definitions import PARTITION_KEY, Relationship
from tablespine.metadata.registry import EntityRef, MetadataRegistry
from tablespine.operations.base import OperationBase
from tablespine.query.compiler import QueryCompiler
from tablespine.query.includes import included_relationships_filter
from tablespine.resolver import RelationshipResolver

logger = get_logger(__name__)

Include = Sequence[dict[str, Any] | str]


class FindById(OperationBase):
    def __init__(
        self,
        registry: MetadataRegistry,
        store: ItemStore,
        entity: EntityRef,
        *,
        max_concurrency: int | None = None,
    ) -> None:
        super().__init__(registry, store, entity)
        self.max_concurrency = max_concurrency

    async def run(
        self,
        entity_id: str,
        *,
        include: Include | None = None,
        consistent_read: bool = False,
    ) -> Entity:
        """Point read without ``include``; partition query plus fan-out with it.

        ``include`` entries are ``{"association": "<property>"}`` or the
        property name itself.
        """
        resolver = RelationshipResolver(
            self.registry,
            self.store,
            self.entity,
            max_concurrency=self.max_concurrency,
            consistent_read=consistent_read,
        )

        if not include:
            item = await self.store.get_item(
                self.table.name, self.entity_key(entity_id), consistent_read=consistent_read
            )
            if item is None:
                raise self._not_found(entity_id)
            return resolver.resolve_one(item)

        relationships = self._included_relationships(include)
        compiled = QueryCompiler(self.entity).compile(
            {PARTITION_KEY: self.table.partition_key_value(self.entity.name, entity_id)},
            included_relationships_filter(self.entity, relationships),
        )
        items = await self.store.query(
            compiled.to_request(self.table.name, consistent_read=consistent_read)
        )
        entity = await resolver.resolve_with_includes(items, relationships)
        if entity is None:
            raise self._not_found(entity_id)
        logger.debug(
            "find_by_id.resolved",
            entity=self.entity.name,
            id=entity_id,
            include=[r.property_name for r in relationships],
            items=len(items),
        )
        return entity

    def _included_relationships(self, include: Include) -> list[Relationship]:
        relationships: list[Relationship] = []
        for entry in include:
            name = entry if isinstance(entry, str) else entry.get("association")
            relationship = self.entity.relationships.get(name) if name else None
            if relationship is None:
                raise ValidationError(
                    f"'{name}' is not a relationship of {self.entity.name}"
                ).with_context(entity=self.entity.name, operation="find_by_id")
            if relationship not in relationships:
                relationships.append(relationship)
        return relationships

    def _not_found(self, entity_id: str) -> NotFoundError:
        return NotFoundError(
            f"{self.entity.name} with ID '{entity_id}' does not exist"
        ).with_context(  # type: ignore[return-value]
            entity=self.entity.name,
            item_key=self.entity_key(entity_id),
            operation="find_by_id",
        )


__all__ = ["FindById"]
