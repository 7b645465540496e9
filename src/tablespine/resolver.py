"""
Relationship resolver: raw store items → typed entity graphs.

``resolve_one`` turns a single item into an entity. ``resolve_with_includes``
takes the items of an entity's partition (the entity item plus
BelongsToLinks) and a set of requested relationships, and fans out one hop:

    ┌──────────────────────────────────────────────────────────────────────┐
    │ item                      │ requested relationship  │ fetch           │
    ├──────────────────────────────────────────────────────────────────────┤
    │ entity item (root)        │ BelongsTo / OwnedBy     │ target by FK    │
    │ BelongsToLink Order#42    │ HasMany / HasOne / HABTM│ Order 42        │
    │                           │   targeting Order       │                 │
    │ anything else             │ —                       │ ignored         │
    └──────────────────────────────────────────────────────────────────────┘

Planning happens first; then every unique ``(type, id)`` is read once through
:class:`~tablespine.execution.fanout.BoundedFanOut`, concurrently, and the
call returns only after every read has settled. Results are assigned in plan
order. To-many properties default to ``[]`` and to-one to ``None``; related
entities that no longer exist are skipped.

Tags:
    resolver, relationships, fan-out, asyncio, tablespine
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from tablespine.codec.items import build_entity
from tablespine.core.errors import ResolutionError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import Item, ItemStore
from tablespine.entity import BELONGS_TO_LINK, Entity
from tablespine.execution.fanout import BoundedFanOut
from tablespine.metadata.definitions import OWNING_KINDS, EntityDefinition, Relationship
from tablespine.metadata.registry import MetadataRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Fetch:
    relationship: Relationship
    entity_name: str
    entity_id: str


class RelationshipResolver:
    """Resolves items of one entity type, with optional one-hop includes."""

    def __init__(
        self,
        registry: MetadataRegistry,
        store: ItemStore,
        entity: EntityDefinition,
        *,
        max_concurrency: int | None = None,
        consistent_read: bool = False,
    ) -> None:
        self.registry = registry
        self.store = store
        self.entity = entity
        self.max_concurrency = max_concurrency
        self.consistent_read = consistent_read
        self._type_alias = entity.table.alias_of("type")

    def resolve_one(self, item: Mapping[str, Any]) -> Entity:
        type_tag = item.get(self._type_alias)
        if type_tag != self.entity.name:
            raise ResolutionError(
                f"Cannot resolve item of type {type_tag!r} as {self.entity.name}"
            ).with_context(entity=self.entity.name)
        return build_entity(self.entity, item)

    async def resolve_with_includes(
        self,
        items: Sequence[Mapping[str, Any]],
        relationships: Sequence[Relationship],
    ) -> Entity | None:
        """Resolve the partition's entity item and fan out to requested relationships.

        Returns ``None`` when no item carries the entity's type tag.
        """
        owning = [r for r in relationships if r.kind in OWNING_KINDS]
        linked_by_target: dict[str, Relationship] = {
            r.target: r for r in relationships if r.kind not in OWNING_KINDS
        }

        root: Entity | None = None
        plan: list[_Fetch] = []
        for item in items:
            type_tag = item.get(self._type_alias)
            if type_tag == self.entity.name:
                root = self.resolve_one(item)
                plan.extend(self._owning_fetches(item, owning))
            elif type_tag == BELONGS_TO_LINK:
                fetch = self._link_fetch(item, linked_by_target)
                if fetch is not None:
                    plan.append(fetch)

        if root is None:
            return None

        for relationship in relationships:
            setattr(root, relationship.property_name, [] if relationship.to_many else None)

        fetched = await self._fetch_all(plan)
        seen: dict[str, set[str]] = {}
        for fetch in plan:
            related = fetched.get((fetch.entity_name, fetch.entity_id))
            if related is None:
                continue
            prop = fetch.relationship.property_name
            if fetch.relationship.to_many:
                ids = seen.setdefault(prop, set())
                if fetch.entity_id in ids:
                    continue
                ids.add(fetch.entity_id)
                getattr(root, prop).append(related)
            else:
                setattr(root, prop, related)
        return root

    # -- Planning ------------------------------------------------------------

    def _owning_fetches(
        self, item: Mapping[str, Any], owning: Sequence[Relationship]
    ) -> list[_Fetch]:
        fetches = []
        for relationship in owning:
            attribute = self.entity.attributes[relationship.foreign_key]  # type: ignore[attr-defined]
            foreign_id = item.get(attribute.alias)
            if foreign_id is not None:
                fetches.append(_Fetch(relationship, relationship.target, foreign_id))
        return fetches

    def _link_fetch(
        self, item: Mapping[str, Any], linked_by_target: Mapping[str, Relationship]
    ) -> _Fetch | None:
        sort_key = item.get(self.entity.table.sort_key.alias)
        if not isinstance(sort_key, str):
            return None
        try:
            linked_type, linked_id = self.entity.table.split_key_value(sort_key)
        except ValueError:
            return None
        relationship = linked_by_target.get(linked_type)
        if relationship is None:
            return None
        return _Fetch(relationship, linked_type, linked_id)

    # -- Fan-out ---------------------------------------------------------------

    async def _fetch_all(self, plan: Sequence[_Fetch]) -> dict[tuple[str, str], Entity]:
        unique: list[tuple[str, str]] = []
        for fetch in plan:
            key = (fetch.entity_name, fetch.entity_id)
            if key not in unique:
                unique.append(key)
        if not unique:
            return {}

        table = self.entity.table
        fanout = BoundedFanOut(self.max_concurrency)
        for entity_name, entity_id in unique:
            fanout.add(
                table.partition_key_value(entity_name, entity_id),
                self._get,
                table.entity_key(entity_name, entity_id),
            )
        result = await fanout.run_all()
        result.raise_first_error()

        logger.debug(
            "resolver.fanout",
            entity=self.entity.name,
            planned=len(plan),
            fetched=len(unique),
            peak_in_flight=result.peak_in_flight,
        )

        resolved: dict[tuple[str, str], Entity] = {}
        for (entity_name, entity_id), item in zip(unique, result.results()):
            if item is None:
                logger.debug("resolver.missing_related", entity=entity_name, id=entity_id)
                continue
            definition = self.registry.lookup(entity_name)
            resolved[(entity_name, entity_id)] = build_entity(definition, item)
        return resolved

    async def _get(self, key: Item) -> Item | None:
        return await self.store.get_item(
            self.entity.table.name, key, consistent_read=self.consistent_read
        )


__all__ = ["RelationshipResolver"]
