"""Entity repository: one store plus one metadata registry.

Provides :class:`EntityRepository`, the facade applications use instead of
instantiating operations directly. Each call builds the operation bound to
the requested entity, so entity classes stay plain data holders.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                       EntityRepository                             │
    │                                                                    │
    │   store: ItemStore          ← protocol from tablespine.core        │
    │   registry: MetadataRegistry                                       │
    │                                                                    │
    │   create(E, attrs)                      → E                        │
    │   find_by_id(E, id, include=...)        → E                        │
    │   query(E, key, filter=..., ...)        → list[Entity]             │
    │   update(E, id, attrs)                  → E                        │
    │   update(E, id, attrs, dry_run=True)    → TransactWriteBuilder     │
    │   delete(E, id)                         → None                     │
    │   link(join_table, keys) / unlink(...)  → None                     │
    └────────────────────────────────────────────────────────────────────┘

Usage:
    >>> repo = EntityRepository(InMemoryStore(), registry)
    >>> customer = await repo.create(Customer, {"name": "Ada"})
    >>> order = await repo.create(Order, {"customer_id": customer.id})
    >>> found = await repo.find_by_id(Order, order.id, include=["customer"])
    >>> found.customer == customer
    True

Tags:
    repository, facade, single-table, tablespine
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from tablespine.core.logging import LogContext, configure_logging
from tablespine.core.protocols import ItemStore
from tablespine.core.settings import TableSpineSettings, get_settings
from tablespine.entity import Entity
from tablespine.metadata.registry import EntityRef, MetadataRegistry, entity_name_of
from tablespine.operations.create import Create
from tablespine.operations.delete import Delete
from tablespine.operations.find_by_id import FindById, Include
from tablespine.operations.join_table import JoinTableOperations
from tablespine.operations.query import KeyOrId, Query
from tablespine.operations.transactions import TransactWriteBuilder
from tablespine.operations.update import Update


class EntityRepository:
    """Facade over the entity operations.

    Parameters:
        store: Any object satisfying :class:`~tablespine.core.protocols.ItemStore`.
        registry: Metadata registry; frozen by the first operation.
        max_concurrency: Fan-out width for relationship includes
            (``None`` = unbounded).
        consistent_reads: Default for ``find_by_id``/``query`` reads.
    """

    def __init__(
        self,
        store: ItemStore,
        registry: MetadataRegistry,
        *,
        max_concurrency: int | None = None,
        consistent_reads: bool = False,
    ) -> None:
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1 or None")
        self.store = store
        self.registry = registry
        self.max_concurrency = max_concurrency
        self.consistent_reads = consistent_reads

    @classmethod
    def from_settings(
        cls,
        store: ItemStore,
        registry: MetadataRegistry,
        settings: TableSpineSettings | None = None,
        *,
        setup_logging: bool = False,
    ) -> EntityRepository:
        """Create a repository configured from :class:`TableSpineSettings`.

        With ``setup_logging=True`` structlog is configured from the same
        settings.
        """
        settings = settings or get_settings()
        if setup_logging:
            configure_logging(
                level=settings.log_level,
                json_format=settings.json_logs,
                service=settings.service_name,
            )
        return cls(
            store,
            registry,
            max_concurrency=settings.fanout_max_concurrency,
            consistent_reads=settings.consistent_reads,
        )

    # -- Writes ---------------------------------------------------------------

    async def create(self, entity: EntityRef, attributes: Mapping[str, Any]) -> Entity:
        async with self._scope("create", entity):
            return await Create(self.registry, self.store, entity).run(attributes)

    async def update(
        self,
        entity: EntityRef,
        entity_id: str,
        attributes: Mapping[str, Any],
        *,
        dry_run: bool = False,
    ) -> Entity | TransactWriteBuilder:
        """Update an entity and return the merged result.

        With ``dry_run=True`` nothing is written; the staged atomic unit is
        returned instead.
        """
        async with self._scope("update", entity, id=entity_id):
            operation = Update(self.registry, self.store, entity)
            if dry_run:
                return await operation.dry_run(entity_id, attributes)
            return await operation.run(entity_id, attributes)

    async def delete(self, entity: EntityRef, entity_id: str) -> None:
        async with self._scope("delete", entity, id=entity_id):
            await Delete(self.registry, self.store, entity).run(entity_id)

    async def link(self, join_table: str, keys: Mapping[str, str]) -> None:
        async with LogContext(operation="link", join_table=join_table):
            await JoinTableOperations(self.registry, self.store, join_table).link(keys)

    async def unlink(self, join_table: str, keys: Mapping[str, str]) -> None:
        async with LogContext(operation="unlink", join_table=join_table):
            await JoinTableOperations(self.registry, self.store, join_table).unlink(keys)

    # -- Reads ----------------------------------------------------------------

    async def find_by_id(
        self,
        entity: EntityRef,
        entity_id: str,
        *,
        include: Include | None = None,
        consistent_read: bool | None = None,
    ) -> Entity:
        async with self._scope("find_by_id", entity, id=entity_id):
            operation = FindById(
                self.registry, self.store, entity, max_concurrency=self.max_concurrency
            )
            return await operation.run(
                entity_id,
                include=include,
                consistent_read=self._consistent(consistent_read),
            )

    async def query(
        self,
        entity: EntityRef,
        key: KeyOrId,
        *,
        filter: Mapping[str, Any] | None = None,
        index_name: str | None = None,
        sk_condition: Any = None,
        consistent_read: bool | None = None,
    ) -> list[Entity]:
        async with self._scope("query", entity):
            return await Query(self.registry, self.store, entity).run(
                key,
                filter=filter,
                index_name=index_name,
                sk_condition=sk_condition,
                consistent_read=self._consistent(consistent_read),
            )

    def _consistent(self, requested: bool | None) -> bool:
        return self.consistent_reads if requested is None else requested

    @staticmethod
    def _scope(operation: str, entity: EntityRef, **extra: Any) -> LogContext:
        return LogContext(operation=operation, entity=entity_name_of(entity), **extra)


__all__ = ["EntityRepository"]
