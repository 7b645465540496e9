"""In-memory store implementing :class:`~tablespine.core.protocols.ItemStore`.

Items live in plain dicts keyed by ``(partition, sort)``. Key conditions,
filters, transaction conditions and update expressions are evaluated with
:mod:`tablespine.store.expressions`, so the mapper's compiled output runs
unmodified. ``transact_write`` checks every condition before applying any
action, which makes it all-or-nothing.

Example::

    store = InMemoryStore()
    store.create_table("app", partition_key="PK", sort_key="SK",
                       indexes={"ByType": ("type", "createdAt")})
"""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from tablespine.core.errors import (
    ConditionalWriteFailedError,
    StorageError,
    TransactionCanceledError,
)
from tablespine.core.logging import get_logger
from tablespine.core.protocols import (
    ConditionCheckAction,
    DeleteAction,
    Item,
    PutAction,
    QueryRequest,
    UpdateAction,
    WriteAction,
)
from tablespine.store.expressions import ExpressionSyntaxError, apply_update, compile_condition

logger = get_logger(__name__)

ItemKey = tuple[Any, Any]


@dataclass
class IndexSchema:
    name: str
    partition_key: str
    sort_key: str | None = None


@dataclass
class TableState:
    name: str
    partition_key: str
    sort_key: str
    indexes: dict[str, IndexSchema] = field(default_factory=dict)
    items: dict[ItemKey, Item] = field(default_factory=dict)

    def key_of(self, item: Mapping[str, Any]) -> ItemKey:
        try:
            return (item[self.partition_key], item[self.sort_key])
        except KeyError as exc:
            raise StorageError(
                f"Item for table '{self.name}' is missing key attribute {exc.args[0]!r}"
            ) from exc


def _sort_value(value: Any) -> tuple[int, Any]:
    # numbers before strings, mirroring the store's typed ordering
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


class InMemoryStore:
    """Dict-backed async store.

    Parameters
    ----------
    latency : float
        Seconds each call sleeps before touching state. Zero still yields to
        the event loop so concurrent callers interleave.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._tables: dict[str, TableState] = {}
        self._latency = latency

    # ── Schema ───────────────────────────────────────────────────────

    def create_table(
        self,
        name: str,
        *,
        partition_key: str = "PK",
        sort_key: str = "SK",
        indexes: Mapping[str, tuple[str, str | None]] | None = None,
    ) -> None:
        self._tables[name] = TableState(
            name=name,
            partition_key=partition_key,
            sort_key=sort_key,
            indexes={
                index_name: IndexSchema(index_name, pk, sk)
                for index_name, (pk, sk) in (indexes or {}).items()
            },
        )

    def _table(self, name: str) -> TableState:
        table = self._tables.get(name)
        if table is None:
            raise StorageError(f"Table '{name}' does not exist")
        return table

    def items(self, table: str) -> list[Item]:
        """Snapshot of every item in ``table``."""
        return [copy.deepcopy(item) for item in self._table(table).items.values()]

    async def _tick(self) -> None:
        await asyncio.sleep(self._latency)

    # ── Reads ────────────────────────────────────────────────────────

    async def get_item(
        self, table: str, key: Item, *, consistent_read: bool = False
    ) -> Item | None:
        await self._tick()
        state = self._table(table)
        item = state.items.get(state.key_of(key))
        return copy.deepcopy(item) if item is not None else None

    async def query(self, request: QueryRequest) -> list[Item]:
        await self._tick()
        state = self._table(request.table)

        if request.index_name is not None:
            index = state.indexes.get(request.index_name)
            if index is None:
                raise StorageError(
                    f"Table '{state.name}' has no index '{request.index_name}'"
                )
            partition_attr, sort_attr = index.partition_key, index.sort_key
        else:
            partition_attr, sort_attr = state.partition_key, state.sort_key

        try:
            key_matches = compile_condition(request.key_condition, request.names, request.values)
            filter_matches = (
                compile_condition(request.filter_expression, request.names, request.values)
                if request.filter_expression
                else None
            )
        except ExpressionSyntaxError as exc:
            raise StorageError(f"Invalid query expression: {exc}", cause=exc) from exc

        candidates = [
            item
            for item in state.items.values()
            if partition_attr in item and (sort_attr is None or sort_attr in item)
        ]
        matched = [item for item in candidates if key_matches(item)]
        if sort_attr is not None:
            matched.sort(key=lambda item: _sort_value(item[sort_attr]))
        if filter_matches is not None:
            matched = [item for item in matched if filter_matches(item)]
        return [copy.deepcopy(item) for item in matched]

    # ── Writes ───────────────────────────────────────────────────────

    async def put_item(
        self,
        table: str,
        item: Item,
        condition: str | None = None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        await self._tick()
        state = self._table(table)
        key = state.key_of(item)
        if condition and not self._check(condition, names, values, state.items.get(key)):
            raise ConditionalWriteFailedError(
                f"Conditional put failed for {key!r} in '{table}'",
                failures=[f"The conditional request failed for {key!r}"],
            )
        state.items[key] = copy.deepcopy(item)

    async def transact_write(self, actions: Sequence[WriteAction]) -> None:
        await self._tick()
        resolved = [(action, *self._locate(action)) for action in actions]
        self._reject_duplicates((state.name, key) for _, state, key in resolved)

        failed: list[int] = []
        for index, (action, state, key) in enumerate(resolved):
            if action.condition and not self._check(
                action.condition, action.names, action.values, state.items.get(key)
            ):
                failed.append(index)
        if failed:
            logger.debug("memory_store.transaction_canceled", failed_indices=failed)
            raise TransactionCanceledError(
                f"Transaction cancelled: conditional check failed for action(s) {failed}",
                failed_indices=failed,
            )

        for action, state, key in resolved:
            if isinstance(action, PutAction):
                state.items[key] = copy.deepcopy(action.item)
            elif isinstance(action, DeleteAction):
                state.items.pop(key, None)
            elif isinstance(action, UpdateAction):
                current = state.items.get(key) or dict(action.key)
                state.items[key] = apply_update(
                    current, action.update_expression, action.names, action.values
                )
        logger.debug("memory_store.transact_write", actions=len(actions))

    # ── Helpers ──────────────────────────────────────────────────────

    def _locate(self, action: WriteAction) -> tuple[TableState, ItemKey]:
        state = self._table(action.table)
        if isinstance(action, PutAction):
            return state, state.key_of(action.item)
        if isinstance(action, (UpdateAction, DeleteAction, ConditionCheckAction)):
            return state, state.key_of(action.key)
        raise StorageError(f"Unsupported transaction action: {type(action).__name__}")

    @staticmethod
    def _reject_duplicates(keys: Iterable[tuple[str, ItemKey]]) -> None:
        seen: set[tuple[str, ItemKey]] = set()
        for key in keys:
            if key in seen:
                raise StorageError(
                    f"Transaction contains more than one operation on item {key!r}"
                )
            seen.add(key)

    @staticmethod
    def _check(
        condition: str,
        names: Mapping[str, str] | None,
        values: Mapping[str, Any] | None,
        current: Item | None,
    ) -> bool:
        try:
            predicate = compile_condition(condition, names, values)
        except ExpressionSyntaxError as exc:
            raise StorageError(f"Invalid condition expression: {exc}", cause=exc) from exc
        return predicate(current or {})


__all__ = ["InMemoryStore", "IndexSchema", "TableState"]
