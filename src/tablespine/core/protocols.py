"""
Canonical store contract for tablespine.

This module is the single definition of the shape every backing store must
have, plus the plain request/action records that flow across it. Operations,
the resolver and the repository depend on :class:`ItemStore` only, never on a
concrete adapter.

Manifesto:
    Protocols define contracts without inheritance:
    - **Decoupling:** Operations depend on shape, not on boto3
    - **Testability:** ``InMemoryStore`` satisfies the same contract
    - **Portability:** Same mapper code against DynamoDB or a dict

Architecture:
    ::

        protocols.py
        ├── QueryRequest          — compiled key/filter condition for one query
        ├── PutAction             — put, optionally conditioned
        ├── UpdateAction          — SET/REMOVE update expression
        ├── DeleteAction          — delete, optionally conditioned
        ├── ConditionCheckAction  — assert a condition on an item, no write
        └── ItemStore             — async get_item / query / put_item /
                                    transact_write

    Implementations:
        store/memory.py    InMemoryStore (dict-backed, evaluates expressions)
        store/dynamodb.py  DynamoDBStore (boto3 client)

Guardrails:
    ❌ DON'T: Retry inside a store adapter
    ✅ DO: Surface failures once; callers decide

    ❌ DON'T: Partially apply a transact_write
    ✅ DO: Reject the whole unit with TransactionCanceledError(failed_indices)

Tags:
    protocol, store, dynamodb, transactions, tablespine
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, Union, runtime_checkable

# Raw store item: attribute alias -> store-native value
Item = dict[str, Any]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass
class QueryRequest:
    """A compiled query against one table or secondary index."""

    table: str
    key_condition: str
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)
    filter_expression: str | None = None
    index_name: str | None = None
    consistent_read: bool = False


@dataclass
class PutAction:
    table: str
    item: Item
    condition: str | None = None
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)


@dataclass
class UpdateAction:
    table: str
    key: Item
    update_expression: str
    condition: str | None = None
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeleteAction:
    table: str
    key: Item
    condition: str | None = None
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConditionCheckAction:
    table: str
    key: Item
    condition: str
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)


WriteAction = Union[PutAction, UpdateAction, DeleteAction, ConditionCheckAction]


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ItemStore(Protocol):
    """
    Minimal async interface to a partition/sort-key store.

    Architecture:
        ::

            ItemStore Protocol:
            ┌────────────────────────────────────────────────────────────┐
            │ get_item(table, key)       → item | None                   │
            │ query(request)             → list[item] (all pages)        │
            │ put_item(table, item, ...) → None / ConditionalWrite...    │
            │ transact_write(actions)    → None / TransactionCanceled... │
            └────────────────────────────────────────────────────────────┘

    ``put_item`` raises ``ConditionalWriteFailedError`` when its condition
    fails. ``transact_write`` is all-or-nothing and raises
    ``TransactionCanceledError`` naming the failing action indices.
    """

    async def get_item(
        self, table: str, key: Item, *, consistent_read: bool = False
    ) -> Item | None:
        """Point read by full primary key."""
        ...

    async def query(self, request: QueryRequest) -> list[Item]:
        """Run a key-condition query, returning every matching item."""
        ...

    async def put_item(
        self,
        table: str,
        item: Item,
        condition: str | None = None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        """Write one item, optionally guarded by a condition expression."""
        ...

    async def transact_write(self, actions: Sequence[WriteAction]) -> None:
        """Apply every action atomically or none of them."""
        ...


__all__ = [
    "Item",
    "QueryRequest",
    "PutAction",
    "UpdateAction",
    "DeleteAction",
    "ConditionCheckAction",
    "WriteAction",
    "ItemStore",
]
