"""Store adapters implementing :class:`~tablespine.core.protocols.ItemStore`."""

from tablespine.store.dynamodb import DynamoDBStore
from tablespine.store.expressions import ExpressionSyntaxError, apply_update, compile_condition
from tablespine.store.memory import InMemoryStore

__all__ = [
    "InMemoryStore",
    "DynamoDBStore",
    "ExpressionSyntaxError",
    "compile_condition",
    "apply_update",
]
