"""Entity operations: each one stages and submits a single atomic unit."""

from tablespine.operations.base import OperationBase
from tablespine.operations.create import Create
from tablespine.operations.delete import Delete
from tablespine.operations.find_by_id import FindById
from tablespine.operations.join_table import JoinTableOperations
from tablespine.operations.query import Query
from tablespine.operations.transactions import StagedAction, TransactWriteBuilder
from tablespine.operations.update import Update

__all__ = [
    "OperationBase",
    "Create",
    "Update",
    "Delete",
    "FindById",
    "Query",
    "JoinTableOperations",
    "TransactWriteBuilder",
    "StagedAction",
]
