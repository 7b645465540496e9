"""
Atomic write builder.

Operations stage every mutation of one logical write (entity put/update/
delete, link puts/deletes, existence checks) on a :class:`TransactWriteBuilder`
together with a human readable message per action. ``execute`` submits the
unit once:

    ┌──────────────────────────────┬────────────────────────────────────────┐
    │ staged actions               │ store call                             │
    ├──────────────────────────────┼────────────────────────────────────────┤
    │ none                         │ nothing                                │
    │ exactly one PutAction        │ put_item(table, item, condition)       │
    │ anything else                │ transact_write(actions)                │
    └──────────────────────────────┴────────────────────────────────────────┘

Failures map to :class:`~tablespine.core.errors.ConditionalWriteFailedError`
carrying the messages of the failing actions. There is no retry.

Tags:
    transactions, atomicity, consistency, tablespine
"""

from __future__ import annotations

from dataclasses import dataclass

from tablespine.core.errors import ConditionalWriteFailedError, TransactionCanceledError
from tablespine.core.logging import get_logger
from tablespine.core.protocols import (
    ConditionCheckAction,
    DeleteAction,
    ItemStore,
    PutAction,
    UpdateAction,
    WriteAction,
)

logger = get_logger(__name__)


@dataclass
class StagedAction:
    action: WriteAction
    error_message: str


class TransactWriteBuilder:
    """Collects the actions of one atomic write."""

    def __init__(self) -> None:
        self._staged: list[StagedAction] = []

    def __len__(self) -> int:
        return len(self._staged)

    @property
    def actions(self) -> list[WriteAction]:
        return [s.action for s in self._staged]

    @property
    def error_messages(self) -> list[str]:
        return [s.error_message for s in self._staged]

    # ── Staging ──────────────────────────────────────────────────────

    def add_put(self, action: PutAction, error_message: str) -> TransactWriteBuilder:
        self._staged.append(StagedAction(action, error_message))
        return self

    def add_update(self, action: UpdateAction, error_message: str) -> TransactWriteBuilder:
        self._staged.append(StagedAction(action, error_message))
        return self

    def add_delete(self, action: DeleteAction, error_message: str) -> TransactWriteBuilder:
        self._staged.append(StagedAction(action, error_message))
        return self

    def add_condition_check(
        self, action: ConditionCheckAction, error_message: str
    ) -> TransactWriteBuilder:
        self._staged.append(StagedAction(action, error_message))
        return self

    # ── Execution ────────────────────────────────────────────────────

    async def execute(self, store: ItemStore) -> None:
        if not self._staged:
            return

        if len(self._staged) == 1:
            (only,) = self._staged
            if isinstance(only.action, PutAction):
                await self._execute_single_put(store, only.action, only.error_message)
                return

        logger.debug("transaction.execute", actions=len(self._staged))
        try:
            await store.transact_write(self.actions)
        except TransactionCanceledError as exc:
            failures = [
                self._staged[i].error_message
                for i in exc.failed_indices
                if 0 <= i < len(self._staged)
            ]
            if not failures:
                raise
            logger.info("transaction.conditional_failure", failures=failures)
            raise ConditionalWriteFailedError(
                "; ".join(failures), failures=failures, cause=exc
            ) from exc

    @staticmethod
    async def _execute_single_put(store: ItemStore, action: PutAction, error_message: str) -> None:
        logger.debug("transaction.single_put", table=action.table)
        try:
            await store.put_item(
                action.table,
                action.item,
                condition=action.condition,
                names=action.names or None,
                values=action.values or None,
            )
        except ConditionalWriteFailedError as exc:
            logger.info("transaction.conditional_failure", failures=[error_message])
            raise ConditionalWriteFailedError(
                error_message, failures=[error_message], cause=exc
            ) from exc


__all__ = ["StagedAction", "TransactWriteBuilder"]
