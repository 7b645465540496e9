"""Tests for TransactWriteBuilder."""

import pytest

from tablespine.core.errors import ConditionalWriteFailedError, TransactionCanceledError
from tablespine.core.protocols import ConditionCheckAction, DeleteAction, PutAction
from tablespine.operations import TransactWriteBuilder
from tests._support.models import RecordingStore, build_store


# ── Helpers ──────────────────────────────────────────────────────────────


class CancellingStore(RecordingStore):
    def __init__(self, failed_indices):
        super().__init__(build_store())
        self.failed_indices = failed_indices

    async def transact_write(self, actions):
        self.calls.append(("transact_write", list(actions)))
        raise TransactionCanceledError("cancelled", failed_indices=self.failed_indices)


def _exists(pk):
    return ConditionCheckAction("app", {"PK": pk, "SK": "Customer"}, "attribute_exists(#PK)", {"#PK": "PK"})


class TestStaging:
    def test_records_actions_and_messages(self):
        builder = TransactWriteBuilder()
        builder.add_put(PutAction("app", {"PK": "a", "SK": "b"}), "put failed")
        builder.add_delete(DeleteAction("app", {"PK": "c", "SK": "d"}), "delete failed")
        assert len(builder) == 2
        assert builder.error_messages == ["put failed", "delete failed"]
        assert isinstance(builder.actions[1], DeleteAction)


class TestExecute:
    @pytest.mark.asyncio
    async def test_nothing_staged_makes_no_call(self, recording_store):
        await TransactWriteBuilder().execute(recording_store)
        assert recording_store.calls == []

    @pytest.mark.asyncio
    async def test_single_put_uses_put_item(self, recording_store):
        builder = TransactWriteBuilder().add_put(PutAction("app", {"PK": "a", "SK": "b"}), "dup")
        await builder.execute(recording_store)
        assert [name for name, _ in recording_store.calls] == ["put_item"]

    @pytest.mark.asyncio
    async def test_single_delete_uses_transact_write(self, recording_store):
        builder = TransactWriteBuilder().add_delete(DeleteAction("app", {"PK": "a", "SK": "b"}), "gone")
        await builder.execute(recording_store)
        assert [name for name, _ in recording_store.calls] == ["transact_write"]

    @pytest.mark.asyncio
    async def test_single_put_failure_carries_message(self, recording_store):
        action = PutAction("app", {"PK": "a", "SK": "b"}, "attribute_not_exists(#PK)", {"#PK": "PK"})
        await TransactWriteBuilder().add_put(action, "already there").execute(recording_store)
        with pytest.raises(ConditionalWriteFailedError) as exc_info:
            await TransactWriteBuilder().add_put(action, "already there").execute(recording_store)
        assert exc_info.value.failures == ["already there"]
        assert str(exc_info.value) == "already there"

    @pytest.mark.asyncio
    async def test_several_actions_use_transact_write(self, recording_store):
        builder = (
            TransactWriteBuilder()
            .add_put(PutAction("app", {"PK": "a", "SK": "b"}), "x")
            .add_put(PutAction("app", {"PK": "c", "SK": "d"}), "y")
        )
        await builder.execute(recording_store)
        assert [name for name, _ in recording_store.calls] == ["transact_write"]

    @pytest.mark.asyncio
    async def test_cancellation_maps_indices_to_messages(self):
        store = CancellingStore([1, 2])
        builder = (
            TransactWriteBuilder()
            .add_put(PutAction("app", {"PK": "a", "SK": "b"}), "first")
            .add_condition_check(_exists("Customer#1"), "Customer 1 missing")
            .add_condition_check(_exists("Customer#2"), "Customer 2 missing")
        )
        with pytest.raises(ConditionalWriteFailedError) as exc_info:
            await builder.execute(store)
        assert exc_info.value.failures == ["Customer 1 missing", "Customer 2 missing"]
        assert isinstance(exc_info.value.cause, TransactionCanceledError)

    @pytest.mark.asyncio
    async def test_cancellation_without_indices_propagates(self):
        store = CancellingStore([])
        builder = (
            TransactWriteBuilder()
            .add_put(PutAction("app", {"PK": "a", "SK": "b"}), "first")
            .add_condition_check(_exists("Customer#1"), "missing")
        )
        with pytest.raises(TransactionCanceledError):
            await builder.execute(store)
