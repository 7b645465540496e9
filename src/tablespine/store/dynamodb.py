"""DynamoDB store over a boto3 client.

The low-level ``boto3.client("dynamodb")`` API is synchronous; every call runs
in a worker thread via :func:`asyncio.to_thread` so the event loop is never
blocked. Values are marshalled with boto3's ``TypeSerializer`` and
``TypeDeserializer``. Floats go in as ``Decimal`` and numbers come back as
``int`` or ``float``.

Error mapping:
    ::

        ConditionalCheckFailedException   (put_item)       → ConditionalWriteFailedError
        TransactionCanceledException      (transact_write) → TransactionCanceledError
                                                              (failed_indices from
                                                               CancellationReasons)
        any other ClientError                              → StorageError

Example::

    store = DynamoDBStore.from_settings(TableSpineSettings())
    repo = EntityRepository(store, registry)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

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
from tablespine.core.settings import TableSpineSettings

logger = get_logger(__name__)


def to_dynamo_value(value: Any) -> Any:
    """Floats become Decimal (recursively); everything else passes through."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {k: to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo_value(v) for v in value]
    return value


def from_dynamo_value(value: Any) -> Any:
    """Decimal becomes int when integral, float otherwise (recursively)."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, Mapping):
        return {k: from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [from_dynamo_value(v) for v in value]
    return value


class DynamoDBStore:
    """:class:`~tablespine.core.protocols.ItemStore` backed by DynamoDB."""

    def __init__(self, client: Any | None = None) -> None:
        self._client: Any = client or boto3.client("dynamodb")
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    @classmethod
    def from_settings(cls, settings: TableSpineSettings | None = None) -> DynamoDBStore:
        settings = settings or TableSpineSettings()
        kwargs: dict[str, Any] = {}
        if settings.aws_region:
            kwargs["region_name"] = settings.aws_region
        if settings.dynamodb_endpoint_url:
            kwargs["endpoint_url"] = settings.dynamodb_endpoint_url
        return cls(boto3.client("dynamodb", **kwargs))

    # ── Marshalling ──────────────────────────────────────────────────

    def _serialize(self, item: Mapping[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(to_dynamo_value(v)) for k, v in item.items()}

    def _deserialize(self, item: Mapping[str, Any]) -> Item:
        return {k: from_dynamo_value(self._deserializer.deserialize(v)) for k, v in item.items()}

    def _expression_params(
        self,
        condition: str | None,
        names: Mapping[str, str] | None,
        values: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if condition:
            params["ConditionExpression"] = condition
        if names:
            params["ExpressionAttributeNames"] = dict(names)
        if values:
            params["ExpressionAttributeValues"] = self._serialize(values)
        return params

    # ── Reads ────────────────────────────────────────────────────────

    async def get_item(
        self, table: str, key: Item, *, consistent_read: bool = False
    ) -> Item | None:
        try:
            resp = await asyncio.to_thread(
                self._client.get_item,
                TableName=table,
                Key=self._serialize(key),
                ConsistentRead=consistent_read,
            )
        except ClientError as err:
            raise self._storage_error(err, "get_item", table) from err
        item = resp.get("Item")
        return self._deserialize(item) if item else None

    async def query(self, request: QueryRequest) -> list[Item]:
        params: dict[str, Any] = {
            "TableName": request.table,
            "KeyConditionExpression": request.key_condition,
            "ExpressionAttributeNames": dict(request.names),
            "ExpressionAttributeValues": self._serialize(request.values),
        }
        if request.filter_expression:
            params["FilterExpression"] = request.filter_expression
        if request.index_name:
            params["IndexName"] = request.index_name
        else:
            params["ConsistentRead"] = request.consistent_read

        items: list[Item] = []
        while True:
            try:
                resp = await asyncio.to_thread(self._client.query, **params)
            except ClientError as err:
                raise self._storage_error(err, "query", request.table) from err
            items.extend(self._deserialize(item) for item in resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return items
            params["ExclusiveStartKey"] = last_key

    # ── Writes ───────────────────────────────────────────────────────

    async def put_item(
        self,
        table: str,
        item: Item,
        condition: str | None = None,
        names: dict[str, str] | None = None,
        values: dict[str, Any] | None = None,
    ) -> None:
        params = {
            "TableName": table,
            "Item": self._serialize(item),
            **self._expression_params(condition, names, values),
        }
        try:
            await asyncio.to_thread(self._client.put_item, **params)
        except ClientError as err:
            if err.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise ConditionalWriteFailedError(
                    f"Conditional put failed in '{table}'",
                    failures=[err.response["Error"].get("Message", "conditional check failed")],
                    cause=err,
                ) from err
            raise self._storage_error(err, "put_item", table) from err

    async def transact_write(self, actions: Sequence[WriteAction]) -> None:
        transact_items = [self._transact_item(action) for action in actions]
        try:
            await asyncio.to_thread(
                self._client.transact_write_items, TransactItems=transact_items
            )
        except ClientError as err:
            error = err.response.get("Error", {})
            if error.get("Code") == "TransactionCanceledException":
                reasons = err.response.get("CancellationReasons", [])
                failed = [
                    index
                    for index, reason in enumerate(reasons)
                    if reason.get("Code") == "ConditionalCheckFailed"
                ]
                logger.debug(
                    "dynamodb.transaction_canceled",
                    failed_indices=failed,
                    reasons=[r.get("Code") for r in reasons],
                )
                raise TransactionCanceledError(
                    error.get("Message", "Transaction cancelled"),
                    failed_indices=failed,
                    cause=err,
                ) from err
            raise self._storage_error(err, "transact_write", None) from err

    def _transact_item(self, action: WriteAction) -> dict[str, Any]:
        if isinstance(action, PutAction):
            return {
                "Put": {
                    "TableName": action.table,
                    "Item": self._serialize(action.item),
                    **self._expression_params(action.condition, action.names, action.values),
                }
            }
        if isinstance(action, UpdateAction):
            return {
                "Update": {
                    "TableName": action.table,
                    "Key": self._serialize(action.key),
                    "UpdateExpression": action.update_expression,
                    **self._expression_params(action.condition, action.names, action.values),
                }
            }
        if isinstance(action, DeleteAction):
            return {
                "Delete": {
                    "TableName": action.table,
                    "Key": self._serialize(action.key),
                    **self._expression_params(action.condition, action.names, action.values),
                }
            }
        if isinstance(action, ConditionCheckAction):
            return {
                "ConditionCheck": {
                    "TableName": action.table,
                    "Key": self._serialize(action.key),
                    **self._expression_params(action.condition, action.names, action.values),
                }
            }
        raise StorageError(f"Unsupported transaction action: {type(action).__name__}")

    @staticmethod
    def _storage_error(err: ClientError, operation: str, table: str | None) -> StorageError:
        error = err.response.get("Error", {})
        code = error.get("Code", "Unknown")
        return StorageError(
            f"DynamoDB {operation} failed ({code}): {error.get('Message', str(err))}",
            retryable=code in ("ProvisionedThroughputExceededException", "ThrottlingException"),
            cause=err,
        ).with_context(table=table, operation=operation)  # type: ignore[return-value]


__all__ = ["DynamoDBStore", "to_dynamo_value", "from_dynamo_value"]
