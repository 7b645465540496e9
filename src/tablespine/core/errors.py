"""
Structured error types for tablespine.

Every failure the mapper can raise is a subclass of :class:`TableSpineError`.
Errors carry a category, an explicit retry flag, structured context (entity,
table, item key) and an optional chained cause.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure mode callers branch on
    - **Explicit Retry Semantics:** Nothing here is retried automatically;
      writes generate ids and timestamps, so a blind retry is never safe
    - **Rich Context:** Errors carry the entity/table/key they concern
    - **Error Chaining:** Store exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      TableSpineError                            │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │  ConfigError            ValidationError        InvalidQueryError│
        │  (CONFIG)               (VALIDATION)           (QUERY)          │
        │       │                      │                                  │
        │  MetadataNotFoundError  NullConstraintViolationError            │
        │  RegistryFrozenError                                            │
        │                                                                 │
        │  NotFoundError          ResolutionError        StorageError     │
        │  (NOT_FOUND)            (RESOLUTION)           (STORAGE)        │
        │                                                     │           │
        │                              ConditionalWriteFailedError        │
        │                              TransactionCanceledError           │
        └─────────────────────────────────────────────────────────────────┘

Pre-I/O errors (configuration, validation, query compilation, null
constraints) are raised synchronously before any store call. Store-surfaced
errors are raised after exactly one attempt.

Examples:
    >>> err = NotFoundError("Customer does not exist").with_context(
    ...     entity="Customer", item_key={"PK": "Customer#1", "SK": "Customer"}
    ... )
    >>> err.context.entity
    'Customer'
    >>> err.retryable
    False

Tags:
    error-handling, exception-hierarchy, error-context, tablespine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    CONFIG = "CONFIG"             # Schema wiring, unknown entity/table
    VALIDATION = "VALIDATION"     # Attribute shape, enum, null constraints
    QUERY = "QUERY"               # Malformed key/filter description
    NOT_FOUND = "NOT_FOUND"       # Point read yielded nothing
    RESOLUTION = "RESOLUTION"     # Item type tag mismatch
    STORAGE = "STORAGE"           # Conditional writes, cancelled transactions
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Attributes:
        entity: Entity type the error concerns
        table: Physical table name
        item_key: Primary key of the item involved, keyed by table alias
        operation: Mapper operation (create, update, delete, query, ...)
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    table: str | None = None
    item_key: dict[str, Any] | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "table", "item_key", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TableSpineError(Exception):
    """
    Base exception for all tablespine errors.

    Subclasses set ``default_category`` and ``default_retryable``. The retry
    flag is informational only: the mapper itself never retries.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TableSpineError:
        """Attach context fields, returning ``self`` for chaining.

        Known ErrorContext fields are set directly; anything else lands in
        ``context.metadata``.
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging / API responses."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


# =============================================================================
# Configuration
# =============================================================================


class ConfigError(TableSpineError):
    """Schema wiring mistake. Indicates a bug; fail fast at first use."""

    default_category = ErrorCategory.CONFIG


class MetadataNotFoundError(ConfigError):
    """An entity, table, relationship or join table was never registered."""


class RegistryFrozenError(ConfigError):
    """Registration attempted after the registry was frozen by first use."""


# =============================================================================
# Validation / query compilation
# =============================================================================


class ValidationError(TableSpineError):
    """An attribute value fails its declared shape before any I/O."""

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        attribute: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.attribute = attribute
        if attribute is not None:
            self.context.metadata.setdefault("attribute", attribute)


class NullConstraintViolationError(ValidationError):
    """Attempt to null (or omit) a value declared non-nullable."""


class InvalidQueryError(TableSpineError):
    """Malformed key/filter combination, e.g. unsupported operator."""

    default_category = ErrorCategory.QUERY


# =============================================================================
# Read path
# =============================================================================


class NotFoundError(TableSpineError):
    """A point read or find_by_id yielded no item."""

    default_category = ErrorCategory.NOT_FOUND


class ResolutionError(TableSpineError):
    """A store item's type tag does not match the entity being resolved."""

    default_category = ErrorCategory.RESOLUTION


# =============================================================================
# Write path
# =============================================================================


class StorageError(TableSpineError):
    """Failure surfaced by the underlying store."""

    default_category = ErrorCategory.STORAGE


class TransactionCanceledError(StorageError):
    """Raised by store adapters when an atomic write is rejected.

    ``failed_indices`` lists the positions of the actions whose condition
    failed. An empty list means the store cancelled without naming a
    specific condition (throttling, conflicts, ...).
    """

    def __init__(
        self,
        message: str,
        *,
        failed_indices: list[int] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.failed_indices = list(failed_indices or [])


class ConditionalWriteFailedError(StorageError):
    """Duplicate create, or a staged condition of an atomic write failed.

    ``failures`` holds the human readable message registered for each
    failing action, in action order.
    """

    def __init__(
        self,
        message: str,
        *,
        failures: list[str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.failures = list(failures or [])


def is_retryable(error: BaseException) -> bool:
    """Check the retry hint of an error. Non-tablespine errors are not retryable."""
    if isinstance(error, TableSpineError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TableSpineError",
    "ConfigError",
    "MetadataNotFoundError",
    "RegistryFrozenError",
    "ValidationError",
    "NullConstraintViolationError",
    "InvalidQueryError",
    "NotFoundError",
    "ResolutionError",
    "StorageError",
    "TransactionCanceledError",
    "ConditionalWriteFailedError",
    "is_retryable",
]
