"""Core primitives: errors, logging, settings and the store contract."""

from tablespine.core.errors import (
    ConditionalWriteFailedError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    InvalidQueryError,
    MetadataNotFoundError,
    NotFoundError,
    NullConstraintViolationError,
    RegistryFrozenError,
    ResolutionError,
    StorageError,
    TableSpineError,
    TransactionCanceledError,
    ValidationError,
    is_retryable,
)
from tablespine.core.logging import LogContext, configure_logging, get_logger
from tablespine.core.protocols import (
    ConditionCheckAction,
    DeleteAction,
    Item,
    ItemStore,
    PutAction,
    QueryRequest,
    UpdateAction,
    WriteAction,
)
from tablespine.core.settings import TableSpineSettings, clear_settings_cache, get_settings

__all__ = [
    # errors
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
    # logging
    "configure_logging",
    "get_logger",
    "LogContext",
    # settings
    "TableSpineSettings",
    "get_settings",
    "clear_settings_cache",
    # protocols
    "Item",
    "ItemStore",
    "QueryRequest",
    "PutAction",
    "UpdateAction",
    "DeleteAction",
    "ConditionCheckAction",
    "WriteAction",
]
