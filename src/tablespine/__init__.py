"""
tablespine - single-table entity mapper for partition/sort-key stores.

Entities of many types share one table. Relationships are kept consistent by
denormalized BelongsToLink records written in the same atomic unit as the
entity change, and read back with one-hop includes.

    >>> from tablespine import EntityRepository, InMemoryStore, MetadataRegistry, SchemaBuilder
"""

from tablespine.core.errors import (
    ConditionalWriteFailedError,
    ConfigError,
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
)
from tablespine.core.logging import configure_logging, get_logger
from tablespine.core.protocols import ItemStore
from tablespine.core.settings import TableSpineSettings, get_settings
from tablespine.entity import BELONGS_TO_LINK, BelongsToLink, Entity
from tablespine.metadata import MetadataRegistry, SchemaBuilder, TableDefinition
from tablespine.repository import EntityRepository
from tablespine.store import DynamoDBStore, InMemoryStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # entities
    "Entity",
    "BelongsToLink",
    "BELONGS_TO_LINK",
    # schema
    "MetadataRegistry",
    "SchemaBuilder",
    "TableDefinition",
    # repository and stores
    "EntityRepository",
    "ItemStore",
    "InMemoryStore",
    "DynamoDBStore",
    # configuration
    "TableSpineSettings",
    "get_settings",
    "configure_logging",
    "get_logger",
    # errors
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
]
