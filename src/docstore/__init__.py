"""docstore: versioned document persistence on SQLite.

Entities are stored as serialized documents with an optimistic-lock version.
Units-of-work propagate implicitly to nested calls through ``contextvars``,
for both blocking and ``async`` callers.

Importing the package has no side effects: no config is loaded and no logging
is configured.
"""

from docstore.domain import (
    AbstractEntity,
    AbstractEntityRoot,
    EntitiesWithCount,
    Entity,
    EntityId,
    EntityRoot,
    StoredItem,
    Version,
)
from docstore.persistence import (
    ConflictError,
    CrudDao,
    DocumentDB,
    JsonSerializationAdapter,
    SearchQuery,
    SearchRepository,
    SearchRepositoryWithCount,
    SerializationAdapter,
    StoreIOError,
    async_transaction_scope,
    co_transactional,
    transaction_scope,
    transactional,
)

__version__ = "0.1.0"

__all__ = [
    "AbstractEntity",
    "AbstractEntityRoot",
    "ConflictError",
    "CrudDao",
    "DocumentDB",
    "EntitiesWithCount",
    "Entity",
    "EntityId",
    "EntityRoot",
    "JsonSerializationAdapter",
    "SearchQuery",
    "SearchRepository",
    "SearchRepositoryWithCount",
    "SerializationAdapter",
    "StoreIOError",
    "StoredItem",
    "Version",
    "__version__",
    "async_transaction_scope",
    "co_transactional",
    "transaction_scope",
    "transactional",
]
