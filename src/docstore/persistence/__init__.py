"""Persistence layer: SQLite document tables, CRUD, search, and transaction scopes."""

from docstore.persistence.crud import CrudDao
from docstore.persistence.database import DocumentDB, document_table_statements
from docstore.persistence.errors import (
    ConflictError,
    DocumentStoreError,
    StoreAsyncPolicyError,
    StoreBusyError,
    StoreCorruptionError,
    StoreIOError,
    TransactionScopeError,
)
from docstore.persistence.search import (
    SearchQuery,
    SearchRepository,
    SearchRepositoryWithCount,
)
from docstore.persistence.serialization import (
    JsonSerializationAdapter,
    SerializationAdapter,
    canonical_json,
)
from docstore.persistence.transactions import (
    Transaction,
    TransactionState,
    async_transaction_scope,
    co_transactional,
    current_transaction,
    transaction_scope,
    transactional,
)

__all__ = [
    "ConflictError",
    "CrudDao",
    "DocumentDB",
    "DocumentStoreError",
    "JsonSerializationAdapter",
    "SearchQuery",
    "SearchRepository",
    "SearchRepositoryWithCount",
    "SerializationAdapter",
    "StoreAsyncPolicyError",
    "StoreBusyError",
    "StoreCorruptionError",
    "StoreIOError",
    "Transaction",
    "TransactionScopeError",
    "TransactionState",
    "async_transaction_scope",
    "canonical_json",
    "co_transactional",
    "current_transaction",
    "document_table_statements",
    "transaction_scope",
    "transactional",
]
