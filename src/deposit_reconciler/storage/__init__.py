"""Storage layer - Database schema, repositories and the record store."""

from deposit_reconciler.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from deposit_reconciler.storage.models import Base, TransactionModel
from deposit_reconciler.storage.repos import (
    BatchResult,
    TransactionRepository,
    validate_key_fields,
)
from deposit_reconciler.storage.store import RecordStore, StoreWriteError

__all__ = [
    "Base",
    "BatchResult",
    "DatabaseManager",
    "RecordStore",
    "StoreWriteError",
    "TransactionModel",
    "TransactionRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
    "validate_key_fields",
]
