"""Pytest configuration and fixtures."""

from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

import pytest

from deposit_reconciler.ledger.models import TransactionRecord
from deposit_reconciler.storage.database import DatabaseManager
from deposit_reconciler.storage.store import RecordStore

KNOWN_ADDRESS = "mvd6qFeVkqH6MNAS2Y2cLifbdaX5XUkbZJ"


@pytest.fixture
async def db(tmp_path: Path):
    """File-backed SQLite store handle with the schema created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'deposits.db'}")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()


@pytest.fixture
def store(db: DatabaseManager) -> RecordStore:
    return RecordStore(db)


@pytest.fixture
def make_record() -> Callable[..., TransactionRecord]:
    """Factory for records with valid-deposit defaults."""

    def _make(
        txid: str = "a" * 64,
        vout: int = 0,
        address: str = KNOWN_ADDRESS,
        category: str = "receive",
        amount: str | Decimal = "1.5",
        confirmations: int = 6,
        **extra: Any,
    ) -> TransactionRecord:
        return TransactionRecord(
            txid=txid,
            vout=vout,
            address=address,
            category=category,
            amount=Decimal(amount),
            confirmations=confirmations,
            extra=extra,
        )

    return _make
