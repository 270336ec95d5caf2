"""Ledger layer - transaction records and paginated sources."""

from deposit_reconciler.ledger.models import (
    DEPOSIT_CATEGORIES,
    MIN_CONFIRMATIONS,
    NATURAL_KEY,
    Category,
    LedgerPage,
    TransactionRecord,
)
from deposit_reconciler.ledger.source import (
    FixtureLedgerSource,
    LedgerSource,
    RetryingLedgerSource,
    SourceFetchError,
)

__all__ = [
    "Category",
    "DEPOSIT_CATEGORIES",
    "FixtureLedgerSource",
    "LedgerPage",
    "LedgerSource",
    "MIN_CONFIRMATIONS",
    "NATURAL_KEY",
    "RetryingLedgerSource",
    "SourceFetchError",
    "TransactionRecord",
]
