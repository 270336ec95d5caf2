"""Record store facade over the database handle.

Each call runs in its own session: a batch either commits fully or
commits the prefix that succeeded and raises StoreWriteError.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from deposit_reconciler.ledger.models import TransactionRecord
from deposit_reconciler.storage.database import DatabaseManager
from deposit_reconciler.storage.repos import BatchResult, TransactionRepository, validate_key_fields

logger = logging.getLogger(__name__)


class StoreWriteError(Exception):
    """Raised when an upsert batch fails, possibly after a committed prefix."""

    def __init__(self, message: str, result: BatchResult) -> None:
        super().__init__(message)
        self.result = result


class RecordStore:
    """Keyed, durable collection of transaction records."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def upsert_many(
        self,
        key_fields: Iterable[str],
        records: Sequence[TransactionRecord],
    ) -> BatchResult:
        """Upsert records in order, keyed by the projection onto ``key_fields``.

        Raises:
            ValueError: If ``key_fields`` is invalid.
            StoreWriteError: If any operation failed. ``result`` reports the
                committed prefix.
        """
        fields = validate_key_fields(key_fields)
        records = list(records)

        try:
            async with self._db.get_async_session() as session:
                result = await TransactionRepository(session).upsert_many(fields, records)
        except (SQLAlchemyError, OSError) as e:
            raise StoreWriteError(
                f"Batch of {len(records)} records was not committed: {e}",
                BatchResult(attempted=len(records), failed_index=0, error=str(e)),
            ) from e

        if not result.ok:
            raise StoreWriteError(
                f"Batch stopped at record {result.failed_index} after committing "
                f"{result.applied} of {result.attempted}: {result.error}",
                result,
            )

        logger.debug(
            "Upserted %d records (%d inserted, %d replaced)",
            result.applied,
            result.inserted,
            result.replaced,
        )
        return result

    async def get_by_key(self, txid: str, vout: int) -> TransactionRecord | None:
        async with self._db.get_async_session() as session:
            return await TransactionRepository(session).get_by_key(txid, vout)

    async def list_all(self) -> list[TransactionRecord]:
        async with self._db.get_async_session() as session:
            return await TransactionRepository(session).list_all()

    async def count(self) -> int:
        async with self._db.get_async_session() as session:
            return await TransactionRepository(session).count()
