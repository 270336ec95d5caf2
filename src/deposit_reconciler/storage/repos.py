"""Repository pattern implementations for data access.

This module provides the transaction repository: ordered, idempotent
batched upserts keyed by a caller-supplied set of record fields, plus
simple lookups.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from deposit_reconciler.ledger.models import TransactionRecord, units_to_amount
from deposit_reconciler.storage.models import TransactionModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

logger = logging.getLogger(__name__)

# Record field name -> column used to build an upsert selector.
KEY_COLUMNS: dict[str, InstrumentedAttribute[Any]] = {
    "txid": TransactionModel.txid,
    "vout": TransactionModel.vout,
    "address": TransactionModel.address,
    "category": TransactionModel.category,
    "amount": TransactionModel.amount_units,
    "confirmations": TransactionModel.confirmations,
}


@dataclass(frozen=True)
class BatchResult:
    """Outcome of one ordered upsert batch.

    ``inserted + replaced`` operations committed, in order, before
    ``failed_index`` (if any). Nothing after ``failed_index`` was attempted.
    """

    attempted: int
    inserted: int = 0
    replaced: int = 0
    failed_index: int | None = None
    error: str | None = None

    @property
    def applied(self) -> int:
        return self.inserted + self.replaced

    @property
    def ok(self) -> bool:
        return self.failed_index is None


def validate_key_fields(key_fields: Iterable[str]) -> frozenset[str]:
    """Check that every key field maps to a stored column.

    Raises:
        ValueError: If the set is empty or names an unknown field.
    """
    fields = frozenset(key_fields)
    if not fields:
        raise ValueError("key_fields must name at least one field")
    unknown = sorted(fields - KEY_COLUMNS.keys())
    if unknown:
        raise ValueError(
            f"Unknown key fields: {', '.join(unknown)} (allowed: {', '.join(sorted(KEY_COLUMNS))})"
        )
    return fields


def _selector_value(record: TransactionRecord, name: str) -> Any:
    if name == "amount":
        return record.amount_units
    return getattr(record, name)


def _model_values(record: TransactionRecord) -> dict[str, Any]:
    return {
        "txid": record.txid,
        "vout": record.vout,
        "address": record.address,
        "category": record.category,
        "amount_units": record.amount_units,
        "confirmations": record.confirmations,
        "extra": dict(record.extra),
    }


def record_from_model(model: TransactionModel) -> TransactionRecord:
    """Rebuild the domain record from its stored row."""
    return TransactionRecord(
        txid=model.txid,
        vout=model.vout,
        address=model.address,
        category=model.category,
        amount=units_to_amount(model.amount_units),
        confirmations=model.confirmations,
        extra=dict(model.extra or {}),
    )


class TransactionRepository:
    """Repository for reconciled transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_key(self, txid: str, vout: int) -> TransactionRecord | None:
        result = await self.session.execute(
            select(TransactionModel).where(
                TransactionModel.txid == txid,
                TransactionModel.vout == vout,
            )
        )
        model = result.scalar_one_or_none()
        return record_from_model(model) if model else None

    async def list_all(self) -> list[TransactionRecord]:
        result = await self.session.execute(select(TransactionModel).order_by(TransactionModel.id))
        return [record_from_model(m) for m in result.scalars().all()]

    async def count(self) -> int:
        result = await self.session.execute(select(sa.func.count()).select_from(TransactionModel))
        return int(result.scalar_one())

    async def upsert_many(
        self,
        key_fields: Iterable[str],
        records: Sequence[TransactionRecord],
    ) -> BatchResult:
        """Apply records in order, replacing matches by selector.

        Each record runs in its own savepoint. The first failure rolls
        back only that savepoint and stops the batch; earlier operations
        stay pending in the session for the caller to commit.

        Args:
            key_fields: Record fields whose values form the selector.
            records: Records to apply, in order.

        Returns:
            BatchResult describing the applied prefix.

        Raises:
            ValueError: If ``key_fields`` is invalid. Raised before any write.
        """
        fields = validate_key_fields(key_fields)
        inserted = 0
        replaced = 0

        for index, record in enumerate(records):
            try:
                async with self.session.begin_nested():
                    was_replaced = await self._upsert_one(fields, record)
            except (SQLAlchemyError, ValueError, OverflowError) as e:
                logger.warning(
                    "Upsert stopped at record %d/%d (txid=%s vout=%s): %s",
                    index + 1,
                    len(records),
                    record.txid,
                    record.vout,
                    e,
                )
                return BatchResult(
                    attempted=len(records),
                    inserted=inserted,
                    replaced=replaced,
                    failed_index=index,
                    error=str(e),
                )
            if was_replaced:
                replaced += 1
            else:
                inserted += 1

        return BatchResult(attempted=len(records), inserted=inserted, replaced=replaced)

    async def _upsert_one(self, fields: frozenset[str], record: TransactionRecord) -> bool:
        """Replace the first row matching the selector, or insert.

        Returns:
            True if an existing row was replaced.
        """
        values = _model_values(record)
        selector = sa.and_(*(KEY_COLUMNS[name] == _selector_value(record, name) for name in sorted(fields)))
        now = datetime.now(UTC)

        result = await self.session.execute(
            select(TransactionModel).where(selector).order_by(TransactionModel.id).limit(1)
        )
        model = result.scalar_one_or_none()

        if model is None:
            self.session.add(TransactionModel(**values, created_at=now, updated_at=now))
            await self.session.flush()
            return False

        for name, value in values.items():
            setattr(model, name, value)
        model.updated_at = now
        await self.session.flush()
        return True
