"""Validity-filtered deposit aggregates over the record store.

A valid deposit has at least 6 confirmations, a positive amount, and
belongs to the "receive" or "generate" category. The predicate is
evaluated in SQL at query time and never cached.

Extremum queries break ties by whatever order the database returns
rows in. Which of several equal deposits is returned is unspecified;
only its amount is meaningful.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from deposit_reconciler.aggregation.models import (
    AddressDepositTotal,
    DepositExtremum,
    DepositReport,
    UnreferencedDepositTotal,
)
from deposit_reconciler.ledger.models import DEPOSIT_CATEGORIES, MIN_CONFIRMATIONS, units_to_amount
from deposit_reconciler.storage.models import TransactionModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from deposit_reconciler.storage.database import DatabaseManager

logger = logging.getLogger(__name__)


class AggregationQueryError(Exception):
    """Raised when an aggregate query fails against the store."""


def valid_deposit_clause() -> sa.ColumnElement[bool]:
    """SQL form of TransactionRecord.is_valid_deposit."""
    return sa.and_(
        TransactionModel.confirmations >= MIN_CONFIRMATIONS,
        TransactionModel.amount_units > 0,
        TransactionModel.category.in_(sorted(DEPOSIT_CATEGORIES)),
    )


def _address_list(addresses: Iterable[str]) -> list[str]:
    return sorted(set(addresses))


async def _sum_by_known_addresses(
    session: AsyncSession, addresses: list[str]
) -> list[AddressDepositTotal]:
    stmt = (
        select(
            TransactionModel.address,
            func.count().label("deposit_count"),
            func.sum(TransactionModel.amount_units).label("total_units"),
        )
        .where(valid_deposit_clause(), TransactionModel.address.in_(addresses))
        .group_by(TransactionModel.address)
        .order_by(TransactionModel.address)
    )
    result = await session.execute(stmt)
    return [
        AddressDepositTotal(
            address=row.address,
            count=int(row.deposit_count),
            total=units_to_amount(int(row.total_units)),
        )
        for row in result
    ]


async def _sum_by_unknown_addresses(
    session: AsyncSession, addresses: list[str]
) -> UnreferencedDepositTotal | None:
    stmt = select(
        func.count().label("deposit_count"),
        func.sum(TransactionModel.amount_units).label("total_units"),
    ).where(valid_deposit_clause(), TransactionModel.address.not_in(addresses))
    row = (await session.execute(stmt)).one()
    if not row.deposit_count:
        return None
    return UnreferencedDepositTotal(
        count=int(row.deposit_count),
        total=units_to_amount(int(row.total_units)),
    )


async def _extremum(session: AsyncSession, *, largest: bool) -> DepositExtremum | None:
    order = TransactionModel.amount_units.desc() if largest else TransactionModel.amount_units.asc()
    stmt = select(TransactionModel.amount_units).where(valid_deposit_clause()).order_by(order).limit(1)
    units = (await session.execute(stmt)).scalar_one_or_none()
    return DepositExtremum(amount=units_to_amount(int(units))) if units is not None else None


class DepositAggregator:
    """Read-only deposit statistics over the record store.

    Each public query runs in its own session. Use build_report() when
    all four figures must come from the same read transaction.

    Example:
        ```python
        async with DatabaseManager(settings.database.url) as db:
            aggregator = DepositAggregator(db)
            rows = await aggregator.sum_by_known_addresses(registry.addresses)
        ```
    """

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def sum_by_known_addresses(self, addresses: Iterable[str]) -> list[AddressDepositTotal]:
        """Group valid deposits by address, for addresses in the set.

        Addresses without any valid deposit have no row.
        """
        address_list = _address_list(addresses)
        try:
            async with self._db.get_async_session() as session:
                return await _sum_by_known_addresses(session, address_list)
        except SQLAlchemyError as e:
            raise AggregationQueryError(f"Failed to sum deposits for known addresses: {e}") from e

    async def sum_by_unknown_addresses(
        self, addresses: Iterable[str]
    ) -> UnreferencedDepositTotal | None:
        """Collapse valid deposits from addresses outside the set into one bucket."""
        address_list = _address_list(addresses)
        try:
            async with self._db.get_async_session() as session:
                return await _sum_by_unknown_addresses(session, address_list)
        except SQLAlchemyError as e:
            raise AggregationQueryError(f"Failed to sum deposits for unknown addresses: {e}") from e

    async def max_valid_deposit(self) -> DepositExtremum | None:
        try:
            async with self._db.get_async_session() as session:
                return await _extremum(session, largest=True)
        except SQLAlchemyError as e:
            raise AggregationQueryError(f"Failed to find largest valid deposit: {e}") from e

    async def min_valid_deposit(self) -> DepositExtremum | None:
        try:
            async with self._db.get_async_session() as session:
                return await _extremum(session, largest=False)
        except SQLAlchemyError as e:
            raise AggregationQueryError(f"Failed to find smallest valid deposit: {e}") from e

    async def build_report(self, addresses: Iterable[str]) -> DepositReport:
        """Run all four aggregates in a single session."""
        address_list = _address_list(addresses)
        try:
            async with self._db.get_async_session() as session:
                referenced = await _sum_by_known_addresses(session, address_list)
                unreferenced = await _sum_by_unknown_addresses(session, address_list)
                smallest = await _extremum(session, largest=False)
                largest = await _extremum(session, largest=True)
        except SQLAlchemyError as e:
            raise AggregationQueryError(f"Failed to build deposit report: {e}") from e

        logger.info(
            "Deposit report built: %d known addresses with deposits, %d unreferenced deposits",
            len(referenced),
            unreferenced.count if unreferenced else 0,
        )
        return DepositReport(
            referenced=tuple(referenced),
            unreferenced=unreferenced,
            smallest=smallest,
            largest=largest,
        )
