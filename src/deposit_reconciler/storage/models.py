"""SQLAlchemy models for persistent storage.

This module defines the database schema for reconciled wallet
transactions. Amounts are stored as integer base units so sums and
comparisons stay exact on every backend.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TransactionModel(Base):
    """One observed transaction output, keyed by (txid, vout)."""

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    txid: Mapped[str] = mapped_column(String(64), nullable=False)
    vout: Mapped[int] = mapped_column(Integer, nullable=False)
    address: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)

    # 1 unit = 0.00000001
    amount_units: Mapped[int] = mapped_column(BigInteger, nullable=False)
    confirmations: Mapped[int] = mapped_column(Integer, nullable=False)

    # Source fields the core does not interpret, overwritten with the record.
    extra: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("txid", "vout", name="uq_transactions_output"),
        Index("idx_transactions_address", "address"),
        Index("idx_transactions_category_confirmations", "category", "confirmations"),
    )
