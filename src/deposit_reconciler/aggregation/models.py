"""Result types produced by the aggregation engine."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

# Bucket id of the single row collecting deposits from unknown addresses.
UNREFERENCED_BUCKET_ID = 0


@dataclass(frozen=True)
class AddressDepositTotal:
    """Valid deposit count and sum for one known address."""

    address: str
    count: int
    total: Decimal

    def to_document(self) -> dict[str, Any]:
        return {"_id": self.address, "count": self.count, "sum": self.total}


@dataclass(frozen=True)
class UnreferencedDepositTotal:
    """Valid deposit count and sum across all addresses outside a known set."""

    count: int
    total: Decimal
    bucket_id: int = UNREFERENCED_BUCKET_ID

    def to_document(self) -> dict[str, Any]:
        return {"_id": self.bucket_id, "count": self.count, "sum": self.total}


@dataclass(frozen=True)
class DepositExtremum:
    """The amount of the smallest or largest valid deposit."""

    amount: Decimal

    def to_document(self) -> dict[str, Any]:
        return {"amount": self.amount}


@dataclass(frozen=True)
class DepositReport:
    """All four aggregates, read in one transaction."""

    referenced: tuple[AddressDepositTotal, ...]
    unreferenced: UnreferencedDepositTotal | None
    smallest: DepositExtremum | None
    largest: DepositExtremum | None

    def total_for(self, address: str) -> AddressDepositTotal | None:
        for row in self.referenced:
            if row.address == address:
                return row
        return None
