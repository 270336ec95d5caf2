"""Aggregation engine - validity-filtered deposit statistics."""

from deposit_reconciler.aggregation.engine import (
    AggregationQueryError,
    DepositAggregator,
    valid_deposit_clause,
)
from deposit_reconciler.aggregation.models import (
    UNREFERENCED_BUCKET_ID,
    AddressDepositTotal,
    DepositExtremum,
    DepositReport,
    UnreferencedDepositTotal,
)

__all__ = [
    "AddressDepositTotal",
    "AggregationQueryError",
    "DepositAggregator",
    "DepositExtremum",
    "DepositReport",
    "UNREFERENCED_BUCKET_ID",
    "UnreferencedDepositTotal",
    "valid_deposit_clause",
]
