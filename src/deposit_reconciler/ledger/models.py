"""Data models for the ledger module."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

# Exact base-unit conversion at 8 decimal places.
AMOUNT_EXPONENT = 8
MIN_CONFIRMATIONS = 6

# Base units are stored in a signed 64-bit column.
MAX_AMOUNT_UNITS = 2**63 - 1

RECORD_FIELDS = ("address", "category", "amount", "confirmations", "txid", "vout")
NATURAL_KEY = frozenset({"txid", "vout"})


class Category(str, Enum):
    """Transaction categories reported by the ledger source."""

    RECEIVE = "receive"
    GENERATE = "generate"
    SEND = "send"
    IMMATURE = "immature"
    ORPHAN = "orphan"


DEPOSIT_CATEGORIES = frozenset({Category.RECEIVE.value, Category.GENERATE.value})


def amount_to_units(amount: Decimal) -> int:
    """Convert an amount to integer base units.

    Raises:
        ValueError: If the amount carries more than 8 decimal places or
            does not fit in a signed 64-bit unit count.
    """
    units = amount.scaleb(AMOUNT_EXPONENT)
    if units != units.to_integral_value():
        raise ValueError(f"amount {amount} has more than {AMOUNT_EXPONENT} decimal places")
    if abs(units) > MAX_AMOUNT_UNITS:
        raise ValueError(f"amount {amount} is out of range")
    return int(units)


def units_to_amount(units: int) -> Decimal:
    """Convert integer base units back to an amount."""
    return Decimal(units).scaleb(-AMOUNT_EXPONENT)


def _json_value(value: Any) -> Any:
    # Extras land in a JSON column; only the amount keeps Decimal precision.
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _json_value(v) for k, v in value.items()}
    return value


def _parse_int(data: dict[str, Any], key: str) -> int:
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


@dataclass(frozen=True)
class TransactionRecord:
    """One observed ledger event, identified by (txid, vout)."""

    txid: str
    vout: int
    address: str
    category: str
    amount: Decimal
    confirmations: int
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransactionRecord":
        """Create a TransactionRecord from a source document.

        Fields other than the six interpreted ones are kept in ``extra``.

        Raises:
            ValueError: If a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise ValueError(f"transaction must be a JSON object, got {type(data).__name__}")
        missing = [name for name in RECORD_FIELDS if name not in data]
        if missing:
            raise ValueError(f"transaction is missing fields: {', '.join(missing)}")

        try:
            amount = Decimal(str(data["amount"]))
        except InvalidOperation as e:
            raise ValueError(f"amount is not a number: {data['amount']!r}") from e
        if not amount.is_finite():
            raise ValueError(f"amount is not finite: {data['amount']!r}")
        amount_to_units(amount)

        confirmations = _parse_int(data, "confirmations")
        if confirmations < 0:
            raise ValueError(f"confirmations must be non-negative, got {confirmations}")

        return cls(
            txid=str(data["txid"]),
            vout=_parse_int(data, "vout"),
            address=str(data["address"]),
            category=str(data["category"]),
            amount=amount,
            confirmations=confirmations,
            extra={k: _json_value(v) for k, v in data.items() if k not in RECORD_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the document form, extras merged back in."""
        return {
            **self.extra,
            "address": self.address,
            "category": self.category,
            "amount": self.amount,
            "confirmations": self.confirmations,
            "txid": self.txid,
            "vout": self.vout,
        }

    @property
    def natural_key(self) -> tuple[str, int]:
        return (self.txid, self.vout)

    @property
    def amount_units(self) -> int:
        return amount_to_units(self.amount)

    @property
    def is_valid_deposit(self) -> bool:
        """Whether this record counts towards deposit aggregates."""
        return (
            self.confirmations >= MIN_CONFIRMATIONS
            and self.amount > 0
            and self.category in DEPOSIT_CATEGORIES
        )


@dataclass(frozen=True)
class LedgerPage:
    """One page of transactions plus the cursor to continue from."""

    records: tuple[TransactionRecord, ...]
    next_cursor: str | None

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> "LedgerPage":
        """Create a LedgerPage from a listsinceblock-shaped response.

        Raises:
            ValueError: If the response or any transaction is malformed.
        """
        if not isinstance(data, dict):
            raise ValueError("response must be a JSON object")
        transactions = data.get("transactions", [])
        if not isinstance(transactions, list):
            raise ValueError("transactions must be a list")
        records = tuple(TransactionRecord.from_dict(t) for t in transactions)

        lastblock = data.get("lastblock")
        return cls(records=records, next_cursor=str(lastblock) if lastblock else None)
