"""Plain-text deposit report formatter.

This module turns a DepositReport into the human-readable lines printed
by the command line, resolving addresses through the known-address
registry.
"""

from __future__ import annotations

from decimal import Decimal

from deposit_reconciler.aggregation.models import DepositExtremum, DepositReport
from deposit_reconciler.report.registry import KnownAddressRegistry

AMOUNT_PLACES = Decimal("0.00000001")
MISSING_VALUE = "n/a"


def format_amount(amount: Decimal) -> str:
    """Format an amount with exactly 8 decimal places."""
    return f"{amount.quantize(AMOUNT_PLACES):f}"


def _format_extremum(extremum: DepositExtremum | None) -> str:
    return format_amount(extremum.amount) if extremum else MISSING_VALUE


class ReportFormatter:
    """Formats deposit reports against a known-address registry.

    Every registry entry gets a line, in registry order. Addresses with no
    valid deposits are reported as zero rather than skipped.
    """

    def __init__(self, registry: KnownAddressRegistry) -> None:
        self._registry = registry

    def format_lines(self, report: DepositReport) -> list[str]:
        lines: list[str] = []
        for address, name in self._registry.items():
            row = report.total_for(address)
            count = row.count if row else 0
            total = row.total if row else Decimal(0)
            lines.append(f"Deposited for {name}: count={count} sum={format_amount(total)}")

        unreferenced = report.unreferenced
        lines.append(
            "Deposited without reference: "
            f"count={unreferenced.count if unreferenced else 0} "
            f"sum={format_amount(unreferenced.total if unreferenced else Decimal(0))}"
        )
        lines.append(f"Smallest valid deposit: {_format_extremum(report.smallest)}")
        lines.append(f"Largest valid deposit: {_format_extremum(report.largest)}")
        return lines

    def format_text(self, report: DepositReport) -> str:
        return "\n".join(self.format_lines(report))
