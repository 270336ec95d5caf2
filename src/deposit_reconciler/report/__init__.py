"""Reporting - known-address registry and plain-text formatting."""

from deposit_reconciler.report.formatter import ReportFormatter, format_amount
from deposit_reconciler.report.registry import (
    KnownAddressRegistry,
    RegistryError,
    load_registry,
)

__all__ = [
    "KnownAddressRegistry",
    "RegistryError",
    "ReportFormatter",
    "format_amount",
    "load_registry",
]
