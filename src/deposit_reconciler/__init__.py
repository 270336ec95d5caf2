"""Deposit Reconciler - ledger ingestion and valid-deposit reporting."""

__version__ = "0.1.0"
