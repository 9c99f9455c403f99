"""Dealer sales ledger import: parse, reconcile, validate and batch-commit sales sheets."""

__version__ = "0.1.0"
