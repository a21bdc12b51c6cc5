"""Capture pipeline core: items, job queue, credit ledger, and capture guards."""

__version__ = "0.1.0"
