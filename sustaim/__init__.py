"""Sustaim: role-gated issuance and retirement ledger for project batches."""

__version__ = "0.1.0"
