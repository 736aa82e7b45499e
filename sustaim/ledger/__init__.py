"""Batch ledger: projects, balances, counters, persistence and audit."""
