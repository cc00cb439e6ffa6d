"""Persistence — the run ledger."""
