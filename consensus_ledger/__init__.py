"""Consensus Ledger: a decision and voting engine for team chat."""

__version__ = "1.0.0"
