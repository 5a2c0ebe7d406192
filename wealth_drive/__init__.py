"""Leveraged portfolio simulator: order book, position ledger, risk model, statistics."""

__version__ = "0.1.0"
