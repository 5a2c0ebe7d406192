"""
Exception taxonomy. Only InvariantViolation, ConfigError and DataError ever
reach callers; validation and state errors are turned into rejected orders
or False/None results at the engine boundary.
"""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for engine errors."""


class ValidationError(SimulationError):
    """Invalid size, leverage or price at submission."""


class StateError(SimulationError):
    """Operation on an unknown order/position, or refused by netting rules."""


class InvariantViolation(SimulationError):
    """Internal bookkeeping broke (e.g. equity != cash + unrealized P&L). Fatal."""


class ConfigError(ValueError):
    """Invalid configuration value."""


class DataError(ValueError):
    """Malformed or non-chronological market data."""
