"""Core: config, types, events, errors, logging."""

from wealth_drive.core.config import load_config, Config, EngineConfig, WealthConfig
from wealth_drive.core.errors import (
    SimulationError,
    ValidationError,
    StateError,
    InvariantViolation,
    ConfigError,
    DataError,
)
from wealth_drive.core.events import EngineEvent, EventChannel, EventType
from wealth_drive.core.logger import setup_logging
from wealth_drive.core.types import (
    Bar,
    ClosedPosition,
    CloseReason,
    CrashCause,
    Fill,
    GameResult,
    Order,
    OrderKind,
    OrderSide,
    OrderState,
    PortfolioState,
    Position,
    PositionDirection,
    Statistics,
    TickRecord,
    WealthState,
)

__all__ = [
    "load_config",
    "Config",
    "EngineConfig",
    "WealthConfig",
    "SimulationError",
    "ValidationError",
    "StateError",
    "InvariantViolation",
    "ConfigError",
    "DataError",
    "EngineEvent",
    "EventChannel",
    "EventType",
    "setup_logging",
    "Bar",
    "ClosedPosition",
    "CloseReason",
    "CrashCause",
    "Fill",
    "GameResult",
    "Order",
    "OrderKind",
    "OrderSide",
    "OrderState",
    "PortfolioState",
    "Position",
    "PositionDirection",
    "Statistics",
    "TickRecord",
    "WealthState",
]
