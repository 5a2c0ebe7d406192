"""
Core data types: bars, orders, positions, trades, portfolio and wealth state.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class PositionDirection(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is PositionDirection.LONG else -1

    @classmethod
    def from_side(cls, side: OrderSide) -> "PositionDirection":
        return cls.LONG if side is OrderSide.BUY else cls.SHORT

    @property
    def closing_side(self) -> OrderSide:
        return OrderSide.SELL if self is PositionDirection.LONG else OrderSide.BUY


class OrderKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"

    @property
    def is_stop(self) -> bool:
        return self in (OrderKind.STOP_LOSS, OrderKind.TAKE_PROFIT, OrderKind.TRAILING_STOP)


class OrderState(str, Enum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    TRIGGERED = "triggered"


TERMINAL_ORDER_STATES = frozenset(
    {OrderState.FILLED, OrderState.CANCELLED, OrderState.REJECTED, OrderState.TRIGGERED}
)


class CloseReason(str, Enum):
    MANUAL = "manual"
    OPPOSITE_FILL = "opposite_fill"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    TRAILING_STOP = "trailing_stop"
    MARGIN_CALL = "margin_call"
    END_OF_DATA = "end_of_data"


class GameResult(str, Enum):
    RUNNING = "running"
    TARGET_REACHED = "target_reached"
    BANKRUPT = "bankrupt"
    MARGIN_CALLED = "margin_called"
    BEHIND_BASELINE = "behind_baseline"
    CRASHED = "crashed"


class CrashCause(str, Enum):
    FLIP = "flip"            # over-leveraged reversal
    FALL = "fall"            # total wipeout
    MARGIN_CALL = "margin_call"
    STRESS = "stress"        # stress overload


@dataclass(frozen=True)
class Bar:
    """OHLCV bar. Immutable once ingested."""
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0


@dataclass
class Order:
    """Order in the book. Mutated only by the order book until terminal."""
    id: str
    side: OrderSide
    kind: OrderKind
    size: float
    leverage: float
    created_at_tick: int
    state: OrderState = OrderState.PENDING
    price: Optional[float] = None
    price_level: Optional[float] = None       # accumulated return (%) for stop kinds
    filled_at_tick: Optional[int] = None
    filled_price: Optional[float] = None
    linked_order_id: Optional[str] = None
    trailing_distance: Optional[float] = None
    high_water_mark: Optional[float] = None   # most favourable return seen (trailing)
    pending_stop_loss: Optional[float] = None
    pending_take_profit: Optional[float] = None
    pending_trailing_distance: Optional[float] = None
    closes_position_id: Optional[str] = None
    rejection_reason: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_ORDER_STATES

    @property
    def is_bracket(self) -> bool:
        return (
            self.pending_stop_loss is not None
            or self.pending_take_profit is not None
            or self.pending_trailing_distance is not None
        )


@dataclass(frozen=True)
class Fill:
    """One executed order."""
    order_id: str
    position_id: str
    side: OrderSide
    size: float
    price: float
    tick: int
    date: str
    opens_position: bool = True


@dataclass
class Position:
    """Open position state, revalued every tick."""
    id: str
    direction: PositionDirection
    entry_price: float
    entry_tick: int
    entry_date: str
    size: float          # fraction of available cash at entry
    margin: float        # dollars reserved from cash
    units: float         # margin / entry_price
    leverage: float
    opening_order_id: str
    current_price: float = 0.0
    unrealized_pnl: float = 0.0
    unrealized_pnl_percent: float = 0.0


@dataclass(frozen=True)
class ClosedPosition:
    """Closed trade for statistics. Append-only."""
    id: str
    direction: PositionDirection
    entry_price: float
    entry_tick: int
    exit_price: float
    exit_tick: int
    size: float
    margin: float
    leverage: float
    realized_pnl: float
    realized_pnl_percent: float
    holding_period: int
    close_reason: CloseReason
    commission: float = 0.0


@dataclass
class PortfolioState:
    """Single mutable portfolio owned by the ledger."""
    initial_capital: float
    cash: float
    equity: float
    peak_equity: float
    positions: List[Position] = field(default_factory=list)
    closed_positions: List[ClosedPosition] = field(default_factory=list)
    total_exposure: float = 0.0
    total_unrealized_pnl: float = 0.0
    total_realized_pnl: float = 0.0
    margin_used: float = 0.0
    margin_usage: float = 0.0
    accumulated_return: float = 0.0
    drawdown: float = 0.0
    max_drawdown: float = 0.0
    recovery_needed: float = 0.0
    raw_stress: float = 0.0
    stress_level: float = 0.0

    @property
    def available_cash(self) -> float:
        return self.cash - self.margin_used


@dataclass
class WealthState:
    """Aggregate single-position state of the wealth engine."""
    wealth: float
    starting_wealth: float
    target_wealth: float
    peak_wealth: float
    leverage: float
    cash_buffer: float
    stress: float
    stability: float
    water_level: float
    drowning_timer: int
    days_traded: int
    game_result: GameResult = GameResult.RUNNING
    crash_cause: Optional[CrashCause] = None

    @property
    def is_running(self) -> bool:
        return self.game_result is GameResult.RUNNING


@dataclass
class Statistics:
    """Running trade statistics."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    win_rate: float = 0.0
    current_streak: int = 0
    best_streak: int = 0
    total_pnl: float = 0.0
    best_trade: float = 0.0
    worst_trade: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0

    @property
    def profit_factor(self) -> float:
        if self.gross_loss <= 0:
            return float("inf") if self.gross_profit > 0 else 0.0
        return self.gross_profit / self.gross_loss


@dataclass
class TickRecord:
    """Result of one engine tick."""
    index: int
    date: str
    price: float
    market_return: float
    equity: float
    cash: float
    accumulated_return: float
    drawdown: float
    margin_call: bool = False
    events: list = field(default_factory=list)
