"""
Position ledger: netting, P&L, cash, equity, drawdown and portfolio stress.

Cash is the settled account value. Opening a position reserves margin out of
cash without moving it, so equity is always cash plus open unrealized P&L.
Realized P&L (net of commission) settles into cash on close.
"""

from __future__ import annotations
import copy
import logging
import math
from typing import List, Optional

from wealth_drive.core.config import EngineConfig
from wealth_drive.core.errors import InvariantViolation, StateError, ValidationError
from wealth_drive.core.types import (
    ClosedPosition,
    CloseReason,
    PortfolioState,
    Position,
    PositionDirection,
)
from wealth_drive.risk import model

logger = logging.getLogger("wealth_drive.portfolio")


def position_pnl(position: Position, price: float) -> float:
    """(price - entry) x sign x units x leverage."""
    return (price - position.entry_price) * position.direction.sign * position.units * position.leverage


class PositionLedger:
    """Single writer of the PortfolioState. At most one open position per direction."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.reset()

    def reset(self) -> None:
        capital = self.config.initial_capital
        self.state = PortfolioState(initial_capital=capital, cash=capital, equity=capital, peak_equity=capital)
        self._next_id = 1

    def _new_id(self) -> str:
        position_id = f"pos_{self._next_id}"
        self._next_id += 1
        return position_id

    # --- lookups ---

    def get(self, position_id: str) -> Optional[Position]:
        for p in self.state.positions:
            if p.id == position_id:
                return p
        return None

    def find(self, direction: PositionDirection) -> Optional[Position]:
        for p in self.state.positions:
            if p.direction is direction:
                return p
        return None

    @property
    def has_positions(self) -> bool:
        return bool(self.state.positions)

    # --- mutations ---

    def open_position(
        self,
        direction: PositionDirection,
        entry_price: float,
        size: float,
        leverage: float,
        order_id: str,
        tick: int,
        date: str = "",
    ) -> Position:
        """
        Commit `size` of available cash as margin. Raises StateError when a
        position in the same direction is already open or no cash is free.
        """
        if not math.isfinite(entry_price) or entry_price <= 0:
            raise ValidationError(f"entry price {entry_price} must be a positive number")
        if self.find(direction) is not None:
            raise StateError(f"a {direction.value} position is already open")
        available = self.state.available_cash
        if available <= 0:
            raise StateError(f"no available cash ({available:.2f})")
        margin = available * size
        position = Position(
            id=self._new_id(),
            direction=direction,
            entry_price=entry_price,
            entry_tick=tick,
            entry_date=date,
            size=size,
            margin=margin,
            units=margin / entry_price,
            leverage=leverage,
            opening_order_id=order_id,
            current_price=entry_price,
        )
        self.state.positions.append(position)
        self.state.margin_used += margin
        logger.info("Opened %s %s: margin=%.2f entry=%.4f lev=%.2f",
                    position.id, direction.value, margin, entry_price, leverage)
        return copy.copy(position)

    def close_position(
        self,
        position_id: str,
        exit_price: float,
        tick: int,
        reason: CloseReason = CloseReason.MANUAL,
    ) -> ClosedPosition:
        position = self.get(position_id)
        if position is None:
            raise StateError(f"unknown position {position_id}")
        if not math.isfinite(exit_price) or exit_price <= 0:
            raise ValidationError(f"exit price {exit_price} must be a positive number")

        pnl = position_pnl(position, exit_price)
        commission = self.config.commission
        realized = pnl - commission
        trade = ClosedPosition(
            id=position.id,
            direction=position.direction,
            entry_price=position.entry_price,
            entry_tick=position.entry_tick,
            exit_price=exit_price,
            exit_tick=tick,
            size=position.size,
            margin=position.margin,
            leverage=position.leverage,
            realized_pnl=realized,
            realized_pnl_percent=pnl / position.margin * 100.0 if position.margin > 0 else 0.0,
            holding_period=tick - position.entry_tick,
            close_reason=reason,
            commission=commission,
        )
        self.state.positions = [p for p in self.state.positions if p.id != position_id]
        self.state.closed_positions.append(trade)
        self.state.cash += realized
        self.state.total_realized_pnl += realized
        self.state.margin_used = math.fsum(p.margin for p in self.state.positions)
        logger.info("Closed %s (%s) at %.4f: pnl=%.2f", position_id, reason.value, exit_price, realized)
        return trade

    def revalue(self, price: float) -> None:
        """Mark every open position to `price`."""
        if not math.isfinite(price) or price <= 0:
            raise ValidationError(f"mark price {price} must be a positive number")
        for p in self.state.positions:
            p.current_price = price
            p.unrealized_pnl = position_pnl(p, price)
            p.unrealized_pnl_percent = p.unrealized_pnl / p.margin * 100.0 if p.margin > 0 else 0.0

    def recompute(self) -> PortfolioState:
        """Derive equity and every risk figure from the revalued positions."""
        s = self.state
        s.total_unrealized_pnl = math.fsum(p.unrealized_pnl for p in s.positions)
        s.equity = s.cash + s.total_unrealized_pnl
        s.margin_used = math.fsum(p.margin for p in s.positions)
        s.total_exposure = math.fsum(p.size for p in s.positions)
        s.margin_usage = s.margin_used / s.equity if s.equity > 0 else (1.0 if s.margin_used > 0 else 0.0)
        s.accumulated_return = (s.equity - s.initial_capital) / s.initial_capital * 100.0
        s.peak_equity = max(s.peak_equity, s.equity)
        s.drawdown = model.drawdown_from_peak(s.peak_equity, s.equity)
        s.max_drawdown = max(s.max_drawdown, s.drawdown)
        s.recovery_needed = model.recovery_needed(s.drawdown)
        s.raw_stress, s.stress_level = model.portfolio_stress(
            s.total_exposure, s.drawdown, s.total_unrealized_pnl < 0
        )
        return s

    def check_invariant(self) -> None:
        """Equity must equal cash plus open unrealized P&L. Fatal otherwise."""
        s = self.state
        expected = s.cash + math.fsum(p.unrealized_pnl for p in s.positions)
        if not math.isfinite(s.equity) or not math.isfinite(expected):
            raise InvariantViolation(f"non-finite equity: equity={s.equity} cash={s.cash}")
        if not math.isclose(s.equity, expected, rel_tol=1e-12, abs_tol=1e-9):
            raise InvariantViolation(f"equity {s.equity} != cash + unrealized {expected}")

    def effective_leverage(self) -> float:
        """Margin-weighted leverage of the open positions (1.0 when flat)."""
        total_margin = math.fsum(p.margin for p in self.state.positions)
        if total_margin <= 0:
            return 1.0
        return math.fsum(p.margin * p.leverage for p in self.state.positions) / total_margin

    def snapshot(self) -> PortfolioState:
        return copy.deepcopy(self.state)

    def open_positions(self) -> List[Position]:
        return [copy.copy(p) for p in self.state.positions]
