"""
Incremental trade statistics and CAGR.
"""

from __future__ import annotations
import logging
from dataclasses import replace

from wealth_drive.core.types import ClosedPosition, Statistics

logger = logging.getLogger("wealth_drive.analytics.statistics")

TRADING_DAYS_PER_YEAR = 252


def cagr(
    wealth: float,
    starting_wealth: float,
    days_elapsed: float,
    trading_days_per_year: float = TRADING_DAYS_PER_YEAR,
) -> float:
    """Compound annual growth rate as a fraction (1.0 = 100%)."""
    if days_elapsed < 1 or starting_wealth <= 0:
        return 0.0
    ratio = max(0.0, wealth) / starting_wealth
    return ratio ** (trading_days_per_year / days_elapsed) - 1.0


class StatisticsTracker:
    """
    Running win/loss aggregates, updated once per closed trade.
    A trade counts as a win only when its realized P&L is strictly positive.
    """

    def __init__(self) -> None:
        self._stats = Statistics()

    def reset(self) -> None:
        self._stats = Statistics()

    def record(self, trade: ClosedPosition) -> Statistics:
        return self.record_pnl(trade.realized_pnl)

    def record_pnl(self, pnl: float) -> Statistics:
        s = self._stats
        s.total_trades += 1
        s.total_pnl += pnl
        if pnl > 0:
            s.winning_trades += 1
            s.avg_win = (s.avg_win * (s.winning_trades - 1) + pnl) / s.winning_trades
            s.gross_profit += pnl
            s.best_trade = max(s.best_trade, pnl)
            s.current_streak += 1
            s.best_streak = max(s.best_streak, s.current_streak)
        else:
            s.losing_trades += 1
            s.avg_loss = (s.avg_loss * (s.losing_trades - 1) + pnl) / s.losing_trades
            s.gross_loss += -pnl
            s.worst_trade = min(s.worst_trade, pnl)
            s.current_streak = 0
        s.win_rate = s.winning_trades / s.total_trades
        logger.debug("Trade recorded pnl=%.2f win_rate=%.2f streak=%d", pnl, s.win_rate, s.current_streak)
        return self.snapshot()

    def snapshot(self) -> Statistics:
        return replace(self._stats)
