"""
Session performance metrics over an equity curve: Sharpe, Sortino, max drawdown,
CAGR, plus trade-level win rate, profit factor and expectancy.
Period returns are bar-to-bar (daily) equity returns.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from wealth_drive.analytics.statistics import TRADING_DAYS_PER_YEAR, cagr


@dataclass
class PerformanceMetrics:
    """Aggregate performance of one session."""
    total_return_pct: float
    cagr_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    max_drawdown_pct: float
    win_rate: float
    profit_factor: float
    expectancy: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_win: float
    avg_loss: float
    final_equity: float


def equity_returns(equity_curve: Sequence[float]) -> List[float]:
    """Simple period returns of an equity curve; periods starting at <= 0 equity are skipped."""
    if len(equity_curve) < 2:
        return []
    arr = np.asarray(equity_curve, dtype=float)
    prev, curr = arr[:-1], arr[1:]
    mask = prev > 0
    return ((curr[mask] - prev[mask]) / prev[mask]).tolist()


def sharpe_ratio(returns: List[float], risk_free_rate: float = 0.0,
                 periods_per_year: float = TRADING_DAYS_PER_YEAR) -> float:
    """Annualized Sharpe of period returns."""
    if not returns:
        return 0.0
    arr = np.array(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    if excess.std() <= 1e-12:
        return 0.0
    return float(np.sqrt(periods_per_year) * excess.mean() / excess.std())


def sortino_ratio(returns: List[float], risk_free_rate: float = 0.0,
                  periods_per_year: float = TRADING_DAYS_PER_YEAR) -> float:
    """Annualized Sortino (downside deviation). Falls back to Sharpe without downside."""
    if not returns:
        return 0.0
    arr = np.array(returns, dtype=float)
    excess = arr - risk_free_rate / periods_per_year
    downside = arr[arr < 0]
    if len(downside) < 2 or downside.std() <= 1e-12:
        return sharpe_ratio(returns, risk_free_rate, periods_per_year)
    return float(np.sqrt(periods_per_year) * excess.mean() / downside.std())


def max_drawdown(equity_curve: Sequence[float]) -> float:
    """Max drawdown of an equity curve in percent, as a negative number (-15.0 = 15%)."""
    if len(equity_curve) == 0:
        return 0.0
    arr = np.asarray(equity_curve, dtype=float)
    peak = np.maximum.accumulate(arr)
    dd = (arr - peak) / np.where(peak > 0, peak, 1)
    return float(np.min(dd)) * 100.0


def win_rate(pnls: List[float]) -> float:
    """Fraction of trades with positive PnL."""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def profit_factor(pnls: List[float]) -> float:
    """Gross profit / gross loss. inf without losses, 0 without trades."""
    wins = sum(p for p in pnls if p > 0)
    losses = sum(-p for p in pnls if p < 0)
    if losses <= 0:
        return float("inf") if wins > 0 else 0.0
    return wins / losses


def expectancy(pnls: List[float]) -> float:
    """Average PnL per trade."""
    if not pnls:
        return 0.0
    return sum(pnls) / len(pnls)


def compute_metrics(
    pnls: List[float],
    equity_curve: Optional[Sequence[float]] = None,
    initial_capital: Optional[float] = None,
    risk_free_rate: float = 0.0,
    periods_per_year: float = TRADING_DAYS_PER_YEAR,
) -> PerformanceMetrics:
    """
    Full metrics for a session.
    equity_curve: equity after each bar. If None it is rebuilt from the trade
    PnLs on top of initial_capital (default 1.0), one point per trade.
    """
    start = initial_capital if initial_capital is not None else 1.0
    if equity_curve is None or len(equity_curve) == 0:
        equity = start
        curve = [start]
        for p in pnls:
            equity += p
            curve.append(equity)
    else:
        curve = [start] + list(equity_curve) if initial_capital is not None else list(equity_curve)

    rets = equity_returns(curve)
    first, last = curve[0], curve[-1]
    total_return_pct = (last / first - 1.0) * 100.0 if first > 0 else 0.0
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p <= 0]
    return PerformanceMetrics(
        total_return_pct=total_return_pct,
        cagr_pct=cagr(last, first, len(curve) - 1, periods_per_year) * 100.0,
        sharpe_ratio=sharpe_ratio(rets, risk_free_rate, periods_per_year),
        sortino_ratio=sortino_ratio(rets, risk_free_rate, periods_per_year),
        max_drawdown_pct=max_drawdown(curve),
        win_rate=win_rate(pnls),
        profit_factor=profit_factor(pnls),
        expectancy=expectancy(pnls),
        total_trades=len(pnls),
        winning_trades=len(wins),
        losing_trades=len(losses),
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        final_equity=last,
    )
