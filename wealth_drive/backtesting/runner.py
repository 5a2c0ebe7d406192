"""
Session runners: drive a BacktestEngine with a strategy, or a WealthEngine
straight from the bar series. Decisions use closed bars only; orders fill
from the next bar's open.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from wealth_drive.analytics.metrics import PerformanceMetrics
from wealth_drive.backtesting.engine import BacktestEngine
from wealth_drive.core.types import ClosedPosition, Order, PortfolioState, Statistics, TickRecord
from wealth_drive.data.loader import enrich_frame, frame_to_bars
from wealth_drive.risk.wealth import WealthEngine
from wealth_drive.strategies.base import BaseStrategy, IntentAction, OrderIntent

logger = logging.getLogger("wealth_drive.backtest.runner")


@dataclass
class SessionResult:
    """Order-driven session output."""
    ticks: List[TickRecord] = field(default_factory=list)
    trades: List[ClosedPosition] = field(default_factory=list)
    statistics: Optional[Statistics] = None
    metrics: Optional[PerformanceMetrics] = None
    portfolio: Optional[PortfolioState] = None

    @property
    def equity_curve(self) -> List[float]:
        return [t.equity for t in self.ticks]


@dataclass
class WealthSessionResult:
    """Wealth-engine session output."""
    summary: dict = field(default_factory=dict)
    wealth_curve: List[float] = field(default_factory=list)
    water_curve: List[float] = field(default_factory=list)
    bars_used: int = 0


def apply_intent(engine: BacktestEngine, intent: OrderIntent) -> Optional[Order]:
    """Translate a price-based intent into engine orders (levels on the return axis)."""
    if intent.action is IntentAction.CLOSE:
        if intent.position_id is None:
            return None
        return engine.close_position(intent.position_id)

    stop_level = engine.price_to_return(intent.stop_price) if intent.stop_price else None
    tp_level = engine.price_to_return(intent.take_profit_price) if intent.take_profit_price else None
    trailing = None
    if intent.trailing_distance_price and engine.base_price:
        trailing = intent.trailing_distance_price / engine.base_price * 100.0
    if stop_level is None and tp_level is None and trailing is None:
        return engine.submit_market_order(intent.side, intent.size, intent.leverage)
    return engine.submit_bracket_order(
        intent.side, intent.size, intent.leverage,
        stop_loss=stop_level, take_profit=tp_level, trailing_distance=trailing,
    )


def run_session(
    engine: BacktestEngine,
    strategy: BaseStrategy,
    frame: pd.DataFrame,
    liquidate_at_end: bool = True,
) -> SessionResult:
    """
    Load `frame` (OHLCV) into the engine and run it to the end, asking the
    strategy for an intent after every processed bar.
    """
    engine.load_data(frame_to_bars(frame))
    df = strategy.compute_indicators(enrich_frame(frame)).reset_index(drop=True)
    ticks: List[TickRecord] = []
    while True:
        record = engine.tick()
        if record is None:
            break
        ticks.append(record)
        if engine.is_at_end():
            break
        intent = strategy.decide(df.iloc[: record.index + 1], engine.get_portfolio())
        if intent is not None:
            logger.debug("Tick %d intent: %s %s", record.index, intent.action.value, intent.reason)
            apply_intent(engine, intent)
    if liquidate_at_end:
        closed = engine.liquidate_all_positions()
        if closed:
            logger.info("Closed %d open position(s) at end of data", closed)

    portfolio = engine.get_portfolio()
    return SessionResult(
        ticks=engine.get_tick_history(),
        trades=list(portfolio.closed_positions),
        statistics=engine.get_statistics(),
        metrics=engine.get_performance(),
        portfolio=portfolio,
    )


def run_wealth_session(engine: WealthEngine, frame: pd.DataFrame) -> WealthSessionResult:
    """
    Feed each bar's close-to-close return into the wealth engine, with the bar's
    intraday roughness as volatility. Stops at the first terminal state.
    """
    df = enrich_frame(frame).reset_index(drop=True)
    bars = frame_to_bars(df)
    wealth_curve = [engine.wealth]
    water_curve = [engine.snapshot().water_level]
    prev_close: Optional[float] = None
    used = 0
    for bar, roughness in zip(bars, df["roughness"]):
        if not engine.snapshot().is_running:
            break
        engine.update_from_bar(bar, prev_close, volatility=float(roughness))
        prev_close = bar.close
        used += 1
        wealth_curve.append(engine.wealth)
        water_curve.append(engine.snapshot().water_level)
    summary = engine.summary()
    logger.info("Wealth session: %s after %d bars, wealth %.2f", summary["result"], used, summary["final_wealth"])
    return WealthSessionResult(summary=summary, wealth_curve=wealth_curve, water_curve=water_curve, bars_used=used)
