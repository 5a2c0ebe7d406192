from wealth_drive.analytics.indicators import IndicatorSnapshot, add_indicators, indicator_snapshot
from wealth_drive.analytics.metrics import (
    PerformanceMetrics,
    compute_metrics,
    equity_returns,
    expectancy,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)
from wealth_drive.analytics.statistics import TRADING_DAYS_PER_YEAR, StatisticsTracker, cagr

__all__ = [
    "IndicatorSnapshot",
    "add_indicators",
    "indicator_snapshot",
    "PerformanceMetrics",
    "compute_metrics",
    "equity_returns",
    "expectancy",
    "max_drawdown",
    "profit_factor",
    "sharpe_ratio",
    "sortino_ratio",
    "win_rate",
    "TRADING_DAYS_PER_YEAR",
    "StatisticsTracker",
    "cagr",
]
