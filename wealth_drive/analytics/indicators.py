"""
Market condition indicators per bar, in three groups:
volatility (return ATR, return std, annualised vol), momentum (RSI on daily
returns, half-window MA trend, rate of change) and value (window drawdown,
distance from MA, z-score). Each group also gets a condition label.
Values stay at their neutral default until the window has filled.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd

from wealth_drive.analytics.statistics import TRADING_DAYS_PER_YEAR
from wealth_drive.data.loader import enrich_frame

ATR_PERIOD = 14
VOLATILITY_PERIOD = 20
RSI_PERIOD = 14
MOMENTUM_PERIOD = 10
TREND_PERIOD = 20
MA_PERIOD = 20
DRAWDOWN_WINDOW = 50


@dataclass
class IndicatorSnapshot:
    """Indicator values of a single bar."""
    atr: float = 0.0
    return_std: float = 0.0
    vix: float = 0.0
    volatility_label: str = "LOW"
    rsi: float = 50.0
    trend: float = 0.0
    roc: float = 0.0
    momentum_label: str = "NEUTRAL"
    drawdown: float = 0.0
    distance_from_ma: float = 0.0
    relative_value: float = 0.0
    value_label: str = "FAIR"

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


def volatility_label(return_std: pd.Series) -> pd.Series:
    labels = np.select(
        [return_std < 1, return_std < 2, return_std < 4],
        ["LOW", "NORMAL", "HIGH"],
        default="EXTREME",
    )
    return pd.Series(labels, index=return_std.index)


def momentum_label(rsi: pd.Series, trend: pd.Series) -> pd.Series:
    labels = np.select(
        [(rsi > 70) & (trend > 0), (rsi < 30) & (trend < 0), trend > 1, trend < -1],
        ["OVERBOUGHT", "OVERSOLD", "BULLISH", "BEARISH"],
        default="NEUTRAL",
    )
    return pd.Series(labels, index=rsi.index)


def value_label(drawdown: pd.Series, distance_from_ma: pd.Series) -> pd.Series:
    labels = np.select(
        [drawdown < -20, drawdown < -10, distance_from_ma > 10, distance_from_ma < -10],
        ["CRASHED", "CORRECTION", "EXTENDED", "UNDERVALUED"],
        default="FAIR",
    )
    return pd.Series(labels, index=drawdown.index)


def add_indicators(
    df: pd.DataFrame,
    atr_period: int = ATR_PERIOD,
    volatility_period: int = VOLATILITY_PERIOD,
    rsi_period: int = RSI_PERIOD,
    momentum_period: int = MOMENTUM_PERIOD,
    trend_period: int = TREND_PERIOD,
    ma_period: int = MA_PERIOD,
    drawdown_window: int = DRAWDOWN_WINDOW,
) -> pd.DataFrame:
    """
    Add the indicator columns to an OHLCV frame (daily_return is derived when
    missing). All percentages are in percent points.
    """
    if "daily_return" not in df.columns:
        df = enrich_frame(df)
    df = df.copy()
    close = df["close"]
    returns = df["daily_return"]

    # volatility
    df["atr"] = returns.abs().rolling(atr_period).mean().fillna(0.0)
    df["return_std"] = returns.rolling(volatility_period).std(ddof=0).fillna(0.0)
    df["vix"] = df["return_std"] * np.sqrt(TRADING_DAYS_PER_YEAR)
    df["volatility_label"] = volatility_label(df["return_std"])

    # momentum
    gains = returns.clip(lower=0).rolling(rsi_period).mean()
    losses = (-returns).clip(lower=0).rolling(rsi_period).mean()
    rs = gains / losses.replace(0, np.nan)
    rsi = 100 - (100 / (1 + rs))
    rsi = rsi.mask(losses == 0, 100.0)
    df["rsi"] = rsi.fillna(50.0)

    half = trend_period // 2
    recent = close.rolling(trend_period - half).mean()
    earlier = close.shift(trend_period - half).rolling(half).mean()
    df["trend"] = ((recent - earlier) / earlier * 100).fillna(0.0)

    start = close.shift(momentum_period - 1)
    df["roc"] = ((close - start) / start * 100).fillna(0.0)
    df["momentum_label"] = momentum_label(df["rsi"], df["trend"])

    # value
    peak = close.rolling(drawdown_window, min_periods=1).max()
    df["value_drawdown"] = (close - peak) / peak * 100
    ma = close.rolling(ma_period).mean()
    std = close.rolling(ma_period).std(ddof=0)
    df["distance_from_ma"] = ((close - ma) / ma * 100).fillna(0.0)
    df["relative_value"] = ((close - ma) / std.replace(0, np.nan)).fillna(0.0)
    df["value_label"] = value_label(df["value_drawdown"], df["distance_from_ma"])
    return df


def indicator_snapshot(df: pd.DataFrame) -> IndicatorSnapshot:
    """Indicators of the last bar. Neutral defaults for an empty frame."""
    if df.empty:
        return IndicatorSnapshot()
    if "value_label" not in df.columns:
        df = add_indicators(df)
    last = df.iloc[-1]
    return IndicatorSnapshot(
        atr=float(last["atr"]),
        return_std=float(last["return_std"]),
        vix=float(last["vix"]),
        volatility_label=str(last["volatility_label"]),
        rsi=float(last["rsi"]),
        trend=float(last["trend"]),
        roc=float(last["roc"]),
        momentum_label=str(last["momentum_label"]),
        drawdown=float(last["value_drawdown"]),
        distance_from_ma=float(last["distance_from_ma"]),
        relative_value=float(last["relative_value"]),
        value_label=str(last["value_label"]),
    )
