"""
EMA trend-following driver with ATR brackets.
Enters on a fast/slow EMA crossover when flat, exits when the trend flips.
"""

from __future__ import annotations
from typing import Optional

import pandas as pd

from wealth_drive.core.types import OrderSide, PortfolioState, PositionDirection
from wealth_drive.strategies.base import BaseStrategy, IntentAction, OrderIntent


class EmaTrendStrategy(BaseStrategy):
    """
    Long: EMA_fast crosses above EMA_slow. Short (if allowed): crosses below.
    SL/TP from ATR multiples; optional ATR trailing stop.
    """

    def __init__(
        self,
        ema_fast: int = 9,
        ema_slow: int = 21,
        atr_len: int = 14,
        atr_stop_mult: float = 2.0,
        atr_tp_mult: float = 4.0,
        trailing_atr_mult: float = 0.0,
        size: float = 0.5,
        leverage: float = 1.0,
        allow_short: bool = True,
    ):
        self.ema_fast = ema_fast
        self.ema_slow = ema_slow
        self.atr_len = atr_len
        self.atr_stop_mult = atr_stop_mult
        self.atr_tp_mult = atr_tp_mult
        self.trailing_atr_mult = trailing_atr_mult
        self.size = size
        self.leverage = leverage
        self.allow_short = allow_short
        self.warmup_bars = max(ema_slow, atr_len) + 1

    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        df = df.copy()
        df["ema_fast"] = df["close"].ewm(span=self.ema_fast, adjust=False).mean()
        df["ema_slow"] = df["close"].ewm(span=self.ema_slow, adjust=False).mean()
        high_low = df["high"] - df["low"]
        high_close = (df["high"] - df["close"].shift()).abs()
        low_close = (df["low"] - df["close"].shift()).abs()
        tr = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)
        df["atr"] = tr.rolling(self.atr_len).mean()
        return df

    def decide(self, df: pd.DataFrame, portfolio: PortfolioState) -> Optional[OrderIntent]:
        if len(df) < self.warmup_bars + 1:
            return None
        last, prev = df.iloc[-1], df.iloc[-2]
        bull = last["ema_fast"] > last["ema_slow"]
        bear = last["ema_fast"] < last["ema_slow"]

        if portfolio.positions:
            position = portfolio.positions[0]
            against = bear if position.direction is PositionDirection.LONG else bull
            if against:
                return OrderIntent(action=IntentAction.CLOSE, position_id=position.id, reason="trend flipped")
            return None

        crossed_up = bull and prev["ema_fast"] <= prev["ema_slow"]
        crossed_down = bear and prev["ema_fast"] >= prev["ema_slow"]
        if not (crossed_up or (crossed_down and self.allow_short)):
            return None
        atr = float(last["atr"]) if not pd.isna(last["atr"]) else 0.0
        if atr <= 0:
            return None

        close = float(last["close"])
        side = OrderSide.BUY if crossed_up else OrderSide.SELL
        sign = 1 if side is OrderSide.BUY else -1
        return OrderIntent(
            action=IntentAction.OPEN,
            side=side,
            size=self.size,
            leverage=self.leverage,
            stop_price=close - sign * atr * self.atr_stop_mult,
            take_profit_price=close + sign * atr * self.atr_tp_mult if self.atr_tp_mult > 0 else None,
            trailing_distance_price=atr * self.trailing_atr_mult if self.trailing_atr_mult > 0 else None,
            reason="ema crossover",
        )
