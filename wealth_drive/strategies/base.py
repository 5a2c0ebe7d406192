"""Abstract driver: indicators + order intents from closed bars."""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import pandas as pd

from wealth_drive.core.types import OrderSide, PortfolioState


class IntentAction(str, Enum):
    OPEN = "open"
    CLOSE = "close"


@dataclass
class OrderIntent:
    """What a driver wants done at the next bar. Prices, not return levels."""
    action: IntentAction
    side: Optional[OrderSide] = None
    size: float = 0.0
    leverage: float = 1.0
    stop_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    trailing_distance_price: Optional[float] = None
    position_id: Optional[str] = None
    reason: str = ""


class BaseStrategy(ABC):
    """Strategy computes indicators and may return an OrderIntent from the last closed bar."""

    warmup_bars: int = 0

    @abstractmethod
    def compute_indicators(self, df: pd.DataFrame) -> pd.DataFrame:
        """Add indicator columns to an OHLCV DataFrame. No lookahead."""
        pass

    @abstractmethod
    def decide(self, df: pd.DataFrame, portfolio: PortfolioState) -> Optional[OrderIntent]:
        """
        Return an intent for the last row of df (the bar that just closed) or None.
        df holds only bars the engine has already processed.
        """
        pass
