from wealth_drive.strategies.base import BaseStrategy, IntentAction, OrderIntent
from wealth_drive.strategies.ema_trend import EmaTrendStrategy

__all__ = ["BaseStrategy", "IntentAction", "OrderIntent", "EmaTrendStrategy"]
