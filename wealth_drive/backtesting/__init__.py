from wealth_drive.backtesting.engine import BacktestEngine
from wealth_drive.backtesting.runner import (
    SessionResult,
    WealthSessionResult,
    apply_intent,
    run_session,
    run_wealth_session,
)

__all__ = [
    "BacktestEngine",
    "SessionResult",
    "WealthSessionResult",
    "apply_intent",
    "run_session",
    "run_wealth_session",
]
