from wealth_drive.risk.model import (
    LOSS_AVERSION,
    NO_FINITE_RECOVERY,
    describe_recovery,
    drawdown_from_peak,
    is_margin_call,
    leveraged_return,
    liquidation_proximity,
    loss_aversion_stress,
    max_safe_drawdown,
    next_stress,
    portfolio_stress,
    recovery_drag,
    recovery_needed,
    signal_from_return,
    stability,
    velocity_multiplier,
)
from wealth_drive.risk.wealth import WealthEngine

__all__ = [
    "LOSS_AVERSION",
    "NO_FINITE_RECOVERY",
    "describe_recovery",
    "drawdown_from_peak",
    "is_margin_call",
    "leveraged_return",
    "liquidation_proximity",
    "loss_aversion_stress",
    "max_safe_drawdown",
    "next_stress",
    "portfolio_stress",
    "recovery_drag",
    "recovery_needed",
    "signal_from_return",
    "stability",
    "velocity_multiplier",
    "WealthEngine",
]
