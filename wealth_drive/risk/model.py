"""
Closed-form leverage risk math.

All drawdowns and losses are fractions (0.2 = 20%). Every function guards its
numeric edge cases so NaN/inf never leaks into the next tick: the only
infinite value produced is recovery_needed() at a total loss, and callers
that feed it further (recovery_drag) clamp it.
"""

from __future__ import annotations
import math

LOSS_AVERSION = 2.25          # Kahneman-Tversky loss-aversion coefficient
STRESS_PER_SLOPE = 3.0
STRESS_DECAY = 0.5
MAX_STRESS = 100.0
VOLATILITY_STRESS_THRESHOLD = 0.3
CALM_VOLATILITY = 0.2
MAX_VELOCITY_MULTIPLIER = 2.0
UNLEVERED_MAX_DRAWDOWN = 0.95
MIN_SAFE_DRAWDOWN = 0.05
MIN_STABILITY = 0.1
MAX_STABILITY = 1.5
NO_FINITE_RECOVERY = "no finite recovery"


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def velocity_multiplier(velocity: float, reference_velocity: float = 5.0) -> float:
    """Exposure amplification from speed, capped at 2x."""
    if reference_velocity <= 0 or not math.isfinite(velocity):
        return 0.0
    return min(abs(velocity) / reference_velocity, MAX_VELOCITY_MULTIPLIER)


def leveraged_return(
    normalized_slope: float,
    sensitivity: float,
    velocity_mult: float,
    leverage: float,
    cash_buffer: float,
) -> float:
    """dailyReturn = slope x sensitivity x velocity x leverage x (1 - cash)."""
    slope = clamp(normalized_slope, -1.0, 1.0)
    vm = clamp(velocity_mult, 0.0, MAX_VELOCITY_MULTIPLIER)
    return slope * sensitivity * vm * leverage * (1.0 - cash_buffer)


def signal_from_return(daily_return_pct: float, max_return_pct: float = 4.0) -> float:
    """Map a bar's percent return to a normalized slope in [-1, 1]."""
    if max_return_pct <= 0 or not math.isfinite(daily_return_pct):
        return 0.0
    return clamp(daily_return_pct / max_return_pct, -1.0, 1.0)


def recovery_needed(loss: float) -> float:
    """
    Gain required to get back to the peak after a fractional loss: L / (1 - L).
    Returns math.inf for L >= 1 (no finite recovery).
    """
    if math.isnan(loss):
        raise ValueError("loss must be a number")
    loss = abs(loss)
    if loss >= 1.0:
        return math.inf
    return loss / (1.0 - loss)


def describe_recovery(loss: float) -> str:
    """Human-readable recovery requirement, e.g. '25.00%'."""
    needed = recovery_needed(loss)
    if math.isinf(needed):
        return NO_FINITE_RECOVERY
    return f"{needed * 100:.2f}%"


def loss_aversion_stress(normalized_slope: float) -> float:
    """Stress added by a losing period; zero for flat or rising periods."""
    if normalized_slope >= 0:
        return 0.0
    return abs(clamp(normalized_slope, -1.0, 0.0)) * STRESS_PER_SLOPE * LOSS_AVERSION


def volatility_stress(volatility: float) -> float:
    if volatility > VOLATILITY_STRESS_THRESHOLD:
        return volatility * 2.0
    return 0.0


def next_stress(stress: float, normalized_slope: float, volatility: float = 0.0) -> float:
    """One period of stress dynamics, clamped to [0, 100]."""
    stress += loss_aversion_stress(normalized_slope) + volatility_stress(volatility)
    if volatility < CALM_VOLATILITY and normalized_slope > 0:
        stress -= STRESS_DECAY
    return clamp(stress, 0.0, MAX_STRESS)


def max_safe_drawdown(leverage: float, margin_call_buffer: float = 0.10) -> float:
    """Largest drawdown tolerated before a margin call at this leverage."""
    if leverage <= 1.0:
        return UNLEVERED_MAX_DRAWDOWN
    return max(MIN_SAFE_DRAWDOWN, 1.0 / leverage - margin_call_buffer)


def is_margin_call(drawdown: float, leverage: float, margin_call_buffer: float = 0.10) -> bool:
    return drawdown >= max_safe_drawdown(leverage, margin_call_buffer)


def drawdown_from_peak(peak: float, value: float) -> float:
    """(peak - value) / peak, 0 when the peak is not positive."""
    if peak <= 0:
        return 0.0
    return max(0.0, (peak - value) / peak)


def liquidation_proximity(drawdown: float, leverage: float, margin_call_buffer: float = 0.10) -> float:
    """0 at the peak, 1 at the margin-call threshold."""
    return clamp(drawdown / max_safe_drawdown(leverage, margin_call_buffer), 0.0, 1.0)


def stability(
    leverage: float,
    drawdown: float,
    cash_buffer: float,
    stress: float,
    margin_call_buffer: float = 0.10,
) -> float:
    """
    Stability index in [0.1, 1.5]. The proximity penalty is squared so the
    index falls off sharply close to the liquidation threshold.
    """
    proximity = liquidation_proximity(drawdown, leverage, margin_call_buffer)
    value = 1.0
    value -= (leverage - 1.0) * 0.2
    value -= proximity ** 2 * 0.6
    value -= drawdown * leverage * 0.3
    value += cash_buffer * 0.5
    value -= clamp(stress, 0.0, MAX_STRESS) / MAX_STRESS * 0.3
    return clamp(value, MIN_STABILITY, MAX_STABILITY)


def recovery_drag(drawdown: float) -> float:
    """Multiplier in [1, 2] making the climb back harder than the fall."""
    if drawdown <= 0:
        return 1.0
    recovery_multiplier = 1.0 + recovery_needed(drawdown)
    if math.isinf(recovery_multiplier):
        return 2.0
    return clamp(1.0 + (recovery_multiplier - 1.0) * 0.25, 1.0, 2.0)


def portfolio_stress(total_exposure: float, drawdown: float, in_loss: bool) -> tuple[float, float]:
    """(raw, perceived) portfolio stress in [0, 1]; losses weigh 2.25x."""
    raw = min(1.0, total_exposure * 0.3 + drawdown * 2.0)
    perceived = min(1.0, raw * LOSS_AVERSION) if in_loss else raw
    return raw, perceived
