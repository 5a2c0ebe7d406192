"""
Wealth engine: the whole portfolio collapsed into one leveraged wealth value.

Each update applies a leveraged return from the period's slope signal, moves
stress with loss aversion, raises the baseline water level and checks the
terminal conditions. Once a terminal state is reached update() is a no-op.
"""

from __future__ import annotations
import logging
import math
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from wealth_drive.analytics.statistics import cagr
from wealth_drive.core.config import WealthConfig
from wealth_drive.core.types import Bar, CrashCause, GameResult, WealthState
from wealth_drive.risk import model

logger = logging.getLogger("wealth_drive.risk.wealth")

MIN_LEVERAGE = 0.5
MAX_LEVERAGE = 3.0
MAX_CASH_BUFFER = 0.5
HISTORY_LENGTH = 200

# Fraction of wealth kept after each crash; margin calls use WealthConfig.margin_call_level.
CRASH_RETENTION = {
    CrashCause.FLIP: 0.1,
    CrashCause.FALL: 0.0,
    CrashCause.STRESS: 0.5,
}


@dataclass
class WealthStats:
    max_wealth: float
    min_wealth: float
    max_drawdown: float = 0.0
    total_gains: float = 0.0
    total_losses: float = 0.0
    best_day: float = 0.0
    worst_day: float = 0.0
    crashes: int = 0


class WealthEngine:
    """Single-writer owner of one WealthState."""

    def __init__(self, config: Optional[WealthConfig] = None):
        self.config = config or WealthConfig()
        self.reset()

    def reset(self, config: Optional[WealthConfig] = None) -> None:
        if config is not None:
            self.config = config
        c = self.config
        self._state = WealthState(
            wealth=c.starting_wealth,
            starting_wealth=c.starting_wealth,
            target_wealth=c.target_wealth,
            peak_wealth=c.starting_wealth,
            leverage=c.leverage,
            cash_buffer=c.cash_buffer,
            stress=0.0,
            stability=1.0,
            water_level=c.starting_wealth * c.water_start_ratio,
            drowning_timer=0,
            days_traded=0,
        )
        self.stats = WealthStats(max_wealth=c.starting_wealth, min_wealth=c.starting_wealth)
        self.history: deque = deque([c.starting_wealth], maxlen=HISTORY_LENGTH)
        self._refresh_stability()

    # --- position controls ---

    def set_leverage(self, leverage: float) -> float:
        if not math.isfinite(leverage):
            logger.warning("Ignoring non-finite leverage %r", leverage)
            return self._state.leverage
        self._state.leverage = model.clamp(leverage, MIN_LEVERAGE, MAX_LEVERAGE)
        self._refresh_stability()
        return self._state.leverage

    def set_cash_buffer(self, cash_buffer: float) -> float:
        if not math.isfinite(cash_buffer):
            logger.warning("Ignoring non-finite cash buffer %r", cash_buffer)
            return self._state.cash_buffer
        self._state.cash_buffer = model.clamp(cash_buffer, 0.0, MAX_CASH_BUFFER)
        self._refresh_stability()
        return self._state.cash_buffer

    def set_wealth(self, wealth: float) -> GameResult:
        """
        Mark wealth to an externally computed value (e.g. a ledger's equity)
        and run the same end-of-game checks as an update. No-op once terminal.
        """
        if not math.isfinite(wealth):
            raise ValueError("wealth must be finite")
        s = self._state
        if not s.is_running:
            return s.game_result
        s.wealth = max(0.0, wealth)
        self._track_extremes()
        self._refresh_stability()
        return self._check_game_state()

    def add_stress(self, amount: float) -> None:
        self._state.stress = model.clamp(self._state.stress + amount, 0.0, model.MAX_STRESS)

    def reduce_stress(self, amount: float) -> None:
        self._state.stress = model.clamp(self._state.stress - amount, 0.0, model.MAX_STRESS)

    # --- simulation ---

    def update(self, normalized_slope: float, velocity: Optional[float] = None, volatility: float = 0.0) -> float:
        """Advance one period. Returns the wealth change (0.0 once terminal)."""
        s = self._state
        if not s.is_running:
            return 0.0
        if not math.isfinite(normalized_slope):
            logger.warning("Non-finite slope %r treated as flat", normalized_slope)
            normalized_slope = 0.0
        if not math.isfinite(volatility):
            volatility = 0.0
        slope = model.clamp(normalized_slope, -1.0, 1.0)
        if velocity is None:
            velocity = self.config.reference_velocity
        vm = model.velocity_multiplier(velocity, self.config.reference_velocity)

        daily_return = model.leveraged_return(slope, self.config.sensitivity, vm, s.leverage, s.cash_buffer)
        passive_gain = s.wealth * self.config.passive_rate
        change = s.wealth * daily_return + passive_gain

        s.stress = model.next_stress(s.stress, slope, volatility)

        if change > 0:
            self.stats.total_gains += change
            self.stats.best_day = max(self.stats.best_day, change)
        else:
            self.stats.total_losses += abs(change)
            self.stats.worst_day = min(self.stats.worst_day, change)

        s.wealth = max(0.0, s.wealth + change)
        s.days_traded += 1
        self._track_extremes()
        self.history.append(s.wealth)

        s.water_level *= 1.0 + self.config.baseline_rate
        s.drowning_timer = s.drowning_timer + 1 if self.is_drowning() else 0

        self._refresh_stability()
        self._check_game_state()
        return change

    def update_from_bar(self, bar: Bar, prev_close: Optional[float] = None, velocity: Optional[float] = None,
                        volatility: float = 0.0) -> float:
        """Drive one update from a bar's close-to-close percent return."""
        reference = prev_close if prev_close and prev_close > 0 else bar.open
        daily_return_pct = (bar.close - reference) / reference * 100.0 if reference > 0 else 0.0
        return self.update(model.signal_from_return(daily_return_pct), velocity, volatility)

    def check_margin_call(self) -> bool:
        return model.is_margin_call(self.drawdown, self._state.leverage, self.config.margin_call_buffer)

    def trigger_crash(self, cause: CrashCause) -> GameResult:
        """Forced liquidation. Domain event, not an error; no-op once terminal."""
        s = self._state
        if not s.is_running:
            return s.game_result
        cause = CrashCause(cause)
        if cause is CrashCause.MARGIN_CALL:
            retained = self.config.margin_call_level
            s.game_result = GameResult.MARGIN_CALLED
        else:
            retained = CRASH_RETENTION[cause]
            s.game_result = GameResult.CRASHED
        self.stats.crashes += 1
        s.crash_cause = cause
        before = s.wealth
        s.wealth = max(0.0, s.wealth * retained)
        self._track_extremes()
        self._refresh_stability()
        logger.warning("Crash (%s): wealth %.2f -> %.2f", cause.value, before, s.wealth)
        return s.game_result

    def _check_game_state(self) -> GameResult:
        s = self._state
        if s.wealth >= s.target_wealth:
            self._finish(GameResult.TARGET_REACHED)
        elif s.wealth <= self.config.bankruptcy_threshold:
            s.wealth = 0.0
            self._finish(GameResult.BANKRUPT)
        elif self.check_margin_call():
            self.trigger_crash(CrashCause.MARGIN_CALL)
        elif s.drowning_timer > self.config.max_drowning_ticks:
            self._finish(GameResult.BEHIND_BASELINE)
        return s.game_result

    def _finish(self, result: GameResult) -> None:
        self._state.game_result = result
        logger.info("Wealth run finished: %s at %.2f after %d days",
                    result.value, self._state.wealth, self._state.days_traded)

    def _track_extremes(self) -> None:
        s = self._state
        if s.wealth > s.peak_wealth:
            s.peak_wealth = s.wealth
        self.stats.max_wealth = max(self.stats.max_wealth, s.wealth)
        self.stats.min_wealth = min(self.stats.min_wealth, s.wealth)
        self.stats.max_drawdown = max(self.stats.max_drawdown, self.drawdown)

    def _refresh_stability(self) -> None:
        self._state.stability = self.stability()

    # --- derived values ---

    @property
    def state(self) -> GameResult:
        return self._state.game_result

    @property
    def wealth(self) -> float:
        return self._state.wealth

    @property
    def drawdown(self) -> float:
        return model.drawdown_from_peak(self._state.peak_wealth, self._state.wealth)

    def recovery_needed(self) -> float:
        return model.recovery_needed(self.drawdown)

    def max_safe_drawdown(self) -> float:
        return model.max_safe_drawdown(self._state.leverage, self.config.margin_call_buffer)

    def liquidation_proximity(self) -> float:
        return model.liquidation_proximity(self.drawdown, self._state.leverage, self.config.margin_call_buffer)

    def stability(self) -> float:
        s = self._state
        return model.stability(s.leverage, self.drawdown, s.cash_buffer, s.stress, self.config.margin_call_buffer)

    def recovery_drag(self) -> float:
        return model.recovery_drag(self.drawdown)

    def is_drowning(self) -> bool:
        return self._state.wealth < self._state.water_level

    def real_return(self) -> float:
        """Return over the baseline, as a fraction."""
        if self._state.water_level <= 0:
            return 0.0
        return self._state.wealth / self._state.water_level - 1.0

    def progress(self) -> float:
        """Progress toward the target on a log scale, 0-1."""
        s = self._state
        log_start = math.log10(s.starting_wealth)
        log_target = math.log10(s.target_wealth)
        log_current = math.log10(max(s.wealth, 1.0))
        return model.clamp((log_current - log_start) / (log_target - log_start), 0.0, 1.0)

    def cagr(self) -> float:
        return cagr(self._state.wealth, self._state.starting_wealth, self._state.days_traded)

    def snapshot(self) -> WealthState:
        return replace(self._state)

    def summary(self) -> Dict[str, Any]:
        s = self._state
        return {
            "result": s.game_result.value,
            "crash_cause": s.crash_cause.value if s.crash_cause else None,
            "final_wealth": s.wealth,
            "starting_wealth": s.starting_wealth,
            "target": s.target_wealth,
            "progress": self.progress(),
            "days_traded": s.days_traded,
            "peak_wealth": s.peak_wealth,
            "max_drawdown": self.stats.max_drawdown,
            "total_gains": self.stats.total_gains,
            "total_losses": self.stats.total_losses,
            "best_day": self.stats.best_day,
            "worst_day": self.stats.worst_day,
            "cagr": self.cagr(),
            "leverage": s.leverage,
            "cash_buffer": s.cash_buffer,
            "water_level": s.water_level,
            "crashes": self.stats.crashes,
        }
