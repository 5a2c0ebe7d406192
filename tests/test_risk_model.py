"""Unit tests for risk.model."""

import math

import pytest
from wealth_drive.risk.model import (
    describe_recovery,
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


def test_recovery_needed_values():
    assert recovery_needed(0.0) == 0.0
    assert recovery_needed(0.2) == pytest.approx(0.25)
    assert recovery_needed(0.5) == pytest.approx(1.0)
    assert recovery_needed(0.9) == pytest.approx(9.0)


def test_recovery_needed_total_loss_is_infinite():
    assert math.isinf(recovery_needed(1.0))
    assert math.isinf(recovery_needed(1.5))
    assert describe_recovery(1.0) == "no finite recovery"
    assert describe_recovery(0.2) == "25.00%"


def test_recovery_needed_rejects_nan():
    with pytest.raises(ValueError):
        recovery_needed(float("nan"))


def test_recovery_needed_strictly_convex():
    losses = [i / 20 for i in range(19)]  # 0.0 .. 0.9
    values = [recovery_needed(x) for x in losses]
    first = [b - a for a, b in zip(values, values[1:])]
    second = [b - a for a, b in zip(first, first[1:])]
    assert all(d > 0 for d in second)


def test_max_safe_drawdown():
    assert max_safe_drawdown(1.0) == pytest.approx(0.95)
    assert max_safe_drawdown(0.5) == pytest.approx(0.95)
    assert max_safe_drawdown(2.0) == pytest.approx(0.40)
    assert max_safe_drawdown(3.0) == pytest.approx(0.2333, abs=1e-4)
    assert max_safe_drawdown(50.0) == pytest.approx(0.05)


def test_margin_call_boundary():
    assert not is_margin_call(0.30, 2.0)
    assert is_margin_call(0.45, 2.0)
    assert is_margin_call(0.40, 2.0)
    assert not is_margin_call(0.20, 3.0)
    assert is_margin_call(0.25, 3.0)


def test_doubling_leverage_doubles_return():
    for slope in (0.5, -0.5):
        one = leveraged_return(slope, 0.02, 1.0, 1.0, 0.0)
        two = leveraged_return(slope, 0.02, 1.0, 2.0, 0.0)
        assert two == pytest.approx(2 * one)


def test_cash_buffer_scales_exposure():
    assert leveraged_return(1.0, 0.02, 1.0, 1.0, 0.5) == pytest.approx(0.01)


def test_velocity_multiplier_capped():
    assert velocity_multiplier(5.0) == pytest.approx(1.0)
    assert velocity_multiplier(-7.5) == pytest.approx(1.5)
    assert velocity_multiplier(50.0) == 2.0
    assert velocity_multiplier(0.0) == 0.0


def test_loss_aversion_stress():
    assert loss_aversion_stress(-0.5) == pytest.approx(0.5 * 3 * 2.25)
    assert loss_aversion_stress(0.5) == 0.0
    assert loss_aversion_stress(0.0) == 0.0


def test_next_stress_decay_and_clamp():
    assert next_stress(10.0, 0.5, 0.1) == pytest.approx(9.5)
    assert next_stress(0.2, 0.5, 0.1) == 0.0
    assert next_stress(99.0, -1.0, 0.0) == 100.0
    assert next_stress(0.0, 0.0, 0.5) == pytest.approx(1.0)
    # rising but volatile: no calm decay
    assert next_stress(10.0, 0.5, 0.25) == pytest.approx(10.0)


def test_stability_unlevered_with_cash_is_high():
    assert stability(1.0, 0.0, 0.2, 0.0) > 0.9
    assert stability(3.0, 0.23, 0.0, 100.0) == pytest.approx(0.1)


def test_stability_falls_near_liquidation():
    calm = stability(2.0, 0.05, 0.0, 0.0)
    close = stability(2.0, 0.35, 0.0, 0.0)
    assert close < calm


def test_liquidation_proximity():
    assert liquidation_proximity(0.5, 1.0) == pytest.approx(0.5 / 0.95)
    assert liquidation_proximity(0.0, 2.0) == 0.0
    assert liquidation_proximity(0.9, 3.0) == 1.0


def test_recovery_drag():
    assert recovery_drag(0.0) == 1.0
    assert recovery_drag(0.5) == pytest.approx(1.25)
    assert recovery_drag(1.0) == 2.0
    assert recovery_drag(0.95) == 2.0


def test_signal_from_return():
    assert signal_from_return(2.0) == pytest.approx(0.5)
    assert signal_from_return(10.0) == 1.0
    assert signal_from_return(-8.0) == -1.0
    assert signal_from_return(float("nan")) == 0.0


def test_portfolio_stress_loss_aversion():
    raw, perceived = portfolio_stress(1.0, 0.1, in_loss=True)
    assert raw == pytest.approx(0.5)
    assert perceived == 1.0
    raw, perceived = portfolio_stress(0.5, 0.0, in_loss=False)
    assert raw == pytest.approx(0.15)
    assert perceived == pytest.approx(0.15)
