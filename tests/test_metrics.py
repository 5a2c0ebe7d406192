"""Unit tests for analytics.metrics."""

import pytest
from wealth_drive.analytics.metrics import (
    compute_metrics,
    equity_returns,
    expectancy,
    max_drawdown,
    profit_factor,
    sharpe_ratio,
    sortino_ratio,
    win_rate,
)


def test_sharpe_ratio_empty():
    assert sharpe_ratio([]) == 0.0


def test_sharpe_ratio_constant():
    assert sharpe_ratio([0.01] * 10) == 0.0  # zero std


def test_sortino_without_downside_falls_back_to_sharpe():
    rets = [0.01, 0.02, 0.015, 0.03]
    assert sortino_ratio(rets) == pytest.approx(sharpe_ratio(rets))


def test_win_rate():
    assert win_rate([1, -1, 1, 1]) == 0.75
    assert win_rate([]) == 0.0


def test_profit_factor():
    assert profit_factor([10, -5, 10, -5]) == 2.0
    assert profit_factor([10, 10]) == float("inf")
    assert profit_factor([-5, -5]) == 0.0


def test_expectancy():
    assert expectancy([10, -5, 5]) == pytest.approx(10 / 3)
    assert expectancy([]) == 0.0


def test_max_drawdown():
    # equity 1 -> 1.2 -> 1.0 -> 1.1  =>  peak 1.2, dd (1.0-1.2)/1.2 = -16.67%
    assert max_drawdown([1.0, 1.2, 1.0, 1.1]) == pytest.approx(-16.666, rel=0.01)


def test_equity_returns_skip_non_positive_start():
    assert equity_returns([100.0, 110.0, 99.0]) == pytest.approx([0.1, -0.1])
    assert equity_returns([0.0, 10.0]) == []
    assert equity_returns([100.0]) == []


def test_compute_metrics_from_trades():
    pnls = [10.0, -5.0, 15.0, -3.0]
    m = compute_metrics(pnls)
    assert m.total_trades == 4
    assert m.winning_trades == 2
    assert m.losing_trades == 2
    assert m.expectancy == pytest.approx(4.25)
    assert m.win_rate == 0.5


def test_compute_metrics_from_equity_curve():
    curve = [10000.0 * 1.001 ** i for i in range(1, 253)]
    m = compute_metrics([], curve, initial_capital=10000.0)
    assert m.total_trades == 0
    assert m.final_equity == pytest.approx(curve[-1])
    assert m.total_return_pct == pytest.approx((1.001 ** 252 - 1) * 100)
    assert m.cagr_pct == pytest.approx((1.001 ** 252 - 1) * 100)
    assert m.max_drawdown_pct == 0.0
