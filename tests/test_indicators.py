"""Volatility, momentum and value indicators."""

import numpy as np
import pandas as pd
import pytest
from wealth_drive.analytics.indicators import IndicatorSnapshot, add_indicators, indicator_snapshot
from wealth_drive.data.loader import bars_to_frame, synthetic_bars


def frame(closes, returns):
    return pd.DataFrame({"close": closes, "daily_return": returns})


def steady(count, step):
    closes = [100.0 * (1 + step) ** i for i in range(count)]
    return frame(closes, [step * 100] * count)


def test_defaults_during_warm_up():
    df = add_indicators(steady(5, 0.01))
    last = df.iloc[-1]
    assert last["atr"] == 0.0
    assert last["return_std"] == 0.0
    assert last["rsi"] == 50.0
    assert last["trend"] == 0.0
    assert last["distance_from_ma"] == 0.0
    assert last["relative_value"] == 0.0
    assert last["volatility_label"] == "LOW"
    assert last["momentum_label"] == "NEUTRAL"
    assert last["value_label"] == "FAIR"


def test_steady_rise_is_overbought():
    df = add_indicators(steady(30, 0.01))
    last = df.iloc[-1]
    assert last["atr"] == pytest.approx(1.0)
    assert last["return_std"] == pytest.approx(0.0, abs=1e-9)
    assert last["rsi"] == 100.0
    assert last["trend"] == pytest.approx((1.01 ** 10 - 1) * 100)
    assert last["roc"] == pytest.approx((1.01 ** 9 - 1) * 100)
    assert last["momentum_label"] == "OVERBOUGHT"
    assert last["value_drawdown"] == pytest.approx(0.0)
    assert last["distance_from_ma"] == pytest.approx(9.733, abs=1e-3)
    assert last["relative_value"] > 0
    assert last["value_label"] == "FAIR"


def test_steady_fall_is_oversold():
    df = add_indicators(steady(30, -0.01))
    last = df.iloc[-1]
    assert last["rsi"] == pytest.approx(0.0)
    assert last["trend"] == pytest.approx((0.99 ** 10 - 1) * 100)
    assert last["momentum_label"] == "OVERSOLD"


def test_rsi_on_mixed_returns():
    returns = [2.0, -1.0] * 7
    closes = list(np.linspace(100, 105, 14))
    df = add_indicators(frame(closes, returns))
    assert df["rsi"].iloc[-1] == pytest.approx(100 - 100 / 3)


def test_volatility_groups():
    returns = [3.0, -3.0] * 10
    closes = [100.0 + (i % 2) for i in range(20)]
    last = add_indicators(frame(closes, returns)).iloc[-1]
    assert last["return_std"] == pytest.approx(3.0)
    assert last["vix"] == pytest.approx(3.0 * np.sqrt(252))
    assert last["volatility_label"] == "HIGH"
    assert last["atr"] == pytest.approx(3.0)


def test_value_labels_after_drops():
    closes = [100.0] * 10 + [85.0]
    df = add_indicators(frame(closes, [0.0] * 10 + [-15.0]))
    assert df["value_drawdown"].iloc[-1] == pytest.approx(-15.0)
    assert df["value_label"].iloc[-1] == "CORRECTION"
    closes[-1] = 75.0
    df = add_indicators(frame(closes, [0.0] * 10 + [-25.0]))
    assert df["value_label"].iloc[-1] == "CRASHED"


def test_snapshot_from_ohlcv_frame():
    snap = indicator_snapshot(bars_to_frame(synthetic_bars(60, seed=5)))
    assert snap.volatility_label in {"LOW", "NORMAL", "HIGH", "EXTREME"}
    assert snap.momentum_label in {"OVERBOUGHT", "OVERSOLD", "BULLISH", "BEARISH", "NEUTRAL"}
    assert snap.value_label in {"CRASHED", "CORRECTION", "EXTENDED", "UNDERVALUED", "FAIR"}
    assert 0.0 <= snap.rsi <= 100.0
    assert snap.drawdown <= 0.0
    assert set(snap.to_dict()) >= {"atr", "vix", "rsi", "trend", "roc", "relative_value"}


def test_snapshot_of_empty_frame():
    assert indicator_snapshot(pd.DataFrame()) == IndicatorSnapshot()
