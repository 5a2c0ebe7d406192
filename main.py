#!/usr/bin/env python3
"""
wealth_drive CLI: backtest | wealth
Usage:
  python main.py backtest [--config config.yaml] [--data dataset.json]
  python main.py wealth [--config config.yaml] [--data dataset.json]
Without a dataset (flag, DATA_PATH or config), a seeded random walk is used.
"""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

import pandas as pd

# Project root
ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from wealth_drive.analytics.indicators import indicator_snapshot
from wealth_drive.backtesting.engine import BacktestEngine
from wealth_drive.backtesting.runner import run_session, run_wealth_session
from wealth_drive.core.config import Config, load_config
from wealth_drive.core.errors import ConfigError, DataError
from wealth_drive.core.logger import setup_logging
from wealth_drive.data.loader import bars_to_frame, load_dataset, synthetic_bars
from wealth_drive.risk.model import describe_recovery
from wealth_drive.risk.wealth import WealthEngine
from wealth_drive.strategies.ema_trend import EmaTrendStrategy
from wealth_drive.utils.telegram import TelegramNotifier, send_telegram

logger = logging.getLogger("wealth_drive")


def _load_frame(config: Config, data_path: Optional[Path], bars: int, seed: int) -> pd.DataFrame:
    path = data_path or config.data_path
    if path:
        dataset = load_dataset(path)
        print(f"Dataset: {dataset.symbol} {dataset.name} ({len(dataset)} bars)")
        return dataset.to_frame()
    logger.info("No dataset configured, using %d synthetic bars (seed=%d)", bars, seed)
    return bars_to_frame(synthetic_bars(bars, seed=seed))


def print_market(frame: pd.DataFrame) -> None:
    """Last bar's volatility, momentum and value conditions."""
    snap = indicator_snapshot(frame)
    print("\n--- Market (last bar) ---")
    print(f"Volatility: {snap.volatility_label}  atr={snap.atr:.2f}%  std={snap.return_std:.2f}%  vix={snap.vix:.1f}")
    print(f"Momentum: {snap.momentum_label}  rsi={snap.rsi:.0f}  trend={snap.trend:+.2f}%  roc={snap.roc:+.2f}%")
    print(f"Value: {snap.value_label}  drawdown={snap.drawdown:.2f}%  dist_ma={snap.distance_from_ma:+.2f}%  "
          f"z={snap.relative_value:.2f}")


def run_backtest(config: Config, frame: pd.DataFrame, size: float, leverage: float, trailing: float) -> int:
    """Drive the order engine with the EMA trend strategy and print results."""
    engine = BacktestEngine(config.engine)
    notifier = TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id)
    if notifier.enabled:
        engine.subscribe(notifier)
    strategy = EmaTrendStrategy(size=size, leverage=leverage, trailing_atr_mult=trailing)
    result = run_session(engine, strategy, frame)
    m = result.metrics
    s = result.statistics
    p = result.portfolio
    print("\n--- Backtest Results ---")
    print(f"Final equity: {p.equity:.2f} (start {p.initial_capital:.2f})")
    print(f"Total trades: {s.total_trades} (wins: {s.winning_trades}, losses: {s.losing_trades})")
    print(f"Total return: {m.total_return_pct:.2f}%")
    print(f"CAGR: {m.cagr_pct:.2f}%")
    print(f"Sharpe ratio: {m.sharpe_ratio:.2f}")
    print(f"Sortino ratio: {m.sortino_ratio:.2f}")
    print(f"Max drawdown: {p.max_drawdown * 100:.2f}%")
    print(f"Win rate: {s.win_rate * 100:.1f}%  best streak: {s.best_streak}")
    print(f"Profit factor: {s.profit_factor:.2f}")
    print(f"Expectancy: {m.expectancy:.2f} USD/trade")
    margin_calls = sum(1 for t in result.ticks if t.margin_call)
    if margin_calls:
        print(f"Margin calls: {margin_calls}")
    return 0


def run_wealth(config: Config, frame: pd.DataFrame) -> int:
    """Run the single-position wealth engine over the bar series and print the summary."""
    engine = WealthEngine(config.wealth)
    result = run_wealth_session(engine, frame)
    summary = result.summary
    print("\n--- Wealth Run ---")
    print(f"Result: {summary['result']}" + (f" ({summary['crash_cause']})" if summary["crash_cause"] else ""))
    print(f"Final wealth: {summary['final_wealth']:.2f} (start {summary['starting_wealth']:.2f})")
    print(f"Days traded: {summary['days_traded']}")
    print(f"Peak wealth: {summary['peak_wealth']:.2f}")
    print(f"Max drawdown: {summary['max_drawdown'] * 100:.2f}%  recovery needed: "
          f"{describe_recovery(summary['max_drawdown'])}")
    print(f"CAGR: {summary['cagr'] * 100:.2f}%")
    print(f"Water level: {summary['water_level']:.2f}")
    print(f"Progress to target: {summary['progress'] * 100:.1f}%")
    send_telegram(
        f"Wealth run {summary['result']} | wealth={summary['final_wealth']:.2f} | days={summary['days_traded']}",
        config.telegram_bot_token,
        config.telegram_chat_id,
    )
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="wealth_drive CLI")
    parser.add_argument("mode", choices=["backtest", "wealth"], help="Order-driven backtest or wealth-engine run")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--data", type=Path, default=None, help="Path to a JSON dataset")
    parser.add_argument("--bars", type=int, default=756, help="Synthetic bars when no dataset is given")
    parser.add_argument("--seed", type=int, default=7, help="Seed for synthetic bars")
    parser.add_argument("--size", type=float, default=0.5, help="Fraction of available cash per entry")
    parser.add_argument("--leverage", type=float, default=1.0, help="Leverage per entry")
    parser.add_argument("--trailing-atr", type=float, default=0.0, help="Trailing stop in ATR multiples (0 = off)")
    args = parser.parse_args()
    try:
        config = load_config(args.config, ROOT)
        setup_logging(config.log_level, config.log_dir, config.log_file, config.log_areas)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    try:
        frame = _load_frame(config, args.data, args.bars, args.seed)
    except DataError as e:
        logger.error("Cannot load data: %s", e)
        return 1
    print_market(frame)
    if args.mode == "backtest":
        return run_backtest(config, frame, args.size, args.leverage, args.trailing_atr)
    return run_wealth(config, frame)


if __name__ == "__main__":
    sys.exit(main())
