"""
Market data feed: JSON datasets of daily OHLCV bars, validated on ingest,
with pandas enrichment (returns, volatility, true range) for drivers.
"""

from __future__ import annotations
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np
import pandas as pd

from wealth_drive.core.errors import DataError
from wealth_drive.core.types import Bar

logger = logging.getLogger("wealth_drive.data")

ROLLING_WINDOW = 20
MAX_ROUGHNESS_VOLATILITY = 5.0  # intraday range % treated as fully rough
OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


@dataclass
class MarketDataset:
    """One instrument's bar series plus the descriptive header of the file."""
    symbol: str
    bars: List[Bar]
    name: str = ""
    description: str = ""
    difficulty: str = ""
    data_source: str = ""
    fetched_at: str = ""
    date_range: Dict[str, str] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.bars)

    def to_frame(self) -> pd.DataFrame:
        return bars_to_frame(self.bars)


def _number(record: Dict[str, Any], key: str, index: int) -> float:
    try:
        value = float(record[key])
    except (KeyError, TypeError, ValueError) as e:
        raise DataError(f"bar {index}: missing or invalid '{key}'") from e
    if not math.isfinite(value):
        raise DataError(f"bar {index}: '{key}' is not finite")
    return value


def parse_bar(record: Dict[str, Any], index: int = 0) -> Bar:
    """Validate one raw record into a Bar."""
    date = str(record.get("date", "")).strip()
    if not date:
        raise DataError(f"bar {index}: missing date")
    o, h, l, c = (_number(record, k, index) for k in ("open", "high", "low", "close"))
    volume = _number(record, "volume", index) if "volume" in record else 0.0
    if min(o, h, l, c) <= 0:
        raise DataError(f"bar {index} ({date}): prices must be > 0")
    if l > min(o, c) or h < max(o, c):
        raise DataError(f"bar {index} ({date}): high/low do not bracket open/close")
    if volume < 0:
        raise DataError(f"bar {index} ({date}): negative volume")
    return Bar(date=date, open=o, high=h, low=l, close=c, volume=volume)


def parse_bars(records: List[Dict[str, Any]]) -> List[Bar]:
    """Validate raw records. Dates must be strictly increasing."""
    bars: List[Bar] = []
    for i, record in enumerate(records):
        bar = parse_bar(record, i)
        if bars and bar.date <= bars[-1].date:
            raise DataError(f"bar {i}: date {bar.date} not after {bars[-1].date}")
        bars.append(bar)
    return bars


def load_dataset(path: Union[str, Path]) -> MarketDataset:
    """Read a dataset file: {symbol, name, ..., data: [{date, open, high, low, close, volume}]}."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except OSError as e:
        raise DataError(f"cannot read dataset {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise DataError(f"invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict) or not isinstance(raw.get("data"), list):
        raise DataError(f"{path}: expected an object with a 'data' list")
    bars = parse_bars(raw["data"])
    if not bars:
        raise DataError(f"{path}: dataset has no bars")
    dataset = MarketDataset(
        symbol=str(raw.get("symbol", path.stem)),
        bars=bars,
        name=str(raw.get("name", "")),
        description=str(raw.get("description", "")),
        difficulty=str(raw.get("difficulty", "")),
        data_source=str(raw.get("dataSource", "")),
        fetched_at=str(raw.get("fetchedAt", "")),
        date_range=dict(raw.get("dateRange") or {}),
    )
    logger.info("Loaded %s: %d bars (%s to %s)", dataset.symbol, len(bars), bars[0].date, bars[-1].date)
    return dataset


def bars_to_frame(bars: List[Bar]) -> pd.DataFrame:
    """Bars as an OHLCV DataFrame (columns: date, open, high, low, close, volume)."""
    return pd.DataFrame(
        [(b.date, b.open, b.high, b.low, b.close, b.volume) for b in bars],
        columns=OHLCV_COLUMNS,
    )


def frame_to_bars(df: pd.DataFrame) -> List[Bar]:
    return [
        Bar(date=str(r.date), open=float(r.open), high=float(r.high), low=float(r.low),
            close=float(r.close), volume=float(r.volume))
        for r in df[OHLCV_COLUMNS].itertuples(index=False)
    ]


def enrich_frame(df: pd.DataFrame, window: int = ROLLING_WINDOW) -> pd.DataFrame:
    """
    Add daily_return (% vs previous close, first bar vs its open),
    intraday_volatility (% range of open), true_range, rolling_volatility
    (RMS of daily returns over `window`, intraday volatility during warm-up)
    and roughness (intraday volatility scaled to [0, 1]).
    """
    df = df.copy()
    prev_close = df["close"].shift(1).fillna(df["open"])
    df["daily_return"] = (df["close"] - prev_close) / prev_close * 100.0
    df["intraday_volatility"] = (df["high"] - df["low"]) / df["open"] * 100.0
    high_low = df["high"] - df["low"]
    high_close = (df["high"] - df["close"].shift()).abs()
    low_close = (df["low"] - df["close"].shift()).abs()
    df["true_range"] = pd.concat([high_low, high_close, low_close], axis=1).max(axis=1)
    rms = np.sqrt((df["daily_return"] ** 2).rolling(window).mean())
    df["rolling_volatility"] = rms.fillna(df["intraday_volatility"])
    df["roughness"] = (df["intraday_volatility"] / MAX_ROUGHNESS_VOLATILITY).clip(upper=1.0)
    return df


def dataset_stats(df: pd.DataFrame) -> Dict[str, float]:
    """Summary of an enriched frame. Returns are in percent."""
    if df.empty:
        return {}
    if "daily_return" not in df.columns:
        df = enrich_frame(df)
    returns = df["daily_return"]
    first_open = float(df["open"].iloc[0])
    return {
        "bars": float(len(df)),
        "avg_return": float(returns.mean()),
        "max_return": float(returns.max()),
        "min_return": float(returns.min()),
        "std_return": float(returns.std(ddof=0)),
        "avg_volatility": float(df["intraday_volatility"].mean()),
        "max_volatility": float(df["intraday_volatility"].max()),
        "total_return": (float(df["close"].iloc[-1]) - first_open) / first_open * 100.0,
    }


def synthetic_bars(
    count: int,
    start_price: float = 100.0,
    drift: float = 0.0005,
    volatility: float = 0.01,
    seed: Optional[int] = None,
    start_date: str = "2020-01-01",
) -> List[Bar]:
    """Random-walk daily bars for demos and tests. Deterministic with a seed."""
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(start=start_date, periods=count)
    bars: List[Bar] = []
    price = start_price
    for date in dates:
        open_ = price
        close = max(0.01, open_ * (1.0 + rng.normal(drift, volatility)))
        wick = abs(rng.normal(0.0, volatility / 2)) * open_
        high = max(open_, close) + wick
        low = max(0.005, min(open_, close) - wick)
        bars.append(Bar(date=date.strftime("%Y-%m-%d"), open=open_, high=high, low=low,
                        close=close, volume=float(rng.integers(1_000, 100_000))))
        price = close
    return bars
