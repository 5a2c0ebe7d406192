"""
Load configuration from config.yaml and .env. Telegram credentials only from env.
"""

from __future__ import annotations
import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from wealth_drive.core.errors import ConfigError


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def _finite(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


@dataclass(frozen=True)
class EngineConfig:
    """Order book / ledger settings. Validated at construction."""
    initial_capital: float = 10000.0
    max_leverage: float = 3.0
    margin_call_level: float = 0.20    # fraction of wealth kept after a forced liquidation
    margin_call_buffer: float = 0.10
    slippage: float = 0.001            # 0.1% on market orders
    commission: float = 0.0            # $ per closed trade
    max_pending_orders: int = 10
    default_trailing_distance: float = 5.0  # accumulated-return points

    def __post_init__(self) -> None:
        _require(_finite(self.initial_capital) and self.initial_capital > 0, "initial_capital must be > 0")
        _require(_finite(self.max_leverage) and self.max_leverage >= 1.0, "max_leverage must be >= 1")
        _require(_finite(self.margin_call_level) and 0 <= self.margin_call_level < 1,
                 "margin_call_level must be in [0, 1)")
        _require(_finite(self.margin_call_buffer) and 0 <= self.margin_call_buffer < 1,
                 "margin_call_buffer must be in [0, 1)")
        _require(_finite(self.slippage) and 0 <= self.slippage < 1, "slippage must be in [0, 1)")
        _require(_finite(self.commission) and self.commission >= 0, "commission must be >= 0")
        _require(isinstance(self.max_pending_orders, int) and self.max_pending_orders > 0,
                 "max_pending_orders must be a positive int")
        _require(_finite(self.default_trailing_distance) and self.default_trailing_distance > 0,
                 "default_trailing_distance must be > 0")


@dataclass(frozen=True)
class WealthConfig:
    """Wealth engine (single aggregate position) settings."""
    starting_wealth: float = 10000.0
    target_wealth: float = 1_000_000.0
    leverage: float = 1.0
    cash_buffer: float = 0.2
    sensitivity: float = 0.02          # return per unit of normalized slope
    passive_rate: float = 0.0001       # per tick, reward for staying in the game
    bankruptcy_threshold: float = 100.0
    margin_call_buffer: float = 0.10
    margin_call_level: float = 0.20
    baseline_rate: float = 0.0002      # water level growth per tick
    water_start_ratio: float = 0.5
    max_drowning_ticks: int = 60
    reference_velocity: float = 5.0

    def __post_init__(self) -> None:
        _require(_finite(self.starting_wealth) and self.starting_wealth > 0, "starting_wealth must be > 0")
        _require(_finite(self.target_wealth) and self.target_wealth > self.starting_wealth,
                 "target_wealth must exceed starting_wealth")
        _require(_finite(self.leverage) and 0.5 <= self.leverage <= 3.0, "leverage must be in [0.5, 3.0]")
        _require(_finite(self.cash_buffer) and 0 <= self.cash_buffer <= 0.5, "cash_buffer must be in [0, 0.5]")
        _require(_finite(self.sensitivity) and self.sensitivity > 0, "sensitivity must be > 0")
        _require(_finite(self.passive_rate) and self.passive_rate >= 0, "passive_rate must be >= 0")
        _require(_finite(self.bankruptcy_threshold) and 0 <= self.bankruptcy_threshold < self.starting_wealth,
                 "bankruptcy_threshold must be below starting_wealth")
        _require(_finite(self.margin_call_buffer) and 0 <= self.margin_call_buffer < 1,
                 "margin_call_buffer must be in [0, 1)")
        _require(_finite(self.margin_call_level) and 0 <= self.margin_call_level < 1,
                 "margin_call_level must be in [0, 1)")
        _require(_finite(self.baseline_rate) and self.baseline_rate >= 0, "baseline_rate must be >= 0")
        _require(_finite(self.water_start_ratio) and self.water_start_ratio >= 0, "water_start_ratio must be >= 0")
        _require(isinstance(self.max_drowning_ticks, int) and self.max_drowning_ticks >= 0,
                 "max_drowning_ticks must be a non-negative int")
        _require(_finite(self.reference_velocity) and self.reference_velocity > 0, "reference_velocity must be > 0")


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_int(key: str, default: int = 0) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except ValueError:
            return default

    def env_float(key: str, default: float = 0.0) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except ValueError:
            return default

    engine = data.get("engine", {})
    wealth = data.get("wealth", {})
    telegram = data.get("telegram", {})
    logging_cfg = data.get("logging", {})
    data_cfg = data.get("data", {})

    engine_config = EngineConfig(
        initial_capital=env_float("INITIAL_CAPITAL", engine.get("initial_capital", 10000.0)),
        max_leverage=env_float("MAX_LEVERAGE", engine.get("max_leverage", 3.0)),
        margin_call_level=env_float("MARGIN_CALL_LEVEL", engine.get("margin_call_level", 0.20)),
        margin_call_buffer=env_float("MARGIN_CALL_BUFFER", engine.get("margin_call_buffer", 0.10)),
        slippage=env_float("SLIPPAGE", engine.get("slippage", 0.001)),
        commission=env_float("COMMISSION", engine.get("commission", 0.0)),
        max_pending_orders=env_int("MAX_PENDING_ORDERS", engine.get("max_pending_orders", 10)),
        default_trailing_distance=float(engine.get("default_trailing_distance", 5.0)),
    )
    wealth_config = WealthConfig(
        starting_wealth=env_float("STARTING_WEALTH", wealth.get("starting_wealth", 10000.0)),
        target_wealth=env_float("TARGET_WEALTH", wealth.get("target_wealth", 1_000_000.0)),
        leverage=env_float("WEALTH_LEVERAGE", wealth.get("leverage", 1.0)),
        cash_buffer=env_float("CASH_BUFFER", wealth.get("cash_buffer", 0.2)),
        sensitivity=float(wealth.get("sensitivity", 0.02)),
        passive_rate=float(wealth.get("passive_rate", 0.0001)),
        bankruptcy_threshold=float(wealth.get("bankruptcy_threshold", 100.0)),
        margin_call_buffer=float(wealth.get("margin_call_buffer", engine_config.margin_call_buffer)),
        margin_call_level=float(wealth.get("margin_call_level", engine_config.margin_call_level)),
        baseline_rate=float(wealth.get("baseline_rate", 0.0002)),
        water_start_ratio=float(wealth.get("water_start_ratio", 0.5)),
        max_drowning_ticks=int(wealth.get("max_drowning_ticks", 60)),
        reference_velocity=float(wealth.get("reference_velocity", 5.0)),
    )

    return Config(
        engine=engine_config,
        wealth=wealth_config,
        data_path=env("DATA_PATH", data_cfg.get("path", "")) or None,
        telegram_bot_token=env("TELEGRAM_BOT_TOKEN", telegram.get("bot_token", "")),
        telegram_chat_id=env("TELEGRAM_CHAT_ID", telegram.get("chat_id", "")),
        log_level=logging_cfg.get("level", "INFO"),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "wealth_drive.log"),
        log_areas=dict(logging_cfg.get("areas") or {}),
    )


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "engine", "wealth", "data_path",
        "telegram_bot_token", "telegram_chat_id",
        "log_level", "log_dir", "log_file", "log_areas",
    )

    def __init__(
        self,
        engine: Optional[EngineConfig] = None,
        wealth: Optional[WealthConfig] = None,
        data_path: Optional[str] = None,
        telegram_bot_token: str = "",
        telegram_chat_id: str = "",
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "wealth_drive.log",
        log_areas: Optional[dict] = None,
    ):
        self.engine = engine or EngineConfig()
        self.wealth = wealth or WealthConfig()
        self.data_path = Path(data_path) if data_path else None
        self.telegram_bot_token = telegram_bot_token
        self.telegram_chat_id = telegram_chat_id
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.log_areas = dict(log_areas or {})
