"""
Logging setup for the wealth_drive logger tree. Console plus optional file,
with per-area level overrides (e.g. execution at DEBUG, everything else INFO).
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from wealth_drive.core.errors import ConfigError

ROOT_LOGGER = "wealth_drive"
# Child loggers used by the package, one per area
AREAS = ("analytics", "backtest", "data", "events", "execution", "portfolio", "risk", "utils")


def _level(name: str) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
    area_levels: Optional[Dict[str, str]] = None,
) -> logging.Logger:
    """
    Configure the package logger: console and optional file.
    `area_levels` maps an area in AREAS to its own level.
    Never log Telegram tokens.
    """
    unknown = set(area_levels or {}) - set(AREAS)
    if unknown:
        raise ConfigError(f"unknown logging area(s): {', '.join(sorted(unknown))}")

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(_level(level))
    root.handlers.clear()
    for area in AREAS:
        logging.getLogger(f"{ROOT_LOGGER}.{area}").setLevel(logging.NOTSET)
    for area, area_level in (area_levels or {}).items():
        logging.getLogger(f"{ROOT_LOGGER}.{area}").setLevel(_level(area_level))

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir and log_file:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)

    return root
