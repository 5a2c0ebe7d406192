"""Configuration loading and validation."""

import pytest
from wealth_drive.core.config import Config, EngineConfig, WealthConfig, load_config
from wealth_drive.core.errors import ConfigError


def test_defaults():
    config = Config()
    assert config.engine.initial_capital == 10000.0
    assert config.engine.max_leverage == 3.0
    assert config.engine.margin_call_level == 0.20
    assert config.engine.margin_call_buffer == 0.10
    assert config.engine.slippage == 0.001
    assert config.engine.commission == 0.0
    assert config.wealth.leverage == 1.0


def test_invalid_values_raise_config_error():
    with pytest.raises(ConfigError):
        EngineConfig(initial_capital=0)
    with pytest.raises(ConfigError):
        EngineConfig(max_leverage=0.5)
    with pytest.raises(ConfigError):
        EngineConfig(slippage=float("nan"))
    with pytest.raises(ValueError):
        WealthConfig(leverage=4.0)
    with pytest.raises(ConfigError):
        WealthConfig(target_wealth=5000)


def test_load_config_yaml_and_env(tmp_path, monkeypatch):
    for key in ("INITIAL_CAPITAL", "MAX_LEVERAGE", "SLIPPAGE", "WEALTH_LEVERAGE", "DATA_PATH"):
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "engine:\n"
        "  initial_capital: 25000\n"
        "  commission: 1.5\n"
        "wealth:\n"
        "  leverage: 2.0\n"
        "logging:\n"
        "  level: DEBUG\n"
        "  areas:\n"
        "    execution: WARNING\n"
    )
    monkeypatch.setenv("SLIPPAGE", "0.002")
    config = load_config(path, tmp_path)
    assert config.engine.initial_capital == 25000
    assert config.engine.commission == 1.5
    assert config.engine.slippage == 0.002
    assert config.wealth.leverage == 2.0
    assert config.log_level == "DEBUG"
    assert config.log_areas == {"execution": "WARNING"}
    assert config.data_path is None


def test_load_config_missing_file_uses_defaults(tmp_path, monkeypatch):
    for key in ("INITIAL_CAPITAL", "MAX_LEVERAGE", "SLIPPAGE", "COMMISSION"):
        monkeypatch.delenv(key, raising=False)
    config = load_config(tmp_path / "nope.yaml", tmp_path)
    assert config.engine == EngineConfig()
