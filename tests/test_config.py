"""Tests for swingbot.config — environment loading and strategy parameters."""

import json

import pytest

from swingbot.config import (
    BACKTEST_PARAMS,
    StrategyParams,
    load_config,
    load_strategy_params,
    save_strategy_params,
)
from swingbot.errors import InvalidConfiguration


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure SwingBot env vars are cleared between tests."""
    for var in [
        "ALPACA_API_KEY",
        "ALPACA_SECRET_KEY",
        "ALPACA_BASE_URL",
        "ALPACA_DATA_URL",
        "DB_PATH",
        "LOG_LEVEL",
        "HEALTH_PORT",
        "POLL_INTERVAL_SECONDS",
        "STRATEGY",
        "STRATEGY_PARAMS_PATH",
    ]:
        # setenv first so teardown also undoes values load_dotenv adds.
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)


def _set_required(monkeypatch):
    """Set the minimum required environment variables."""
    monkeypatch.setenv("ALPACA_API_KEY", "PKTEST123")
    monkeypatch.setenv("ALPACA_SECRET_KEY", "secret-abc")


def _no_env_file(tmp_path):
    return str(tmp_path / "nonexistent.env")


class TestLoadConfig:
    def test_loads_required_vars(self, monkeypatch, tmp_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path=_no_env_file(tmp_path))
        assert cfg.alpaca_api_key == "PKTEST123"
        assert cfg.alpaca_secret_key == "secret-abc"

    def test_defaults(self, monkeypatch, tmp_path):
        _set_required(monkeypatch)
        cfg = load_config(env_path=_no_env_file(tmp_path))
        assert cfg.alpaca_base_url == "https://paper-api.alpaca.markets"
        assert cfg.alpaca_data_url == "https://data.alpaca.markets"
        assert cfg.db_path == "data/swingbot.db"
        assert cfg.log_level == "INFO"
        assert cfg.health_port == 8080
        assert cfg.poll_interval_seconds == 900
        assert cfg.strategy == "enhanced"
        assert cfg.is_paper is True

    def test_config_missing_var(self, monkeypatch, tmp_path):
        monkeypatch.setenv("ALPACA_API_KEY", "PKTEST123")
        with pytest.raises(ValueError, match="ALPACA_SECRET_KEY"):
            load_config(env_path=_no_env_file(tmp_path))

    def test_live_endpoint(self, monkeypatch, tmp_path):
        _set_required(monkeypatch)
        monkeypatch.setenv("ALPACA_BASE_URL", "https://api.alpaca.markets")
        cfg = load_config(env_path=_no_env_file(tmp_path))
        assert cfg.is_paper is False

    def test_reads_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "ALPACA_API_KEY=from-file\nALPACA_SECRET_KEY=s\nSTRATEGY=basic\n"
        )
        cfg = load_config(env_path=str(env_file))
        assert cfg.alpaca_api_key == "from-file"
        assert cfg.strategy == "basic"


class TestStrategyParams:
    def test_defaults(self):
        params = StrategyParams()
        assert params.rsi_oversold == 30.0
        assert params.rsi_overbought == 70.0
        assert params.dip_percentage == 5.0
        assert params.profit_target_percent == 8.0
        assert params.stop_loss_percent == 3.0
        assert params.position_size_usd == 1000.0
        assert params.max_positions == 5
        assert params.lookback_days == 20

    def test_relaxed_backtest_preset(self):
        assert BACKTEST_PARAMS.rsi_oversold == 45.0
        assert BACKTEST_PARAMS.dip_percentage == 2.0

    def test_oversold_must_be_below_overbought(self):
        with pytest.raises(InvalidConfiguration, match="rsi_oversold"):
            StrategyParams(rsi_oversold=70.0, rsi_overbought=70.0)

    def test_every_bad_field_reported(self):
        with pytest.raises(InvalidConfiguration) as exc_info:
            StrategyParams(position_size_usd=0.0, lookback_days=0, dip_percentage=-1.0)
        message = str(exc_info.value)
        assert "position_size_usd" in message
        assert "lookback_days" in message
        assert "dip_percentage" in message

    def test_rsi_bounds(self):
        with pytest.raises(InvalidConfiguration):
            StrategyParams(rsi_overbought=120.0)

    def test_unknown_keys_rejected(self):
        with pytest.raises(InvalidConfiguration, match="bogus"):
            StrategyParams.from_dict({"bogus": 1})

    def test_dict_round_trip(self):
        params = StrategyParams(rsi_oversold=25.0, max_positions=3)
        assert StrategyParams.from_dict(params.to_dict()) == params


class TestStrategyParamsFile:
    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_strategy_params(str(tmp_path / "none.json")) == StrategyParams()
        assert load_strategy_params(None) == StrategyParams()

    def test_partial_file_merges_with_defaults(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text(json.dumps({"rsi_oversold": 25, "lookback_days": 10}))
        params = load_strategy_params(str(path))
        assert params.rsi_oversold == 25
        assert params.lookback_days == 10
        assert params.rsi_overbought == 70.0

    def test_save_then_load(self, tmp_path):
        path = str(tmp_path / "nested" / "strategy.json")
        params = StrategyParams(dip_percentage=3.5)
        save_strategy_params(params, path)
        assert load_strategy_params(path) == params

    def test_bad_json(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text("{not json")
        with pytest.raises(InvalidConfiguration, match="not valid JSON"):
            load_strategy_params(str(path))

    def test_non_object(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text("[1, 2]")
        with pytest.raises(InvalidConfiguration, match="JSON object"):
            load_strategy_params(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text(json.dumps({"max_positions": 0}))
        with pytest.raises(InvalidConfiguration, match="max_positions"):
            load_strategy_params(str(path))
