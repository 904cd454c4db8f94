"""SwingBot — application configuration.

Loads .env variables into a typed config object and strategy parameters
from a JSON file.  Validates both on startup.
"""

import json
import os
import pathlib
from dataclasses import asdict, dataclass, fields

from dotenv import load_dotenv

from swingbot.errors import InvalidConfiguration


_REQUIRED_VARS = [
    "ALPACA_API_KEY",
    "ALPACA_SECRET_KEY",
]


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    alpaca_api_key: str
    alpaca_secret_key: str
    alpaca_base_url: str
    alpaca_data_url: str
    db_path: str
    log_level: str
    health_port: int
    poll_interval_seconds: int
    strategy: str  # strategy registry key, e.g. "enhanced"
    strategy_params_path: str

    @property
    def is_paper(self) -> bool:
        """``True`` when orders go to the paper-trading endpoint."""
        return "paper-api" in self.alpaca_base_url


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    return Config(
        alpaca_api_key=os.environ["ALPACA_API_KEY"],
        alpaca_secret_key=os.environ["ALPACA_SECRET_KEY"],
        alpaca_base_url=os.environ.get(
            "ALPACA_BASE_URL", "https://paper-api.alpaca.markets"
        ),
        alpaca_data_url=os.environ.get(
            "ALPACA_DATA_URL", "https://data.alpaca.markets"
        ),
        db_path=os.environ.get("DB_PATH", "data/swingbot.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
        poll_interval_seconds=int(os.environ.get("POLL_INTERVAL_SECONDS", "900")),
        strategy=os.environ.get("STRATEGY", "enhanced"),
        strategy_params_path=os.environ.get("STRATEGY_PARAMS_PATH", "strategy.json"),
    )


# ── Strategy parameters ──────────────────────────────────────────────────


@dataclass(frozen=True)
class StrategyParams:
    """Tunable parameters shared by every strategy variant.

    Instances are validated on construction, so a ``StrategyParams`` that
    exists is always usable by the signal engine.
    """

    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    dip_percentage: float = 5.0  # % drop from lookback high
    profit_target_percent: float = 8.0  # fixed-percent exit (basic variant)
    stop_loss_percent: float = 3.0  # fixed-percent exit (basic variant)
    position_size_usd: float = 1000.0
    max_positions: int = 5
    lookback_days: int = 20

    def __post_init__(self) -> None:
        validate_params(self)

    def to_dict(self) -> dict:
        """Plain-dict form, suitable for JSON and the ``/strategy`` route."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StrategyParams":
        """Build from a dict, rejecting keys that are not parameters."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfiguration(
                f"Unknown strategy parameter(s): {', '.join(unknown)}"
            )
        return cls(**data)


def validate_params(params: StrategyParams) -> None:
    """Reject parameter combinations the signal engine cannot use.

    Raises:
        InvalidConfiguration: Naming every offending field.
    """
    errors: list[str] = []

    for name in ("rsi_oversold", "rsi_overbought"):
        value = getattr(params, name)
        if not 0 <= value <= 100:
            errors.append(f"{name} must be within 0-100, got {value}")
    if params.rsi_oversold >= params.rsi_overbought:
        errors.append(
            f"rsi_oversold ({params.rsi_oversold}) must be below "
            f"rsi_overbought ({params.rsi_overbought})"
        )
    if params.dip_percentage < 0:
        errors.append(f"dip_percentage must be >= 0, got {params.dip_percentage}")
    if params.profit_target_percent < 0:
        errors.append(
            f"profit_target_percent must be >= 0, got {params.profit_target_percent}"
        )
    if params.stop_loss_percent < 0:
        errors.append(
            f"stop_loss_percent must be >= 0, got {params.stop_loss_percent}"
        )
    if params.position_size_usd <= 0:
        errors.append(
            f"position_size_usd must be positive, got {params.position_size_usd}"
        )
    if params.max_positions < 1:
        errors.append(f"max_positions must be >= 1, got {params.max_positions}")
    if params.lookback_days < 1:
        errors.append(f"lookback_days must be >= 1, got {params.lookback_days}")

    if errors:
        raise InvalidConfiguration("; ".join(errors))


# Relaxed preset used by the basic backtester to generate more signals.
BACKTEST_PARAMS = StrategyParams(rsi_oversold=45.0, dip_percentage=2.0)


def load_strategy_params(path: str | None = None) -> StrategyParams:
    """Load strategy parameters from a JSON file.

    Falls back to the defaults when *path* is ``None`` or does not exist.

    Raises:
        InvalidConfiguration: If the file is not a JSON object or holds
            invalid values.
    """
    if path is None or not pathlib.Path(path).exists():
        return StrategyParams()

    try:
        data = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidConfiguration(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise InvalidConfiguration(f"{path} must contain a JSON object")
    return StrategyParams.from_dict(data)


def save_strategy_params(params: StrategyParams, path: str) -> None:
    """Persist *params* as JSON, creating parent directories as needed."""
    target = pathlib.Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        json.dumps(params.to_dict(), indent=2) + "\n", encoding="utf-8"
    )
