"""Strategy data models — typed representations for strategy inputs and outputs."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class Bar:
    """A single OHLCV bar, ordered oldest-first in every series."""

    timestamp: str
    open: float
    high: float
    low: float
    close: float
    volume: float


def bar_from_dict(raw: dict[str, Any]) -> Bar:
    """Normalise a raw bar payload into a ``Bar``.

    Accepts both the short Alpaca keys (``t``, ``o``, ``h``, ``l``, ``c``,
    ``v``) and long keys (``timestamp``, ``open``, ...).
    """

    def _pick(short: str, long: str, default: Any = None) -> Any:
        if raw.get(short) is not None:
            return raw[short]
        if raw.get(long) is not None:
            return raw[long]
        if default is not None:
            return default
        raise KeyError(f"Bar payload missing '{short}'/'{long}': {raw!r}")

    return Bar(
        timestamp=str(_pick("t", "timestamp")),
        open=float(_pick("o", "open")),
        high=float(_pick("h", "high")),
        low=float(_pick("l", "low")),
        close=float(_pick("c", "close")),
        volume=float(_pick("v", "volume", 0)),
    )


class Action(str, Enum):
    """Decision emitted by a strategy."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


@dataclass(frozen=True)
class Position:
    """An open position; at most one per ticker."""

    ticker: str
    entry_price: float
    quantity: float
    entry_time: str = ""
    stop_loss: Optional[float] = None  # fixed at entry, if known
    profit_target: Optional[float] = None

    def profit_percent(self, price: float) -> float:
        """Unrealised P/L at *price* as a percentage of entry."""
        if self.entry_price == 0:
            return 0.0
        return (price - self.entry_price) / self.entry_price * 100.0


@dataclass(frozen=True)
class Indicators:
    """Indicator snapshot attached to every decision."""

    rsi: float
    dip_percent: float
    current_price: float
    volume: float = 0.0
    avg_volume: float = 0.0
    volume_ratio: float = 0.0
    atr: Optional[float] = None
    sma: Optional[float] = None
    sma_period: int = 0  # 0 when the trend filter had too little data
    above_sma: bool = True
    atr_stop_loss: Optional[float] = None
    atr_profit_target: Optional[float] = None
    profit_percent: Optional[float] = None  # only when holding

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Signal:
    """A trading decision with its human-readable reason."""

    ticker: str
    action: Action
    reason: str
    indicators: Optional[Indicators] = None
    score: Optional[int] = None  # confluence score, enhanced variant only

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "action": self.action.value,
            "reason": self.reason,
            "score": self.score,
            "indicators": self.indicators.to_dict() if self.indicators else {},
        }


@dataclass(frozen=True)
class Trade:
    """An executed (real or simulated) fill."""

    ticker: str
    side: str  # "buy" or "sell"
    price: float
    quantity: float
    timestamp: str
    profit: Optional[float] = None  # realised, sell side only

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class EquityPoint:
    """One point on a backtest equity curve."""

    timestamp: str
    equity: float
    drawdown_pct: float
