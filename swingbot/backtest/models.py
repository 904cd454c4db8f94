"""Backtest result model."""

from dataclasses import dataclass, field
from typing import Optional

from swingbot.backtest.stats import BacktestStats
from swingbot.strategy.models import EquityPoint, Position, Trade


@dataclass(frozen=True)
class BacktestResult:
    """Outcome of one simulation run over one ticker.

    ``open_position`` is the position still held when the series ended; it
    is reported but never counted in ``stats``.
    """

    ticker: str
    strategy: str
    trades: tuple[Trade, ...] = ()
    equity_curve: tuple[EquityPoint, ...] = ()
    stats: BacktestStats = field(default_factory=BacktestStats)
    score: float = 0.0
    open_position: Optional[Position] = None
    error: Optional[str] = None

    @classmethod
    def empty(
        cls, ticker: str, strategy: str = "", error: Optional[str] = None,
    ) -> "BacktestResult":
        """Zero-trade result used when no data could be simulated."""
        return cls(ticker=ticker, strategy=strategy, error=error)

    def to_dict(self) -> dict:
        pos = self.open_position
        return {
            "ticker": self.ticker,
            "strategy": self.strategy,
            "score": round(self.score, 2),
            "stats": self.stats.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "equity_curve": [
                {
                    "date": p.timestamp,
                    "equity": round(p.equity, 2),
                    "drawdown": round(p.drawdown_pct, 4),
                }
                for p in self.equity_curve
            ],
            "open_position": (
                {
                    "entry_price": pos.entry_price,
                    "quantity": pos.quantity,
                    "entry_time": pos.entry_time,
                }
                if pos else None
            ),
            "error": self.error,
        }
