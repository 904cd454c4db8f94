"""Backtest statistics — pure functions for trade-series analysis."""

import math
from dataclasses import asdict, dataclass
from typing import Sequence

from swingbot.risk.drawdown import DrawdownTracker
from swingbot.scoring.ranking import match_round_trips
from swingbot.strategy.models import EquityPoint, Trade


PROFIT_FACTOR_CAP = 999.0
TRADING_DAYS = 252


@dataclass(frozen=True)
class BacktestStats:
    """Aggregate figures derived from one simulation run.

    ``avg_loss`` is a positive magnitude; ``largest_loss`` keeps its sign.
    ``win_rate`` and ``max_drawdown_pct`` are percentages.
    """

    total_trades: int = 0
    completed_trades: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_profit: float = 0.0
    avg_profit: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_stats(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint] = (),
    risk_free_rate: float = 0.02,
) -> BacktestStats:
    """Compute summary statistics from a simulated trade list.

    Only sells (completed round trips) count toward wins, losses and
    profit; an unmatched trailing buy is ignored.

    Args:
        trades: Buy and sell trades in execution order.
        equity_curve: Equity at each decision point.
        risk_free_rate: Annual risk-free rate for the Sharpe ratio.
    """
    sells = [t for t in trades if t.side == "sell"]
    profits = [t.profit or 0.0 for t in sells]
    max_dd, max_dd_pct = _max_drawdown([p.equity for p in equity_curve])

    if not profits:
        return BacktestStats(
            total_trades=len(trades),
            max_drawdown=max_dd,
            max_drawdown_pct=max_dd_pct,
        )

    winners = [p for p in profits if p > 0]
    losers = [p for p in profits if p <= 0]
    completed = len(profits)

    total_profit = sum(profits)
    gross_profit = sum(winners)
    gross_loss = abs(sum(losers))
    win_rate = len(winners) / completed * 100.0
    avg_win = gross_profit / len(winners) if winners else 0.0
    avg_loss = gross_loss / len(losers) if losers else 0.0

    returns = [trip.return_pct for trip in match_round_trips(trades)]

    return BacktestStats(
        total_trades=len(trades),
        completed_trades=completed,
        wins=len(winners),
        losses=len(losers),
        win_rate=win_rate,
        total_profit=total_profit,
        avg_profit=total_profit / completed,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        avg_win=avg_win,
        avg_loss=avg_loss,
        largest_win=max(winners) if winners else 0.0,
        largest_loss=min(losers) if losers else 0.0,
        profit_factor=profit_factor(gross_profit, gross_loss),
        expectancy=(win_rate / 100.0) * avg_win - (1 - win_rate / 100.0) * avg_loss,
        sharpe_ratio=_sharpe(returns, risk_free_rate),
        max_drawdown=max_dd,
        max_drawdown_pct=max_dd_pct,
    )


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Gross profit over gross loss.

    ``PROFIT_FACTOR_CAP`` stands in for infinity when nothing was lost but
    something was won; 0 when both are zero.
    """
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return PROFIT_FACTOR_CAP
    return 0.0


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(returns: Sequence[float], risk_free_rate: float = 0.02) -> float:
    """Annualised Sharpe ratio from per-trade fractional returns.

    Subtracts the daily risk-free rate (``annual / 252``) and uses the
    population standard deviation.  Returns 0.0 for an empty series or
    zero variance.
    """
    n = len(returns)
    if n == 0:
        return 0.0
    daily_rf = risk_free_rate / TRADING_DAYS
    excess = [r - daily_rf for r in returns]
    mean = sum(excess) / n
    variance = sum((r - mean) ** 2 for r in excess) / n
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(TRADING_DAYS)


def _max_drawdown(equity: Sequence[float]) -> tuple[float, float]:
    """Largest peak-to-trough decline of an equity series.

    Returns ``(absolute, percent_of_peak)``; the percent is the one
    observed at the largest absolute decline.
    """
    if not equity:
        return 0.0, 0.0
    tracker = DrawdownTracker(equity[0])
    for value in equity:
        tracker.mark("", value)
    return tracker.max_drawdown, tracker.max_drawdown_pct
