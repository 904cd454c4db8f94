"""Ticker ranking — turns a completed-trade history into a score and status.

Runs against real or simulated trades alike, independently of the
backtester.
"""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from typing import Iterable, Sequence

from swingbot.scoring.policy import RANKING_WEIGHTS, ScoreWeights, composite_score
from swingbot.strategy.models import Trade


MIN_TRADES_FOR_EVALUATION = 3
EXCELLENT_SCORE = 70.0
POOR_SCORE = 30.0
REMOVE_SCORE = 20.0
CONSISTENT_LOSER_TRADES = 5
CONSISTENT_LOSER_WIN_RATE = 25.0
UNPROVEN_SCORE = 50.0


@dataclass(frozen=True)
class RoundTrip:
    """A buy matched with the sell that closed it."""

    buy: Trade
    sell: Trade

    @property
    def profit(self) -> float:
        return (self.sell.price - self.buy.price) * self.sell.quantity

    @property
    def return_pct(self) -> float:
        """Fractional return, ``(sell - buy) / buy``."""
        if self.buy.price == 0:
            return 0.0
        return (self.sell.price - self.buy.price) / self.buy.price


def match_round_trips(trades: Iterable[Trade]) -> list[RoundTrip]:
    """Pair each sell with the oldest unmatched earlier buy (FIFO).

    Sells with no earlier buy are ignored.  *trades* must be in execution
    order.
    """
    open_buys: deque[Trade] = deque()
    trips: list[RoundTrip] = []
    for trade in trades:
        if trade.side == "buy":
            open_buys.append(trade)
        elif trade.side == "sell" and open_buys:
            trips.append(RoundTrip(buy=open_buys.popleft(), sell=trade))
    return trips


@dataclass(frozen=True)
class TickerScore:
    """Performance summary of one ticker."""

    ticker: str
    total_trades: int
    completed_trades: int
    wins: int
    losses: int
    win_rate: float
    total_profit: float
    avg_profit: float
    score: float
    status: str  # "unproven", "excellent", "good" or "poor"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Decision:
    """Yes/no answer with the reason recorded alongside it."""

    ok: bool
    reason: str


def classify(score: float, completed_trades: int) -> str:
    """Map a score to a status bucket."""
    if completed_trades < MIN_TRADES_FOR_EVALUATION:
        return "unproven"
    if score >= EXCELLENT_SCORE:
        return "excellent"
    if score >= POOR_SCORE:
        return "good"
    return "poor"


def score_ticker(
    trades: Sequence[Trade],
    ticker: str = "",
    weights: ScoreWeights = RANKING_WEIGHTS,
) -> TickerScore:
    """Score a ticker from its trade history.

    A ticker with no trades at all gets the neutral ``UNPROVEN_SCORE``.
    """
    if not ticker and trades:
        ticker = trades[0].ticker
    if not trades:
        return TickerScore(
            ticker=ticker,
            total_trades=0,
            completed_trades=0,
            wins=0,
            losses=0,
            win_rate=0.0,
            total_profit=0.0,
            avg_profit=0.0,
            score=UNPROVEN_SCORE,
            status="unproven",
        )

    trips = match_round_trips(trades)
    profits = [t.profit for t in trips]
    wins = sum(1 for p in profits if p > 0)
    losses = len(profits) - wins
    completed = len(profits)
    total_profit = sum(profits)
    win_rate = wins / completed * 100.0 if completed else 0.0
    avg_profit = total_profit / completed if completed else 0.0

    score = composite_score(
        weights,
        win_rate=win_rate,
        completed_trades=completed,
        avg_profit=avg_profit,
    )
    return TickerScore(
        ticker=ticker,
        total_trades=len(trades),
        completed_trades=completed,
        wins=wins,
        losses=losses,
        win_rate=win_rate,
        total_profit=total_profit,
        avg_profit=avg_profit,
        score=score,
        status=classify(score, completed),
    )


# ── Decisions ────────────────────────────────────────────────────────────


def should_buy(performance: TickerScore) -> Decision:
    """Approve a strategy buy unless the ticker is a known loser."""
    if performance.status == "unproven":
        return Decision(True, "Unproven ticker - testing it out")
    if performance.status == "excellent":
        return Decision(
            True,
            f"Excellent performer (Score: {performance.score:.0f}, "
            f"Win Rate: {performance.win_rate:.1f}%)",
        )
    if performance.status == "good":
        return Decision(True, f"Good performer (Score: {performance.score:.0f})")
    return Decision(
        False,
        f"Poor performer (Score: {performance.score:.0f}, "
        f"Win Rate: {performance.win_rate:.1f}%) - skipping",
    )


def should_remove(performance: TickerScore) -> Decision:
    """Decide whether a ticker should leave the watchlist."""
    if performance.status == "unproven":
        return Decision(False, "Not enough data yet")
    if performance.score < REMOVE_SCORE:
        return Decision(
            True,
            f"Critically poor performance (Score: {performance.score:.0f}, "
            f"Win Rate: {performance.win_rate:.1f}%, "
            f"Total P/L: ${performance.total_profit:.2f})",
        )
    if (
        performance.completed_trades >= CONSISTENT_LOSER_TRADES
        and performance.win_rate < CONSISTENT_LOSER_WIN_RATE
    ):
        return Decision(
            True,
            f"Consistent loser ({performance.wins}W/{performance.losses}L, "
            f"Win Rate: {performance.win_rate:.1f}%)",
        )
    return Decision(False, "Performance acceptable")
