"""Composite score weighting policies — pure math, no I/O.

Two presets coexist:

* ``RANKING_WEIGHTS`` — ranks tickers on their real trade history
  (win rate 50 %, average profit 30 %, trade count 20 %).
* ``BACKTEST_WEIGHTS`` — evaluates a backtest run
  (win rate 30 %, Sharpe 30 %, profit factor 20 %, trade count 20 %).

Both are kept as named presets; callers pick the one that matches their
context.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ScoreWeights:
    """Weights of the 0–100 composite score.

    Each component is clipped to ``[0, cap]`` (the average-profit term to
    ``[-cap, cap]``) before summing.

    Attributes:
        name: Preset name.
        win_rate: Multiplier applied to the win rate percentage.
        profit_per_trade: Cap of the average-profit term.  The term is
            ``clip(avg_profit / profit_scale, ±10) × (cap / 10)``.
        profit_scale: Dollars of average profit per point.
        sharpe: Cap of the Sharpe term ``sharpe × 10``.
        profit_factor: Cap of the profit-factor term ``(pf − 1) × 10``.
        volume: Cap of the trade-count term; reached at
            ``volume_saturation`` completed trades.
        volume_saturation: Trade count earning the full volume term.
    """

    name: str
    win_rate: float = 0.0
    profit_per_trade: float = 0.0
    profit_scale: float = 10.0
    sharpe: float = 0.0
    profit_factor: float = 0.0
    volume: float = 20.0
    volume_saturation: int = 10


RANKING_WEIGHTS = ScoreWeights(name="ranking", win_rate=0.5, profit_per_trade=30.0)
BACKTEST_WEIGHTS = ScoreWeights(
    name="backtest", win_rate=0.3, sharpe=30.0, profit_factor=20.0,
)

def composite_score(
    weights: ScoreWeights,
    win_rate: float,
    completed_trades: int,
    avg_profit: float = 0.0,
    sharpe_ratio: float = 0.0,
    profit_factor: float = 0.0,
) -> float:
    """Blend performance figures into a score clamped to ``[0, 100]``.

    Args:
        weights: Weighting preset.
        win_rate: Win rate in percent (0–100).
        completed_trades: Number of closed round trips.
        avg_profit: Average realised profit per trade, in dollars.
        sharpe_ratio: Annualised Sharpe ratio.
        profit_factor: Gross profit / gross loss.
    """
    score = win_rate * weights.win_rate

    if weights.profit_per_trade:
        clipped = min(max(avg_profit / weights.profit_scale, -10.0), 10.0)
        score += clipped * (weights.profit_per_trade / 10.0)

    if weights.sharpe:
        score += min(max(sharpe_ratio * 10.0, 0.0), weights.sharpe)

    if weights.profit_factor:
        score += min(max((profit_factor - 1.0) * 10.0, 0.0), weights.profit_factor)

    if weights.volume and weights.volume_saturation > 0:
        score += min(completed_trades / weights.volume_saturation, 1.0) * weights.volume

    return max(0.0, min(100.0, score))
