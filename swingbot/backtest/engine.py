"""Backtest engine — replays historical bars through a strategy.

Iterates bars chronologically, asking the strategy for a decision at each
step with only the bars seen so far, and simulates fills at the close with
virtual equity.  No real orders are placed.
"""

import logging
import math
from typing import Callable, Optional, Sequence

from swingbot.backtest.models import BacktestResult
from swingbot.backtest.stats import calculate_stats
from swingbot.config import StrategyParams
from swingbot.data.base import HistoricalDataSource
from swingbot.errors import ExternalFetchFailure
from swingbot.risk.drawdown import DrawdownTracker
from swingbot.scoring.policy import BACKTEST_WEIGHTS, ScoreWeights, composite_score
from swingbot.strategy.base import MIN_BARS, StrategyProtocol
from swingbot.strategy.models import Action, Bar, EquityPoint, Position, Trade
from swingbot.strategy.registry import get_strategy

logger = logging.getLogger("swingbot.backtest")

# (warm-up index, trailing window) per strategy variant.  The enhanced
# variant needs 250 bars so its SMA(200) trend filter is live.
_WARMUP_DEFAULTS: dict[str, tuple[int, int]] = {
    "basic": (MIN_BARS, 100),
    "enhanced": (250, 250),
}

# Calendar days per trading day, plus slack for holidays, when sizing the
# history needed to cover a warm-up.
_CALENDAR_PER_TRADING_DAY = 365 / 252
_FETCH_SLACK_DAYS = 10


def history_days(days: int, warmup: int) -> int:
    """Calendar days to fetch so about *days* remain after *warmup* bars."""
    return days + math.ceil(warmup * _CALENDAR_PER_TRADING_DAY) + _FETCH_SLACK_DAYS


class BacktestEngine:
    """Simulates one strategy on one bar series.

    Each ``run`` keeps its cash, position, equity curve and trade list in
    local variables, so a single engine may be reused, but concurrent runs
    should each use their own instance.

    Args:
        strategy: A strategy implementing ``StrategyProtocol``.
        initial_equity: Starting virtual equity.
        warmup: Index of the first bar evaluated.  Defaults per variant.
        window: Number of trailing bars (plus the current one) handed to the
                strategy.  Defaults per variant.
        weights: Composite-score preset applied to the result.
    """

    def __init__(
        self,
        strategy: StrategyProtocol,
        initial_equity: float = 10_000.0,
        warmup: Optional[int] = None,
        window: Optional[int] = None,
        weights: ScoreWeights = BACKTEST_WEIGHTS,
    ) -> None:
        if initial_equity <= 0:
            raise ValueError(
                f"initial_equity must be positive, got {initial_equity}"
            )
        default_warmup, default_window = _WARMUP_DEFAULTS.get(
            strategy.name, (MIN_BARS, 100)
        )
        self._strategy = strategy
        self._initial_equity = initial_equity
        self._warmup = default_warmup if warmup is None else warmup
        self._window = default_window if window is None else window
        self._weights = weights

    @property
    def params(self) -> StrategyParams:
        return self._strategy.params

    @property
    def warmup(self) -> int:
        return self._warmup

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        ticker: str,
        bars: Sequence[Bar],
        cancel: Optional[Callable[[], bool]] = None,
    ) -> BacktestResult:
        """Execute a full backtest over *bars*.

        Args:
            ticker: Symbol being simulated.
            bars: Daily bars ordered oldest-first.
            cancel: Optional callable checked between steps; the run stops
                    early (keeping what it has) when it returns ``True``.

        Returns:
            ``BacktestResult`` with trades, equity curve, stats and score.
        """
        equity = self._initial_equity
        tracker = DrawdownTracker(self._initial_equity)
        position: Optional[Position] = None
        trades: list[Trade] = []
        equity_curve: list[EquityPoint] = []

        for i in range(self._warmup, len(bars)):
            if cancel is not None and cancel():
                logger.info("Backtest %s cancelled at bar %d", ticker, i)
                break

            bar = bars[i]
            history = bars[max(0, i - self._window) : i + 1]
            signal = self._strategy.generate_signal(ticker, position, history)

            if signal.action is Action.BUY and position is None:
                qty = math.floor(self.params.position_size_usd / bar.close)
                if qty > 0:
                    indicators = signal.indicators
                    position = Position(
                        ticker=ticker,
                        entry_price=bar.close,
                        quantity=qty,
                        entry_time=bar.timestamp,
                        stop_loss=indicators.atr_stop_loss if indicators else None,
                        profit_target=(
                            indicators.atr_profit_target if indicators else None
                        ),
                    )
                    trades.append(
                        Trade(ticker, "buy", bar.close, qty, bar.timestamp)
                    )

            elif signal.action is Action.SELL and position is not None:
                profit = (bar.close - position.entry_price) * position.quantity
                equity += profit
                trades.append(
                    Trade(
                        ticker, "sell", bar.close, position.quantity,
                        bar.timestamp, profit=profit,
                    )
                )
                position = None

            equity_curve.append(tracker.mark(bar.timestamp, equity))

        stats = calculate_stats(trades, equity_curve)
        score = composite_score(
            self._weights,
            win_rate=stats.win_rate,
            completed_trades=stats.completed_trades,
            avg_profit=stats.avg_profit,
            sharpe_ratio=stats.sharpe_ratio,
            profit_factor=stats.profit_factor,
        )

        logger.info(
            "Backtest %s [%s]: %d trades, %dW/%dL, win rate %.1f%%, "
            "Sharpe %.2f, max DD %.2f%%, score %.0f",
            ticker, self._strategy.name, stats.completed_trades,
            stats.wins, stats.losses, stats.win_rate,
            stats.sharpe_ratio, stats.max_drawdown_pct, score,
        )

        return BacktestResult(
            ticker=ticker,
            strategy=self._strategy.name,
            trades=tuple(trades),
            equity_curve=tuple(equity_curve),
            stats=stats,
            score=score,
            open_position=position,
        )


async def backtest_ticker(
    ticker: str,
    source: HistoricalDataSource,
    days: int = 90,
    strategy_name: str = "enhanced",
    params: Optional[StrategyParams] = None,
    initial_equity: float = 10_000.0,
) -> BacktestResult:
    """Backtest *ticker* over roughly the last *days* calendar days.

    Extra history is fetched ahead of the window so the strategy's warm-up
    bars come before it.  A failed fetch or an empty series yields
    ``BacktestResult.empty`` instead of an exception, so batch jobs can
    move on.
    """
    engine = BacktestEngine(
        get_strategy(strategy_name, params), initial_equity=initial_equity,
    )
    try:
        bars = await source.fetch(ticker, history_days(days, engine.warmup))
    except ExternalFetchFailure as exc:
        logger.warning("Backtest %s skipped: %s", ticker, exc)
        return BacktestResult.empty(ticker, strategy_name, error=str(exc))

    if not bars:
        return BacktestResult.empty(ticker, strategy_name, error="No data")

    return engine.run(ticker, bars)
