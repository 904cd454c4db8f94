"""Batch backtesting across many tickers.

Tickers are processed in fixed-size batches with a pause between batches
to respect data-provider rate limits.  Within a batch, data fetches run
concurrently on the event loop and each simulation runs in a worker
thread with its own engine, so no state is shared between runs.
"""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence

from swingbot.backtest.engine import BacktestEngine, history_days
from swingbot.backtest.models import BacktestResult
from swingbot.config import StrategyParams
from swingbot.data.base import HistoricalDataSource
from swingbot.errors import ExternalFetchFailure
from swingbot.strategy.registry import get_strategy

logger = logging.getLogger("swingbot.batch")


class BatchBacktester:
    """Runs one strategy over a list of tickers.

    Args:
        source: Where historical bars come from.
        strategy_name: Registry key, ``"basic"`` or ``"enhanced"``.
        params: Strategy parameters; the strategy's defaults when ``None``.
        batch_size: Tickers per batch.
        batch_delay: Seconds to sleep between batches.
        max_workers: Simulation thread pool size.
        initial_equity: Starting virtual equity per ticker.
    """

    def __init__(
        self,
        source: HistoricalDataSource,
        strategy_name: str = "enhanced",
        params: Optional[StrategyParams] = None,
        batch_size: int = 10,
        batch_delay: float = 1.0,
        max_workers: Optional[int] = None,
        initial_equity: float = 10_000.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        # Fail fast on an unknown strategy name.
        get_strategy(strategy_name, params)
        self._source = source
        self._strategy_name = strategy_name
        self._params = params
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._max_workers = max_workers or os.cpu_count() or 1
        self._initial_equity = initial_equity
        self._cancelled = False

    def cancel(self) -> None:
        """Stop after the current step of every running simulation."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    # ── Public API ───────────────────────────────────────────────────────

    async def run(
        self,
        tickers: Sequence[str],
        days: int = 365,
        on_result: Optional[Callable[[BacktestResult], None]] = None,
    ) -> list[BacktestResult]:
        """Backtest every ticker and return results sorted by score.

        A ticker whose fetch or simulation fails yields an empty result
        carrying the error; it never aborts the batch.

        Args:
            tickers: Symbols to test; duplicates are dropped.
            days: Calendar days evaluated per ticker; warm-up history is
                  fetched on top.
            on_result: Optional callback invoked as each result completes.
        """
        unique = list(dict.fromkeys(t.strip().upper() for t in tickers if t.strip()))
        results: list[BacktestResult] = []

        loop = asyncio.get_running_loop()
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            for start in range(0, len(unique), self._batch_size):
                if self._cancelled:
                    logger.info("Batch cancelled after %d tickers", len(results))
                    break
                if start > 0 and self._batch_delay > 0:
                    await asyncio.sleep(self._batch_delay)

                batch = unique[start : start + self._batch_size]
                logger.info(
                    "Batch %d: backtesting %s",
                    start // self._batch_size + 1, ", ".join(batch),
                )
                batch_results = await asyncio.gather(
                    *(self._run_one(loop, pool, t, days) for t in batch)
                )
                for result in batch_results:
                    results.append(result)
                    if on_result is not None:
                        on_result(result)

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _run_one(
        self,
        loop: asyncio.AbstractEventLoop,
        pool: ThreadPoolExecutor,
        ticker: str,
        days: int,
    ) -> BacktestResult:
        engine = BacktestEngine(
            get_strategy(self._strategy_name, self._params),
            initial_equity=self._initial_equity,
        )
        try:
            bars = await self._source.fetch(ticker, history_days(days, engine.warmup))
        except ExternalFetchFailure as exc:
            logger.warning("Skipping %s: %s", ticker, exc)
            return BacktestResult.empty(ticker, self._strategy_name, error=str(exc))

        if not bars:
            logger.warning("Skipping %s: no data", ticker)
            return BacktestResult.empty(ticker, self._strategy_name, error="No data")

        try:
            return await loop.run_in_executor(
                pool, engine.run, ticker, bars, lambda: self._cancelled,
            )
        except Exception as exc:
            logger.exception("Backtest %s failed", ticker)
            return BacktestResult.empty(ticker, self._strategy_name, error=str(exc))
