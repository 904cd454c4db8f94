"""SwingBot — Trading engine (orchestration loop).

Connects the watchlist, strategy, ticker ranking, position sizing and
broker into a single polling loop.  Strategy evaluates → ranking approves →
engine sizes and places the order → repos record what happened.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

import httpx

from swingbot.broker.base import BrokerGateway
from swingbot.broker.models import BrokerPosition
from swingbot.config import Config
from swingbot.errors import ExternalFetchFailure
from swingbot.repos.execution_repo import ExecutionRepo
from swingbot.repos.signal_repo import SignalRepo
from swingbot.repos.trade_repo import TradeRepo
from swingbot.repos.watchlist_repo import WatchlistRepo
from swingbot.risk.position_sizer import SizingConfig, calculate_position_size
from swingbot.scoring.ranking import score_ticker, should_buy, should_remove
from swingbot.strategy.base import StrategyProtocol
from swingbot.strategy.models import Action, Position

logger = logging.getLogger("swingbot")


class TradingEngine:
    """Orchestrates one evaluation-and-execution cycle per call.

    Args:
        config: Application configuration.
        broker: An ``AlpacaClient`` (or compatible duck-type / mock).
        strategy: A strategy implementing ``StrategyProtocol``; its
                  ``params`` govern ``max_positions``.
        trade_repo, signal_repo, watchlist_repo, execution_repo: Storage.
        sizing: Allocation bounds for the position sizer.
        bar_limit: Daily bars requested per ticker each cycle.
    """

    def __init__(
        self,
        config: Config,
        broker: BrokerGateway,
        strategy: StrategyProtocol,
        trade_repo: TradeRepo,
        signal_repo: SignalRepo,
        watchlist_repo: WatchlistRepo,
        execution_repo: ExecutionRepo,
        sizing: SizingConfig = SizingConfig(),
        bar_limit: int = 250,
    ) -> None:
        self._config = config
        self._broker = broker
        self._strategy = strategy
        self._trades = trade_repo
        self._signals = signal_repo
        self._watchlist = watchlist_repo
        self._executions = execution_repo
        self._sizing = sizing
        self._bar_limit = bar_limit
        self._running: bool = False
        self._cycle_count: int = 0
        self._last_run_at: Optional[str] = None
        self._last_error: Optional[str] = None

    @property
    def strategy(self) -> StrategyProtocol:
        return self._strategy

    def set_strategy(self, strategy: StrategyProtocol) -> None:
        """Swap the strategy; takes effect on the next cycle."""
        self._strategy = strategy

    @property
    def status(self) -> dict:
        return {
            "running": self._running,
            "strategy": self._strategy.name,
            "cycle_count": self._cycle_count,
            "last_run_at": self._last_run_at,
            "last_error": self._last_error,
            "paper": self._config.is_paper,
        }

    # ── Lifecycle ────────────────────────────────────────────────────────

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: int | None = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run the trading loop until stopped.

        Args:
            poll_interval: Seconds between cycles.  Defaults to
                           ``config.poll_interval_seconds``.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        if poll_interval is None:
            poll_interval = self._config.poll_interval_seconds
        results: list[dict] = []
        cycle = 0
        self._running = True

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                result = await self.run_once()
                self._last_error = None
                results.append(result)
                logger.info("Cycle %d: %s", cycle, result.get("action", "unknown"))
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)
                self._last_error = str(exc)
                results.append({"action": "error", "reason": str(exc)})
            self._last_run_at = datetime.now(timezone.utc).isoformat()

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Sleep in one-second steps so stop() takes effect promptly
            for _ in range(poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        return results

    # ── Single cycle ─────────────────────────────────────────────────────

    async def run_once(self) -> dict:
        """Execute one trading cycle.

        Returns a dict describing the cycle:

        - ``{"action": "skipped", "reason": "market_closed"}``
        - ``{"action": "skipped", "reason": "empty_watchlist", ...}``
        - ``{"action": "executed", "results": [...], "trades_executed": n,
          "removed": [...]}``
        """
        started = time.monotonic()
        account = await self._broker.get_account()

        # 1 ── Market hours
        if not await self._broker.is_market_open():
            log_id = self._executions.start(
                False, [], account.portfolio_value, account.cash,
            )
            self._executions.finish(log_id, [], 0, _elapsed_ms(started))
            return {"action": "skipped", "reason": "market_closed"}

        # 2 ── Watchlist cleanup
        removed = self.cleanup_watchlist()

        tickers = self._watchlist.get_active()
        if not tickers:
            return {
                "action": "skipped",
                "reason": "empty_watchlist",
                "removed": removed,
            }

        positions = await self._broker.get_positions()
        position_map = {p.symbol: p for p in positions}
        open_count = len(positions)

        log_id = self._executions.start(
            True, tickers, account.portfolio_value, account.cash,
        )
        results: list[dict] = []
        trades_executed = 0
        error: Optional[str] = None

        try:
            # 3 ── Evaluate each ticker
            for ticker in tickers:
                entry, executed = await self._process_ticker(
                    ticker,
                    position_map.get(ticker),
                    account.portfolio_value,
                    open_count,
                    log_id,
                )
                results.append(entry)
                if executed:
                    trades_executed += 1
                    open_count += 1 if entry["action"] == "buy" else -1
        except Exception as exc:
            error = str(exc)
            raise
        finally:
            self._executions.finish(
                log_id, results, trades_executed, _elapsed_ms(started), error,
            )

        return {
            "action": "executed",
            "results": results,
            "trades_executed": trades_executed,
            "removed": removed,
        }

    def cleanup_watchlist(self) -> list[dict]:
        """Deactivate every active ticker whose trade record says to drop it."""
        removed: list[dict] = []
        for ticker in self._watchlist.get_active():
            perf = score_ticker(self._trades.get_history(ticker), ticker)
            decision = should_remove(perf)
            if decision.ok:
                self._remove(ticker, decision.reason)
                removed.append({"ticker": ticker, "reason": decision.reason})
        if removed:
            logger.info(
                "Auto-cleanup removed %d ticker(s): %s",
                len(removed), ", ".join(r["ticker"] for r in removed),
            )
        return removed

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _process_ticker(
        self,
        ticker: str,
        broker_pos: Optional[BrokerPosition],
        portfolio_value: float,
        open_count: int,
        log_id: int,
    ) -> tuple[dict, bool]:
        """Evaluate one ticker and act on the signal.

        Returns the per-ticker result entry and whether an order was placed.
        """
        try:
            bars = await self._broker.get_bars(ticker, "1Day", limit=self._bar_limit)
        except ExternalFetchFailure as exc:
            logger.warning("No bars for %s: %s", ticker, exc)
            return {"ticker": ticker, "action": "error", "reason": str(exc)}, False

        position = self._current_position(ticker, broker_pos)
        signal = self._strategy.generate_signal(ticker, position, bars)
        signal_id = self._signals.record(signal, log_id)
        entry = {
            "ticker": ticker,
            "action": signal.action.value,
            "reason": signal.reason,
            "score": signal.score,
            "price": signal.indicators.current_price if signal.indicators else None,
        }

        if signal.action is Action.BUY and position is None:
            return await self._buy(
                signal, signal_id, entry, portfolio_value, open_count, log_id,
            )
        if signal.action is Action.SELL and broker_pos is not None:
            return await self._sell(signal, signal_id, entry, broker_pos, log_id)
        return entry, False

    async def _buy(
        self,
        signal,
        signal_id: int,
        entry: dict,
        portfolio_value: float,
        open_count: int,
        log_id: int,
    ) -> tuple[dict, bool]:
        ticker = signal.ticker
        ind = signal.indicators
        perf = score_ticker(self._trades.get_history(ticker), ticker)
        decision = should_buy(perf)

        if not decision.ok:
            logger.info("Skipping %s: %s", ticker, decision.reason)
            self._signals.insert_signal(
                ticker,
                "BUY_REJECTED",
                decision.reason,
                rsi=ind.rsi,
                current_price=ind.current_price,
                execution_log_id=log_id,
            )
            return {**entry, "action": "buy_rejected", "reason": decision.reason}, False

        max_positions = self._strategy.params.max_positions
        if open_count >= max_positions:
            logger.info("Max positions reached (%d), not buying %s", max_positions, ticker)
            return {**entry, "action": "hold", "reason": "max_positions"}, False

        size = calculate_position_size(
            perf.status,
            ind.current_price,
            portfolio_value,
            self._sizing,
            score=perf.score,
            win_rate=perf.win_rate,
            completed_trades=perf.completed_trades,
        )
        if size.shares <= 0:
            return {**entry, "action": "hold", "reason": size.reason}, False

        try:
            order = await self._broker.create_order(ticker, size.shares, "buy")
        except httpx.HTTPError as exc:
            logger.error("BUY order for %s failed: %s", ticker, exc)
            return {**entry, "action": "error", "reason": f"Order failed: {exc}"}, False
        fill = order.filled_avg_price or ind.current_price
        self._trades.insert_trade(
            ticker,
            "buy",
            size.shares,
            fill,
            stop_loss=ind.atr_stop_loss,
            profit_target=ind.atr_profit_target,
            reason=signal.reason,
            broker_order_id=order.order_id,
        )
        self._signals.mark_executed(signal_id)
        logger.info(
            "BUY executed: %s x %d @ %.2f (%s)", ticker, size.shares, fill, size.reason,
        )
        return {**entry, "quantity": size.shares, "sizing": size.reason}, True

    async def _sell(
        self,
        signal,
        signal_id: int,
        entry: dict,
        broker_pos: BrokerPosition,
        log_id: int,
    ) -> tuple[dict, bool]:
        ticker = signal.ticker
        # Orders are whole shares; a fractional remainder stays open.
        qty = int(abs(broker_pos.qty))
        if qty <= 0:
            return {**entry, "action": "hold", "reason": "Position below one share"}, False
        try:
            order = await self._broker.create_order(ticker, qty, "sell")
        except httpx.HTTPError as exc:
            logger.error("SELL order for %s failed: %s", ticker, exc)
            return {**entry, "action": "error", "reason": f"Order failed: {exc}"}, False
        fill = order.filled_avg_price or signal.indicators.current_price
        profit = (fill - broker_pos.avg_entry_price) * qty
        self._trades.insert_trade(
            ticker,
            "sell",
            qty,
            fill,
            profit=profit,
            reason=signal.reason,
            broker_order_id=order.order_id,
        )
        self._signals.mark_executed(signal_id)
        logger.info(
            "SELL executed: %s x %d @ %.2f (P/L %.2f)", ticker, qty, fill, profit,
        )

        perf = score_ticker(self._trades.get_history(ticker), ticker)
        decision = should_remove(perf)
        if decision.ok:
            self._remove(ticker, decision.reason, log_id)
            entry = {**entry, "removed": decision.reason}
        return {**entry, "quantity": qty, "profit": profit}, True

    def _current_position(
        self, ticker: str, broker_pos: Optional[BrokerPosition],
    ) -> Optional[Position]:
        """Build the strategy-facing position, restoring exits fixed at entry."""
        if broker_pos is None or broker_pos.qty == 0:
            return None
        last_buy = self._trades.get_latest_buy(ticker) or {}
        return Position(
            ticker=ticker,
            entry_price=broker_pos.avg_entry_price,
            quantity=abs(broker_pos.qty),
            entry_time=last_buy.get("executed_at", ""),
            stop_loss=last_buy.get("stop_loss"),
            profit_target=last_buy.get("profit_target"),
        )

    def _remove(
        self, ticker: str, reason: str, log_id: Optional[int] = None,
    ) -> None:
        logger.info("Removing %s from watchlist: %s", ticker, reason)
        self._watchlist.deactivate(ticker)
        self._signals.insert_signal(
            ticker,
            "WATCHLIST_REMOVED",
            reason,
            was_executed=True,
            execution_log_id=log_id,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
