"""Tests for the trading engine orchestration.

Verifies end-to-end flow: fetch bars → evaluate signal → ranking → sizing →
order → records.  Uses a mock broker to avoid real Alpaca calls and real
SQLite repos in a temp directory.
"""

import httpx
import pytest

from swingbot.broker.models import Account, BrokerPosition, Order
from swingbot.config import Config, StrategyParams
from swingbot.engine import TradingEngine
from swingbot.errors import ExternalFetchFailure
from swingbot.repos.db import init_db
from swingbot.repos.execution_repo import ExecutionRepo
from swingbot.repos.signal_repo import SignalRepo
from swingbot.repos.trade_repo import TradeRepo
from swingbot.repos.watchlist_repo import WatchlistRepo
from swingbot.strategy.confluence import ConfluenceStrategy
from swingbot.strategy.dip import RsiDipStrategy
from swingbot.strategy.models import Bar


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> Config:
    """Build a Config with sensible test defaults."""
    defaults = dict(
        alpaca_api_key="PKTEST",
        alpaca_secret_key="secret",
        alpaca_base_url="https://paper-api.alpaca.markets",
        alpaca_data_url="https://data.alpaca.markets",
        db_path=":memory:",
        log_level="WARNING",
        health_port=8080,
        poll_interval_seconds=0,
        strategy="enhanced",
        strategy_params_path="strategy.json",
    )
    defaults.update(overrides)
    return Config(**defaults)


def _bars(closes):
    return [
        Bar(f"2025-01-{i + 1:02d}", c, c + 1.0, c - 1.0, c, 1000.0)
        for i, c in enumerate(closes)
    ]


def _decline_bars():
    """Flat at 100, then a steady slide to 30: an oversold dip."""
    decline = [100, 95, 90, 85, 80, 75, 70, 65, 60, 55, 50, 45, 40, 35, 30]
    return _bars([100.0] * 15 + [float(c) for c in decline])


def _rebound_bars():
    """Alternating 100/110 ending on 100, then a close at 106."""
    return _bars([100.0 if i % 2 == 0 else 110.0 for i in range(29)] + [106.0])


# ── Mock broker ──────────────────────────────────────────────────────────


class MockBroker:
    """Duck-typed AlpacaClient replacement for engine tests."""

    def __init__(
        self,
        bars: dict,
        positions: list | None = None,
        market_open: bool = True,
        portfolio_value: float = 100_000.0,
        fill_price: float | None = None,
        rejected: tuple = (),
    ) -> None:
        self._bars = bars
        self._positions = positions or []
        self._market_open = market_open
        self._portfolio_value = portfolio_value
        self._fill_price = fill_price
        self._rejected = set(rejected)
        self.placed_orders: list = []

    async def get_account(self):
        return Account(
            equity=self._portfolio_value,
            cash=self._portfolio_value / 2,
            buying_power=self._portfolio_value,
            portfolio_value=self._portfolio_value,
        )

    async def is_market_open(self):
        return self._market_open

    async def get_positions(self):
        return list(self._positions)

    async def get_bars(self, ticker, timeframe="1Day", limit=100):
        bars = self._bars.get(ticker)
        if bars is None:
            raise ExternalFetchFailure(ticker, "bars request failed: timeout")
        return bars

    async def create_order(self, ticker, qty, side):
        if ticker in self._rejected:
            request = httpx.Request("POST", "https://paper-api.alpaca.markets/v2/orders")
            raise httpx.HTTPStatusError(
                "Client error '403 Forbidden'",
                request=request,
                response=httpx.Response(403, request=request),
            )
        self.placed_orders.append((ticker, qty, side))
        return Order(
            order_id=f"order-{len(self.placed_orders)}",
            symbol=ticker,
            side=side,
            qty=qty,
            status="filled" if self._fill_price else "accepted",
            filled_avg_price=self._fill_price,
        )


@pytest.fixture
def repos(tmp_path):
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    return {
        "trade_repo": TradeRepo(db_path),
        "signal_repo": SignalRepo(db_path),
        "watchlist_repo": WatchlistRepo(db_path),
        "execution_repo": ExecutionRepo(db_path),
    }


def _engine(broker, repos, strategy=None, **kwargs) -> TradingEngine:
    return TradingEngine(
        config=_make_config(),
        broker=broker,
        strategy=strategy or ConfluenceStrategy(StrategyParams()),
        **repos,
        **kwargs,
    )


def _record_round_trips(trade_repo, ticker, pairs):
    for i, (buy, sell) in enumerate(pairs):
        trade_repo.insert_trade(ticker, "buy", 10, buy, executed_at=f"2024-06-{2 * i + 1:02d}")
        trade_repo.insert_trade(
            ticker, "sell", 10, sell, executed_at=f"2024-06-{2 * i + 2:02d}",
            profit=(sell - buy) * 10,
        )


# ── Cycle outcomes ───────────────────────────────────────────────────────


class TestRunOnce:

    @pytest.mark.asyncio
    async def test_market_closed_skips_and_logs(self, repos):
        repos["watchlist_repo"].add("AAA")
        broker = MockBroker({"AAA": _decline_bars()}, market_open=False)
        result = await _engine(broker, repos).run_once()

        assert result == {"action": "skipped", "reason": "market_closed"}
        assert broker.placed_orders == []
        log = repos["execution_repo"].get_latest()
        assert log["market_open"] is False
        assert log["portfolio_value"] == pytest.approx(100_000.0)

    @pytest.mark.asyncio
    async def test_empty_watchlist(self, repos):
        result = await _engine(MockBroker({}), repos).run_once()
        assert result["action"] == "skipped"
        assert result["reason"] == "empty_watchlist"

    @pytest.mark.asyncio
    async def test_buy_unproven_ticker(self, repos):
        """Oversold dip on an untested ticker → conservative buy."""
        repos["watchlist_repo"].add("AAA")
        broker = MockBroker({"AAA": _decline_bars()})
        result = await _engine(broker, repos).run_once()

        assert result["action"] == "executed"
        assert result["trades_executed"] == 1
        # $500 minimum allocation at $30 → 16 shares.
        assert broker.placed_orders == [("AAA", 16, "buy")]

        entry = result["results"][0]
        assert entry["action"] == "buy"
        assert entry["quantity"] == 16
        assert entry["score"] == 5
        assert entry["sizing"].startswith("Conservative allocation")

        trade = repos["trade_repo"].get_trades()["trades"][0]
        assert trade["side"] == "buy"
        assert trade["price"] == pytest.approx(30.0)
        assert trade["stop_loss"] < 30.0 < trade["profit_target"]
        assert trade["broker_order_id"] == "order-1"
        assert trade["is_simulated"] is False

        signal = repos["signal_repo"].get_history()[0]
        assert signal["signal_type"] == "BUY"
        assert signal["was_executed"] is True

        log = repos["execution_repo"].get_latest()
        assert log["trades_executed"] == 1
        assert log["tickers_analyzed"] == ["AAA"]
        assert log["signals_generated"][0]["ticker"] == "AAA"

    @pytest.mark.asyncio
    async def test_broker_fill_price_recorded(self, repos):
        repos["watchlist_repo"].add("AAA")
        broker = MockBroker({"AAA": _decline_bars()}, fill_price=30.25)
        await _engine(broker, repos).run_once()
        trade = repos["trade_repo"].get_trades()["trades"][0]
        assert trade["price"] == pytest.approx(30.25)

    @pytest.mark.asyncio
    async def test_poor_performer_buy_rejected(self, repos):
        """A poor but not yet removable history vetoes the strategy's buy."""
        repos["watchlist_repo"].add("AAA")
        _record_round_trips(repos["trade_repo"], "AAA", [(100, 105), (100, 98), (100, 98)])
        broker = MockBroker({"AAA": _decline_bars()})
        result = await _engine(broker, repos).run_once()

        entry = result["results"][0]
        assert entry["action"] == "buy_rejected"
        assert entry["reason"].startswith("Poor performer")
        assert broker.placed_orders == []
        assert result["trades_executed"] == 0

        types = [s["signal_type"] for s in repos["signal_repo"].get_history()]
        assert types == ["BUY_REJECTED", "BUY"]
        assert repos["watchlist_repo"].get_active() == ["AAA"]

    @pytest.mark.asyncio
    async def test_max_positions_blocks_buy(self, repos):
        repos["watchlist_repo"].add("AAA")
        others = [BrokerPosition(sym, 1, 10.0) for sym in ("B", "C", "D", "E", "F")]
        broker = MockBroker({"AAA": _decline_bars()}, positions=others)
        result = await _engine(broker, repos).run_once()

        entry = result["results"][0]
        assert entry["action"] == "hold"
        assert entry["reason"] == "max_positions"
        assert broker.placed_orders == []

    @pytest.mark.asyncio
    async def test_sell_at_target_fixed_at_entry(self, repos):
        """Exit levels stored with the buy are used for the sell decision."""
        repos["watchlist_repo"].add("AAA")
        repos["trade_repo"].insert_trade(
            "AAA", "buy", 10, 100.0, executed_at="2025-01-01",
            stop_loss=96.0, profit_target=106.0,
        )
        broker = MockBroker(
            {"AAA": _rebound_bars()},
            positions=[BrokerPosition("AAA", 10, 100.0, current_price=106.0)],
        )
        result = await _engine(broker, repos).run_once()

        entry = result["results"][0]
        assert entry["action"] == "sell"
        assert entry["reason"].startswith("ATR profit target reached: 6.00%")
        assert entry["profit"] == pytest.approx(60.0)
        assert broker.placed_orders == [("AAA", 10, "sell")]

        sell = repos["trade_repo"].get_trades()["trades"][0]
        assert sell["side"] == "sell"
        assert sell["profit"] == pytest.approx(60.0)
        # One completed trade is still unproven, so the ticker stays.
        assert repos["watchlist_repo"].get_active() == ["AAA"]

    @pytest.mark.asyncio
    async def test_sell_uses_whole_shares_throughout(self, repos):
        repos["watchlist_repo"].add("AAA")
        repos["trade_repo"].insert_trade(
            "AAA", "buy", 10.5, 100.0, executed_at="2025-01-01",
            stop_loss=96.0, profit_target=106.0,
        )
        broker = MockBroker(
            {"AAA": _rebound_bars()},
            positions=[BrokerPosition("AAA", 10.5, 100.0)],
        )
        result = await _engine(broker, repos).run_once()

        entry = result["results"][0]
        assert broker.placed_orders == [("AAA", 10, "sell")]
        assert entry["quantity"] == 10
        assert entry["profit"] == pytest.approx(60.0)
        sell = repos["trade_repo"].get_trades()["trades"][0]
        assert sell["quantity"] == pytest.approx(10.0)
        assert sell["profit"] == pytest.approx(60.0)

    @pytest.mark.asyncio
    async def test_rejected_order_does_not_abort_cycle(self, repos):
        repos["watchlist_repo"].add("AAA")
        repos["watchlist_repo"].add("BBB")
        broker = MockBroker(
            {"AAA": _decline_bars(), "BBB": _decline_bars()}, rejected=("AAA",),
        )
        result = await _engine(broker, repos).run_once()

        by_ticker = {r["ticker"]: r for r in result["results"]}
        assert by_ticker["AAA"]["action"] == "error"
        assert "403" in by_ticker["AAA"]["reason"]
        assert by_ticker["BBB"]["action"] == "buy"
        assert result["trades_executed"] == 1
        assert [t["ticker"] for t in repos["trade_repo"].get_trades()["trades"]] == ["BBB"]

        executed = {
            s["ticker"]: s["was_executed"] for s in repos["signal_repo"].get_history()
        }
        assert executed == {"AAA": False, "BBB": True}

    @pytest.mark.asyncio
    async def test_hold_records_signal_only(self, repos):
        repos["watchlist_repo"].add("AAA")
        broker = MockBroker({"AAA": _bars([100.0 + i for i in range(40)])})
        result = await _engine(broker, repos).run_once()

        assert result["results"][0]["action"] == "hold"
        assert broker.placed_orders == []
        signal = repos["signal_repo"].get_history()[0]
        assert signal["signal_type"] == "HOLD"
        assert signal["was_executed"] is False

    @pytest.mark.asyncio
    async def test_fetch_failure_isolated(self, repos):
        repos["watchlist_repo"].add("MISSING")
        repos["watchlist_repo"].add("AAA")
        broker = MockBroker({"AAA": _decline_bars()})
        result = await _engine(broker, repos).run_once()

        by_ticker = {r["ticker"]: r for r in result["results"]}
        assert by_ticker["MISSING"]["action"] == "error"
        assert "timeout" in by_ticker["MISSING"]["reason"]
        assert by_ticker["AAA"]["action"] == "buy"

    @pytest.mark.asyncio
    async def test_basic_strategy_buys_too(self, repos):
        repos["watchlist_repo"].add("AAA")
        broker = MockBroker({"AAA": _decline_bars()})
        engine = _engine(broker, repos, strategy=RsiDipStrategy(StrategyParams()))
        result = await engine.run_once()

        assert result["results"][0]["action"] == "buy"
        trade = repos["trade_repo"].get_trades()["trades"][0]
        assert trade["stop_loss"] is None


# ── Watchlist cleanup ────────────────────────────────────────────────────


class TestCleanup:

    @pytest.mark.asyncio
    async def test_losing_ticker_removed_before_evaluation(self, repos):
        repos["watchlist_repo"].add("AAA")
        _record_round_trips(repos["trade_repo"], "AAA", [(100, 90)] * 3)
        broker = MockBroker({"AAA": _decline_bars()})
        result = await _engine(broker, repos).run_once()

        assert result["action"] == "skipped"
        assert result["reason"] == "empty_watchlist"
        assert result["removed"][0]["ticker"] == "AAA"
        assert result["removed"][0]["reason"].startswith("Critically poor performance")
        assert repos["watchlist_repo"].get_active() == []

        signal = repos["signal_repo"].get_history()[0]
        assert signal["signal_type"] == "WATCHLIST_REMOVED"

    def test_unproven_never_removed(self, repos):
        repos["watchlist_repo"].add("AAA")
        _record_round_trips(repos["trade_repo"], "AAA", [(100, 90)] * 2)
        engine = _engine(MockBroker({}), repos)
        assert engine.cleanup_watchlist() == []
        assert repos["watchlist_repo"].get_active() == ["AAA"]


# ── Loop and status ──────────────────────────────────────────────────────


class TestLoop:

    @pytest.mark.asyncio
    async def test_max_cycles(self, repos):
        engine = _engine(MockBroker({}, market_open=False), repos)
        results = await engine.run(poll_interval=0, max_cycles=2)

        assert len(results) == 2
        status = engine.status
        assert status["running"] is False
        assert status["cycle_count"] == 2
        assert status["last_run_at"] is not None
        assert status["strategy"] == "enhanced"
        assert status["paper"] is True

    @pytest.mark.asyncio
    async def test_cycle_error_recorded_and_loop_continues(self, repos):
        class FailingBroker(MockBroker):
            async def get_account(self):
                raise RuntimeError("broker down")

        engine = _engine(FailingBroker({}), repos)
        results = await engine.run(poll_interval=0, max_cycles=1)

        assert results == [{"action": "error", "reason": "broker down"}]
        assert engine.status["last_error"] == "broker down"

    def test_set_strategy(self, repos):
        engine = _engine(MockBroker({}), repos)
        engine.set_strategy(RsiDipStrategy(StrategyParams()))
        assert engine.strategy.name == "basic"
        assert engine.status["strategy"] == "basic"
