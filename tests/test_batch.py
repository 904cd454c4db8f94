"""Tests for BatchBacktester — batching, isolation and ordering."""

import pytest

from swingbot.backtest import batch as batch_module
from swingbot.backtest.batch import BatchBacktester
from swingbot.errors import ExternalFetchFailure
from swingbot.strategy.models import Bar


# ── Helpers ──────────────────────────────────────────────────────────────


def _bars(closes):
    return [
        Bar(f"2025-01-{i + 1:02d}", c, c + 1.0, c - 1.0, c, 1000.0)
        for i, c in enumerate(closes)
    ]


def _winner():
    plateau = [70.0 if i % 2 == 0 else 71.0 for i in range(30)]
    return _bars(plateau + [50.0, 60.0, 60.0, 60.0])


def _flat():
    return _bars([100.0] * 40)


class _FakeSource:
    """Serves canned bars per ticker; ``None`` means the fetch fails."""

    def __init__(self, series):
        self._series = series
        self.fetched = []

    async def fetch(self, ticker, days):
        self.fetched.append((ticker, days))
        bars = self._series.get(ticker)
        if bars is None:
            raise ExternalFetchFailure(ticker, "HTTP 404")
        return bars


@pytest.fixture
def sleeps(monkeypatch):
    calls = []

    async def _fake_sleep(seconds):
        calls.append(seconds)

    monkeypatch.setattr(batch_module.asyncio, "sleep", _fake_sleep)
    return calls


# ── Tests ────────────────────────────────────────────────────────────────


class TestBatchBacktester:

    @pytest.mark.asyncio
    async def test_results_sorted_by_score(self, sleeps):
        source = _FakeSource({"FLAT": _flat(), "WIN": _winner()})
        tester = BatchBacktester(source, strategy_name="basic", max_workers=2)
        results = await tester.run(["FLAT", "WIN"], days=30)

        assert [r.ticker for r in results] == ["WIN", "FLAT"]
        assert results[0].score > results[1].score
        # 30 warm-up bars add 44 calendar days plus 10 days of slack.
        assert source.fetched == [("FLAT", 84), ("WIN", 84)]

    @pytest.mark.asyncio
    async def test_failed_ticker_does_not_abort_batch(self, sleeps):
        source = _FakeSource({"WIN": _winner(), "EMPTY": []})
        tester = BatchBacktester(source, strategy_name="basic")
        results = await tester.run(["MISSING", "WIN", "EMPTY"])

        by_ticker = {r.ticker: r for r in results}
        assert by_ticker["MISSING"].error == "MISSING: HTTP 404"
        assert by_ticker["EMPTY"].error == "No data"
        assert by_ticker["WIN"].error is None
        assert by_ticker["WIN"].stats.completed_trades == 1

    @pytest.mark.asyncio
    async def test_simulation_error_isolated(self, sleeps, monkeypatch):
        source = _FakeSource({"WIN": _winner(), "BAD": _flat()})
        tester = BatchBacktester(source, strategy_name="basic")
        original = batch_module.BacktestEngine.run

        def _run(self, ticker, bars, cancel=None):
            if ticker == "BAD":
                raise RuntimeError("boom")
            return original(self, ticker, bars, cancel)

        monkeypatch.setattr(batch_module.BacktestEngine, "run", _run)
        results = await tester.run(["BAD", "WIN"])

        by_ticker = {r.ticker: r for r in results}
        assert by_ticker["BAD"].error == "boom"
        assert by_ticker["WIN"].stats.completed_trades == 1

    @pytest.mark.asyncio
    async def test_tickers_normalised_and_deduplicated(self, sleeps):
        source = _FakeSource({"AAA": _flat()})
        tester = BatchBacktester(source, strategy_name="basic")
        results = await tester.run(["aaa", " AAA ", "AAA", ""])
        assert len(results) == 1
        assert source.fetched == [("AAA", 419)]

    @pytest.mark.asyncio
    async def test_sleeps_between_batches_only(self, sleeps):
        series = {f"T{i}": _flat() for i in range(5)}
        tester = BatchBacktester(
            _FakeSource(series), strategy_name="basic", batch_size=2, batch_delay=1.5,
        )
        results = await tester.run(list(series))
        assert len(results) == 5
        # Batches of 2, 2, 1 → two pauses.
        assert sleeps == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_on_result_callback(self, sleeps):
        seen = []
        tester = BatchBacktester(_FakeSource({"AAA": _flat()}), strategy_name="basic")
        await tester.run(["AAA"], on_result=seen.append)
        assert [r.ticker for r in seen] == ["AAA"]

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, sleeps):
        tester = BatchBacktester(_FakeSource({"AAA": _flat()}), strategy_name="basic")
        tester.cancel()
        assert tester.cancelled
        assert await tester.run(["AAA"]) == []

    def test_unknown_strategy_rejected(self):
        with pytest.raises(KeyError):
            BatchBacktester(_FakeSource({}), strategy_name="momentum")

    def test_bad_batch_size(self):
        with pytest.raises(ValueError):
            BatchBacktester(_FakeSource({}), batch_size=0)
