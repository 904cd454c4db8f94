"""Internal API routers — /status, /trades, /positions, /watchlist, /strategy,
/backtest and /analytics endpoints.

No business logic, no DB access.  Delegates to repos, broker, engine and
the batch backtester.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

from swingbot.backtest.batch import BatchBacktester
from swingbot.config import (
    BACKTEST_PARAMS,
    StrategyParams,
    load_strategy_params,
    save_strategy_params,
)
from swingbot.errors import InvalidConfiguration
from swingbot.scoring.ranking import score_ticker
from swingbot.strategy.registry import STRATEGY_REGISTRY, get_strategy

logger = logging.getLogger("swingbot")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_DEFAULT_STATUS: dict = {
    "running": False,
    "strategy": None,
    "cycle_count": 0,
    "last_run_at": None,
    "last_error": None,
    "paper": True,
}

_trade_repo = None      # Set via configure_routers()
_signal_repo = None     # Set via configure_routers()
_watchlist_repo = None  # Set via configure_routers()
_backtest_repo = None   # Set via configure_routers()
_broker = None          # Set via configure_routers()
_engine = None          # Set via configure_routers()
_data_source = None     # Set via configure_routers()
_strategy_name: str = "enhanced"
_strategy_params_path: Optional[str] = None


def configure_routers(
    trade_repo=None,
    signal_repo=None,
    watchlist_repo=None,
    backtest_repo=None,
    broker=None,
    engine=None,
    data_source=None,
    strategy_name: str = "enhanced",
    strategy_params_path: Optional[str] = None,
) -> None:
    """Inject dependencies from the application startup.

    Any argument may be a duck-typed stand-in for tests.
    """
    global _trade_repo, _signal_repo, _watchlist_repo, _backtest_repo  # noqa: PLW0603
    global _broker, _engine, _data_source, _strategy_name, _strategy_params_path  # noqa: PLW0603
    _trade_repo = trade_repo
    _signal_repo = signal_repo
    _watchlist_repo = watchlist_repo
    _backtest_repo = backtest_repo
    _broker = broker
    _engine = engine
    _data_source = data_source
    _strategy_name = strategy_name
    _strategy_params_path = strategy_params_path


def _current_params() -> StrategyParams:
    if _engine is not None:
        return _engine.strategy.params
    return load_strategy_params(_strategy_params_path)


def _current_strategy_name() -> str:
    if _engine is not None:
        return _engine.strategy.name
    return _strategy_name


# ── Status ───────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return trading-loop status."""
    if _engine is None:
        return {**_DEFAULT_STATUS, "strategy": _strategy_name}
    return _engine.status


# ── Trades and positions ─────────────────────────────────────────────────


@router.get("/trades")
async def get_trades(
    limit: int = Query(default=50, ge=1, le=500),
    ticker: Optional[str] = Query(default=None),
    include_simulated: bool = Query(default=True),
):
    """Return recent trade log entries."""
    if _trade_repo is None:
        return {"trades": [], "total": 0}
    return _trade_repo.get_trades(
        limit=limit,
        ticker=ticker.upper() if ticker else None,
        include_simulated=include_simulated,
    )


@router.get("/positions")
async def get_positions():
    """Return current open positions from the broker."""
    if _broker is None:
        return {"positions": []}
    try:
        positions = await _broker.get_positions()
    except Exception as exc:
        logger.warning("Could not fetch positions: %s", exc)
        return {"positions": []}
    return {"positions": [p.to_dict() for p in positions]}


@router.get("/account")
async def get_account():
    """Return live account summary directly from the broker."""
    if _broker is None:
        return {"account": None}
    try:
        account = await _broker.get_account()
    except Exception as exc:
        logger.warning("Could not fetch account: %s", exc)
        return {"account": None}
    return {"account": account.to_dict()}


@router.get("/signals/history")
async def get_signal_history(
    limit: int = Query(default=50, ge=1, le=500),
    ticker: Optional[str] = Query(default=None),
):
    """Return recent signals, newest first."""
    if _signal_repo is None:
        return {"signals": []}
    return {
        "signals": _signal_repo.get_history(
            limit=limit, ticker=ticker.upper() if ticker else None,
        )
    }


# ── Watchlist ────────────────────────────────────────────────────────────


@router.get("/watchlist")
async def get_watchlist():
    if _watchlist_repo is None:
        return {"watchlist": []}
    return {"watchlist": _watchlist_repo.get_all()}


@router.post("/watchlist")
async def add_to_watchlist(body: dict):
    """Add a ticker: ``{"ticker": "AAPL"}``."""
    if _watchlist_repo is None:
        return {"status": "error", "errors": ["watchlist unavailable"]}
    ticker = str(body.get("ticker", "")).strip()
    if not ticker:
        return {"status": "error", "errors": ["ticker is required"]}
    item = _watchlist_repo.add(ticker)
    logger.info("Watchlist: added %s", item["ticker"])
    return {"status": "ok", "item": item}


@router.delete("/watchlist/{ticker}")
async def remove_from_watchlist(ticker: str):
    if _watchlist_repo is None:
        return {"status": "error", "errors": ["watchlist unavailable"]}
    if not _watchlist_repo.deactivate(ticker):
        return {"status": "error", "errors": [f"{ticker.upper()} is not on the watchlist"]}
    logger.info("Watchlist: removed %s", ticker.upper())
    return {"status": "ok", "ticker": ticker.upper()}


# ── Strategy ─────────────────────────────────────────────────────────────


@router.get("/strategy")
async def get_strategy_config():
    return {
        "name": _current_strategy_name(),
        "available": sorted(STRATEGY_REGISTRY),
        "params": _current_params().to_dict(),
    }


@router.put("/strategy")
async def put_strategy_config(body: dict):
    """Update strategy name and/or parameters.

    Body: ``{"name": "basic", "params": {"rsi_oversold": 25}}``; omitted
    parameters keep their current values.  Nothing changes when any value
    is invalid.
    """
    global _strategy_name  # noqa: PLW0603
    name = body.get("name", _current_strategy_name())
    if name not in STRATEGY_REGISTRY:
        return {
            "status": "error",
            "errors": [f"Unknown strategy '{name}'. Available: {', '.join(sorted(STRATEGY_REGISTRY))}"],
        }

    updates = body.get("params") or {}
    if not isinstance(updates, dict):
        return {"status": "error", "errors": ["params must be an object"]}
    try:
        params = StrategyParams.from_dict({**_current_params().to_dict(), **updates})
    except (InvalidConfiguration, TypeError) as exc:
        return {"status": "error", "errors": [str(exc)]}

    if _strategy_params_path:
        save_strategy_params(params, _strategy_params_path)
    _strategy_name = name
    if _engine is not None:
        _engine.set_strategy(get_strategy(name, params))

    logger.info("Strategy updated: %s %s", name, params.to_dict())
    return {"status": "ok", "name": name, "params": params.to_dict()}


# ── Backtest ─────────────────────────────────────────────────────────────


@router.post("/backtest/run")
async def run_backtest(body: dict):
    """Backtest a list of tickers.

    Body: ``{"tickers": ["AAPL"], "days": 365, "strategy": "enhanced"}``.
    Results are sorted by score, best first.
    """
    if _data_source is None:
        return {"status": "error", "errors": ["no historical data source configured"]}

    tickers = body.get("tickers") or []
    if isinstance(tickers, str):
        tickers = tickers.split(",")
    if not tickers:
        return {"status": "error", "errors": ["tickers is required"]}

    strategy = body.get("strategy", _current_strategy_name())
    if strategy not in STRATEGY_REGISTRY:
        return {"status": "error", "errors": [f"Unknown strategy '{strategy}'"]}
    days = int(body.get("days", 365))
    if days < 1:
        return {"status": "error", "errors": ["days must be >= 1"]}

    params = BACKTEST_PARAMS if strategy == "basic" else _current_params()
    tester = BatchBacktester(_data_source, strategy, params)
    results = await tester.run(tickers, days=days)

    if _backtest_repo is not None:
        for result in results:
            if result.error is None:
                _backtest_repo.insert_run(result, days)

    return {
        "status": "ok",
        "strategy": strategy,
        "days": days,
        "results": [r.to_dict() for r in results],
    }


# ── Analytics ────────────────────────────────────────────────────────────


@router.get("/analytics/ticker-performance")
async def get_ticker_performance():
    """Score every traded ticker from its stored trades, best first."""
    if _trade_repo is None:
        return {"tickers": []}
    scores = [
        score_ticker(_trade_repo.get_history(t), t)
        for t in _trade_repo.get_traded_tickers()
    ]
    scores.sort(key=lambda s: s.score, reverse=True)
    return {"tickers": [s.to_dict() for s in scores]}
