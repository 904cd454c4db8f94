"""SwingBot — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
paper trading and batch backtest modes.
"""

import logging

from fastapi import FastAPI

from swingbot.api.routers import router

app = FastAPI(title="SwingBot Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("swingbot")


@app.get("/health")
async def health():
    return {"status": "ok"}


def warn_if_live(base_url: str) -> bool:
    """Log a prominent warning when orders go to a live account.

    Returns ``True`` if *base_url* is not the paper-trading endpoint.
    """
    if "paper-api" not in base_url:
        logger.warning(
            "LIVE TRADING ENDPOINT (%s). Real money at risk! Starting in 5 seconds...",
            base_url,
        )
        return True
    return False


# ── CLI ──────────────────────────────────────────────────────────────────


def _parse_args(argv=None):
    import argparse

    from swingbot.strategy.registry import STRATEGY_REGISTRY

    parser = argparse.ArgumentParser(description="SwingBot swing-trading bot")
    parser.add_argument(
        "--mode",
        choices=["paper", "backtest"],
        default="paper",
        help="Run the trading loop (paper) or a batch backtest (default: paper)",
    )
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGY_REGISTRY),
        default=None,
        help="Strategy variant (default: STRATEGY from the environment)",
    )
    parser.add_argument(
        "--tickers",
        default="",
        help="Comma-separated tickers to backtest (default: active watchlist)",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=365,
        help="Calendar days evaluated per ticker in backtest mode",
    )
    parser.add_argument(
        "--source",
        choices=["yahoo", "alpaca"],
        default="yahoo",
        help="Historical data source for backtests (default: yahoo)",
    )
    return parser.parse_args(argv)


def _run_cli(argv=None) -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import asyncio
    import signal
    import time

    from swingbot.broker.alpaca_client import AlpacaClient
    from swingbot.config import load_config, load_strategy_params
    from swingbot.data.base import BrokerDataSource
    from swingbot.data.yahoo import YahooDataSource
    from swingbot.repos.backtest_repo import BacktestRepo
    from swingbot.repos.db import init_db
    from swingbot.repos.execution_repo import ExecutionRepo
    from swingbot.repos.signal_repo import SignalRepo
    from swingbot.repos.trade_repo import TradeRepo
    from swingbot.repos.watchlist_repo import WatchlistRepo
    from swingbot.strategy.registry import get_strategy

    args = _parse_args(argv)
    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)
    params = load_strategy_params(config.strategy_params_path)
    strategy_name = args.strategy or config.strategy

    broker = AlpacaClient(config)
    data_source = (
        YahooDataSource() if args.source == "yahoo" else BrokerDataSource(broker)
    )
    trade_repo = TradeRepo(config.db_path)
    watchlist_repo = WatchlistRepo(config.db_path)
    backtest_repo = BacktestRepo(config.db_path)

    if args.mode == "backtest":
        tickers = [t for t in args.tickers.split(",") if t.strip()]
        if not tickers:
            tickers = watchlist_repo.get_active()
        asyncio.run(
            _run_backtest(
                data_source, backtest_repo, tickers, args.days, strategy_name, params,
            )
        )
        return

    from swingbot.api.routers import configure_routers
    from swingbot.engine import TradingEngine

    if warn_if_live(config.alpaca_base_url):
        time.sleep(5)

    signal_repo = SignalRepo(config.db_path)
    engine = TradingEngine(
        config=config,
        broker=broker,
        strategy=get_strategy(strategy_name, params),
        trade_repo=trade_repo,
        signal_repo=signal_repo,
        watchlist_repo=watchlist_repo,
        execution_repo=ExecutionRepo(config.db_path),
    )
    configure_routers(
        trade_repo=trade_repo,
        signal_repo=signal_repo,
        watchlist_repo=watchlist_repo,
        backtest_repo=backtest_repo,
        broker=broker,
        engine=engine,
        data_source=data_source,
        strategy_name=strategy_name,
        strategy_params_path=config.strategy_params_path,
    )

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping gracefully.")
        engine.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    asyncio.run(_run_paper(engine, config))


async def _run_paper(engine, config) -> None:
    """Start the API server and the trading loop concurrently."""
    import asyncio

    import uvicorn

    logger.info(
        "Starting SwingBot (%s strategy, polling every %ds).",
        engine.strategy.name, config.poll_interval_seconds,
    )

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=config.health_port,
        log_level=config.log_level.lower(),
    )
    server = uvicorn.Server(uvi_config)

    async def _run_engine():
        await engine.run(poll_interval=config.poll_interval_seconds)
        server.should_exit = True

    logger.info("API available at http://localhost:%d", config.health_port)
    results = await asyncio.gather(
        server.serve(),
        _run_engine(),
        return_exceptions=True,
    )
    logger.info("SwingBot stopped. Results: %s", results)


async def _run_backtest(
    data_source, backtest_repo, tickers, days, strategy_name, params,
) -> None:
    """Backtest *tickers* and persist each summary."""
    from swingbot.backtest.batch import BatchBacktester
    from swingbot.config import BACKTEST_PARAMS

    if not tickers:
        logger.error("No tickers to backtest; pass --tickers or add to the watchlist.")
        return

    if strategy_name == "basic":
        params = BACKTEST_PARAMS
    tester = BatchBacktester(data_source, strategy_name, params)
    results = await tester.run(tickers, days=days)

    for result in results:
        if result.error is not None:
            logger.warning("%s: %s", result.ticker, result.error)
            continue
        backtest_repo.insert_run(result, days)
        stats = result.stats
        logger.info(
            "%-6s score %5.1f | %3d trades | win %5.1f%% | P/L $%9.2f | "
            "PF %6.2f | Sharpe %5.2f | max DD %5.2f%%",
            result.ticker, result.score, stats.completed_trades,
            stats.win_rate, stats.total_profit, stats.profit_factor,
            stats.sharpe_ratio, stats.max_drawdown_pct,
        )


if __name__ == "__main__":
    _run_cli()
