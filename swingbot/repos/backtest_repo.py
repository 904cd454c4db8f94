"""Backtest run repository — persists backtest summaries to SQLite."""

import json
from datetime import datetime, timezone

from swingbot.backtest.models import BacktestResult
from swingbot.repos.db import get_connection


class BacktestRepo:
    """Data access layer for the ``backtest_runs`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_run(self, result: BacktestResult, days: int) -> int:
        """Persist a backtest result summary.  Returns the row id."""
        stats = result.stats
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO backtest_runs
                    (ticker, strategy, days, total_trades, completed_trades,
                     win_rate, total_profit, profit_factor, sharpe_ratio,
                     max_drawdown_pct, score, result_json, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.ticker,
                    result.strategy,
                    days,
                    stats.total_trades,
                    stats.completed_trades,
                    stats.win_rate,
                    stats.total_profit,
                    stats.profit_factor,
                    stats.sharpe_ratio,
                    stats.max_drawdown_pct,
                    result.score,
                    json.dumps(result.to_dict()),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def get_runs(self, limit: int = 10) -> list[dict]:
        """Return recent backtest run summaries (without the full result)."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM backtest_runs ORDER BY id DESC LIMIT ?",
                (limit,),
            ).fetchall()
            runs = [dict(r) for r in rows]
            for r in runs:
                r.pop("result_json", None)
            return runs
        finally:
            conn.close()

    def get_run(self, run_id: int) -> dict | None:
        """Return the full stored result for one run, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT result_json FROM backtest_runs WHERE id = ?", (run_id,)
            ).fetchone()
            return json.loads(row[0]) if row else None
        finally:
            conn.close()
