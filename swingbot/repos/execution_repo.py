"""Execution log repository — one row per trading cycle."""

import json
from datetime import datetime, timezone
from typing import Optional

from swingbot.repos.db import get_connection


class ExecutionRepo:
    """Data access layer for the ``execution_log`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def start(
        self,
        market_open: bool,
        tickers: list[str],
        portfolio_value: Optional[float] = None,
        cash_balance: Optional[float] = None,
    ) -> int:
        """Open a log entry for a cycle and return its ``id``."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO execution_log
                    (market_open, tickers_analyzed, portfolio_value,
                     cash_balance, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    int(market_open), json.dumps(tickers), portfolio_value,
                    cash_balance, datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def finish(
        self,
        log_id: int,
        signals: list[dict],
        trades_executed: int,
        execution_time_ms: int,
        error: Optional[str] = None,
    ) -> None:
        """Fill in the outcome of a cycle."""
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                UPDATE execution_log
                SET signals_generated = ?, trades_executed = ?,
                    execution_time_ms = ?, error = ?
                WHERE id = ?
                """,
                (
                    json.dumps(signals), trades_executed, execution_time_ms,
                    error, log_id,
                ),
            )
            conn.commit()
        finally:
            conn.close()

    def get_latest(self) -> dict | None:
        """Return the most recent cycle, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM execution_log ORDER BY id DESC LIMIT 1"
            ).fetchone()
            return _decode(row) if row else None
        finally:
            conn.close()

    def get_recent(self, limit: int = 20) -> list[dict]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM execution_log ORDER BY id DESC LIMIT ?", (limit,)
            ).fetchall()
            return [_decode(r) for r in rows]
        finally:
            conn.close()


def _decode(row) -> dict:
    entry = dict(row)
    entry["market_open"] = bool(entry["market_open"])
    entry["tickers_analyzed"] = json.loads(entry["tickers_analyzed"])
    entry["signals_generated"] = json.loads(entry["signals_generated"])
    return entry
