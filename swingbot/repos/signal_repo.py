"""Signal history repository — one row per decision the bot made."""

from datetime import datetime, timezone
from typing import Optional

from swingbot.repos.db import get_connection
from swingbot.strategy.models import Signal


class SignalRepo:
    """Data access layer for the ``signal_history`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_signal(
        self,
        ticker: str,
        signal_type: str,
        reason: str,
        rsi: Optional[float] = None,
        current_price: Optional[float] = None,
        dip_percentage: Optional[float] = None,
        score: Optional[int] = None,
        was_executed: bool = False,
        execution_log_id: Optional[int] = None,
    ) -> int:
        """Record a signal.  *signal_type* is upper-case, e.g. ``"BUY"``."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO signal_history
                    (ticker, signal_type, rsi, current_price, dip_percentage,
                     score, reason, was_executed, execution_log_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ticker, signal_type, rsi, current_price, dip_percentage,
                    score, reason, int(was_executed), execution_log_id,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    def record(
        self, signal: Signal, execution_log_id: Optional[int] = None,
    ) -> int:
        """Record a strategy ``Signal`` with its indicator snapshot."""
        ind = signal.indicators
        return self.insert_signal(
            ticker=signal.ticker,
            signal_type=signal.action.value.upper(),
            reason=signal.reason,
            rsi=ind.rsi if ind else None,
            current_price=ind.current_price if ind else None,
            dip_percentage=ind.dip_percent if ind else None,
            score=signal.score,
            execution_log_id=execution_log_id,
        )

    def mark_executed(self, signal_id: int) -> None:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                "UPDATE signal_history SET was_executed = 1 WHERE id = ?",
                (signal_id,),
            )
            conn.commit()
        finally:
            conn.close()

    def get_history(
        self, limit: int = 50, ticker: Optional[str] = None,
    ) -> list[dict]:
        """Return recent signals, newest first."""
        conn = get_connection(self._db_path)
        try:
            if ticker:
                rows = conn.execute(
                    "SELECT * FROM signal_history WHERE ticker = ? "
                    "ORDER BY id DESC LIMIT ?",
                    (ticker, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM signal_history ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            signals = [dict(r) for r in rows]
            for s in signals:
                s["was_executed"] = bool(s["was_executed"])
            return signals
        finally:
            conn.close()
