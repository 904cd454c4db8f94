"""Watchlist repository — the tickers the trading loop evaluates."""

from datetime import datetime, timezone

from swingbot.repos.db import get_connection


class WatchlistRepo:
    """Data access layer for the ``watchlist`` table.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def add(self, ticker: str) -> dict:
        """Add *ticker* (upper-cased), reactivating it if it was removed."""
        ticker = ticker.strip().upper()
        if not ticker:
            raise ValueError("ticker must not be empty")
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO watchlist (ticker, is_active, added_at)
                VALUES (?, 1, ?)
                ON CONFLICT (ticker) DO UPDATE SET is_active = 1
                """,
                (ticker, datetime.now(timezone.utc).isoformat()),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM watchlist WHERE ticker = ?", (ticker,)
            ).fetchone()
            return _row(row)
        finally:
            conn.close()

    def deactivate(self, ticker: str) -> bool:
        """Mark *ticker* inactive.  Returns ``False`` if it was not listed."""
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                "UPDATE watchlist SET is_active = 0 WHERE ticker = ?",
                (ticker.strip().upper(),),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_active(self) -> list[str]:
        """Return active tickers in the order they were added."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT ticker FROM watchlist WHERE is_active = 1 ORDER BY id"
            ).fetchall()
            return [r[0] for r in rows]
        finally:
            conn.close()

    def get_all(self) -> list[dict]:
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute("SELECT * FROM watchlist ORDER BY id").fetchall()
            return [_row(r) for r in rows]
        finally:
            conn.close()


def _row(row) -> dict:
    item = dict(row)
    item["is_active"] = bool(item["is_active"])
    return item
