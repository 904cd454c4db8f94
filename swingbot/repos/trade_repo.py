"""Trade repository — SQLite CRUD for the trades table."""

from datetime import datetime, timezone
from typing import Optional

from swingbot.repos.db import get_connection
from swingbot.strategy.models import Trade


class TradeRepo:
    """Data access layer for trade records, real and simulated.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Write ────────────────────────────────────────────────────────────

    def insert_trade(
        self,
        ticker: str,
        side: str,
        quantity: float,
        price: float,
        executed_at: Optional[str] = None,
        profit: Optional[float] = None,
        stop_loss: Optional[float] = None,
        profit_target: Optional[float] = None,
        reason: Optional[str] = None,
        broker_order_id: Optional[str] = None,
        is_simulated: bool = False,
    ) -> int:
        """Insert a trade and return its ``id``."""
        executed_at = executed_at or datetime.now(timezone.utc).isoformat()
        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO trades
                    (ticker, side, quantity, price, total_value, profit,
                     stop_loss, profit_target, reason, broker_order_id,
                     is_simulated, executed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ticker, side, quantity, price, quantity * price, profit,
                    stop_loss, profit_target, reason, broker_order_id,
                    int(is_simulated), executed_at,
                ),
            )
            conn.commit()
            return cur.lastrowid
        finally:
            conn.close()

    # ── Read ─────────────────────────────────────────────────────────────

    def get_trades(
        self,
        limit: int = 50,
        ticker: Optional[str] = None,
        include_simulated: bool = True,
    ) -> dict:
        """Return recent trades, newest first.

        Returns:
            ``{"trades": [...], "total": int}``
        """
        conn = get_connection(self._db_path)
        try:
            conditions: list[str] = []
            params: list = []

            if ticker:
                conditions.append("ticker = ?")
                params.append(ticker)
            if not include_simulated:
                conditions.append("is_simulated = 0")

            where_clause = ""
            if conditions:
                where_clause = "WHERE " + " AND ".join(conditions)

            rows = conn.execute(
                f"SELECT * FROM trades {where_clause} ORDER BY id DESC LIMIT ?",
                (*params, limit),
            ).fetchall()
            total = conn.execute(
                f"SELECT COUNT(*) FROM trades {where_clause}",
                params,
            ).fetchone()[0]

            trades = [dict(row) for row in rows]
            for t in trades:
                t["is_simulated"] = bool(t["is_simulated"])
            return {"trades": trades, "total": total}
        finally:
            conn.close()

    def get_history(self, ticker: str) -> list[Trade]:
        """Return every trade for *ticker* in execution order."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM trades WHERE ticker = ? ORDER BY executed_at, id",
                (ticker,),
            ).fetchall()
            return [
                Trade(
                    ticker=r["ticker"],
                    side=r["side"],
                    price=r["price"],
                    quantity=r["quantity"],
                    timestamp=r["executed_at"],
                    profit=r["profit"],
                )
                for r in rows
            ]
        finally:
            conn.close()

    def get_traded_tickers(self) -> list[str]:
        """Return the distinct tickers that have any trade, sorted."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT DISTINCT ticker FROM trades ORDER BY ticker"
            ).fetchall()
            return [r[0] for r in rows]
        finally:
            conn.close()

    def get_latest_buy(self, ticker: str) -> dict | None:
        """Return the most recent buy for *ticker*, or ``None``."""
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT * FROM trades WHERE ticker = ? AND side = 'buy'
                ORDER BY executed_at DESC, id DESC LIMIT 1
                """,
                (ticker,),
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()
