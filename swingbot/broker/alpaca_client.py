"""Alpaca REST API async client.

Handles all communication with Alpaca: account queries, positions, daily
bars, order placement and the market clock.
"""

from datetime import datetime, timedelta, timezone

import httpx

from swingbot.broker.models import Account, BrokerPosition, Order
from swingbot.config import Config
from swingbot.errors import ExternalFetchFailure
from swingbot.retry import request_with_retry
from swingbot.strategy.models import Bar, bar_from_dict


def _float(value, default: float = 0.0) -> float:
    return float(value) if value not in (None, "") else default


class AlpacaClient:
    """Async client wrapping the Alpaca trading and market-data APIs."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.alpaca_base_url.rstrip("/")
        self._data_url = config.alpaca_data_url.rstrip("/")
        self._headers = {
            "APCA-API-KEY-ID": config.alpaca_api_key,
            "APCA-API-SECRET-KEY": config.alpaca_secret_key,
            "Content-Type": "application/json",
        }

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request against Alpaca with backoff retry."""
        return await request_with_retry(
            method, url, headers=self._headers, service="Alpaca", **kwargs,
        )

    # ── Account ──────────────────────────────────────────────────────────

    async def get_account(self) -> Account:
        """Query Alpaca for equity, cash, buying power and portfolio value."""
        resp = await self._request_with_retry("get", f"{self._base_url}/v2/account")

        acct = resp.json()
        return Account(
            equity=_float(acct.get("equity")),
            cash=_float(acct.get("cash")),
            buying_power=_float(acct.get("buying_power")),
            portfolio_value=_float(
                acct.get("portfolio_value"), _float(acct.get("equity"))
            ),
        )

    # ── Positions ────────────────────────────────────────────────────────

    async def get_positions(self) -> list[BrokerPosition]:
        """Return all open positions on the account."""
        resp = await self._request_with_retry(
            "get", f"{self._base_url}/v2/positions"
        )

        return [
            BrokerPosition(
                symbol=p["symbol"],
                qty=_float(p.get("qty")),
                avg_entry_price=_float(p.get("avg_entry_price")),
                current_price=_float(p.get("current_price")),
                market_value=_float(p.get("market_value")),
                unrealized_pl=_float(p.get("unrealized_pl")),
                unrealized_plpc=_float(p.get("unrealized_plpc")),
            )
            for p in resp.json()
        ]

    # ── Market data ──────────────────────────────────────────────────────

    async def get_bars(
        self,
        ticker: str,
        timeframe: str = "1Day",
        limit: int = 100,
    ) -> list[Bar]:
        """Fetch the most recent *limit* bars for *ticker*.

        Args:
            ticker: e.g. ``"AAPL"``
            timeframe: e.g. ``"1Day"``
            limit: number of bars wanted

        Returns:
            List of ``Bar`` objects ordered oldest-first.

        Raises:
            ExternalFetchFailure: The request failed after retries.
        """
        url = f"{self._data_url}/v2/stocks/{ticker}/bars"
        # Calendar days back; weekends and holidays need roughly 1.5x.
        start = datetime.now(timezone.utc) - timedelta(days=int(limit * 1.5) + 10)
        params = {
            "timeframe": timeframe,
            "limit": limit,
            "start": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "adjustment": "raw",
        }

        try:
            resp = await self._request_with_retry("get", url, params=params)
        except httpx.HTTPError as exc:
            raise ExternalFetchFailure(ticker, f"bars request failed: {exc}") from exc

        raw_bars = resp.json().get("bars") or []
        return [bar_from_dict(b) for b in raw_bars][-limit:]

    # ── Orders ───────────────────────────────────────────────────────────

    async def create_order(
        self,
        ticker: str,
        qty: int,
        side: str,
        order_type: str = "market",
        time_in_force: str = "day",
    ) -> Order:
        """Place an order.

        Args:
            ticker: Symbol to trade.
            qty: Whole shares.
            side: ``"buy"`` or ``"sell"``.

        Returns:
            ``Order`` with the broker's order id and status.
        """
        if side not in ("buy", "sell"):
            raise ValueError(f"side must be 'buy' or 'sell', got {side!r}")

        body = {
            "symbol": ticker,
            "qty": str(qty),
            "side": side,
            "type": order_type,
            "time_in_force": time_in_force,
        }
        resp = await self._request_with_retry(
            "post", f"{self._base_url}/v2/orders", json=body
        )

        data = resp.json()
        filled = data.get("filled_avg_price")
        return Order(
            order_id=data["id"],
            symbol=data["symbol"],
            side=data["side"],
            qty=_float(data.get("qty")),
            status=data.get("status", ""),
            filled_avg_price=float(filled) if filled else None,
            filled_at=data.get("filled_at"),
        )

    # ── Clock ────────────────────────────────────────────────────────────

    async def is_market_open(self) -> bool:
        resp = await self._request_with_retry("get", f"{self._base_url}/v2/clock")
        return bool(resp.json().get("is_open", False))
