"""Yahoo Finance chart endpoint as a historical data source."""

import logging
import time
from datetime import datetime, timezone

import httpx

from swingbot.errors import ExternalFetchFailure
from swingbot.retry import request_with_retry
from swingbot.strategy.models import Bar

logger = logging.getLogger("swingbot")

CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart"
_SECONDS_PER_DAY = 86_400


class YahooDataSource:
    """Fetches daily OHLCV bars from the public Yahoo chart API."""

    def __init__(self, base_url: str = CHART_URL) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"User-Agent": "Mozilla/5.0 (swingbot)"}

    async def fetch(self, ticker: str, days: int) -> list[Bar]:
        """Return daily bars covering the last *days* calendar days.

        Bars whose close is missing are dropped.

        Raises:
            ExternalFetchFailure: The request failed after retries or the
                response carried an error payload.
        """
        end = int(time.time())
        params = {
            "period1": end - days * _SECONDS_PER_DAY,
            "period2": end,
            "interval": "1d",
        }
        try:
            resp = await request_with_retry(
                "get", f"{self._base_url}/{ticker}",
                headers=self._headers, service="Yahoo", params=params,
            )
        except httpx.HTTPError as exc:
            raise ExternalFetchFailure(ticker, f"chart request failed: {exc}") from exc

        bars = parse_chart(ticker, resp.json())
        logger.info("Fetched %d bars for %s", len(bars), ticker)
        return bars


def parse_chart(ticker: str, payload: dict) -> list[Bar]:
    """Convert a chart API payload into ``Bar`` objects."""
    chart = payload.get("chart") or {}
    if chart.get("error"):
        raise ExternalFetchFailure(ticker, str(chart["error"]))

    results = chart.get("result") or []
    if not results:
        return []

    result = results[0]
    stamps = result.get("timestamp") or []
    quotes = (result.get("indicators") or {}).get("quote") or [{}]
    quote = quotes[0]

    def _series(key: str) -> list:
        values = quote.get(key) or []
        return values + [None] * (len(stamps) - len(values))

    opens, highs, lows = _series("open"), _series("high"), _series("low")
    closes, volumes = _series("close"), _series("volume")

    bars: list[Bar] = []
    for i, ts in enumerate(stamps):
        close = closes[i]
        if close is None:
            continue
        bars.append(
            Bar(
                timestamp=datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(),
                open=float(opens[i] if opens[i] is not None else close),
                high=float(highs[i] if highs[i] is not None else close),
                low=float(lows[i] if lows[i] is not None else close),
                close=float(close),
                volume=float(volumes[i] or 0),
            )
        )
    return bars
