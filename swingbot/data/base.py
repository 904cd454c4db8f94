"""Historical data sources for backtesting.

A ``HistoricalDataSource`` returns daily bars, oldest-first, for the last
*days* calendar days.  Failures surface as ``ExternalFetchFailure``.
"""

from typing import Protocol, runtime_checkable

from swingbot.broker.base import BrokerGateway
from swingbot.strategy.models import Bar


@runtime_checkable
class HistoricalDataSource(Protocol):
    async def fetch(self, ticker: str, days: int) -> list[Bar]: ...


class BrokerDataSource:
    """Adapts a broker's ``get_bars`` to the ``HistoricalDataSource`` shape."""

    def __init__(self, broker: BrokerGateway, timeframe: str = "1Day") -> None:
        self._broker = broker
        self._timeframe = timeframe

    async def fetch(self, ticker: str, days: int) -> list[Bar]:
        return await self._broker.get_bars(ticker, self._timeframe, limit=days)
