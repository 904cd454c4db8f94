"""Broker gateway interface.

The trading engine and the HTTP routes only talk to the broker through
this protocol, so tests can pass any object with the same coroutine
methods.
"""

from typing import Protocol, runtime_checkable

from swingbot.broker.models import Account, BrokerPosition, Order
from swingbot.strategy.models import Bar


@runtime_checkable
class BrokerGateway(Protocol):
    async def get_account(self) -> Account: ...

    async def get_positions(self) -> list[BrokerPosition]: ...

    async def get_bars(
        self, ticker: str, timeframe: str = "1Day", limit: int = 100,
    ) -> list[Bar]: ...

    async def create_order(self, ticker: str, qty: int, side: str) -> Order: ...

    async def is_market_open(self) -> bool: ...
