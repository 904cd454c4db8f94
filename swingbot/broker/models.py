"""Broker data models — typed representations of Alpaca REST objects."""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class Account:
    """Summary of a brokerage account."""

    equity: float
    cash: float
    buying_power: float
    portfolio_value: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BrokerPosition:
    """An open position held at the broker."""

    symbol: str
    qty: float
    avg_entry_price: float
    current_price: float = 0.0
    market_value: float = 0.0
    unrealized_pl: float = 0.0
    unrealized_plpc: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Order:
    """Response from placing an order."""

    order_id: str
    symbol: str
    side: str  # "buy" or "sell"
    qty: float
    status: str
    filled_avg_price: Optional[float] = None
    filled_at: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)
