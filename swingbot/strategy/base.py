"""Strategy protocol and shared helpers.

Defines the interface that all strategies must implement.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from swingbot.config import StrategyParams
from swingbot.strategy.models import Action, Bar, Position, Signal


MIN_BARS = 30


@runtime_checkable
class StrategyProtocol(Protocol):
    """Interface that all signal-generating strategies must satisfy.

    Implementations are pure: the same ticker, position and bars always
    produce the same ``Signal``, and nothing past ``bars[-1]`` is consulted.
    """

    name: str
    params: StrategyParams

    def generate_signal(
        self,
        ticker: str,
        position: Optional[Position],
        bars: Sequence[Bar],
    ) -> Signal:
        """Return a buy/sell/hold decision for *ticker* at ``bars[-1]``."""
        ...


def insufficient_data(ticker: str, detail: str) -> Signal:
    """Build the ``hold`` returned when indicators cannot be computed."""
    return Signal(
        ticker=ticker,
        action=Action.HOLD,
        reason=f"Insufficient data ({detail})",
    )


def too_few_bars(ticker: str, bars: Sequence[Bar]) -> Optional[Signal]:
    """Return an insufficient-data ``hold`` when *bars* is below ``MIN_BARS``."""
    if len(bars) < MIN_BARS:
        return insufficient_data(ticker, f"{len(bars)} bars, need {MIN_BARS}")
    return None
