"""Equity-curve drawdown — pure math, no I/O."""

from swingbot.strategy.models import EquityPoint


class DrawdownTracker:
    """Builds equity-curve points, each stamped with its decline from the peak.

    Args:
        initial_equity: Equity before the first point; seeds the peak.
    """

    def __init__(self, initial_equity: float) -> None:
        self.peak_equity = initial_equity
        self.max_drawdown = 0.0
        self.max_drawdown_pct = 0.0

    def mark(self, timestamp: str, equity: float) -> EquityPoint:
        """Record *equity* at *timestamp* and return the curve point.

        The percent is relative to the peak at that time, and 0 while the
        peak is not positive.  ``max_drawdown_pct`` is the percent observed
        at the largest absolute decline.
        """
        self.peak_equity = max(self.peak_equity, equity)
        decline = self.peak_equity - equity
        pct = decline / self.peak_equity * 100.0 if self.peak_equity > 0 else 0.0
        if decline > self.max_drawdown:
            self.max_drawdown = decline
            self.max_drawdown_pct = pct
        return EquityPoint(timestamp, equity, pct)
