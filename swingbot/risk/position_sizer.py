"""Position sizing — pure math, no I/O.

Allocates a dollar amount per buy from the ticker's performance status,
capped by a fraction of the portfolio, and converts it to whole shares.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class SizingConfig:
    """Allocation bounds in USD."""

    base_position_size: float = 1000.0
    max_position_size: float = 5000.0
    min_position_size: float = 500.0
    max_portfolio_percent: float = 0.10


@dataclass(frozen=True)
class PositionSize:
    shares: int
    dollar_amount: float
    reason: str


def calculate_position_size(
    status: str,
    price: float,
    portfolio_value: float,
    sizing: SizingConfig = SizingConfig(),
    score: float = 0.0,
    win_rate: float = 0.0,
    completed_trades: int = 0,
) -> PositionSize:
    """Size a buy for a ticker with the given performance *status*.

    Formula::

        target  = max       (excellent)
                  base × 1.5 (good)
                  min       (unproven / poor)
        target  = min(target, portfolio_value × max_portfolio_percent)
        target  = clamp(target, min, max)
        shares  = floor(target / price)

    Args:
        status: ``"excellent"``, ``"good"``, ``"unproven"`` or ``"poor"``.
        price: Current share price.
        portfolio_value: Total account value.
        sizing: Allocation bounds.
        score, win_rate, completed_trades: Only used in the reason text.

    Returns:
        ``PositionSize`` with whole shares, the dollar amount they cost and
        a human-readable reason.

    Raises:
        ValueError: If *price* is non-positive.
    """
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")

    if status == "excellent":
        target = sizing.max_position_size
    elif status == "good":
        target = sizing.base_position_size * 1.5
    else:
        target = sizing.min_position_size

    target = min(target, portfolio_value * sizing.max_portfolio_percent)
    target = max(sizing.min_position_size, min(sizing.max_position_size, target))

    shares = math.floor(target / price)
    amount = shares * price

    if status == "excellent":
        reason = (
            f"Max allocation (${amount:.0f}) - Excellent performer "
            f"(Score: {score:.0f}, Win Rate: {win_rate:.1f}%)"
        )
    elif status == "good":
        reason = (
            f"Above-average allocation (${amount:.0f}) - Good performer "
            f"(Score: {score:.0f})"
        )
    elif status == "unproven":
        reason = (
            f"Conservative allocation (${amount:.0f}) - Unproven stock "
            f"({completed_trades} trades)"
        )
    else:
        reason = (
            f"Minimum allocation (${amount:.0f}) - Poor performer "
            f"(Score: {score:.0f})"
        )

    return PositionSize(shares=shares, dollar_amount=amount, reason=reason)
