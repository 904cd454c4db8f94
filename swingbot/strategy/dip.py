"""RSI + dip strategy — the basic variant.

Buys when RSI is oversold *and* price has dipped from its recent high;
exits on RSI overbought or fixed-percent profit target / stop loss.
"""

from __future__ import annotations

from typing import Optional, Sequence

from swingbot.config import StrategyParams
from swingbot.errors import InsufficientData
from swingbot.strategy.base import insufficient_data, too_few_bars
from swingbot.strategy.indicators import calculate_dip_from_high, calculate_rsi
from swingbot.strategy.models import Action, Bar, Indicators, Position, Signal


class RsiDipStrategy:
    """All-or-nothing RSI + dip entry with fixed-percent exits.

    Args:
        params: Strategy parameters (oversold/overbought, dip %, exits).
    """

    name = "basic"

    def __init__(self, params: StrategyParams) -> None:
        self.params = params

    def generate_signal(
        self,
        ticker: str,
        position: Optional[Position],
        bars: Sequence[Bar],
    ) -> Signal:
        short = too_few_bars(ticker, bars)
        if short is not None:
            return short

        closes = [b.close for b in bars]
        current_price = closes[-1]
        try:
            rsi = calculate_rsi(closes)
            dip = calculate_dip_from_high(closes, self.params.lookback_days)
        except InsufficientData as exc:
            return insufficient_data(ticker, str(exc))

        if position is None:
            return self._entry(ticker, rsi, dip, current_price, bars[-1].volume)
        return self._exit(ticker, position, rsi, dip, current_price, bars[-1].volume)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _entry(
        self, ticker: str, rsi: float, dip: float, price: float, volume: float,
    ) -> Signal:
        indicators = Indicators(
            rsi=rsi, dip_percent=dip, current_price=price, volume=volume,
        )
        is_oversold = rsi < self.params.rsi_oversold
        is_dip = dip <= -self.params.dip_percentage

        if is_oversold and is_dip:
            return Signal(
                ticker=ticker,
                action=Action.BUY,
                reason=(
                    f"RSI oversold ({rsi:.2f}) and "
                    f"{abs(dip):.2f}% dip detected"
                ),
                indicators=indicators,
            )
        return Signal(
            ticker=ticker,
            action=Action.HOLD,
            reason=f"Waiting for buy signal (RSI: {rsi:.2f}, Dip: {dip:.2f}%)",
            indicators=indicators,
        )

    def _exit(
        self,
        ticker: str,
        position: Position,
        rsi: float,
        dip: float,
        price: float,
        volume: float,
    ) -> Signal:
        profit_pct = position.profit_percent(price)
        indicators = Indicators(
            rsi=rsi,
            dip_percent=dip,
            current_price=price,
            volume=volume,
            profit_percent=profit_pct,
        )

        if rsi > self.params.rsi_overbought:
            reason = f"RSI overbought ({rsi:.2f}) - Profit: {profit_pct:.2f}%"
        elif profit_pct >= self.params.profit_target_percent:
            reason = f"Profit target reached: {profit_pct:.2f}%"
        elif profit_pct <= -self.params.stop_loss_percent:
            reason = f"Stop loss triggered: {profit_pct:.2f}%"
        else:
            return Signal(
                ticker=ticker,
                action=Action.HOLD,
                reason=(
                    f"Holding position (P/L: {profit_pct:.2f}%, RSI: {rsi:.2f}, "
                    f"Target: {self.params.profit_target_percent:.2f}%, "
                    f"Stop: -{self.params.stop_loss_percent:.2f}%)"
                ),
                indicators=indicators,
            )
        return Signal(
            ticker=ticker, action=Action.SELL, reason=reason, indicators=indicators,
        )
