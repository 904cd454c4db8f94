"""Confluence strategy — the enhanced variant.

Entry is a weighted vote rather than an all-or-nothing AND:

    RSI oversold            +2
    Dip from lookback high  +2
    Volume spike (>= 1.5x)  +1
    Close above trend SMA   +1

A buy fires at a score of 4 or more (maximum 6).  Exits use ATR-scaled
levels: stop = entry - 2 × ATR, target = entry + 3 × ATR.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from swingbot.config import StrategyParams
from swingbot.errors import InsufficientData
from swingbot.strategy.base import insufficient_data, too_few_bars
from swingbot.strategy.indicators import (
    VOLUME_SPIKE_RATIO,
    TrendCheck,
    VolumeCheck,
    calculate_atr,
    calculate_dip_from_high,
    calculate_rsi,
    check_trend,
    check_volume,
)
from swingbot.strategy.models import Action, Bar, Indicators, Position, Signal


BUY_THRESHOLD = 4
MAX_SCORE = 6
ATR_STOP_MULTIPLIER = 2.0
ATR_TARGET_MULTIPLIER = 3.0

# Reason-string label prefix → weight.  Order matches the scoring order.
FACTOR_WEIGHTS: dict[str, int] = {
    "RSI oversold": 2,
    "Dip": 2,
    "Volume spike": 1,
    "Above SMA": 1,
}


@dataclass(frozen=True)
class Factor:
    """One confluence factor and how it fared."""

    name: str
    weight: int
    passed: bool
    detail: str  # label used in the reason string


@dataclass(frozen=True)
class ConfluenceScore:
    """Weighted confluence result."""

    score: int
    factors: tuple[Factor, ...]

    @property
    def passed(self) -> list[Factor]:
        return [f for f in self.factors if f.passed]

    @property
    def failed(self) -> list[Factor]:
        return [f for f in self.factors if not f.passed]


def score_confluence(
    rsi: float,
    dip_percent: float,
    volume: VolumeCheck,
    trend: TrendCheck,
    params: StrategyParams,
) -> ConfluenceScore:
    """Score the four entry factors against *params*."""
    sma_label = f"SMA{trend.period}" if trend.period else "SMA (neutral)"
    is_oversold = rsi < params.rsi_oversold
    is_dip = dip_percent <= -params.dip_percentage

    factors = (
        Factor(
            "rsi", FACTOR_WEIGHTS["RSI oversold"], is_oversold,
            f"RSI oversold ({rsi:.2f})" if is_oversold
            else f"RSI {rsi:.2f} >= {params.rsi_oversold:g}",
        ),
        Factor(
            "dip", FACTOR_WEIGHTS["Dip"], is_dip,
            f"Dip {abs(dip_percent):.2f}% from high" if is_dip
            else f"Dip {dip_percent:.2f}% > -{params.dip_percentage:g}%",
        ),
        Factor(
            "volume", FACTOR_WEIGHTS["Volume spike"], volume.is_confirmed,
            f"Volume spike ({volume.volume_ratio:.2f}x)" if volume.is_confirmed
            else f"Volume {volume.volume_ratio:.2f}x < {VOLUME_SPIKE_RATIO}x",
        ),
        Factor(
            "trend", FACTOR_WEIGHTS["Above SMA"], trend.above_sma,
            f"Above {sma_label}" if trend.above_sma else f"Below {sma_label}",
        ),
    )
    score = sum(f.weight for f in factors if f.passed)
    return ConfluenceScore(score=score, factors=factors)


_BUY_REASON = re.compile(r"^[A-Z ]+ \(\d/\d\): (?P<passed>.*)$")
_HOLD_REASON = re.compile(r"^Score \d/\d \(need >=\d\)\. Passed: (?P<passed>.*?)\. Missing:")


def parse_score(reason: str) -> Optional[int]:
    """Re-derive the confluence score from the factors a reason lists as passed.

    Returns ``None`` for reasons that are not entry decisions.
    """
    match = _BUY_REASON.match(reason) or _HOLD_REASON.match(reason)
    if match is None:
        return None
    passed = match.group("passed")
    if passed == "none":
        return 0
    score = 0
    for part in passed.split(", "):
        for prefix, weight in FACTOR_WEIGHTS.items():
            if part.startswith(prefix):
                score += weight
                break
    return score


def atr_exit_levels(entry_price: float, atr: float) -> tuple[float, float]:
    """Return ``(stop_loss, profit_target)`` for an entry at *entry_price*."""
    return (
        entry_price - ATR_STOP_MULTIPLIER * atr,
        entry_price + ATR_TARGET_MULTIPLIER * atr,
    )


class ConfluenceStrategy:
    """Confluence-scored entries with ATR-based exits.

    Args:
        params: Strategy parameters.  The fixed-percent exit fields are not
                used by this variant.
    """

    name = "enhanced"

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
        volumes = [b.volume for b in bars]
        current_price = closes[-1]
        current_volume = volumes[-1]

        try:
            rsi = calculate_rsi(closes)
            dip = calculate_dip_from_high(closes, self.params.lookback_days)
            atr = calculate_atr(bars)
        except InsufficientData as exc:
            return insufficient_data(ticker, str(exc))
        volume = check_volume(volumes, current_volume)
        trend = check_trend(closes)

        indicators = Indicators(
            rsi=rsi,
            dip_percent=dip,
            current_price=current_price,
            volume=current_volume,
            avg_volume=volume.avg_volume,
            volume_ratio=volume.volume_ratio,
            atr=atr,
            sma=trend.sma,
            sma_period=trend.period,
            above_sma=trend.above_sma,
        )

        if position is None:
            return self._entry(ticker, indicators, volume, trend)
        return self._exit(ticker, position, indicators)

    # ── Entry ────────────────────────────────────────────────────────────

    def _entry(
        self,
        ticker: str,
        indicators: Indicators,
        volume: VolumeCheck,
        trend: TrendCheck,
    ) -> Signal:
        result = score_confluence(
            indicators.rsi, indicators.dip_percent, volume, trend, self.params,
        )
        passed = ", ".join(f.detail for f in result.passed) or "none"

        if result.score >= BUY_THRESHOLD:
            stop, target = atr_exit_levels(indicators.current_price, indicators.atr)
            if result.score >= MAX_SCORE:
                strength = "STRONG BUY"
            elif result.score >= BUY_THRESHOLD + 1:
                strength = "BUY"
            else:
                strength = "MODERATE BUY"
            return Signal(
                ticker=ticker,
                action=Action.BUY,
                reason=f"{strength} ({result.score}/{MAX_SCORE}): {passed}",
                indicators=replace(
                    indicators, atr_stop_loss=stop, atr_profit_target=target,
                ),
                score=result.score,
            )

        missing = "; ".join(f.detail for f in result.failed)
        return Signal(
            ticker=ticker,
            action=Action.HOLD,
            reason=(
                f"Score {result.score}/{MAX_SCORE} (need >={BUY_THRESHOLD}). "
                f"Passed: {passed}. Missing: {missing}"
            ),
            indicators=indicators,
            score=result.score,
        )

    # ── Exit ─────────────────────────────────────────────────────────────

    def _exit(
        self, ticker: str, position: Position, indicators: Indicators,
    ) -> Signal:
        entry = position.entry_price
        price = indicators.current_price
        profit_pct = position.profit_percent(price)

        # Levels fixed at entry win over ones recomputed from today's ATR.
        stop, target = atr_exit_levels(entry, indicators.atr)
        if position.stop_loss is not None:
            stop = position.stop_loss
        if position.profit_target is not None:
            target = position.profit_target

        stop_pct = (stop - entry) / entry * 100.0 if entry else 0.0
        target_pct = (target - entry) / entry * 100.0 if entry else 0.0
        indicators = replace(
            indicators,
            atr_stop_loss=stop,
            atr_profit_target=target,
            profit_percent=profit_pct,
        )

        if indicators.rsi > self.params.rsi_overbought:
            reason = (
                f"RSI overbought ({indicators.rsi:.2f}) - "
                f"Profit: {profit_pct:.2f}%"
            )
        elif price >= target:
            reason = (
                f"ATR profit target reached: {profit_pct:.2f}% "
                f"(Target: {target_pct:.2f}%)"
            )
        elif price <= stop:
            reason = (
                f"ATR stop loss triggered: {profit_pct:.2f}% "
                f"(Stop: {stop_pct:.2f}%)"
            )
        else:
            return Signal(
                ticker=ticker,
                action=Action.HOLD,
                reason=(
                    f"Holding position (P/L: {profit_pct:.2f}%, "
                    f"RSI: {indicators.rsi:.2f}, ATR Stop: {stop_pct:.2f}%, "
                    f"ATR Target: {target_pct:.2f}%)"
                ),
                indicators=indicators,
            )
        return Signal(
            ticker=ticker, action=Action.SELL, reason=reason, indicators=indicators,
        )
