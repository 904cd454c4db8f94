"""Technical indicators — RSI, SMA, ATR, dip-from-high, volume, trend. Pure functions, no I/O."""

from dataclasses import dataclass
from typing import Sequence

from swingbot.errors import InsufficientData
from swingbot.strategy.models import Bar


VOLUME_SPIKE_RATIO = 1.5


def calculate_rsi(closes: Sequence[float], period: int = 14) -> float:
    """Calculate Wilder's Relative Strength Index of the latest close.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Seed average gain/loss = SMA of the first *period* deltas.
        3. Subsequent: avg = (prev_avg × (period-1) + current) / period,
           where the side that did not move decays with a zero input.
        4. RSI = 100 - 100 / (1 + avg_gain / avg_loss)

    Requires at least ``period + 1`` closes.  Returns exactly 100.0 when
    the average loss is zero (including a perfectly flat series).

    Raises ``InsufficientData`` if fewer closes are supplied.
    """
    if len(closes) < period + 1:
        raise InsufficientData(
            f"Need at least {period + 1} closes for RSI({period}), "
            f"got {len(closes)}"
        )

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]
    gains = [max(d, 0.0) for d in deltas]
    losses = [abs(min(d, 0.0)) for d in deltas]

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_sma(closes: Sequence[float], period: int) -> float:
    """Arithmetic mean of the last *period* closes.

    Raises ``InsufficientData`` if fewer than *period* closes are provided.
    """
    if period <= 0:
        raise ValueError(f"SMA period must be positive, got {period}")
    if len(closes) < period:
        raise InsufficientData(
            f"Need at least {period} closes for SMA({period}), "
            f"got {len(closes)}"
        )
    return sum(closes[-period:]) / period


def calculate_atr(bars: Sequence[Bar], period: int = 14) -> float:
    """Calculate the Wilder-smoothed Average True Range.

    Uses the standard True Range definition:
        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    The seed is the simple mean of the first *period* true ranges; each
    later range is folded in as ``atr = (atr × (period-1) + tr) / period``.

    Requires at least ``period + 1`` bars (need a previous close for TR).

    Raises ``InsufficientData`` if insufficient data.
    """
    if len(bars) < period + 1:
        raise InsufficientData(
            f"Need at least {period + 1} bars for ATR({period}), "
            f"got {len(bars)}"
        )

    true_ranges: list[float] = []
    for i in range(1, len(bars)):
        high = bars[i].high
        low = bars[i].low
        prev_close = bars[i - 1].close
        true_ranges.append(
            max(high - low, abs(high - prev_close), abs(low - prev_close))
        )

    atr = sum(true_ranges[:period]) / period
    for tr in true_ranges[period:]:
        atr = (atr * (period - 1) + tr) / period
    return atr


def calculate_dip_from_high(closes: Sequence[float], lookback_days: int) -> float:
    """Percent change of the latest close from the trailing-window high.

    The window is the last *lookback_days* closes, current close included,
    so the result is always <= 0 and exactly 0 when the latest close is the
    window maximum.
    """
    if not closes:
        raise InsufficientData("Need at least 1 close for dip-from-high")
    if lookback_days < 1:
        raise ValueError(f"lookback_days must be >= 1, got {lookback_days}")

    window = closes[-lookback_days:]
    high = max(window)
    current = closes[-1]
    if high <= 0:
        return 0.0
    return (current - high) / high * 100.0


# ── Confirming filters ───────────────────────────────────────────────────


@dataclass(frozen=True)
class VolumeCheck:
    """Result of the volume-spike confirmation."""

    avg_volume: float
    volume_ratio: float
    is_confirmed: bool


def check_volume(
    volumes: Sequence[float],
    current_volume: float,
    period: int = 20,
) -> VolumeCheck:
    """Compare *current_volume* with the mean of the last *period* volumes.

    Confirmed when the ratio is at least ``VOLUME_SPIKE_RATIO``.  With fewer
    than *period* volumes, or a zero average, the check reports a ratio of
    0 and is never confirmed.
    """
    if len(volumes) < period:
        return VolumeCheck(avg_volume=0.0, volume_ratio=0.0, is_confirmed=False)

    avg_volume = sum(volumes[-period:]) / period
    if avg_volume <= 0:
        return VolumeCheck(avg_volume=0.0, volume_ratio=0.0, is_confirmed=False)

    ratio = current_volume / avg_volume
    return VolumeCheck(
        avg_volume=avg_volume,
        volume_ratio=ratio,
        is_confirmed=ratio >= VOLUME_SPIKE_RATIO,
    )


@dataclass(frozen=True)
class TrendCheck:
    """Result of the moving-average trend filter."""

    sma: float
    period: int  # 200, 50, or 0 when there was not enough data
    above_sma: bool


def check_trend(closes: Sequence[float]) -> TrendCheck:
    """Trend filter on SMA(200), falling back to SMA(50).

    With fewer than 50 closes the filter is neutral: ``above_sma`` is
    ``True`` so thin history never blocks a trade.
    """
    if len(closes) >= 200:
        period = 200
    elif len(closes) >= 50:
        period = 50
    else:
        return TrendCheck(sma=0.0, period=0, above_sma=True)

    sma = calculate_sma(closes, period)
    return TrendCheck(sma=sma, period=period, above_sma=closes[-1] > sma)
