"""
Candle Analyzer — window percent change and short-lookback momentum/trend
signals from exchange candles. Pure functions, no I/O.
"""

from __future__ import annotations
import math
from typing import Iterable, List
from exchange.models import Candle, NAN


def sort_candles(candles: Iterable[Candle]) -> List[Candle]:
    """Oldest first."""
    return sorted(candles, key=lambda c: c.timestamp)


def percent_change(candles: Iterable[Candle]) -> float:
    """
    Close-to-close change across the window, in percent.

    pct = (last_close - first_close) / first_close * 100

    NaN with fewer than 2 candles, or when first_close is non-finite or
    non-positive, or last_close is non-finite.
    """
    cs = sort_candles(candles)
    if len(cs) < 2:
        return NAN

    first_close = cs[0].close
    last_close = cs[-1].close
    if not math.isfinite(first_close) or first_close <= 0 or not math.isfinite(last_close):
        return NAN
    return (last_close - first_close) / first_close * 100


def momentum(candles: Iterable[Candle], scale: float = 5.0) -> float:
    """
    First open to last close relative change, times `scale`, clamped to [-1, 1].
    0 when there is not enough usable data.
    """
    cs = sort_candles(candles)
    if len(cs) < 2:
        return 0.0

    p0 = cs[0].open
    p1 = cs[-1].close
    if not math.isfinite(p0) or p0 <= 0 or not math.isfinite(p1):
        return 0.0
    return max(-1.0, min(1.0, (p1 - p0) / p0 * scale))


def trend_green_ratio(candles: Iterable[Candle]) -> float:
    """Fraction of candles closing above their open. 0 below 2 candles."""
    cs = list(candles)
    if len(cs) < 2:
        return 0.0
    greens = sum(1 for c in cs if c.is_green)
    return greens / len(cs)
