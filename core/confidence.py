"""
Confidence Scorer — combines four normalized signals into a 0..100 score.

    conf = round(100 * (0.35*momentum + 0.30*volume_ratio
                        + 0.20*trend_green + 0.15*proximity_to_high))

Every input is clamped to [0, 1] before weighting.
"""

from __future__ import annotations
import math

MOMENTUM_WEIGHT = 0.35
VOLUME_WEIGHT = 0.30
TREND_WEIGHT = 0.20
PROXIMITY_WEIGHT = 0.15


def clamp01(x: float) -> float:
    if math.isnan(x):
        return 0.0
    return max(0.0, min(1.0, x))


def confidence(
    momentum: float,
    volume_ratio: float,
    trend_green_ratio: float,
    proximity_to_high: float,
) -> int:
    score = (
        MOMENTUM_WEIGHT * clamp01(momentum)
        + VOLUME_WEIGHT * clamp01(volume_ratio)
        + TREND_WEIGHT * clamp01(trend_green_ratio)
        + PROXIMITY_WEIGHT * clamp01(proximity_to_high)
    )
    # Half rounds up, score is never negative
    return int(math.floor(score * 100 + 0.5))


def volume_ratio(volume_24h: float, volume_30day: float) -> float:
    """
    Today's volume against the 30-day daily average, where 3x the average
    saturates at 1.
    """
    if not math.isfinite(volume_30day) or volume_30day <= 0:
        return 0.0
    if not math.isfinite(volume_24h):
        volume_24h = 0.0
    avg_daily = volume_30day / 30
    return min(1.0, (volume_24h / avg_daily) / 3)


def proximity_to_high(last: float, high: float, low: float) -> float:
    """Position of `last` inside the [low, high] range, clamped to [0, 1]."""
    if not all(math.isfinite(v) for v in (last, high, low)) or high <= low:
        return 0.0
    return clamp01((last - low) / (high - low))
