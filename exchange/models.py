"""
Data models for the Market Movers Scanner.
Prices and volumes are floats; a missing or unusable number is NaN, never an exception.
"""

from __future__ import annotations
import math
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple

from config import VALID_WINDOWS

NAN = float("nan")

TRADABLE_STATUSES = ("online", "online_trading")


def to_float(value: Any) -> float:
    """Parse an upstream number (often a string). Anything unusable becomes NaN."""
    if value is None or isinstance(value, bool):
        return NAN
    try:
        return float(value)
    except (TypeError, ValueError):
        return NAN


def is_positive(value: float) -> bool:
    return math.isfinite(value) and value > 0


@dataclass(frozen=True)
class Product:
    """Spot product from the exchange catalog."""
    id: str
    base_currency: str
    quote_currency: str
    status: str = "online"
    trading_disabled: bool = False
    cancel_only: bool = False
    post_only: bool = False

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Product":
        return cls(
            id=str(payload.get("id", "")),
            base_currency=str(payload.get("base_currency") or "").upper(),
            quote_currency=str(payload.get("quote_currency") or "").upper(),
            status=str(payload.get("status") or ""),
            trading_disabled=bool(payload.get("trading_disabled", False)),
            cancel_only=bool(payload.get("cancel_only", False)),
            post_only=bool(payload.get("post_only", False)),
        )

    @property
    def is_tradable(self) -> bool:
        return (
            self.status in TRADABLE_STATUSES
            and not self.trading_disabled
            and not self.cancel_only
            and not self.post_only
        )

    def is_quoted_in(self, quotes: Iterable[str]) -> bool:
        return self.quote_currency in {q.upper() for q in quotes}

    @property
    def pair(self) -> str:
        return f"{self.base_currency}-{self.quote_currency}"


@dataclass(frozen=True)
class StatSample:
    """24h stats for one product, with derived percent change and USD volume."""
    product: Product
    last: float
    open: float
    high: float
    low: float
    volume_base: float
    pct24: float
    vol_usd: float

    @classmethod
    def from_api(cls, product: Product, payload: Dict[str, Any]) -> "StatSample":
        """
        pct24   = (last - open) / open * 100
        vol_usd = volume * last
        Both are NaN when any input is non-finite or non-positive.
        """
        last = to_float(payload.get("last"))
        open_ = to_float(payload.get("open"))
        volume = to_float(payload.get("volume"))

        pct24 = NAN
        if is_positive(open_) and is_positive(last):
            pct24 = (last - open_) / open_ * 100

        vol_usd = NAN
        if is_positive(volume) and is_positive(last):
            vol_usd = volume * last

        return cls(
            product=product,
            last=last,
            open=open_,
            high=to_float(payload.get("high")),
            low=to_float(payload.get("low")),
            volume_base=volume,
            pct24=pct24,
            vol_usd=vol_usd,
        )


@dataclass(frozen=True)
class EnrichedRow(StatSample):
    """A StatSample with window percent, confidence and market cap attached."""
    pct: float = NAN
    conf: int = 0
    market_cap_usd: float = NAN

    @classmethod
    def from_sample(cls, sample: StatSample, **extra: Any) -> "EnrichedRow":
        base = {f.name: getattr(sample, f.name) for f in fields(StatSample)}
        base.update(extra)
        return cls(**base)


@dataclass(frozen=True)
class Candle:
    """Exchange candle: [time, low, high, open, close, volume]."""
    timestamp: int          # Unix seconds, bucket start
    low: float
    high: float
    open: float
    close: float
    volume: float

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Candle":
        if len(row) < 6:
            raise ValueError(f"expected 6 fields, got {len(row)}")
        return cls(
            timestamp=int(row[0]),
            low=to_float(row[1]),
            high=to_float(row[2]),
            open=to_float(row[3]),
            close=to_float(row[4]),
            volume=to_float(row[5]),
        )

    @property
    def is_green(self) -> bool:
        return self.close > self.open


@dataclass
class RunCounters:
    """Cumulative counter snapshot reported while a run progresses."""
    products: int = 0
    stats_ok: int = 0
    passed: int = 0
    shown: int = 0
    vol_min: float = 0.0
    hours: int = 24

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class RunResult:
    """Top rows of one pipeline run, sorted by pct descending."""
    rows: Tuple[EnrichedRow, ...]
    ts: datetime


StageCallback = Callable[[int, str], None]
CountersCallback = Callable[[RunCounters], None]


@dataclass
class LoadOptions:
    window_hours: int = 24
    min_vol_usd: float = 1_000_000.0
    min_pct: float = 1.0
    on_stage: Optional[StageCallback] = None
    on_counters: Optional[CountersCallback] = None

    def __post_init__(self):
        if self.window_hours not in VALID_WINDOWS:
            raise ValueError(
                f"window_hours must be one of {VALID_WINDOWS}, got {self.window_hours}"
            )
        for name in ("on_stage", "on_counters"):
            cb = getattr(self, name)
            if cb is not None and not callable(cb):
                raise TypeError(f"{name} must be callable")
