"""
Pipeline Orchestrator — one full data-acquisition run.

Stages (progress %):
  0   prepare
  4   market-cap prefetch (runs in the background, joined at the end)
  8   product discovery
  18→52  24h stats fan-out
  54  price/volume filter
  60→80  window percent via candles (skipped for 24h)
  80→94  confidence enrichment
  94  market-cap join, rank, top N
  98  done
"""

from __future__ import annotations
import asyncio
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TYPE_CHECKING
import logging

from config import PipelineConfig
from core.candle_analyzer import momentum, percent_change, trend_green_ratio
from core.confidence import confidence, proximity_to_high, volume_ratio
from core.worker_pool import map_pool, map_pool_outcomes
from exchange.errors import ScannerError, UpstreamUnavailable
from exchange.models import (
    NAN,
    CountersCallback,
    EnrichedRow,
    LoadOptions,
    Product,
    RunCounters,
    RunResult,
    StageCallback,
    StatSample,
    to_float,
)

if TYPE_CHECKING:
    from exchange.coinbase_rest import CoinbaseRestClient
    from exchange.coincap_rest import CoinCapClient

logger = logging.getLogger(__name__)


def _scaled(base: int, span: int, done: int, total: int) -> int:
    """base + span * done/total, half rounding up."""
    return base + int(math.floor(span * done / total + 0.5))


class ProgressReporter:
    """
    Threads stage and counter updates to the caller.
    Percentages are clamped to [0, 100] and never go backwards; counters
    accumulate into one snapshot.
    """

    def __init__(
        self,
        on_stage: Optional[StageCallback] = None,
        on_counters: Optional[CountersCallback] = None,
        counters: Optional[RunCounters] = None,
    ):
        self.on_stage = on_stage
        self.on_counters = on_counters
        self.counters = counters or RunCounters()
        self.pct = 0

    def stage(self, pct: int, text: str):
        self.pct = max(self.pct, min(100, max(0, int(pct))))
        if self.on_stage is not None:
            self.on_stage(self.pct, text)

    def update_counters(self, **updates: Any):
        for key, value in updates.items():
            setattr(self.counters, key, value)
        if self.on_counters is not None:
            self.on_counters(replace(self.counters))


def select_spot_products(raw: Iterable[Dict[str, Any]], quotes: Sequence[str]) -> List[Product]:
    """Tradable products quoted in one of `quotes`."""
    products = []
    for payload in raw:
        if not isinstance(payload, dict):
            continue
        product = Product.from_api(payload)
        if product.is_tradable and product.is_quoted_in(quotes):
            products.append(product)
    return products


def passes_price_volume(sample: StatSample, min_vol_usd: float, min_price: float = 1.0) -> bool:
    return (
        math.isfinite(sample.last)
        and sample.last > min_price
        and math.isfinite(sample.vol_usd)
        and sample.vol_usd >= min_vol_usd
    )


def passes_min_pct(row: EnrichedRow, min_pct: float) -> bool:
    return math.isfinite(row.pct) and row.pct > min_pct


def rank_rows(rows: Iterable[EnrichedRow], top_n: int = 30) -> List[EnrichedRow]:
    """Sort by pct descending (ties keep input order) and keep the first `top_n`."""
    return sorted(rows, key=lambda r: r.pct, reverse=True)[:top_n]


class DatasetLoader:
    """Runs the staged pipeline against the exchange and market-cap clients."""

    def __init__(
        self,
        coinbase: "CoinbaseRestClient",
        coincap: "CoinCapClient",
        config: Optional[PipelineConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.coinbase = coinbase
        self.coincap = coincap
        self.config = config or PipelineConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def load(self, options: LoadOptions) -> RunResult:
        """
        Full run. Raises on product discovery failure or when no 24h stats
        could be fetched at all; every other failure is absorbed per item.
        """
        hours = options.window_hours
        progress = ProgressReporter(
            options.on_stage,
            options.on_counters,
            RunCounters(vol_min=options.min_vol_usd, hours=hours),
        )
        progress.stage(0, f"Preparing (window {hours}h, vol>={options.min_vol_usd:,.0f})...")
        progress.update_counters()

        progress.stage(4, "Market caps (CoinCap)...")
        caps_task = asyncio.ensure_future(self._prefetch_market_caps())

        try:
            products = await self._discover_products(progress)
            samples = await self._fetch_stats(products, progress)

            progress.stage(54, f"Filter price>${self.config.min_last_price:g} & vol24h>={options.min_vol_usd:,.0f}...")
            liquid = [
                s for s in samples
                if passes_price_volume(s, options.min_vol_usd, self.config.min_last_price)
            ]
            logger.info(f"[PIPELINE] {len(liquid)}/{len(samples)} pass price/volume filter")

            with_pct = await self._window_percent(liquid, hours, progress)

            passed = [r for r in with_pct if passes_min_pct(r, options.min_pct)]
            progress.update_counters(passed=len(passed))
            logger.info(f"[PIPELINE] {len(passed)}/{len(with_pct)} above {options.min_pct}% over {hours}h")

            enriched = await self._enrich_confidence(passed, progress)

            progress.stage(94, "Market caps...")
            caps = await caps_task
        finally:
            if not caps_task.done():
                caps_task.cancel()

        rows = rank_rows(
            (self._attach_market_cap(r, caps) for r in enriched),
            self.config.top_n,
        )
        progress.update_counters(shown=len(rows))
        progress.stage(98, f"Rendering ({len(rows)})...")
        logger.info(f"[PIPELINE] Run complete: {len(rows)} rows")
        return RunResult(rows=tuple(rows), ts=self._clock())

    # ==================== Stages ====================

    async def _prefetch_market_caps(self) -> Dict[str, float]:
        try:
            return await self.coincap.build_market_cap_map()
        except Exception as e:
            logger.warning(f"[PIPELINE] Market caps unavailable, continuing without: {e}")
            return {}

    async def _discover_products(self, progress: ProgressReporter) -> List[Product]:
        progress.stage(8, "Coinbase products...")
        raw = await self.coinbase.get_products()
        products = select_spot_products(raw, self.config.quote_currencies)
        logger.info(
            f"[PIPELINE] {len(products)}/{len(raw)} products tradable in "
            f"{'/'.join(self.config.quote_currencies)}"
        )
        return products

    async def _fetch_stats(self, products: List[Product], progress: ProgressReporter) -> List[StatSample]:
        total = len(products)
        label = "24h stats (price & vol)..."
        progress.stage(18, f"{label} 0/{total}")

        async def worker(product: Product, _idx: int) -> StatSample:
            payload = await self.coinbase.get_stats(product.id)
            return StatSample.from_api(product, payload)

        outcomes = await map_pool_outcomes(
            products,
            worker,
            self.config.concurrency,
            lambda done, n: progress.stage(_scaled(18, 34, done, n), f"{label} {done}/{n}"),
            self.config.pool_delay_sec,
        )

        samples = [o.value for o in outcomes if o.ok]
        stats_ok = sum(1 for s in samples if math.isfinite(s.last))
        progress.update_counters(products=total, stats_ok=stats_ok)

        failed = total - len(samples)
        if failed:
            logger.warning(f"[PIPELINE] 24h stats failed for {failed}/{total} products")
        if total and not samples:
            first_error = next((o.error for o in outcomes if o.error is not None), None)
            raise UpstreamUnavailable("coinbase stats", first_error)
        return samples

    async def _window_percent(
        self,
        samples: List[StatSample],
        hours: int,
        progress: ProgressReporter,
    ) -> List[EnrichedRow]:
        if hours == 24:
            return [EnrichedRow.from_sample(s, pct=s.pct24) for s in samples]

        label = f"{hours}h % via candles..."
        progress.stage(60, f"{label} 0/{len(samples)}")
        lookback = timedelta(minutes=hours * 60 + self.config.window_margin_minutes)

        async def worker(sample: StatSample, _idx: int) -> EnrichedRow:
            end = self._clock()
            candles = await self.coinbase.get_candles(
                sample.product.id, end - lookback, end, self.config.candle_granularity
            )
            return EnrichedRow.from_sample(sample, pct=percent_change(candles))

        results = await map_pool(
            samples,
            worker,
            self.config.concurrency,
            lambda done, n: progress.stage(_scaled(60, 20, done, n), f"{label} {done}/{n}"),
            self.config.pool_delay_sec,
        )
        return [r for r in results if r is not None]

    async def _enrich_confidence(
        self,
        rows: List[EnrichedRow],
        progress: ProgressReporter,
    ) -> List[EnrichedRow]:
        label = "Confidence (1h candles)..."
        progress.stage(80, f"{label} 0/{len(rows)}")
        if not rows:
            return []

        # Fetched once, awaited by every worker
        summary_task = asyncio.ensure_future(self._fetch_volume_summary())
        lookback = timedelta(minutes=self.config.confidence_lookback_minutes)

        async def worker(row: EnrichedRow, _idx: int) -> EnrichedRow:
            pid = row.product.id
            mom = trend = vol_x = 0.0

            try:
                end = self._clock()
                candles = await self.coinbase.get_candles(
                    pid, end - lookback, end, self.config.candle_granularity
                )
                mom = momentum(candles)
                trend = trend_green_ratio(candles)
            except Exception as e:
                logger.debug(f"[PIPELINE] {pid}: momentum candles failed: {e}")

            try:
                summary = await summary_task
                entry = summary.get(pid)
                if entry:
                    vol_x = volume_ratio(
                        to_float(entry.get("volume_24h")),
                        to_float(entry.get("volume_30day")),
                    )
            except Exception as e:
                logger.debug(f"[PIPELINE] {pid}: volume summary failed: {e}")

            prox = proximity_to_high(row.last, row.high, row.low)
            return replace(row, conf=confidence(mom, vol_x, trend, prox))

        try:
            results = await map_pool(
                rows,
                worker,
                self.config.concurrency,
                lambda done, n: progress.stage(_scaled(80, 14, done, n), f"{label} {done}/{n}"),
                self.config.pool_delay_sec,
            )
        finally:
            if not summary_task.done():
                summary_task.cancel()
        return [r for r in results if r is not None]

    async def _fetch_volume_summary(self) -> Dict[str, Dict[str, Any]]:
        try:
            raw = await self.coinbase.get_volume_summary()
        except ScannerError as e:
            logger.warning(f"[PIPELINE] Volume summary unavailable: {e}")
            raise UpstreamUnavailable("coinbase volume-summary", e) from e

        summary = {}
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            pid = entry.get("product_id") or entry.get("id")
            if pid:
                summary[str(pid)] = entry
        return summary

    @staticmethod
    def _attach_market_cap(row: EnrichedRow, caps: Dict[str, float]) -> EnrichedRow:
        cap = caps.get(row.product.base_currency.upper())
        return replace(row, market_cap_usd=cap if cap else NAN)


async def load_dataset(
    coinbase: "CoinbaseRestClient",
    coincap: "CoinCapClient",
    options: Optional[LoadOptions] = None,
    config: Optional[PipelineConfig] = None,
) -> RunResult:
    """One-shot convenience wrapper around DatasetLoader.load()."""
    loader = DatasetLoader(coinbase, coincap, config)
    return await loader.load(options or LoadOptions())
