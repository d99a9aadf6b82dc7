"""
Coinbase Exchange public REST client.
Products, 24h stats, candles and the 30-day volume summary.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List
from urllib.parse import quote
import logging

from exchange.http_client import RestClient
from exchange.models import Candle

logger = logging.getLogger(__name__)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class CoinbaseRestClient(RestClient):
    """Async wrapper over the unauthenticated Coinbase Exchange endpoints."""

    async def get_products(self) -> List[Dict[str, Any]]:
        """Full product catalog."""
        data = await self.fetch_json("/products")
        return data if isinstance(data, list) else []

    async def get_stats(self, product_id: str) -> Dict[str, Any]:
        """24h open/high/low/last/volume for one product."""
        data = await self.fetch_json(f"/products/{quote(product_id, safe='')}/stats")
        return data if isinstance(data, dict) else {}

    async def get_candles(
        self,
        product_id: str,
        start: datetime,
        end: datetime,
        granularity: int = 300,
    ) -> List[Candle]:
        """
        Candles for [start, end] at `granularity` seconds.
        Coinbase returns newest first; order is left to the caller.
        """
        raw = await self.fetch_json(
            f"/products/{quote(product_id, safe='')}/candles",
            params={
                "granularity": str(granularity),
                "start": _iso(start),
                "end": _iso(end),
            },
        )
        if not isinstance(raw, list):
            return []

        candles = []
        for row in raw:
            try:
                candles.append(Candle.from_row(row))
            except (TypeError, ValueError) as e:
                logger.warning(f"[REST] {product_id}: Bad candle data: {row}: {e}")
        return candles

    async def get_volume_summary(self) -> List[Dict[str, Any]]:
        """24h and 30-day volume per product."""
        data = await self.fetch_json("/products/volume-summary")
        return data if isinstance(data, list) else []
