"""
CoinCap REST client — bulk asset listing for market caps.
"""

from __future__ import annotations
import math
from typing import Any, Dict, List
import logging

from exchange.errors import ScannerError, UpstreamUnavailable
from exchange.http_client import RestClient
from exchange.models import to_float

logger = logging.getLogger(__name__)


class CoinCapClient(RestClient):
    """Reads the CoinCap asset listing."""

    def __init__(self, assets_url: str, limit: int = 2000, timeout_sec: float = 15.0):
        super().__init__(timeout_sec=timeout_sec)
        self.assets_url = assets_url
        self.limit = limit

    async def get_assets(self) -> List[Dict[str, Any]]:
        data = await self.fetch_json(self.assets_url, params={"limit": str(self.limit)})
        if not isinstance(data, dict):
            return []
        return data.get("data") or []

    async def build_market_cap_map(self) -> Dict[str, float]:
        """
        Symbol -> market cap (USD).
        Symbols are upper-cased; when a symbol repeats, the largest cap wins.
        """
        try:
            assets = await self.get_assets()
        except ScannerError as e:
            raise UpstreamUnavailable("coincap", e) from e

        caps: Dict[str, float] = {}
        for asset in assets:
            if not isinstance(asset, dict):
                continue
            symbol = str(asset.get("symbol") or "").upper()
            cap = to_float(asset.get("marketCapUsd"))
            if symbol and math.isfinite(cap):
                caps[symbol] = max(caps.get(symbol, 0.0), cap)

        logger.info(f"[REST] CoinCap: {len(caps)} market caps loaded")
        return caps
