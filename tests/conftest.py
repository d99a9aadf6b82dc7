import pytest
from unittest.mock import AsyncMock, MagicMock

from config import PipelineConfig
from exchange.models import Candle, Product


def make_product(pid: str, status: str = "online", **flags) -> dict:
    base, quote = pid.split("-")
    payload = {
        "id": pid,
        "base_currency": base,
        "quote_currency": quote,
        "status": status,
        "trading_disabled": False,
        "cancel_only": False,
        "post_only": False,
    }
    payload.update(flags)
    return payload


def make_stats(last, open_, high=None, low=None, volume="1000000") -> dict:
    return {
        "last": str(last),
        "open": str(open_),
        "high": str(high if high is not None else last),
        "low": str(low if low is not None else open_),
        "volume": str(volume),
    }


def candle(ts: int, open_: float, close: float) -> Candle:
    return Candle(
        timestamp=ts,
        low=min(open_, close),
        high=max(open_, close),
        open=open_,
        close=close,
        volume=1.0,
    )


@pytest.fixture
def pipeline_config():
    """Production widths, no inter-claim delay."""
    return PipelineConfig(pool_delay_sec=0.0)


@pytest.fixture
def btc_product():
    return Product.from_api(make_product("BTC-USD"))


@pytest.fixture
def mock_coinbase():
    client = MagicMock()
    client.get_products = AsyncMock(return_value=[])
    client.get_stats = AsyncMock(return_value={})
    client.get_candles = AsyncMock(return_value=[])
    client.get_volume_summary = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_coincap():
    client = MagicMock()
    client.build_market_cap_map = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client
