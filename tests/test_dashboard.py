from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp.test_utils import TestClient, TestServer

from conftest import make_product, make_stats
from config import ScannerConfig
from dashboard import Dashboard, fmt_compact, fmt_pct, fmt_usd
from exchange.models import EnrichedRow, Product, RunResult, StatSample
from main import Scanner


def _scanner_with_rows() -> Scanner:
    product = Product.from_api(make_product("SOL-USD"))
    row = EnrichedRow.from_sample(
        StatSample.from_api(product, make_stats(last=150, open_=140, volume=20_000)),
        pct=7.14,
        conf=55,
    )
    scanner = Scanner(
        ScannerConfig(),
        coinbase=MagicMock(close=AsyncMock()),
        coincap=MagicMock(close=AsyncMock()),
        loader=MagicMock(),
    )
    scanner.result = RunResult(rows=(row,), ts=datetime(2024, 5, 1, tzinfo=timezone.utc))
    return scanner


def test_formatters():
    assert fmt_usd(1234.5) == "$1,234.50"
    assert fmt_usd(0.5) == "$0.5000"
    assert fmt_usd(0.1234567) == "$0.123457"
    assert fmt_usd(float("nan")) == "—"
    assert fmt_compact(1_500_000) == "1.5M"
    assert fmt_compact(2_340_000_000) == "2.34B"
    assert fmt_compact(999) == "999"
    assert fmt_compact(float("nan")) == "—"
    assert fmt_pct(7.14159) == "7.14 %"
    assert fmt_pct(float("inf")) == "—"


@pytest.mark.asyncio
async def test_api_dashboard_serializes_nan_as_null():
    dashboard = Dashboard(_scanner_with_rows())
    async with TestClient(TestServer(dashboard.app)) as client:
        resp = await client.get("/api/dashboard")
        assert resp.status == 200
        data = await resp.json()

    assert data["window_hours"] == 24
    assert data["last_update"] == "2024-05-01T00:00:00+00:00"
    row = data["rows"][0]
    assert row["rank"] == 1
    assert row["asset"] == "SOL-USD"
    assert row["conf"] == 55
    assert row["market_cap_usd"] is None


@pytest.mark.asyncio
async def test_html_renders_table():
    dashboard = Dashboard(_scanner_with_rows())
    async with TestClient(TestServer(dashboard.app)) as client:
        resp = await client.get("/")
        text = await resp.text()

    assert resp.status == 200
    assert "SOL-USD" in text
    assert "7.14 %" in text
    assert "$150.00" in text


@pytest.mark.asyncio
async def test_refresh_endpoint():
    scanner = _scanner_with_rows()
    dashboard = Dashboard(scanner)
    async with TestClient(TestServer(dashboard.app)) as client:
        ok = await client.post("/api/refresh", params={"window": "6", "min_vol": "100000"})
        bad = await client.post("/api/refresh", params={"window": "7"})
        nan = await client.post("/api/refresh", params={"min_vol": "nan"})
        inf = await client.post("/api/refresh", params={"min_vol": "inf"})
        scanner.in_flight = True
        busy = await client.post("/api/refresh")

    assert ok.status == 202
    assert scanner.window_hours == 6 and scanner.min_vol_usd == 100_000
    assert bad.status == 400
    assert nan.status == 400 and inf.status == 400
    assert busy.status == 409


@pytest.mark.asyncio
async def test_html_shows_error():
    scanner = _scanner_with_rows()
    scanner.result = None
    scanner.last_error = "503 Service Unavailable @ https://x/products"
    dashboard = Dashboard(scanner)
    async with TestClient(TestServer(dashboard.app)) as client:
        text = await (await client.get("/")).text()
    assert "Error: 503 Service Unavailable" in text
