from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from config import ScannerConfig
from exchange.errors import FetchError
from exchange.models import RunCounters, RunResult
from main import Scanner


def _scanner(load) -> Scanner:
    loader = MagicMock()
    loader.load = load
    coinbase = MagicMock(close=AsyncMock())
    coincap = MagicMock(close=AsyncMock())
    return Scanner(ScannerConfig(), coinbase=coinbase, coincap=coincap, loader=loader)


@pytest.mark.asyncio
async def test_successful_run_schedules_regular_refresh():
    result = RunResult(rows=(), ts=datetime.now(timezone.utc))
    scanner = _scanner(AsyncMock(return_value=result))

    assert await scanner.run_once() is result
    assert scanner.result is result
    assert scanner.progress_pct == 100
    assert scanner.last_error is None
    assert not scanner.in_flight
    assert 295 <= scanner.seconds_until_next_run() <= 300


@pytest.mark.asyncio
async def test_failed_run_reports_error_and_retries_sooner():
    scanner = _scanner(AsyncMock(side_effect=FetchError("https://x/products", 503)))

    assert await scanner.run_once() is None
    assert scanner.result is None
    assert "503" in scanner.last_error
    assert scanner.progress_pct == 0
    assert scanner.status_text.startswith("Error:")
    assert 55 <= scanner.seconds_until_next_run() <= 60


@pytest.mark.asyncio
async def test_invalid_window_fails_run_without_sticking_in_flight():
    scanner = _scanner(AsyncMock())
    scanner.window_hours = 5

    assert await scanner.run_once() is None
    assert not scanner.in_flight
    assert "window" in scanner.last_error
    assert 55 <= scanner.seconds_until_next_run() <= 60
    scanner.loader.load.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_passes_filters_and_tracks_progress():
    captured = {}

    async def load(options):
        captured["options"] = options
        options.on_stage(42, "Halfway")
        options.on_counters(RunCounters(products=7, hours=options.window_hours))
        captured["pct"] = scanner.progress_pct
        captured["refresh_while_running"] = scanner.request_refresh()
        return RunResult(rows=(), ts=datetime.now(timezone.utc))

    scanner = _scanner(AsyncMock(side_effect=load))
    scanner.window_hours = 6
    await scanner.run_once()

    assert captured["options"].window_hours == 6
    assert captured["options"].min_vol_usd == 1_000_000
    assert captured["pct"] == 42
    assert captured["refresh_while_running"] is False
    assert scanner.counters.products == 7
    assert scanner.counters.shown == 0


def test_request_refresh_updates_filters():
    scanner = _scanner(AsyncMock())
    assert scanner.request_refresh(window_hours=12, min_vol_usd=100_000)
    assert scanner.window_hours == 12
    assert scanner.min_vol_usd == 100_000


def test_request_refresh_refused_while_in_flight():
    scanner = _scanner(AsyncMock())
    scanner.in_flight = True
    assert scanner.request_refresh(window_hours=1) is False
    assert scanner.window_hours == 24


def test_request_refresh_rejects_bad_window():
    scanner = _scanner(AsyncMock())
    with pytest.raises(ValueError):
        scanner.request_refresh(window_hours=5)


@pytest.mark.parametrize("min_vol", [-1.0, float("nan"), float("inf")])
def test_request_refresh_rejects_bad_min_vol(min_vol):
    scanner = _scanner(AsyncMock())
    with pytest.raises(ValueError):
        scanner.request_refresh(min_vol_usd=min_vol)
    assert scanner.min_vol_usd == 1_000_000


@pytest.mark.asyncio
async def test_stop_ends_loop_after_current_run():
    scanner = _scanner(AsyncMock())

    async def load(options):
        scanner.stop()
        return RunResult(rows=(), ts=datetime.now(timezone.utc))

    scanner.loader.load = AsyncMock(side_effect=load)
    await scanner.start()
    assert scanner.loader.load.await_count == 1
    await scanner.close()
    scanner.coinbase.close.assert_awaited_once()
