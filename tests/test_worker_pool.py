from __future__ import annotations

import asyncio

import pytest

from core.worker_pool import map_pool, map_pool_outcomes


@pytest.mark.asyncio
async def test_empty_input_returns_immediately():
    calls = []

    async def worker(item, idx):
        calls.append(idx)
        return item

    assert await map_pool([], worker, concurrency=8, on_progress=lambda d, t: calls.append((d, t))) == []
    assert calls == []


@pytest.mark.asyncio
async def test_rejects_zero_concurrency():
    async def worker(item, idx):
        return item

    with pytest.raises(ValueError):
        await map_pool([1, 2], worker, concurrency=0)


@pytest.mark.asyncio
async def test_output_order_matches_input_when_completion_order_differs():
    items = list(range(12))

    async def worker(item, idx):
        # Later items finish first
        await asyncio.sleep((len(items) - idx) * 0.002)
        return item * 10

    results = await map_pool(items, worker, concurrency=4, delay=0)
    assert results == [i * 10 for i in items]


@pytest.mark.asyncio
async def test_worker_receives_item_and_its_index():
    seen = []

    async def worker(item, idx):
        seen.append((item, idx))
        return f"{item}:{idx}"

    results = await map_pool(["a", "b", "c"], worker, concurrency=2, delay=0)
    assert results == ["a:0", "b:1", "c:2"]
    assert sorted(seen) == [("a", 0), ("b", 1), ("c", 2)]


@pytest.mark.asyncio
async def test_failures_become_none_without_aborting():
    async def worker(item, idx):
        if item % 3 == 0:
            raise RuntimeError(f"boom {item}")
        return item

    results = await map_pool(list(range(7)), worker, concurrency=3, delay=0)
    assert results == [None, 1, 2, None, 4, 5, None]


@pytest.mark.asyncio
async def test_outcomes_keep_errors():
    async def worker(item, idx):
        if item == "bad":
            raise ValueError("nope")
        return item.upper()

    outcomes = await map_pool_outcomes(["ok", "bad"], worker, concurrency=2, delay=0)
    assert outcomes[0].ok and outcomes[0].value == "OK"
    assert not outcomes[1].ok
    assert isinstance(outcomes[1].error, ValueError)
    assert [o.index for o in outcomes] == [0, 1]


@pytest.mark.asyncio
async def test_progress_counts_every_completion_once():
    progress = []

    async def worker(item, idx):
        await asyncio.sleep(0.001 * (idx % 3))
        if idx == 2:
            raise RuntimeError("fail")
        return idx

    await map_pool(list(range(9)), worker, concurrency=4, on_progress=lambda d, t: progress.append((d, t)), delay=0)
    assert progress == [(i, 9) for i in range(1, 10)]


@pytest.mark.asyncio
async def test_in_flight_never_exceeds_concurrency():
    in_flight = 0
    peak = 0

    async def worker(item, idx):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.002)
        in_flight -= 1
        return item

    await map_pool(list(range(20)), worker, concurrency=8, delay=0)
    assert peak == 8


@pytest.mark.asyncio
async def test_fewer_items_than_workers():
    started = []

    async def worker(item, idx):
        started.append(idx)
        return item

    assert await map_pool([1, 2], worker, concurrency=8, delay=0) == [1, 2]
    assert sorted(started) == [0, 1]


@pytest.mark.asyncio
async def test_concurrency_one_matches_sequential_mapping():
    items = [3, 0, 5, 0, 2]

    def fn(x):
        return 10 // x

    async def worker(item, idx):
        return fn(item)

    expected = []
    for x in items:
        try:
            expected.append(fn(x))
        except ZeroDivisionError:
            expected.append(None)

    order = []

    async def tracking(item, idx):
        order.append(idx)
        return await worker(item, idx)

    assert await map_pool(items, tracking, concurrency=1, delay=0) == expected
    assert order == list(range(len(items)))


@pytest.mark.asyncio
async def test_pauses_for_delay_after_each_completion(monkeypatch):
    pauses = []

    async def fake_sleep(seconds):
        pauses.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)

    async def worker(item, idx):
        if idx == 3:
            raise RuntimeError("fail")
        return item

    results = await map_pool(list(range(5)), worker, concurrency=2, delay=0.25)
    assert results == [0, 1, 2, None, 4]
    assert pauses == [0.25] * 5
