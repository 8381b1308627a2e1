"""Tests for bots.scheduler."""
import asyncio

import pytest

from bots.scheduler import SingleFlight, run_periodically


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped():
    flight = SingleFlight("bot_a")
    release = asyncio.Event()

    async def slow_job():
        await release.wait()
        return "done"

    first = asyncio.create_task(flight.run(slow_job))
    await asyncio.sleep(0)
    assert flight.running is True

    assert await flight.run(slow_job) is None
    assert flight.skipped == 1

    release.set()
    assert await first == "done"
    assert flight.running is False


@pytest.mark.asyncio
async def test_run_periodically_until_shutdown():
    shutdown = asyncio.Event()
    calls = []

    async def job():
        calls.append(len(calls))
        if len(calls) == 3:
            shutdown.set()

    await asyncio.wait_for(run_periodically("test", 0.01, job, shutdown), timeout=2)
    assert calls == [0, 1, 2]


@pytest.mark.asyncio
async def test_run_periodically_survives_errors():
    shutdown = asyncio.Event()
    calls = []

    async def job():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first tick fails")
        shutdown.set()

    await asyncio.wait_for(run_periodically("test", 0.01, job, shutdown), timeout=2)
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_delayed_start_respects_shutdown():
    shutdown = asyncio.Event()
    shutdown.set()
    calls = []

    async def job():
        calls.append(1)

    await run_periodically("test", 60, job, shutdown, run_immediately=False)
    assert calls == []
