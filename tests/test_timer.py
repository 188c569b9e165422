"""Tests for flagquiz.timer.TimerCoordinator."""

import asyncio
import logging

import pytest

from flagquiz.timer import TimerCoordinator, task_done_callback
from tests.conftest import wait_until


class Recorder:
    def __init__(self):
        self.ticks: list[int] = []
        self.expired = 0

    async def on_tick(self, remaining):
        self.ticks.append(remaining)

    async def on_expire(self):
        self.expired += 1


@pytest.mark.asyncio
async def test_counts_down_then_expires_once():
    rec = Recorder()
    timer = TimerCoordinator(rec.on_tick, rec.on_expire, tick_seconds=0.001)
    timer.start(3)
    await wait_until(lambda: rec.expired)
    await asyncio.sleep(0.01)
    assert rec.ticks == [2, 1, 0]
    assert rec.expired == 1
    assert not timer.running


@pytest.mark.asyncio
async def test_zero_seconds_expires_immediately():
    rec = Recorder()
    timer = TimerCoordinator(rec.on_tick, rec.on_expire, tick_seconds=0.001)
    timer.start(0)
    await wait_until(lambda: rec.expired)
    assert rec.ticks == []


@pytest.mark.asyncio
async def test_second_start_is_ignored():
    rec = Recorder()
    timer = TimerCoordinator(rec.on_tick, rec.on_expire, tick_seconds=3600)
    timer.start(5)
    timer.start(100)
    assert timer.remaining == 5
    timer.stop()


@pytest.mark.asyncio
async def test_stop_prevents_further_callbacks():
    rec = Recorder()
    timer = TimerCoordinator(rec.on_tick, rec.on_expire, tick_seconds=0.001)
    timer.start(1000)
    await wait_until(lambda: len(rec.ticks) >= 2)
    timer.stop()
    await asyncio.sleep(0)
    seen = len(rec.ticks)
    await asyncio.sleep(0.02)
    assert len(rec.ticks) == seen
    assert rec.expired == 0
    assert not timer.running


@pytest.mark.asyncio
async def test_not_running_as_soon_as_stopped():
    rec = Recorder()
    timer = TimerCoordinator(rec.on_tick, rec.on_expire, tick_seconds=3600)
    timer.start(60)
    assert timer.running
    timer.stop()
    # No event loop turn in between
    assert not timer.running


@pytest.mark.asyncio
async def test_stop_from_inside_tick_callback():
    rec = Recorder()
    timer = None

    async def on_tick(remaining):
        rec.ticks.append(remaining)
        timer.stop()

    timer = TimerCoordinator(on_tick, rec.on_expire, tick_seconds=0.001)
    timer.start(10)
    await wait_until(lambda: not timer.running)
    assert rec.ticks == [9]
    assert rec.expired == 0


@pytest.mark.asyncio
async def test_stop_before_start_is_harmless():
    rec = Recorder()
    timer = TimerCoordinator(rec.on_tick, rec.on_expire)
    timer.stop()
    assert not timer.running


@pytest.mark.asyncio
async def test_done_callback_logs_task_failure(caplog):
    async def boom():
        raise RuntimeError("boom")

    task = asyncio.create_task(boom(), name="hold-3")
    await asyncio.gather(task, return_exceptions=True)
    with caplog.at_level(logging.ERROR, logger="flagquiz.timer"):
        task_done_callback(task)
    assert "Background task hold-3 failed: boom" in caplog.text


@pytest.mark.asyncio
async def test_done_callback_ignores_cancelled_task(caplog):
    task = asyncio.create_task(asyncio.sleep(3600))
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    with caplog.at_level(logging.ERROR, logger="flagquiz.timer"):
        task_done_callback(task)
    assert caplog.text == ""
