"""Tests for the background task runner."""
import asyncio

import pytest

from app.services.task_runner import BackgroundTaskRunner, DuplicateJobError


@pytest.mark.asyncio
async def test_job_runs_and_is_forgotten():
    runner = BackgroundTaskRunner(concurrency=2)
    done = []

    async def job():
        done.append(True)

    task = runner.start("ingest", "doc-1", job())
    await task
    await asyncio.sleep(0)
    assert done == [True]
    assert runner.running_keys == []


@pytest.mark.asyncio
async def test_duplicate_key_is_rejected():
    runner = BackgroundTaskRunner()
    gate = asyncio.Event()

    async def job():
        await gate.wait()

    runner.start("handbook", "h-1", job())
    assert runner.is_running("handbook:h-1")

    duplicate = job()
    with pytest.raises(DuplicateJobError):
        runner.start("handbook", "h-1", duplicate)

    # Same id under another kind is a different job
    runner.start("ingest", "h-1", job())

    gate.set()
    await runner.drain(timeout=5)
    assert runner.running_keys == []


@pytest.mark.asyncio
async def test_failures_are_contained(caplog):
    runner = BackgroundTaskRunner()

    async def job():
        raise RuntimeError("kaboom")

    task = runner.start("ingest", "doc-2", job())
    await task  # the wrapper swallows the error
    assert "kaboom" in caplog.text


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    runner = BackgroundTaskRunner(concurrency=2)
    active = 0
    peak = 0

    async def job():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    for i in range(6):
        runner.start("ingest", str(i), job())
    await runner.drain(timeout=5)
    assert peak == 2


@pytest.mark.asyncio
async def test_drain_cancels_jobs_past_the_grace_period():
    runner = BackgroundTaskRunner()
    cancelled = asyncio.Event()

    async def job():
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    task = runner.start("handbook", "slow", job())
    await asyncio.sleep(0)
    await runner.drain(timeout=0.05)
    assert cancelled.is_set()
    assert task.cancelled()
