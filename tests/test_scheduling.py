"""Tests for single-flight guards and schedulers."""

import asyncio

import pytest

from knowledge_lifecycle.scheduling import AsyncioScheduler, SingleFlight, VirtualScheduler


class TestSingleFlight:
    """Tests for SingleFlight."""

    @pytest.mark.asyncio
    async def test_sequential_runs(self):
        flight = SingleFlight("job")

        async def work():
            return 42

        assert await flight.run(work) == (True, 42)
        assert await flight.run(work) == (True, 42)
        assert flight.runs_started == 2
        assert flight.runs_skipped == 0

    @pytest.mark.asyncio
    async def test_overlapping_call_dropped(self):
        flight = SingleFlight("job")
        started = asyncio.Event()
        release = asyncio.Event()

        async def work():
            started.set()
            await release.wait()
            return "done"

        first = asyncio.create_task(flight.run(work))
        await started.wait()
        assert flight.running is True

        assert await flight.run(work) == (False, None)
        release.set()
        assert await first == (True, "done")
        assert flight.running is False
        assert flight.runs_skipped == 1

    @pytest.mark.asyncio
    async def test_lock_released_after_error(self):
        flight = SingleFlight("job")

        async def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await flight.run(boom)
        assert flight.running is False


class TestVirtualScheduler:
    """Tests for VirtualScheduler."""

    @pytest.mark.asyncio
    async def test_advance_runs_due_jobs_in_order(self):
        scheduler = VirtualScheduler()
        calls = []

        async def fast():
            calls.append(("fast", scheduler.now))

        async def slow():
            calls.append(("slow", scheduler.now))

        scheduler.every(10, fast, "fast")
        scheduler.every(25, slow, "slow")
        await scheduler.start()

        runs = await scheduler.advance(30)

        assert runs == 4
        assert calls == [("fast", 10), ("fast", 20), ("slow", 25), ("fast", 30)]
        assert scheduler.now == 30

    @pytest.mark.asyncio
    async def test_nothing_runs_before_start(self):
        scheduler = VirtualScheduler()
        calls = []

        async def job():
            calls.append(1)

        scheduler.every(1, job, "job")
        assert await scheduler.advance(5) == 0
        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_the_clock(self):
        scheduler = VirtualScheduler()
        calls = []

        async def failing():
            raise RuntimeError("store down")

        async def healthy():
            calls.append(scheduler.now)

        scheduler.every(5, failing, "failing")
        scheduler.every(5, healthy, "healthy")
        await scheduler.start()

        assert await scheduler.advance(10) == 4
        assert calls == [5, 10]

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            VirtualScheduler().every(0, lambda: None, "bad")


class TestAsyncioScheduler:
    """Tests for AsyncioScheduler."""

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            AsyncioScheduler().every(-1, lambda: None, "bad")

    @pytest.mark.asyncio
    async def test_runs_jobs_until_stopped(self):
        scheduler = AsyncioScheduler(run_at_start=True)
        calls = []

        async def job():
            calls.append(1)

        scheduler.every(0.01, job, "job")
        await scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        count = len(calls)
        await asyncio.sleep(0.03)

        assert count >= 2
        assert len(calls) == count
