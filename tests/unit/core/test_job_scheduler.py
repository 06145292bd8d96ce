"""
Unit Tests for JobScheduler
===========================

Test Coverage
-------------
- Registration validation
- Due-job detection and interval advancement
- A queued or running job is never enqueued twice
- Failures are recorded and do not stop later jobs
- Start/stop lifecycle with background tasks
- Stop waits for the job in flight, not the full timeout
- Jobs queued at stop run after a restart

Testing Strategy
----------------
A mutable clock drives ``tick`` and ``run_pending`` directly; only the
lifecycle test starts the timer and worker tasks.
"""

import asyncio
from datetime import timedelta

import pytest

from hexturf.core.scheduler.scheduler import JobScheduler
from tests.factories import at


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return MutableClock(at(0))


@pytest.fixture
def scheduler(clock):
    return JobScheduler(clock=clock, poll_interval_seconds=0.01, max_queue_size=10)


@pytest.mark.unit
class TestRegistration:
    def test_duplicate_name_rejected(self, scheduler):
        async def job():
            return None

        scheduler.register("refresh", job, timedelta(minutes=1))

        with pytest.raises(ValueError):
            scheduler.register("refresh", job, timedelta(minutes=1))

    def test_non_positive_interval_rejected(self, scheduler):
        async def job():
            return None

        with pytest.raises(ValueError):
            scheduler.register("refresh", job, timedelta(0))

    def test_run_on_start_false_waits_one_interval(self, scheduler, clock):
        async def job():
            return None

        registered = scheduler.register("refresh", job, timedelta(minutes=10), run_on_start=False)

        assert registered.next_run_at == clock.now + timedelta(minutes=10)
        assert scheduler.tick() == []


@pytest.mark.unit
class TestTickAndRun:
    async def test_due_job_runs_and_reschedules(self, scheduler, clock):
        # Arrange
        calls = []

        async def job():
            calls.append(clock.now)

        scheduler.register("refresh", job, timedelta(minutes=10))

        # Act
        enqueued = scheduler.tick()
        executed = await scheduler.run_pending()

        # Assert
        assert enqueued == ["refresh"]
        assert executed == 1
        assert calls == [at(0)]
        state = scheduler.get_job("refresh")
        assert state.run_count == 1
        assert state.next_run_at == at(0) + timedelta(minutes=10)

    async def test_queued_job_not_enqueued_twice(self, scheduler, clock):
        # Arrange
        async def job():
            return None

        scheduler.register("refresh", job, timedelta(minutes=1))
        scheduler.tick()

        # Act
        clock.advance(minutes=5)
        second = scheduler.tick()

        # Assert
        assert second == []
        assert scheduler.queue_size() == 1

    async def test_not_due_before_interval(self, scheduler, clock):
        async def job():
            return None

        scheduler.register("refresh", job, timedelta(minutes=10))
        scheduler.tick()
        await scheduler.run_pending()

        clock.advance(minutes=9)
        assert scheduler.tick() == []
        clock.advance(minutes=1)
        assert scheduler.tick() == ["refresh"]

    async def test_failure_recorded_and_next_job_still_runs(self, scheduler):
        # Arrange
        ran = []

        async def failing():
            raise RuntimeError("database unavailable")

        async def healthy():
            ran.append("healthy")

        scheduler.register("failing", failing, timedelta(minutes=1))
        scheduler.register("healthy", healthy, timedelta(minutes=1))
        scheduler.tick()

        # Act
        executed = await scheduler.run_pending()

        # Assert
        assert executed == 2
        assert ran == ["healthy"]
        failed = scheduler.get_job("failing")
        assert failed.failure_count == 1
        assert failed.last_error == "RuntimeError: database unavailable"
        assert failed.running is False
        assert failed.to_dict()["failure_count"] == 1

    async def test_full_queue_defers_job(self, clock):
        # Arrange
        scheduler = JobScheduler(clock=clock, poll_interval_seconds=0.01, max_queue_size=1)

        async def job():
            return None

        scheduler.register("first", job, timedelta(minutes=1))
        scheduler.register("second", job, timedelta(minutes=1))

        # Act
        enqueued = scheduler.tick()

        # Assert
        assert enqueued == ["first"]
        assert scheduler.get_job("second").queued is False


@pytest.mark.unit
class TestLifecycle:
    async def test_background_tasks_run_jobs(self):
        # Arrange
        scheduler = JobScheduler(poll_interval_seconds=0.01)
        done = asyncio.Event()

        async def job():
            done.set()

        scheduler.register("refresh", job, timedelta(hours=1))

        # Act
        await scheduler.start()
        try:
            await asyncio.wait_for(done.wait(), timeout=2.0)
            assert scheduler.is_running
        finally:
            await scheduler.stop()

        # Assert
        assert not scheduler.is_running
        assert scheduler.get_job("refresh").run_count == 1

    async def test_stop_without_start_is_noop(self, scheduler):
        await scheduler.stop()

        assert not scheduler.is_running

    async def test_stop_waits_only_for_the_job_in_flight(self):
        # Arrange
        scheduler = JobScheduler(poll_interval_seconds=0.01)
        started = asyncio.Event()

        async def job():
            started.set()
            await asyncio.sleep(0.05)

        scheduler.register("refresh", job, timedelta(hours=1))
        await scheduler.start()
        await asyncio.wait_for(started.wait(), timeout=2.0)
        loop = asyncio.get_running_loop()

        # Act
        began = loop.time()
        await scheduler.stop(timeout=5.0)
        elapsed = loop.time() - began

        # Assert
        assert elapsed < 1.0
        assert scheduler.get_job("refresh").run_count == 1
        assert scheduler.get_job("refresh").last_error is None

    async def test_queued_job_runs_after_restart(self):
        # Arrange
        scheduler = JobScheduler(poll_interval_seconds=0.01)
        gate = asyncio.Event()
        blocking_started = asyncio.Event()
        later_done = asyncio.Event()

        async def blocking():
            blocking_started.set()
            await gate.wait()

        async def later():
            later_done.set()

        scheduler.register("blocking", blocking, timedelta(hours=1))
        scheduler.register("later", later, timedelta(hours=1))
        await scheduler.start()
        await asyncio.wait_for(blocking_started.wait(), timeout=2.0)

        # Act
        await scheduler.stop(timeout=0.01)
        stopped_state = scheduler.get_job("later").to_dict()
        gate.set()
        await scheduler.start()
        try:
            await asyncio.wait_for(later_done.wait(), timeout=2.0)
        finally:
            await scheduler.stop()

        # Assert
        assert stopped_state["queued"] is False
        assert stopped_state["run_count"] == 0
        assert scheduler.get_job("later").run_count == 1
        assert scheduler.get_job("blocking").running is False
        assert scheduler.queue_size() == 0
