"""Tests for the scheduler timers and the Redis lease around each run."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from atelier_clearinghouse.scheduler.jobs import JobReport
from atelier_clearinghouse.scheduler.runner import (
    AUTO_CONFIRM,
    DEADLINE_REMINDERS,
    JOB_METHODS,
    ReconciliationScheduler,
)


class FakeLock:
    def __init__(self, acquired: bool) -> None:
        self._acquired = acquired
        self.released = False

    async def acquire(self) -> bool:
        return self._acquired

    async def release(self) -> None:
        self.released = True


class FakeRedis:
    """Just enough of redis.asyncio.Redis for ``lease``."""

    def __init__(self, acquired: bool) -> None:
        self.lock_obj = FakeLock(acquired)
        self.lock_calls: list[tuple[str, int, bool]] = []

    def lock(self, name: str, timeout: int, blocking: bool) -> FakeLock:
        self.lock_calls.append((name, timeout, blocking))
        return self.lock_obj


@pytest.fixture
def jobs() -> MagicMock:
    jobs = MagicMock()
    for method in JOB_METHODS.values():
        setattr(jobs, method, AsyncMock(return_value=JobReport(job=method)))
    return jobs


class TestConfiguration:
    def test_registers_every_job(self, jobs, settings) -> None:
        scheduler = ReconciliationScheduler(jobs, None, settings)
        assert set(scheduler.job_ids) == set(JOB_METHODS)
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, jobs, settings) -> None:
        scheduler = ReconciliationScheduler(jobs, None, settings)
        scheduler.start()
        assert scheduler.running
        scheduler.shutdown()
        # AsyncIOScheduler shuts down on the next loop iteration.
        await asyncio.sleep(0)
        assert not scheduler.running


class TestRunExclusive:
    @pytest.mark.asyncio
    async def test_runs_without_redis(self, jobs, settings) -> None:
        scheduler = ReconciliationScheduler(jobs, None, settings)
        report = await scheduler.run_exclusive(AUTO_CONFIRM)
        assert report.job == "auto_confirm"
        jobs.auto_confirm.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runs_under_lease(self, jobs, settings) -> None:
        redis = FakeRedis(acquired=True)
        scheduler = ReconciliationScheduler(jobs, redis, settings)

        report = await scheduler.run_exclusive(DEADLINE_REMINDERS)

        assert report.job == "deadline_reminders"
        assert redis.lock_calls == [
            ("atelier:lease:deadline_reminders", settings.scheduler_lease_seconds, False)
        ]
        assert redis.lock_obj.released

    @pytest.mark.asyncio
    async def test_skips_when_lease_held_elsewhere(self, jobs, settings) -> None:
        redis = FakeRedis(acquired=False)
        scheduler = ReconciliationScheduler(jobs, redis, settings)

        assert await scheduler.run_exclusive(AUTO_CONFIRM) is None
        jobs.auto_confirm.assert_not_awaited()
        assert not redis.lock_obj.released

    @pytest.mark.asyncio
    async def test_job_crash_propagates_and_releases_lease(self, jobs, settings) -> None:
        jobs.auto_confirm.side_effect = RuntimeError("database gone")
        redis = FakeRedis(acquired=True)
        scheduler = ReconciliationScheduler(jobs, redis, settings)

        with pytest.raises(RuntimeError):
            await scheduler.run_exclusive(AUTO_CONFIRM)
        assert redis.lock_obj.released
