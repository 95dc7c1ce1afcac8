from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from app.core.scheduler import JobScheduler, ScheduledJob


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


def _recorder(calls: List[datetime]):
    async def _handler(now: datetime) -> None:
        calls.append(now)

    return _handler


async def _failing(now: datetime) -> None:
    raise RuntimeError("boom")


def test_duplicate_job_ids_are_rejected() -> None:
    jobs = [
        ScheduledJob("a", timedelta(hours=1), _failing),
        ScheduledJob("a", timedelta(hours=2), _failing),
    ]
    with pytest.raises(ValueError):
        JobScheduler(jobs)


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        JobScheduler([ScheduledJob("a", timedelta(0), _failing)])


@pytest.mark.asyncio
async def test_jobs_run_on_first_tick_then_wait_for_their_interval(clock: FakeClock) -> None:
    hourly: List[datetime] = []
    daily: List[datetime] = []
    scheduler = JobScheduler(
        [
            ScheduledJob("hourly", timedelta(hours=1), _recorder(hourly)),
            ScheduledJob("daily", timedelta(days=1), _recorder(daily)),
        ],
        clock=clock,
    )

    assert await scheduler.run_due() == ["hourly", "daily"]
    assert await scheduler.run_due() == []

    clock.advance(minutes=59)
    assert await scheduler.run_due() == []

    clock.advance(minutes=1)
    assert await scheduler.run_due() == ["hourly"]
    assert scheduler.next_run_at("daily") == hourly[0] + timedelta(days=1)
    assert len(hourly) == 2
    assert len(daily) == 1


@pytest.mark.asyncio
async def test_failing_job_does_not_stop_the_others(clock: FakeClock) -> None:
    calls: List[datetime] = []
    scheduler = JobScheduler(
        [
            ScheduledJob("broken", timedelta(hours=1), _failing),
            ScheduledJob("healthy", timedelta(hours=1), _recorder(calls)),
        ],
        clock=clock,
    )

    assert await scheduler.run_due() == ["broken", "healthy"]
    assert calls == [clock.now]
    # The failed run still counts; no retry until the interval elapses.
    assert scheduler.next_run_at("broken") == clock.now + timedelta(hours=1)


@pytest.mark.asyncio
async def test_trigger_runs_outside_schedule(clock: FakeClock) -> None:
    calls: List[datetime] = []
    scheduler = JobScheduler(
        [
            ScheduledJob("healthy", timedelta(hours=1), _recorder(calls)),
            ScheduledJob("broken", timedelta(hours=1), _failing),
        ],
        clock=clock,
    )

    assert (await scheduler.trigger("healthy"))["status"] == "success"
    assert (await scheduler.trigger("broken"))["status"] == "error"
    assert len(calls) == 1
    # Manual runs leave the schedule alone.
    assert scheduler.next_run_at("healthy") is None

    with pytest.raises(ValueError):
        await scheduler.trigger("missing")


def test_list_jobs_reports_state(clock: FakeClock) -> None:
    scheduler = JobScheduler([ScheduledJob("healthy", timedelta(minutes=30), _failing)], clock=clock)
    assert scheduler.list_jobs() == [
        {
            "job_id": "healthy",
            "interval_seconds": 1800,
            "last_run_at": None,
            "next_run_at": None,
            "running": False,
        }
    ]
    assert scheduler.running is False
