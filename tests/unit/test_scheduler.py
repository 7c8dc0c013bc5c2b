"""Unit tests for the trigger scheduler."""

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from dashboard_stats.refresh.scheduler import Scheduler


class Counter:
    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.finished = 0
        self.fail = fail
        self.delay = delay

    async def __call__(self):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail:
                raise RuntimeError("callback failure")
        finally:
            self.active -= 1
            self.finished += 1


@pytest.mark.asyncio
async def test_fixed_interval_fires_immediately_then_repeats():
    scheduler = Scheduler()
    counter = Counter()
    scheduler.register_fixed_interval(50, counter)

    await scheduler.start()
    await asyncio.sleep(0.01)
    assert counter.calls == 1

    await asyncio.sleep(0.12)
    await scheduler.stop()
    assert counter.calls >= 3


@pytest.mark.asyncio
async def test_callback_exceptions_do_not_stop_any_trigger():
    scheduler = Scheduler()
    failing = Counter(fail=True)
    healthy = Counter()
    scheduler.register_fixed_interval(20, failing, name="failing")
    scheduler.register_fixed_interval(20, healthy, name="healthy")

    await scheduler.start()
    await asyncio.sleep(0.1)

    assert scheduler.is_running
    assert failing.calls >= 3
    assert healthy.calls >= 3
    await scheduler.stop()


@pytest.mark.asyncio
async def test_slow_callback_overlaps_itself():
    scheduler = Scheduler()
    slow = Counter(delay=0.1)
    scheduler.register_fixed_interval(20, slow)

    await scheduler.start()
    await asyncio.sleep(0.07)
    await scheduler.stop()

    assert slow.max_active > 1


@pytest.mark.asyncio
async def test_interval_measured_from_previous_start():
    scheduler = Scheduler()
    slow = Counter(delay=0.08)
    scheduler.register_fixed_interval(30, slow)

    await scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    # A slow callback never pushes the next start back
    assert slow.calls >= 3


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_callbacks():
    scheduler = Scheduler()
    slow = Counter(delay=0.05)
    scheduler.register_fixed_interval(10_000, slow)

    await scheduler.start()
    await asyncio.sleep(0.01)
    assert slow.active == 1

    await scheduler.stop()

    assert slow.finished == 1
    assert scheduler.in_flight == 0
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_sync_callbacks_are_supported():
    scheduler = Scheduler()
    calls = []
    scheduler.register_fixed_interval(10_000, lambda: calls.append(1))

    await scheduler.start()
    await asyncio.sleep(0.01)
    await scheduler.stop()

    assert calls == [1]


@pytest.mark.asyncio
async def test_calendar_trigger_fires_on_schedule():
    scheduler = Scheduler()
    counter = Counter()
    # Six fields: croniter reads the last one as seconds
    scheduler.register_calendar("* * * * * *", counter, name="every-second")

    await scheduler.start()
    assert counter.calls == 0
    await asyncio.sleep(1.2)
    await scheduler.stop()

    assert counter.calls >= 1


@pytest.mark.asyncio
async def test_trigger_registered_while_running_starts_immediately():
    scheduler = Scheduler()
    await scheduler.start()

    counter = Counter()
    scheduler.register_fixed_interval(10_000, counter)
    await asyncio.sleep(0.01)
    await scheduler.stop()

    assert counter.calls == 1


def test_next_fire_time_for_weekly_cron():
    scheduler = Scheduler(ZoneInfo("UTC"))
    scheduler.register_calendar("0 3 * * MON", lambda: None, name="cleanup")
    scheduler.register_fixed_interval(1000, lambda: None, name="tick")

    friday = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
    assert scheduler.next_fire_time("cleanup", friday) == datetime(2024, 3, 18, 3, 0, tzinfo=timezone.utc)
    assert scheduler.next_fire_time("tick", friday) is None


def test_next_fire_time_uses_scheduler_timezone():
    scheduler = Scheduler(ZoneInfo("Asia/Shanghai"))
    scheduler.register_calendar("0 1 * * *", lambda: None, name="trend")

    after = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
    fire_at = scheduler.next_fire_time("trend", after)
    # 01:00 in Shanghai is 17:00 UTC the previous day
    assert fire_at.astimezone(timezone.utc) == datetime(2024, 3, 15, 17, 0, tzinfo=timezone.utc)


def test_registration_validation():
    scheduler = Scheduler()
    with pytest.raises(ValueError):
        scheduler.register_fixed_interval(0, lambda: None)
    with pytest.raises(ValueError):
        scheduler.register_calendar("not a cron", lambda: None)

    scheduler.register_fixed_interval(1000, lambda: None, name="job")
    with pytest.raises(ValueError):
        scheduler.register_fixed_interval(1000, lambda: None, name="job")

    assert [t["name"] for t in scheduler.get_triggers()] == ["job"]
