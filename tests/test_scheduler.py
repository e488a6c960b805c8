"""
Tests for the daily batch schedule.
"""

import asyncio
from datetime import datetime, time as dtime
from zoneinfo import ZoneInfo

import pytest

from core.errors import ConfigError
from core.scheduler import BatchScheduler, DailySchedule, parse_time_of_day

TOKYO = ZoneInfo("Asia/Tokyo")


class TestParseTimeOfDay:

    def test_valid(self):
        assert parse_time_of_day("09:00") == dtime(9, 0)
        assert parse_time_of_day(" 23:59:30 ") == dtime(23, 59, 30)

    @pytest.mark.parametrize("text", ["", "9", "25:00", "09:60", "nine:00", "1:2:3:4", None])
    def test_invalid(self, text):
        with pytest.raises(ConfigError):
            parse_time_of_day(text)


class TestDailySchedule:

    def test_later_today(self):
        schedule = DailySchedule(dtime(9, 0), "Asia/Tokyo")
        now = datetime(2024, 5, 1, 8, 30, tzinfo=TOKYO)
        assert schedule.next_run(now) == datetime(2024, 5, 1, 9, 0, tzinfo=TOKYO)

    def test_tomorrow_when_passed(self):
        schedule = DailySchedule(dtime(9, 0), "Asia/Tokyo")
        now = datetime(2024, 5, 1, 10, 0, tzinfo=TOKYO)
        assert schedule.next_run(now) == datetime(2024, 5, 2, 9, 0, tzinfo=TOKYO)

    def test_exactly_on_time_is_next_day(self):
        schedule = DailySchedule(dtime(9, 0), "Asia/Tokyo")
        now = datetime(2024, 5, 1, 9, 0, tzinfo=TOKYO)
        assert schedule.next_run(now).day == 2

    def test_other_zone_input(self):
        schedule = DailySchedule(dtime(9, 0), "Asia/Tokyo")
        # 23:30 UTC on Apr 30 is 08:30 on May 1 in Tokyo
        now = datetime(2024, 4, 30, 23, 30, tzinfo=ZoneInfo("UTC"))
        assert schedule.next_run(now) == datetime(2024, 5, 1, 9, 0, tzinfo=TOKYO)

    def test_seconds_until(self):
        schedule = DailySchedule(dtime(9, 0), "Asia/Tokyo")
        now = datetime(2024, 5, 1, 8, 30, tzinfo=TOKYO)
        assert schedule.seconds_until(schedule.next_run(now), now) == 1800
        assert schedule.seconds_until(now, schedule.next_run(now)) == 0

    def test_spring_forward_wait_is_real_elapsed_time(self):
        berlin = ZoneInfo("Europe/Berlin")
        schedule = DailySchedule(dtime(9, 0), "Europe/Berlin")
        # clocks jump 02:00 -> 03:00 on 2026-03-29, so that day is 23 hours long
        now = datetime(2026, 3, 28, 9, 0, 1, tzinfo=berlin)
        target = schedule.next_run(now)
        assert target == datetime(2026, 3, 29, 9, 0, tzinfo=berlin)
        assert schedule.seconds_until(target, now) == 82799.0

    def test_fall_back_wait_is_real_elapsed_time(self):
        berlin = ZoneInfo("Europe/Berlin")
        schedule = DailySchedule(dtime(9, 0), "Europe/Berlin")
        now = datetime(2026, 10, 24, 9, 0, 0, tzinfo=berlin)
        target = schedule.next_run(now)
        assert schedule.seconds_until(target, now) == 25 * 3600

    def test_unknown_zone(self):
        with pytest.raises(ConfigError):
            DailySchedule(dtime(9, 0), "Mars/Olympus_Mons")


class FakeDriver:
    def __init__(self):
        self.calls = 0

    async def run_batch(self):
        self.calls += 1
        await asyncio.sleep(0.001)
        return object()


class ImmediateSchedule:
    """Fires on every loop iteration."""

    def next_run(self):
        return datetime.now(TOKYO)

    def seconds_until(self, target):
        return 0.0


class TestBatchScheduler:

    @pytest.mark.asyncio
    async def test_runs_batches_until_stopped(self):
        driver = FakeDriver()
        scheduler = BatchScheduler(driver, ImmediateSchedule())
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert scheduler.runs >= 1

    @pytest.mark.asyncio
    async def test_skipped_batch_not_counted(self):
        class BusyDriver:
            async def run_batch(self):
                await asyncio.sleep(0.001)
                return None

        scheduler = BatchScheduler(BusyDriver(), ImmediateSchedule())
        scheduler.start()
        await asyncio.sleep(0.02)
        await scheduler.stop()
        assert scheduler.runs == 0

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_loop_alive(self):
        attempts = []

        class BrokenDriver:
            async def run_batch(self):
                attempts.append(1)
                await asyncio.sleep(0.001)
                raise RuntimeError("guild offline")

        scheduler = BatchScheduler(BrokenDriver(), ImmediateSchedule())
        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()
        assert len(attempts) > 1
        assert scheduler.runs == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        scheduler = BatchScheduler(FakeDriver(), ImmediateSchedule())
        await scheduler.stop()
