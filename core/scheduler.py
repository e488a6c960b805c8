"""
Daily batch scheduler

Runs driver.run_batch() once per day at a fixed wall-clock time in a named
time zone (DST-aware via zoneinfo). Uses the same overlap guard as the
driver: a tick that fires while a batch is still running is skipped.
"""

import asyncio
import logging
from datetime import datetime, time as dtime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigError

logger = logging.getLogger("tiers.scheduler")


def parse_time_of_day(text: str) -> dtime:
    """'09:00' or '9:00:30' -> datetime.time."""
    parts = (text or "").strip().split(":")
    try:
        if not 2 <= len(parts) <= 3:
            raise ValueError(text)
        return dtime(*(int(p) for p in parts))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid time of day {text!r}, expected HH:MM") from e


class DailySchedule:
    """Once-a-day trigger at `run_at` local time in `tz`."""

    def __init__(self, run_at: dtime, tz: str):
        try:
            self.tz = ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"unknown time zone {tz!r}") from e
        self.run_at = run_at

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        """Next trigger strictly after `now` (aware datetime in the schedule's zone)."""
        now = (now or datetime.now(self.tz)).astimezone(self.tz)
        candidate = datetime.combine(now.date(), self.run_at, tzinfo=self.tz)
        if candidate <= now:
            candidate = datetime.combine(now.date() + timedelta(days=1), self.run_at, tzinfo=self.tz)
        return candidate

    def seconds_until(self, target: datetime, now: Optional[datetime] = None) -> float:
        # Same-zone aware subtraction ignores the UTC offset; compare instants
        now = now or datetime.now(self.tz)
        return max(0.0, target.timestamp() - now.timestamp())


class BatchScheduler:
    """
    Background loop calling driver.run_batch() on a DailySchedule.

    Usage:
        scheduler = BatchScheduler(driver, DailySchedule(dtime(9, 0), "Asia/Tokyo"))
        task = scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(self, driver, schedule: DailySchedule):
        self.driver = driver
        self.schedule = schedule
        self._task: Optional[asyncio.Task] = None
        self.runs: int = 0

    async def run_forever(self) -> None:
        while True:
            target = self.schedule.next_run()
            logger.info(f"Next batch reconciliation at {target.isoformat()}")
            # Loop guards against the event loop clock waking slightly early
            remaining = self.schedule.seconds_until(target)
            while remaining > 0:
                await asyncio.sleep(remaining)
                remaining = self.schedule.seconds_until(target)
            try:
                report = await self.driver.run_batch()
                if report is not None:
                    self.runs += 1
            except Exception as e:
                logger.error(f"Scheduled batch failed: {e}", exc_info=True)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
