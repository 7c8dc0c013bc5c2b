"""
Trigger scheduling.

Two kinds of triggers:

* fixed interval: fires immediately on start, then once per interval
  measured from the start of the previous firing;
* calendar: fires at every match of a 5-field cron expression evaluated
  in the scheduler's time zone.

Each firing runs as its own task, so a slow callback never delays the
next firing of any trigger and may overlap itself. Callback exceptions
are logged and dropped.
"""

import asyncio
import inspect
import itertools
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional, Set

import structlog
from croniter import croniter

from ..models import TriggerKind

logger = structlog.get_logger(__name__)

Callback = Callable[[], Any]


@dataclass
class Trigger:
    name: str
    kind: TriggerKind
    callback: Callback
    interval_ms: Optional[int] = None
    cron: Optional[str] = None
    fired: int = 0


class Scheduler:
    """Fires registered callbacks; knows nothing about what they do."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz or timezone.utc
        self.triggers: Dict[str, Trigger] = {}
        self.is_running = False
        self._loops: Dict[str, asyncio.Task] = {}
        self._in_flight: Set[asyncio.Task] = set()
        self._ids = itertools.count(1)

    def register_fixed_interval(self, duration_ms: int, callback: Callback, name: Optional[str] = None) -> str:
        """Fire ``callback`` every ``duration_ms`` milliseconds, first firing on start."""
        if duration_ms <= 0:
            raise ValueError("duration_ms must be positive")
        trigger = Trigger(
            name=name or f"interval-{next(self._ids)}",
            kind=TriggerKind.FIXED_INTERVAL,
            callback=callback,
            interval_ms=duration_ms,
        )
        return self._add(trigger)

    def register_calendar(self, schedule_spec: str, callback: Callback, name: Optional[str] = None) -> str:
        """Fire ``callback`` at every match of the cron expression ``schedule_spec``."""
        if not croniter.is_valid(schedule_spec):
            raise ValueError(f"Invalid cron expression: {schedule_spec}")
        trigger = Trigger(
            name=name or f"calendar-{next(self._ids)}",
            kind=TriggerKind.CALENDAR,
            callback=callback,
            cron=schedule_spec,
        )
        return self._add(trigger)

    def _add(self, trigger: Trigger) -> str:
        if trigger.name in self.triggers:
            raise ValueError(f"Trigger {trigger.name} already registered")
        self.triggers[trigger.name] = trigger
        logger.info("Trigger registered", trigger=trigger.name, kind=trigger.kind.value,
                    interval_ms=trigger.interval_ms, cron=trigger.cron)
        if self.is_running:
            self._spawn(trigger)
        return trigger.name

    def next_fire_time(self, name: str, after: Optional[datetime] = None) -> Optional[datetime]:
        """Next calendar firing after ``after`` (default now); None for interval triggers."""
        trigger = self.triggers[name]
        if trigger.kind is not TriggerKind.CALENDAR:
            return None
        base = after or datetime.now(self.tz)
        return croniter(trigger.cron, base.astimezone(self.tz)).get_next(datetime)

    async def start(self) -> None:
        if self.is_running:
            return
        self.is_running = True
        for trigger in self.triggers.values():
            self._spawn(trigger)
        logger.info("Scheduler started", triggers=len(self.triggers))

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the trigger loops, then wait for callbacks already running."""
        self.is_running = False

        loops = list(self._loops.values())
        for task in loops:
            task.cancel()
        if loops:
            await asyncio.gather(*loops, return_exceptions=True)
        self._loops.clear()

        if self._in_flight:
            logger.info("Waiting for in-flight callbacks", count=len(self._in_flight))
            _done, pending = await asyncio.wait(set(self._in_flight), timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Scheduler stopped")

    def get_triggers(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": t.name,
                "kind": t.kind.value,
                "interval_ms": t.interval_ms,
                "cron": t.cron,
                "fired": t.fired,
            }
            for t in self.triggers.values()
        ]

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _spawn(self, trigger: Trigger) -> None:
        if trigger.kind is TriggerKind.FIXED_INTERVAL:
            loop = self._run_fixed_interval(trigger)
        else:
            loop = self._run_calendar(trigger)
        self._loops[trigger.name] = asyncio.create_task(loop, name=f"trigger:{trigger.name}")

    async def _run_fixed_interval(self, trigger: Trigger) -> None:
        loop = asyncio.get_running_loop()
        interval = trigger.interval_ms / 1000
        next_start = loop.time()
        while self.is_running:
            self._dispatch(trigger)
            next_start += interval
            await asyncio.sleep(max(0.0, next_start - loop.time()))

    async def _run_calendar(self, trigger: Trigger) -> None:
        schedule = croniter(trigger.cron, datetime.now(self.tz))
        while self.is_running:
            fire_at = schedule.get_next(datetime)
            delay = (fire_at - datetime.now(self.tz)).total_seconds()
            if delay > 0:
                await asyncio.sleep(delay)
            self._dispatch(trigger)

    def _dispatch(self, trigger: Trigger) -> None:
        trigger.fired += 1
        task = asyncio.create_task(self._invoke(trigger), name=f"callback:{trigger.name}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _invoke(self, trigger: Trigger) -> None:
        try:
            result = trigger.callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Scheduled callback failed", trigger=trigger.name)
