"""Named wake-up alarms: the "fire at-or-after timestamp T" facility.

Alarm names used by SkillPulse:
- daily-reset                periodic, daily at local 00:05
- focus_timer_<skillId>      one-shot at the focus session end
- focus_badge_update         periodic, 1 min, while a session runs
- rearm_<skillId>            one-shot at the end of a check cooldown
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Awaitable, Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from skillpulse.workspace import from_ms, next_daily_reset, to_ms

logger = logging.getLogger("skillpulse")

DAILY_RESET_ALARM = "daily-reset"
FOCUS_TIMER_PREFIX = "focus_timer_"
FOCUS_BADGE_ALARM = "focus_badge_update"
REARM_PREFIX = "rearm_"

DAY_MINUTES = 24 * 60

AlarmListener = Callable[["Alarm"], Awaitable[Any]]


def focus_alarm_name(skill_id: str) -> str:
    return f"{FOCUS_TIMER_PREFIX}{skill_id}"


def rearm_alarm_name(skill_id: str) -> str:
    return f"{REARM_PREFIX}{skill_id}"


@dataclass
class Alarm:
    name: str
    scheduled_time: int  # epoch ms
    period_minutes: float | None = None


class AlarmScheduler(Protocol):
    async def create(self, name: str, when: int, period_minutes: float | None = None) -> None: ...

    async def get(self, name: str) -> Alarm | None: ...

    async def get_all(self) -> list[Alarm]: ...

    async def clear(self, name: str) -> bool: ...

    async def clear_all(self) -> None: ...


class MemoryAlarms:
    """In-process alarm registry driven by explicit ``due(now)`` polls."""

    def __init__(self) -> None:
        self._alarms: dict[str, Alarm] = {}
        self.created: list[str] = []

    async def create(self, name: str, when: int, period_minutes: float | None = None) -> None:
        # same-name creation replaces the previous alarm
        self._alarms[name] = Alarm(name=name, scheduled_time=int(when), period_minutes=period_minutes)
        self.created.append(name)

    async def get(self, name: str) -> Alarm | None:
        return self._alarms.get(name)

    async def get_all(self) -> list[Alarm]:
        return list(self._alarms.values())

    async def clear(self, name: str) -> bool:
        return self._alarms.pop(name, None) is not None

    async def clear_all(self) -> None:
        self._alarms.clear()

    def due(self, now_ms: int) -> list[Alarm]:
        """Alarms whose time has come, oldest first.

        One-shot alarms are removed; periodic ones move to their next slot
        after *now_ms*.
        """
        fired = sorted(
            (a for a in self._alarms.values() if a.scheduled_time <= now_ms),
            key=lambda a: a.scheduled_time,
        )
        for alarm in fired:
            if alarm.period_minutes:
                period = int(alarm.period_minutes * 60_000)
                next_time = alarm.scheduled_time
                while next_time <= now_ms:
                    next_time += period
                self._alarms[alarm.name] = Alarm(alarm.name, next_time, alarm.period_minutes)
            else:
                self._alarms.pop(alarm.name, None)
        return [Alarm(a.name, a.scheduled_time, a.period_minutes) for a in fired]


class APSchedulerAlarms:
    """Alarms backed by an APScheduler ``AsyncIOScheduler``.

    Each alarm is a job whose id is the alarm name; firing awaits the
    registered listener.
    """

    def __init__(self, tz: tzinfo, scheduler: AsyncIOScheduler | None = None):
        self.tz = tz
        self.scheduler = scheduler or AsyncIOScheduler(timezone=tz)
        self._listener: AlarmListener | None = None

    def set_listener(self, listener: AlarmListener) -> None:
        self._listener = listener

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def _fire(self, name: str, period_minutes: float | None) -> None:
        if self._listener is None:
            logger.warning("Alarm %s fired with no listener", name)
            return
        now = to_ms(datetime.now(self.tz))
        await self._listener(Alarm(name=name, scheduled_time=now, period_minutes=period_minutes))

    async def create(self, name: str, when: int, period_minutes: float | None = None) -> None:
        run_at = from_ms(when, self.tz)
        if period_minutes == DAY_MINUTES:
            # wall-clock daily, so DST changes keep the local time
            trigger = CronTrigger(
                hour=run_at.hour, minute=run_at.minute, second=run_at.second, start_date=run_at, timezone=self.tz,
            )
        elif period_minutes:
            trigger = IntervalTrigger(minutes=period_minutes, start_date=run_at, timezone=self.tz)
        else:
            trigger = DateTrigger(run_date=run_at, timezone=self.tz)
        self.scheduler.add_job(
            self._fire,
            trigger=trigger,
            args=[name, period_minutes],
            id=name,
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug("Alarm %s scheduled for %s", name, run_at.isoformat(timespec="seconds"))

    async def get(self, name: str) -> Alarm | None:
        job = self.scheduler.get_job(name)
        if job is None:
            return None
        return self._to_alarm(job)

    async def get_all(self) -> list[Alarm]:
        return [self._to_alarm(job) for job in self.scheduler.get_jobs()]

    def _to_alarm(self, job) -> Alarm:
        next_run = getattr(job, "next_run_time", None)
        if next_run is None:
            # pending job, scheduler not started yet
            next_run = job.trigger.get_next_fire_time(None, datetime.now(self.tz))
        period = job.args[1] if len(job.args) > 1 else None
        return Alarm(name=job.id, scheduled_time=to_ms(next_run) if next_run else 0, period_minutes=period)

    async def clear(self, name: str) -> bool:
        try:
            self.scheduler.remove_job(name)
            return True
        except JobLookupError:
            return False

    async def clear_all(self) -> None:
        self.scheduler.remove_all_jobs()


# ── Recurring registration ────────────────────────────────────

DAILY_RESET_HOUR = 0
DAILY_RESET_MINUTE = 5
DAILY_RESET_PERIOD_MINUTES = DAY_MINUTES


async def ensure_daily_reset(alarms: AlarmScheduler, now: datetime) -> bool:
    """Create the daily-reset alarm unless it already exists.

    Returns True when a new registration was made.
    """
    if await alarms.get(DAILY_RESET_ALARM) is not None:
        return False
    when = next_daily_reset(now, DAILY_RESET_HOUR, DAILY_RESET_MINUTE)
    await alarms.create(DAILY_RESET_ALARM, to_ms(when), DAILY_RESET_PERIOD_MINUTES)
    logger.info("Daily reset scheduled, first at %s", when.isoformat(timespec="minutes"))
    return True
