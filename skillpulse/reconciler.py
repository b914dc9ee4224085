"""Scheduler reconciler: reacts to fired alarms and keeps the schedule alive.

Every handler is failure-tolerant. A failed run is logged and simply
leaves state as it was until the next fire.
"""

from __future__ import annotations

import logging
from typing import Any

from skillpulse.alarms import (
    DAILY_RESET_ALARM,
    FOCUS_BADGE_ALARM,
    FOCUS_TIMER_PREFIX,
    REARM_PREFIX,
    Alarm,
    AlarmScheduler,
    ensure_daily_reset,
)
from skillpulse.commands import CommandProcessor
from skillpulse.hooks import RUNNING_BADGE_COLOR
from skillpulse.models import skills_to_list
from skillpulse.repository import FOCUS_TIMER_KEY, SKILLS_KEY, StateRepository
from skillpulse.workspace import date_key, from_ms, to_ms

logger = logging.getLogger("skillpulse")


class SchedulerReconciler:
    def __init__(self, processor: CommandProcessor):
        self.processor = processor

    @property
    def repository(self) -> StateRepository:
        return self.processor.repository

    @property
    def alarms(self) -> AlarmScheduler:
        return self.processor.alarms

    async def ensure_scheduled(self) -> bool:
        """Register the recurring daily reset if it is missing; idempotent."""
        return await ensure_daily_reset(self.alarms, self.processor.clock())

    async def handle_alarm(self, alarm: Alarm) -> None:
        """Single entry point for every fired alarm."""
        name = alarm.name if alarm else ""
        if not name:
            logger.warning("Ignoring alarm without a name")
            return
        logger.debug("Alarm fired: %s", name)
        try:
            if name == DAILY_RESET_ALARM:
                await self.daily_reset()
            elif name.startswith(FOCUS_TIMER_PREFIX):
                await self.focus_timer_fired(name[len(FOCUS_TIMER_PREFIX):])
            elif name == FOCUS_BADGE_ALARM:
                await self.badge_tick()
            elif name.startswith(REARM_PREFIX):
                # rearmAt is checked inline on every check; nothing to mutate
                logger.debug("Cooldown over for %s", name[len(REARM_PREFIX):])
            else:
                logger.warning("Unknown alarm %s", name)
        except Exception:
            logger.exception("Alarm handler %s failed", name)

    async def daily_reset(self) -> bool:
        """Zero every non-zero daily counter; writes only when something changed."""
        snapshot = await self.repository.read([SKILLS_KEY])
        skills = snapshot.skills()
        changed = [s for s in skills if s.checks_today_count != 0]
        if not changed:
            logger.debug("Daily reset: nothing to reset")
            return False
        for skill in changed:
            skill.checks_today_count = 0
        await self.repository.write_item(SKILLS_KEY, skills_to_list(skills))
        logger.info("Daily reset: cleared counters for %d skill(s)", len(changed))
        return True

    async def reset_stale_counters(self) -> bool:
        """Catch up on a daily reset missed while the process was down.

        Only skills whose last check falls on an earlier local day are reset.
        """
        now = self.processor.clock()
        today = date_key(now)
        snapshot = await self.repository.read([SKILLS_KEY])
        skills = snapshot.skills()
        stale = [
            s for s in skills
            if s.checks_today_count and s.last_check_at
            and date_key(from_ms(s.last_check_at, now.tzinfo)) < today
        ]
        if not stale:
            return False
        for skill in stale:
            skill.checks_today_count = 0
        await self.repository.write_item(SKILLS_KEY, skills_to_list(skills))
        logger.info("Startup reconciliation: cleared stale counters for %d skill(s)", len(stale))
        return True

    async def focus_timer_fired(self, skill_id: str) -> bool:
        return await self.processor.complete_focus_session(skill_id)

    async def badge_tick(self) -> None:
        """Refresh the remaining-minutes badge; drop the tick when no session runs."""
        notifier = self.processor.notifier
        snapshot = await self.repository.read([FOCUS_TIMER_KEY])
        timer = snapshot.focus_timer()
        if timer is None or timer.is_paused:
            await self.alarms.clear(FOCUS_BADGE_ALARM)
            if timer is None:
                await self.processor.notify_safely(notifier.clear_badge())
            return
        remaining = timer.remaining_at(to_ms(self.processor.clock()))
        if remaining > 0:
            await self.processor.notify_safely(notifier.set_badge(f"{remaining // 60}m", RUNNING_BADGE_COLOR))
        else:
            await self.processor.notify_safely(notifier.clear_badge())

    async def run_due(self, alarms: Any, now_ms: int | None = None) -> list[str]:
        """Fire every due alarm of a ``MemoryAlarms`` registry, in order."""
        if now_ms is None:
            now_ms = to_ms(self.processor.clock())
        fired = alarms.due(now_ms)
        for alarm in fired:
            await self.handle_alarm(alarm)
        return [a.name for a in fired]
