"""State assembler: the read model shown to callers.

Everything here is derived from one repository snapshot; nothing is
written back.
"""

from __future__ import annotations

from typing import Any

from skillpulse.achievements import analyze_achievements
from skillpulse.growth import (
    ACTIVITY_WINDOW_DAYS,
    MOMENTUM_WINDOW_DAYS,
    action_days_in_window,
    activity_score,
    daily_gp,
    momentum_tier,
    personality_level,
    skill_level,
    sort_skills,
    window_keys,
)
from skillpulse.models import DayLog
from skillpulse.repository import Snapshot, StateRepository
from skillpulse.workspace import Clock, date_key


def enrich_skill(skill_dict: dict[str, Any], log: DayLog, today: str) -> dict[str, Any]:
    days30 = action_days_in_window(log, today, ACTIVITY_WINDOW_DAYS)
    days7 = action_days_in_window(log, today, MOMENTUM_WINDOW_DAYS)
    return {
        **skill_dict,
        "doneToday": log.is_active(today),
        "actionDaysLast30": days30,
        "actionDaysLast7": days7,
        "activityScore": activity_score(log, today),
    }


def build_state(snapshot: Snapshot, today: str) -> dict[str, Any]:
    """Assemble the full read model from *snapshot* as of local day *today*."""
    skills = snapshot.skills()
    day_logs = {s.id: snapshot.day_log(s.id) for s in skills}

    enriched = []
    for skill in sort_skills(skills):
        entry = enrich_skill(skill.to_dict(), day_logs[skill.id], today)
        entry["level"] = skill_level(skill).to_dict()
        enriched.append(entry)

    growth_percent = 0.0
    mean_activity = 0
    total_gp = 0
    today_gp = 0
    if skills:
        total_growth = sum(s.cumulative_growth for s in skills)
        growth_percent = round(total_growth / len(skills), 2)
        mean_activity = round(sum(e["activityScore"] for e in enriched) / len(enriched))
        total_gp = round(total_growth * 100)
        today_gp = sum(
            daily_gp(day_logs[s.id], today, s.checks_today_count, s.cumulative_growth) for s in skills
        )

    last7 = window_keys(today, MOMENTUM_WINDOW_DAYS)
    active_days = {k for log in day_logs.values() for k in last7 if log.is_active(k)}

    user = snapshot.user()
    meta = snapshot.meta()
    summary = {
        "growthPercent": growth_percent,
        "activityScore": mean_activity,
        "personalityGrowthIndex": total_gp,
        "dailyGP": today_gp,
        "uniqueActiveDaysLast7": len(active_days),
        "todayKey": today,
        "personalityLevel": personality_level(total_gp).to_dict(),
        "momentum": momentum_tier(len(active_days)),
    }
    return {
        "user": user.to_dict() if user else None,
        "skills": enriched,
        "meta": meta.to_dict() if meta else {},
        "summary": summary,
        "dayLogs": {sid: log.to_dict() for sid, log in day_logs.items()},
        "achievements": analyze_achievements(skills, day_logs, today),
    }


async def assemble_state(repository: StateRepository, clock: Clock) -> dict[str, Any]:
    """Read everything once and build the read model for the current local day."""
    snapshot = await repository.read_all()
    return build_state(snapshot, date_key(clock()))
