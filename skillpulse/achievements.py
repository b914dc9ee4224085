"""Today's transient achievements, derived from skills and their day logs."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from skillpulse.models import DayLog, Skill
from skillpulse.workspace import date_key, parse_date_key

HIT_DAY_THRESHOLD = 5
STREAK_DAYS = 3
COMEBACK_GAP_DAYS = 7


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def _personal_record(skill: Skill, by_date: dict[str, Any], today: str) -> dict[str, Any] | None:
    numeric = sorted((k, v) for k, v in by_date.items() if _is_number(v))
    if len(numeric) < 2:
        return None
    (prev_day, prev), (last_day, last) = numeric[-2], numeric[-1]
    if last_day != today or last <= prev:
        return None
    if prev == 0:
        description = f"New result in {skill.name}: {last}"
    else:
        increase = round((last - prev) / max(prev, 1) * 100)
        description = f"You improved {skill.name} by +{increase}% ({prev} → {last})"
    return {
        "id": f"personal_record_{skill.id}",
        "title": "Personal record!",
        "description": description,
        "icon": "🏆",
    }


def analyze_achievements(
    skills: list[Skill],
    day_logs: dict[str, DayLog],
    today: str,
) -> list[dict[str, Any]]:
    """Return achievements earned today, as ``{id, title, description, icon}``."""
    achievements: list[dict[str, Any]] = []
    today_date = parse_date_key(today)

    done_today = sum(1 for s in skills if day_logs.get(s.id, DayLog()).is_active(today))
    if done_today >= HIT_DAY_THRESHOLD:
        achievements.append({
            "id": "hit_day",
            "title": "Power day",
            "description": f"You completed {done_today} skills today. Great pace!",
            "icon": "🚀",
        })

    for skill in skills:
        log = day_logs.get(skill.id, DayLog())
        if not log.is_active(today):
            continue

        previous = [date_key(today_date - timedelta(days=i)) for i in range(1, STREAK_DAYS)]
        if all(log.is_active(k) for k in previous):
            achievements.append({
                "id": f"streak_3_{skill.id}",
                "title": "Building momentum",
                "description": f"You practiced {skill.name} {STREAK_DAYS} days in a row. Keep going!",
                "icon": "🔥",
            })

        earlier = sorted(k for k in log.by_date if k != today and k < today)
        if earlier:
            gap = (today_date - parse_date_key(earlier[-1])).days
            if gap >= COMEBACK_GAP_DAYS:
                achievements.append({
                    "id": f"comeback_{skill.id}",
                    "title": "Comeback!",
                    "description": f"You returned to {skill.name} after a {gap}-day break.",
                    "icon": "🔁",
                })

        record = _personal_record(skill, log.by_date, today)
        if record:
            achievements.append(record)

    return achievements
