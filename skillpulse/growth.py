"""Growth engine for SkillPulse: momentum, compounding, leveling.

Pure functions only. Dates are local calendar dates; a day log maps
``YYYY-MM-DD`` keys to a truthy marker.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from skillpulse.models import DayLog, Skill
from skillpulse.workspace import date_key, parse_date_key


# ── Constants ─────────────────────────────────────────────────

BASE_RATE = 0.001
MOMENTUM_BONUS = 0.003
MIN_RATE = 0.001
MAX_RATE = 0.004
SECOND_CHECK_MULTIPLIER = 0.5

MOMENTUM_WINDOW_DAYS = 7
ACTIVITY_WINDOW_DAYS = 30

GROWTH_DECIMALS = 6

SKILL_BASE_GP = 25
SKILL_MULTIPLIER = 1.15
PERSONALITY_BASE_GP = 100
PERSONALITY_MULTIPLIER = 1.10

PERSONALITY_TITLES = [
    (70, "Mythic"),
    (60, "Legend"),
    (50, "Grandmaster"),
    (40, "Master"),
    (30, "Expert"),
    (20, "Virtuoso"),
    (10, "Adept"),
    (0, "Enthusiast"),
]

MOMENTUM_TIERS = [
    ("x1", "🧘", "Relaxation"),
    ("x1.5", "🌱", "Sprout"),
    ("x2", "✨", "Spark"),
    ("x2.5", "💪", "Strength"),
    ("x3", "⚡️", "Lightning"),
    ("x3.5", "🚀", "Rocket"),
    ("x4", "🔥", "Fire"),
    ("x4.5", "☄️", "Comet"),
]


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_date(anchor: date | str) -> date:
    return parse_date_key(anchor) if isinstance(anchor, str) else anchor


# ── Momentum & rates ──────────────────────────────────────────


def window_keys(anchor: date | str, window: int) -> list[str]:
    """Date keys of the *window* days ending at and including *anchor*, newest first."""
    day = _as_date(anchor)
    return [date_key(day - timedelta(days=i)) for i in range(max(0, window))]


def action_days_in_window(log: DayLog | None, anchor: date | str, window: int) -> int:
    """Count days in the window that carry a truthy log entry."""
    if log is None or not log.by_date:
        return 0
    return sum(1 for key in window_keys(anchor, window) if log.is_active(key))


def momentum(log: DayLog | None, anchor: date | str) -> float:
    days = action_days_in_window(log, anchor, MOMENTUM_WINDOW_DAYS)
    return min(1.0, days / MOMENTUM_WINDOW_DAYS)


def growth_rate(base_rate: float, momentum_value: float) -> float:
    m = _clamp(momentum_value, 0.0, 1.0)
    return _clamp(base_rate + MOMENTUM_BONUS * m, MIN_RATE, MAX_RATE)


def check_rate(log: DayLog | None, anchor: date | str, checks_today: int) -> float:
    """Rate credited by a check, with momentum read before today is marked.

    *checks_today* is the count before this check; the second check of a
    day earns half the rate.
    """
    rate = growth_rate(BASE_RATE, momentum(log, anchor))
    if checks_today == 1:
        rate *= SECOND_CHECK_MULTIPLIER
    return rate


def apply_compounding(cumulative_growth: float, rate: float) -> float:
    """Compound a percent-represented level by *rate*, rounded against drift."""
    level = 1 + (cumulative_growth or 0) / 100
    next_level = level * (1 + rate)
    return round((next_level - 1) * 100, GROWTH_DECIMALS)


def activity_score(log: DayLog | None, anchor: date | str) -> int:
    days = action_days_in_window(log, anchor, ACTIVITY_WINDOW_DAYS)
    return round(_clamp(days / ACTIVITY_WINDOW_DAYS, 0.0, 1.0) * 100)


def daily_gp(
    log: DayLog | None,
    anchor: date | str,
    checks_today: int,
    cumulative_growth: float = 0.0,
) -> int:
    """GP credited today, rebuilt from the log and today's check count.

    The first check saw momentum without today's mark; the second saw it
    with today marked, at half rate. Each check compounded the skill's
    level, so the start-of-day level is solved back from the current
    *cumulative_growth* and the difference is returned in GP.
    """
    if checks_today <= 0:
        return 0
    today = date_key(_as_date(anchor))
    by_date = dict(log.by_date) if log is not None else {}
    by_date.pop(today, None)
    before = DayLog(by_date=by_date)
    factor = 1 + check_rate(before, anchor, 0)
    if checks_today >= 2:
        before.mark(today)
        factor *= 1 + check_rate(before, anchor, 1)
    if cumulative_growth:
        end = 1 + cumulative_growth / 100
        start = end / factor
    else:
        start, end = 1.0, factor
    # level -> percent -> GP
    return round((end - start) * 100 * 100)


def momentum_tier(active_days: int) -> dict[str, Any]:
    multiplier, emoji, label = MOMENTUM_TIERS[int(_clamp(active_days, 0, 7))]
    return {"activeDays": active_days, "multiplier": multiplier, "emoji": emoji, "label": label}


# ── Leveling ──────────────────────────────────────────────────


@dataclass
class LevelInfo:
    level: int = 0
    current_points: float = 0.0
    required_points: int = 0
    total_points: float = 0.0
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "level": self.level,
            "currentPoints": self.current_points,
            "requiredPoints": self.required_points,
            "totalPoints": self.total_points,
        }
        if self.title is not None:
            d["title"] = self.title
        return d


def level_cost(level: int, base_gp: int, multiplier: float) -> int:
    """GP needed to go from ``level - 1`` to *level*."""
    if level <= 0:
        return 0
    return math.floor(base_gp * multiplier ** (level - 1))


def total_points_needed(level: int, base_gp: int = SKILL_BASE_GP, multiplier: float = SKILL_MULTIPLIER) -> int:
    """Cumulative GP threshold of *level*."""
    return sum(level_cost(i, base_gp, multiplier) for i in range(1, level + 1))


def calculate_level(
    total_points: float,
    base_gp: int = SKILL_BASE_GP,
    multiplier: float = SKILL_MULTIPLIER,
) -> LevelInfo:
    """Highest level whose cumulative cost fits in *total_points*."""
    points = max(0.0, float(total_points or 0))
    level = 0
    threshold = 0
    while True:
        cost = level_cost(level + 1, base_gp, multiplier)
        if threshold + cost > points:
            break
        threshold += cost
        level += 1
    return LevelInfo(
        level=level,
        current_points=points - threshold,
        required_points=level_cost(level + 1, base_gp, multiplier),
        total_points=points,
    )


def skill_level(skill: Skill) -> LevelInfo:
    return calculate_level(skill.growth_points, SKILL_BASE_GP, SKILL_MULTIPLIER)


def personality_title(level: int) -> str:
    for threshold, title in PERSONALITY_TITLES:
        if level >= threshold:
            return title
    return PERSONALITY_TITLES[-1][1]


def personality_level(total_gp: float) -> LevelInfo:
    info = calculate_level(total_gp, PERSONALITY_BASE_GP, PERSONALITY_MULTIPLIER)
    info.title = personality_title(info.level)
    return info


# ── Ordering ──────────────────────────────────────────────────


def sort_skills(skills: list[Skill]) -> list[Skill]:
    """Display order: highest growth first, older skill first on ties."""
    return sorted(skills, key=lambda s: (-(s.cumulative_growth or 0), s.created_at or 0))
