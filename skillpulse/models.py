"""Typed dataclasses for the SkillPulse data model.

All models use from_dict/to_dict for JSON serialization.
camelCase in the store is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
Timestamps are epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


DEFAULT_EMOJI = "⭐"
DEFAULT_CATEGORY = "Other"
VALID_MODES = {"local", "oauth"}


# ── User ──────────────────────────────────────────────────────


@dataclass
class User:
    id: str = ""
    name: str = ""
    mode: str = "local"  # local, oauth
    created_at: int | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> User:
        if not d or not isinstance(d, dict):
            return cls()
        mode = str(d.get("mode", "local"))
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "") or ""),
            mode=mode if mode in VALID_MODES else "local",
            created_at=d.get("createdAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"name": self.name, "mode": self.mode}
        if self.id:
            d["id"] = self.id
        if self.created_at is not None:
            d["createdAt"] = self.created_at
        return d


# ── Skill ─────────────────────────────────────────────────────


@dataclass
class Skill:
    id: str = ""
    name: str = ""
    emoji: str = DEFAULT_EMOJI
    category: str = DEFAULT_CATEGORY
    created_at: int = 0
    first_check_at: int | None = None
    total_checks: int = 0
    cumulative_growth: float = 0.0  # percent, 1.5 == +1.5%
    last_check_at: int | None = None
    checks_today_count: int = 0
    rearm_at: int = 0  # 0 == no cooldown

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Skill:
        return cls(
            id=str(d.get("id", "")),
            name=str(d.get("name", "")),
            emoji=str(d.get("emoji") or DEFAULT_EMOJI),
            category=str(d.get("category") or DEFAULT_CATEGORY),
            created_at=int(d.get("createdAt", 0) or 0),
            first_check_at=d.get("firstCheckAt"),
            total_checks=int(d.get("totalChecks", 0) or 0),
            cumulative_growth=float(d.get("cumulativeGrowth", 0.0) or 0.0),
            last_check_at=d.get("lastCheckAt"),
            checks_today_count=int(d.get("checksTodayCount", 0) or 0),
            rearm_at=int(d.get("rearmAt", 0) or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "category": self.category,
            "createdAt": self.created_at,
            "firstCheckAt": self.first_check_at,
            "totalChecks": self.total_checks,
            "cumulativeGrowth": self.cumulative_growth,
            "lastCheckAt": self.last_check_at,
            "checksTodayCount": self.checks_today_count,
            "rearmAt": self.rearm_at,
        }

    @property
    def growth_points(self) -> float:
        """GP: 1% of cumulative growth is 1 GP."""
        return self.cumulative_growth * 100


def skills_from_list(items: list[dict[str, Any]] | None) -> list[Skill]:
    return [Skill.from_dict(s) for s in (items or []) if isinstance(s, dict)]


def skills_to_list(skills: list[Skill]) -> list[dict[str, Any]]:
    return [s.to_dict() for s in skills]


# ── Daily-Activity Log ────────────────────────────────────────


@dataclass
class DayLog:
    """Per-skill mapping of YYYY-MM-DD to a truthy marker (1 in practice)."""

    by_date: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> DayLog:
        if not d or not isinstance(d, dict):
            return cls()
        by_date = d.get("byDate") or {}
        return cls(by_date=dict(by_date) if isinstance(by_date, dict) else {})

    def to_dict(self) -> dict[str, Any]:
        return {"byDate": dict(self.by_date)}

    def is_active(self, day: str) -> bool:
        return bool(self.by_date.get(day))

    def mark(self, day: str, value: Any = 1) -> None:
        self.by_date[day] = value


# ── Focus Timer ───────────────────────────────────────────────


@dataclass
class FocusTimer:
    """The single focus-session slot, either running or paused."""

    skill_id: str = ""
    skill_name: str = ""
    is_paused: bool = False
    # running
    start_time: int | None = None
    end_time: int | None = None
    duration_in_seconds: int | None = None
    # paused
    remaining_seconds: int | None = None
    paused_at: int | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> FocusTimer | None:
        if not d or not isinstance(d, dict) or not d.get("skillId"):
            return None
        return cls(
            skill_id=str(d.get("skillId", "")),
            skill_name=str(d.get("skillName", "")),
            is_paused=bool(d.get("isPaused", False)),
            start_time=d.get("startTime"),
            end_time=d.get("endTime"),
            duration_in_seconds=d.get("durationInSeconds"),
            remaining_seconds=d.get("remainingSeconds"),
            paused_at=d.get("pausedAt"),
        )

    @classmethod
    def running(cls, skill_id: str, skill_name: str, now_ms: int, seconds: int | float) -> FocusTimer:
        return cls(
            skill_id=skill_id,
            skill_name=skill_name,
            start_time=now_ms,
            end_time=now_ms + int(round(seconds * 1000)),
            duration_in_seconds=seconds,
        )

    @classmethod
    def paused(cls, skill_id: str, skill_name: str, now_ms: int, remaining: int) -> FocusTimer:
        return cls(
            skill_id=skill_id,
            skill_name=skill_name,
            is_paused=True,
            remaining_seconds=remaining,
            paused_at=now_ms,
        )

    def remaining_at(self, now_ms: int) -> int:
        """Whole seconds left; a paused timer keeps its stored remainder."""
        if self.is_paused:
            return int(self.remaining_seconds or 0)
        if not self.end_time:
            return 0
        return max(0, (int(self.end_time) - now_ms) // 1000)

    def to_dict(self) -> dict[str, Any]:
        if self.is_paused:
            return {
                "skillId": self.skill_id,
                "skillName": self.skill_name,
                "remainingSeconds": self.remaining_seconds,
                "isPaused": True,
                "pausedAt": self.paused_at,
            }
        return {
            "skillId": self.skill_id,
            "skillName": self.skill_name,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "durationInSeconds": self.duration_in_seconds,
        }


# ── Meta ──────────────────────────────────────────────────────


@dataclass
class Meta:
    version: int = 1
    welcome: bool = True

    @classmethod
    def from_dict(cls, d: dict[str, Any] | None) -> Meta:
        if not d or not isinstance(d, dict):
            return cls()
        return cls(
            version=int(d.get("version", 1) or 1),
            welcome=bool(d.get("welcome", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "welcome": self.welcome}
