"""Command processor for SkillPulse.

Each command reads one snapshot, computes, then writes back. There is
no lock around that sequence: two commands racing on the same skill can
both read the same counters and one update is lost. Only the focus
slot consumption (``take_and_clear``) is exclusive.
"""

from __future__ import annotations

import logging
import math
import secrets
import string
import uuid
from typing import Any, Awaitable, Callable

from skillpulse.alarms import (
    FOCUS_BADGE_ALARM,
    AlarmScheduler,
    ensure_daily_reset,
    focus_alarm_name,
    rearm_alarm_name,
)
from skillpulse.errors import (
    BusinessRuleRejection,
    DailyCapError,
    NotFoundError,
    RearmError,
    SkillPulseError,
    ValidationError,
    split_error,
)
from skillpulse.growth import apply_compounding, check_rate
from skillpulse.hooks import PAUSED_BADGE_COLOR, RUNNING_BADGE_COLOR, Notifier, NullNotifier
from skillpulse.models import (
    DEFAULT_CATEGORY,
    DEFAULT_EMOJI,
    FocusTimer,
    Meta,
    Skill,
    User,
    skills_to_list,
)
from skillpulse.repository import (
    FOCUS_TIMER_KEY,
    META_KEY,
    SKILLS_KEY,
    USER_KEY,
    StateRepository,
    daylog_key,
)
from skillpulse.state import assemble_state
from skillpulse.workspace import Clock, date_key, system_clock, to_ms

logger = logging.getLogger("skillpulse")


# ── Constants ─────────────────────────────────────────────────

MAX_CHECKS_PER_DAY = 2
MAX_SKILL_NAME_LENGTH = 80
REARM_DURATION_MS = 4 * 60 * 60 * 1000
MAX_TIMER_SECONDS = 3 * 60 * 60
BADGE_PERIOD_MINUTES = 1

UPDATABLE_FIELDS = ("name", "emoji", "category")

_ID_ALPHABET = string.ascii_lowercase + string.digits


# ── Validation ────────────────────────────────────────────────


def validate_skill_name(value: Any) -> str:
    """Trimmed skill name, 1..80 characters."""
    if value is None:
        raise ValidationError("Skill name is required")
    name = str(value).strip()
    if not name:
        raise ValidationError("Skill name cannot be empty")
    if len(name) > MAX_SKILL_NAME_LENGTH:
        raise ValidationError(f"Skill name too long (max {MAX_SKILL_NAME_LENGTH} characters)")
    return name


def validate_duration(value: Any) -> int | float:
    """Focus duration in seconds, strictly inside (0, 3h]."""
    if isinstance(value, bool):
        raise ValidationError("durationInSeconds must be a number")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ValidationError("durationInSeconds must be a number") from None
    if not math.isfinite(seconds) or seconds <= 0 or seconds > MAX_TIMER_SECONDS:
        raise ValidationError("Duration must be between 1 second and 3 hours")
    return int(seconds) if seconds.is_integer() else seconds


def _require(payload: dict[str, Any] | None, *fields: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("Payload is required")
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")
    return payload


def _find(skills: list[Skill], skill_id: str) -> int:
    for i, s in enumerate(skills):
        if s.id == skill_id:
            return i
    raise NotFoundError("Skill not found")


def new_local_user_id() -> str:
    return "local_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))


# ── Processor ─────────────────────────────────────────────────


class CommandProcessor:
    """Validates and executes commands against the state repository."""

    def __init__(
        self,
        repository: StateRepository,
        alarms: AlarmScheduler,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.repository = repository
        self.alarms = alarms
        self.notifier = notifier or NullNotifier()
        self.clock = clock or system_clock()
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._handlers: dict[str, Callable[[dict[str, Any] | None], Awaitable[Any]]] = {
            "GET_STATE": lambda p: self.get_state(),
            "ADD_SKILL": lambda p: self.add_skill(**_skill_fields(_require(p, "name"))),
            "CHECK_SKILL": lambda p: self.check_skill(_require(p, "skillId")["skillId"]),
            "UPDATE_SKILL": lambda p: self.update_skill(**_update_fields(_require(p, "skillId", "patch"))),
            "DELETE_SKILL": lambda p: self.delete_skill(_require(p, "skillId")["skillId"]),
            "SET_NAME": lambda p: self.set_name(_require(p).get("name")),
            "RESET_ACCOUNT": lambda p: self.reset_account(),
            "START_TIMER": lambda p: self.start_timer(**_timer_fields(_require(p, "skillId"))),
            "PAUSE_TIMER": lambda p: self.pause_timer(_require(p, "skillId")["skillId"]),
            "RESUME_TIMER": lambda p: self.resume_timer(_require(p, "skillId")["skillId"]),
            "FINISH_TIMER_EARLY": lambda p: self.finish_timer_early(_require(p, "skillId")["skillId"]),
            "CANCEL_TIMER": lambda p: self.cancel_timer(_require(p, "skillId")["skillId"]),
            "STOP_TIMER": lambda p: self.stop_timer(_require(p, "skillId")["skillId"]),
            "GET_TIMER_STATUS": lambda p: self.get_timer_status(),
        }

    @property
    def command_types(self) -> list[str]:
        return list(self._handlers)

    def _now_ms(self) -> int:
        return to_ms(self.clock())

    async def notify_safely(self, call: Awaitable[Any]) -> None:
        try:
            await call
        except Exception:
            logger.warning("Notification failed; ignoring", exc_info=True)

    # ── Protocol boundary ─────────────────────────────────────

    async def dispatch(self, request: Any) -> dict[str, Any]:
        """Run one ``{type, payload?}`` request and build the response envelope."""
        msg_type = request.get("type") if isinstance(request, dict) else None
        try:
            if not msg_type:
                raise ValidationError("Invalid message format")
            handler = self._handlers.get(msg_type)
            if handler is None:
                raise ValidationError(f"Unknown message type: {msg_type}")
            result = await handler(request.get("payload"))
            return {"ok": True, "result": result}
        except Exception as e:
            code, message = split_error(e)
            if isinstance(e, BusinessRuleRejection):
                logger.warning("%s rejected: %s %s", msg_type, code, message)
            elif isinstance(e, SkillPulseError):
                logger.error("%s failed: %s %s", msg_type, code, message)
            else:
                logger.exception("%s failed unexpectedly", msg_type)
            return {"ok": False, "error": message, "code": code}

    # ── Skills ────────────────────────────────────────────────

    async def get_state(self) -> dict[str, Any]:
        return await assemble_state(self.repository, self.clock)

    async def add_skill(self, name: Any, emoji: str | None = None, category: str | None = None) -> dict[str, Any]:
        skill = Skill(
            id=self.id_factory(),
            name=validate_skill_name(name),
            emoji=emoji or DEFAULT_EMOJI,
            category=category or DEFAULT_CATEGORY,
            created_at=self._now_ms(),
        )
        snapshot = await self.repository.read([SKILLS_KEY])
        skills = snapshot.skills()
        skills.append(skill)
        await self.repository.write_item(SKILLS_KEY, skills_to_list(skills))
        logger.info("Skill added: %s (%s)", skill.name, skill.id)
        return skill.to_dict()

    async def credit_check(self, skill_id: str) -> Skill:
        """Apply one credited check to *skill_id* and persist it with its day log."""
        if not skill_id:
            raise ValidationError("Skill ID is required")
        now = self.clock()
        now_ms = to_ms(now)
        today = date_key(now)
        log_key = daylog_key(skill_id)

        snapshot = await self.repository.read([log_key, SKILLS_KEY])
        skills = snapshot.skills()
        skill = skills[_find(skills, skill_id)]

        if skill.rearm_at and now_ms < skill.rearm_at:
            raise RearmError(math.ceil((skill.rearm_at - now_ms) / 3_600_000))
        if skill.checks_today_count >= MAX_CHECKS_PER_DAY:
            raise DailyCapError()

        log = snapshot.day_log(skill_id)
        rate = check_rate(log, today, skill.checks_today_count)

        skill.cumulative_growth = apply_compounding(skill.cumulative_growth, rate)
        skill.total_checks += 1
        if not skill.first_check_at:
            skill.first_check_at = now_ms
        skill.last_check_at = now_ms
        skill.checks_today_count += 1
        skill.rearm_at = now_ms + REARM_DURATION_MS
        log.mark(today)

        report = await self.repository.write_many({
            log_key: log.to_dict(),
            SKILLS_KEY: skills_to_list(skills),
        })
        report.raise_for_failure()

        try:
            await self.alarms.create(rearm_alarm_name(skill_id), skill.rearm_at)
        except Exception:
            logger.warning("Could not schedule rearm alarm for %s", skill_id, exc_info=True)
        logger.info(
            "Checked %s: rate=%.4f growth=%.6f%% today=%d",
            skill_id, rate, skill.cumulative_growth, skill.checks_today_count,
        )
        return skill

    async def check_skill(self, skill_id: str) -> dict[str, Any]:
        await self.credit_check(skill_id)
        return await self.get_state()

    async def update_skill(self, skill_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(patch, dict):
            raise ValidationError("Patch object is required")
        snapshot = await self.repository.read([SKILLS_KEY])
        skills = snapshot.skills()
        skill = skills[_find(skills, skill_id)]

        for field_name in UPDATABLE_FIELDS:
            if field_name not in patch:
                continue
            if field_name == "name":
                skill.name = validate_skill_name(patch["name"])
            else:
                setattr(skill, field_name, str(patch[field_name]))

        await self.repository.write_item(SKILLS_KEY, skills_to_list(skills))
        return skill.to_dict()

    async def delete_skill(self, skill_id: str) -> dict[str, Any]:
        snapshot = await self.repository.read([SKILLS_KEY])
        skills = snapshot.skills()
        remaining = [s for s in skills if s.id != skill_id]
        if len(remaining) == len(skills):
            raise NotFoundError("Skill not found")
        await self.repository.write_item(SKILLS_KEY, skills_to_list(remaining))
        await self.repository.remove_keys([daylog_key(skill_id)])
        logger.info("Skill deleted: %s", skill_id)
        return {"success": True}

    # ── Account ───────────────────────────────────────────────

    async def set_name(self, name: Any) -> dict[str, Any]:
        n = name.strip() if isinstance(name, str) else ""
        user = User(id=new_local_user_id(), name=n, mode="local", created_at=self._now_ms())
        await self.repository.write_item(USER_KEY, user.to_dict())
        return {"name": n}

    async def reset_account(self) -> dict[str, Any]:
        await self.repository.clear_all()
        await self.repository.write_item(META_KEY, Meta().to_dict())
        await self.repository.write_item(USER_KEY, User().to_dict())
        await self.repository.write_item(SKILLS_KEY, [])
        await self.repository.write_item(FOCUS_TIMER_KEY, None)

        await self.alarms.clear_all()
        await self.notify_safely(self.notifier.clear_badge())
        await ensure_daily_reset(self.alarms, self.clock())
        logger.info("Account reset")
        return {"success": True}

    # ── Focus timer ───────────────────────────────────────────

    async def start_timer(self, skill_id: str, duration_in_seconds: Any) -> dict[str, Any]:
        duration = validate_duration(duration_in_seconds)
        snapshot = await self.repository.read([SKILLS_KEY, FOCUS_TIMER_KEY])
        skills = snapshot.skills()
        skill = skills[_find(skills, skill_id)]
        previous = snapshot.focus_timer()

        now_ms = self._now_ms()
        timer = FocusTimer.running(skill.id, skill.name, now_ms, duration)
        # a new session replaces whatever session was active
        await self.repository.write_item(FOCUS_TIMER_KEY, timer.to_dict())

        if previous is not None and previous.skill_id != skill_id:
            logger.info("Focus session for %s replaced by %s", previous.skill_id, skill_id)
            await self.alarms.clear(focus_alarm_name(previous.skill_id))
        await self.alarms.create(focus_alarm_name(skill_id), timer.end_time)
        await self.alarms.create(FOCUS_BADGE_ALARM, now_ms + 60_000, BADGE_PERIOD_MINUTES)
        await self.notify_safely(self.notifier.set_badge(f"{int(duration // 60)}m", RUNNING_BADGE_COLOR))

        return {"success": True, "endTime": timer.end_time, "skillName": skill.name}

    async def _current_timer(self, skill_id: str, message: str) -> FocusTimer:
        snapshot = await self.repository.read([FOCUS_TIMER_KEY])
        timer = snapshot.focus_timer()
        if timer is None or timer.skill_id != skill_id:
            raise NotFoundError(message)
        return timer

    async def pause_timer(self, skill_id: str) -> dict[str, Any]:
        timer = await self._current_timer(skill_id, "No active timer for this skill")
        if timer.is_paused:
            raise ValidationError("Timer is already paused")

        now_ms = self._now_ms()
        remaining = timer.remaining_at(now_ms)
        if remaining <= 0:
            # completion alarm still owns the session
            raise ValidationError("Timer has already finished")
        paused = FocusTimer.paused(timer.skill_id, timer.skill_name, now_ms, remaining)
        await self.repository.write_item(FOCUS_TIMER_KEY, paused.to_dict())

        await self.alarms.clear(focus_alarm_name(skill_id))
        await self.alarms.clear(FOCUS_BADGE_ALARM)
        await self.notify_safely(self.notifier.set_badge(f"||{max(1, remaining // 60)}m", PAUSED_BADGE_COLOR))
        return {"success": True, "remainingSeconds": remaining}

    async def resume_timer(self, skill_id: str) -> dict[str, Any]:
        timer = await self._current_timer(skill_id, "No paused timer for this skill")
        if not timer.is_paused:
            raise ValidationError("Timer is not paused")
        remaining = int(timer.remaining_seconds or 0)
        if remaining <= 0:
            raise ValidationError("No remaining time to resume")

        now_ms = self._now_ms()
        running = FocusTimer.running(timer.skill_id, timer.skill_name, now_ms, remaining)
        await self.repository.write_item(FOCUS_TIMER_KEY, running.to_dict())

        await self.alarms.create(focus_alarm_name(skill_id), running.end_time)
        await self.alarms.create(FOCUS_BADGE_ALARM, now_ms + 60_000, BADGE_PERIOD_MINUTES)
        await self.notify_safely(self.notifier.set_badge(f"{max(1, remaining // 60)}m", RUNNING_BADGE_COLOR))
        return {"success": True, "endTime": running.end_time}

    async def complete_focus_session(self, skill_id: str) -> bool:
        """Consume the focus slot for *skill_id* and credit one check.

        Returns False when the slot was already empty or belongs to
        another skill: the session was handled elsewhere.
        """
        raw = await self.repository.take_and_clear(
            FOCUS_TIMER_KEY,
            lambda value: isinstance(value, dict) and value.get("skillId") == skill_id,
        )
        await self.alarms.clear(focus_alarm_name(skill_id))
        timer = FocusTimer.from_dict(raw)
        if timer is None:
            logger.info("Focus session for %s already handled; skipping", skill_id)
            return False
        await self.alarms.clear(FOCUS_BADGE_ALARM)

        try:
            await self.credit_check(skill_id)
            await self.notify_safely(self.notifier.state_updated(await self.get_state()))
        except Exception as e:
            code, message = split_error(e)
            logger.warning("Focus session for %s not credited: %s %s", skill_id, code, message)

        await self.notify_safely(self.notifier.focus_complete(skill_id, timer.skill_name))
        await self.notify_safely(self.notifier.clear_badge())
        return True

    async def finish_timer_early(self, skill_id: str) -> dict[str, Any]:
        await self.complete_focus_session(skill_id)
        return {"success": True}

    async def _discard_timer(self, skill_id: str) -> dict[str, Any]:
        await self.repository.remove_keys([FOCUS_TIMER_KEY])
        await self.alarms.clear(focus_alarm_name(skill_id))
        await self.alarms.clear(FOCUS_BADGE_ALARM)
        await self.notify_safely(self.notifier.clear_badge())
        return {"success": True}

    async def cancel_timer(self, skill_id: str) -> dict[str, Any]:
        return await self._discard_timer(skill_id)

    async def stop_timer(self, skill_id: str) -> dict[str, Any]:
        return await self._discard_timer(skill_id)

    async def get_timer_status(self) -> dict[str, Any]:
        snapshot = await self.repository.read([FOCUS_TIMER_KEY])
        timer = snapshot.focus_timer()
        if timer is None:
            return {"active": False, "timer": None}

        if timer.is_paused:
            remaining = int(timer.remaining_seconds or 0)
            if remaining <= 0:
                return {"active": False, "timer": None}
            return {"active": True, "timer": {
                "skillId": timer.skill_id,
                "skillName": timer.skill_name,
                "isPaused": True,
                "remainingSeconds": remaining,
            }}

        remaining = timer.remaining_at(self._now_ms())
        if remaining == 0:
            # expired: the completion alarm owns cleanup
            return {"active": False, "timer": None}
        return {"active": True, "timer": {
            "skillId": timer.skill_id,
            "skillName": timer.skill_name,
            "startTime": timer.start_time,
            "endTime": timer.end_time,
            "remainingSeconds": remaining,
        }}


# ── Payload mapping ───────────────────────────────────────────


def _skill_fields(payload: dict[str, Any]) -> dict[str, Any]:
    return {"name": payload["name"], "emoji": payload.get("emoji"), "category": payload.get("category")}


def _update_fields(payload: dict[str, Any]) -> dict[str, Any]:
    return {"skill_id": payload["skillId"], "patch": payload["patch"]}


def _timer_fields(payload: dict[str, Any]) -> dict[str, Any]:
    return {"skill_id": payload["skillId"], "duration_in_seconds": payload.get("durationInSeconds")}
