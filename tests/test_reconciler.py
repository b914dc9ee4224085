"""Tests for skillpulse/reconciler.py and service lifecycle."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from skillpulse.alarms import DAILY_RESET_ALARM, Alarm
from skillpulse.hooks import RUNNING_BADGE_COLOR
from skillpulse.repository import FOCUS_TIMER_KEY, META_KEY, SKILLS_KEY

UTC = ZoneInfo("UTC")


async def _send(service, msg_type, **payload):
    request = {"type": msg_type}
    if payload:
        request["payload"] = payload
    resp = await service.dispatch(request)
    assert resp["ok"], resp
    return resp["result"]


def _skill(service, skill_id="skill-1"):
    return next(s for s in service.store.snapshot()[SKILLS_KEY] if s["id"] == skill_id)


# ── Daily reset registration ──────────────────────────────────


@pytest.mark.asyncio
async def test_ensure_scheduled_is_idempotent(service):
    assert await service.reconciler.ensure_scheduled() is True
    assert await service.reconciler.ensure_scheduled() is False
    assert service.alarms.created.count(DAILY_RESET_ALARM) == 1

    alarm = await service.alarms.get(DAILY_RESET_ALARM)
    assert alarm.period_minutes == 24 * 60
    assert alarm.scheduled_time == int(datetime(2026, 3, 11, 0, 5, tzinfo=UTC).timestamp() * 1000)


@pytest.mark.asyncio
@pytest.mark.parametrize("now, first_fire", [
    (datetime(2026, 3, 10, 0, 3, tzinfo=UTC), datetime(2026, 3, 10, 0, 5, tzinfo=UTC)),
    (datetime(2026, 3, 10, 0, 5, tzinfo=UTC), datetime(2026, 3, 11, 0, 5, tzinfo=UTC)),
    (datetime(2026, 3, 31, 23, 59, tzinfo=UTC), datetime(2026, 4, 1, 0, 5, tzinfo=UTC)),
])
async def test_daily_reset_first_fire(service, clock, now, first_fire):
    clock.set(now)
    await service.reconciler.ensure_scheduled()
    alarm = await service.alarms.get(DAILY_RESET_ALARM)
    assert alarm.scheduled_time == int(first_fire.timestamp() * 1000)


@pytest.mark.asyncio
async def test_start_installs_meta_and_schedule(service):
    await service.start()
    assert service.store.snapshot()[META_KEY] == {"version": 1, "welcome": True}
    assert await service.alarms.get(DAILY_RESET_ALARM) is not None


@pytest.mark.asyncio
async def test_start_preserves_existing_meta(service):
    await service.store.set(META_KEY, {"version": 1, "welcome": False})
    await service.start()
    await service.start()
    assert service.store.snapshot()[META_KEY] == {"version": 1, "welcome": False}
    assert service.alarms.created.count(DAILY_RESET_ALARM) == 1


# ── Daily reset ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_daily_reset_without_counters_writes_nothing(service):
    await _send(service, "ADD_SKILL", name="Piano")
    writes_before = list(service.store.set_calls)
    assert await service.reconciler.daily_reset() is False
    assert await service.reconciler.daily_reset() is False
    assert service.store.set_calls == writes_before


@pytest.mark.asyncio
async def test_daily_reset_zeroes_counters_only(service):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "ADD_SKILL", name="Chess")
    await _send(service, "CHECK_SKILL", skillId="skill-1")
    before = _skill(service)

    assert await service.reconciler.daily_reset() is True
    after = _skill(service)
    assert after["checksTodayCount"] == 0
    assert after["cumulativeGrowth"] == before["cumulativeGrowth"]
    assert after["totalChecks"] == before["totalChecks"]
    assert after["rearmAt"] == before["rearmAt"]


@pytest.mark.asyncio
async def test_daily_reset_fires_from_alarm(service, clock):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "CHECK_SKILL", skillId="skill-1")

    clock.set(datetime(2026, 3, 11, 0, 5, tzinfo=UTC))
    fired = await service.reconciler.run_due(service.alarms)
    assert fired == ["rearm_skill-1", DAILY_RESET_ALARM]
    assert _skill(service)["checksTodayCount"] == 0

    # periodic alarm moved to the next day
    alarm = await service.alarms.get(DAILY_RESET_ALARM)
    assert alarm.scheduled_time == int(datetime(2026, 3, 12, 0, 5, tzinfo=UTC).timestamp() * 1000)

    clock.advance(hours=9)
    resp = await service.dispatch({"type": "CHECK_SKILL", "payload": {"skillId": "skill-1"}})
    assert resp["ok"]


@pytest.mark.asyncio
async def test_failed_reset_is_logged_not_raised(service, caplog):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "CHECK_SKILL", skillId="skill-1")
    service.store.fail_keys.add(SKILLS_KEY)

    await service.handle_alarm(Alarm(DAILY_RESET_ALARM, 0, 1440))
    assert _skill(service)["checksTodayCount"] == 1
    assert "Alarm handler daily-reset failed" in caplog.text


@pytest.mark.asyncio
async def test_unknown_alarm_is_ignored(service):
    await service.handle_alarm(Alarm("mystery", 0))
    await service.handle_alarm(Alarm("rearm_skill-1", 0))


@pytest.mark.asyncio
async def test_reset_stale_counters_after_downtime(service, clock):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "CHECK_SKILL", skillId="skill-1")
    assert await service.reconciler.reset_stale_counters() is False

    clock.advance(days=1)
    assert await service.reconciler.reset_stale_counters() is True
    assert _skill(service)["checksTodayCount"] == 0


# ── Focus completion ──────────────────────────────────────────


@pytest.mark.asyncio
async def test_focus_timer_completes_from_alarm(service, clock, notifier):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "START_TIMER", skillId="skill-1", durationInSeconds=600)

    clock.advance(seconds=600)
    fired = await service.reconciler.run_due(service.alarms)
    assert fired == ["focus_badge_update", "focus_timer_skill-1"]

    assert FOCUS_TIMER_KEY not in service.store.snapshot()
    assert _skill(service)["totalChecks"] == 1
    assert notifier.of("focus_complete") == [("skill-1", "Piano")]
    [state] = notifier.of("state_updated")
    assert state["skills"][0]["totalChecks"] == 1
    assert await service.alarms.get("focus_badge_update") is None


@pytest.mark.asyncio
async def test_focus_alarm_after_early_finish_is_noop(service, notifier):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "START_TIMER", skillId="skill-1", durationInSeconds=600)
    await _send(service, "FINISH_TIMER_EARLY", skillId="skill-1")

    assert await service.reconciler.focus_timer_fired("skill-1") is False
    await service.handle_alarm(Alarm("focus_timer_skill-1", 0))
    assert _skill(service)["totalChecks"] == 1
    assert len(notifier.of("focus_complete")) == 1


@pytest.mark.asyncio
async def test_stale_focus_alarm_leaves_other_session(service):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "ADD_SKILL", name="Chess")
    await _send(service, "START_TIMER", skillId="skill-2", durationInSeconds=600)

    assert await service.reconciler.focus_timer_fired("skill-1") is False
    assert service.store.snapshot()[FOCUS_TIMER_KEY]["skillId"] == "skill-2"
    assert _skill(service, "skill-1")["totalChecks"] == 0
    assert _skill(service, "skill-2")["totalChecks"] == 0


# ── Badge tick ────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_badge_tick_shows_remaining_minutes(service, clock, notifier):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "START_TIMER", skillId="skill-1", durationInSeconds=600)
    clock.advance(seconds=125)
    await service.reconciler.badge_tick()
    assert notifier.of("badge")[-1] == ("7m", RUNNING_BADGE_COLOR)


@pytest.mark.asyncio
async def test_badge_tick_removes_itself_without_session(service, notifier):
    await service.alarms.create("focus_badge_update", 0, 1)
    await service.reconciler.badge_tick()
    assert await service.alarms.get("focus_badge_update") is None
    assert notifier.of("badge") == [("", None)]


@pytest.mark.asyncio
async def test_badge_tick_removes_itself_while_paused(service, notifier):
    await _send(service, "ADD_SKILL", name="Piano")
    await _send(service, "START_TIMER", skillId="skill-1", durationInSeconds=600)
    await _send(service, "PAUSE_TIMER", skillId="skill-1")
    await service.alarms.create("focus_badge_update", 0, 1)
    events = len(notifier.events)

    await service.reconciler.badge_tick()
    assert await service.alarms.get("focus_badge_update") is None
    assert len(notifier.events) == events
