"""Tests for skillpulse/growth.py — momentum, compounding and leveling."""

from datetime import date

import pytest

from skillpulse.growth import (
    BASE_RATE,
    MAX_RATE,
    MIN_RATE,
    action_days_in_window,
    activity_score,
    apply_compounding,
    calculate_level,
    check_rate,
    daily_gp,
    growth_rate,
    level_cost,
    momentum,
    momentum_tier,
    personality_level,
    personality_title,
    skill_level,
    sort_skills,
    total_points_needed,
    window_keys,
)
from skillpulse.models import DayLog, Skill


def _log(*days: str) -> DayLog:
    return DayLog(by_date={d: 1 for d in days})


# ── Action days & momentum ────────────────────────────────────


def test_window_keys_cross_month_and_year():
    keys = window_keys("2026-01-02", 4)
    assert keys == ["2026-01-02", "2026-01-01", "2025-12-31", "2025-12-30"]


def test_window_keys_leap_day():
    assert window_keys(date(2028, 3, 1), 2) == ["2028-03-01", "2028-02-29"]


def test_action_days_counts_only_truthy_entries():
    log = DayLog(by_date={"2026-03-10": 1, "2026-03-09": 0, "2026-03-08": 1, "2026-02-01": 1})
    assert action_days_in_window(log, "2026-03-10", 7) == 2


def test_action_days_missing_log():
    assert action_days_in_window(None, "2026-03-10", 7) == 0
    assert action_days_in_window(DayLog(), "2026-03-10", 30) == 0


@pytest.mark.parametrize("window", [0, 1, 3, 7, 30, 45])
def test_action_days_bounded_by_window(window):
    log = _log(*window_keys("2026-03-10", 40))
    days = action_days_in_window(log, "2026-03-10", window)
    assert 0 <= days <= window
    assert days == min(window, 40)


def test_momentum_full_week_caps_at_one():
    log = _log(*window_keys("2026-03-10", 10))
    assert momentum(log, "2026-03-10") == 1.0


def test_growth_rate_clamps():
    assert growth_rate(BASE_RATE, 0) == pytest.approx(0.001)
    assert growth_rate(BASE_RATE, 1) == pytest.approx(0.004)
    assert growth_rate(BASE_RATE, 5) == pytest.approx(MAX_RATE)
    assert growth_rate(BASE_RATE, -1) == MIN_RATE
    assert growth_rate(0.01, 1) == MAX_RATE


# ── Compounding ───────────────────────────────────────────────


def test_apply_compounding_first_check():
    assert apply_compounding(0, 0.001) == pytest.approx(0.1)


def test_apply_compounding_rounds_to_six_decimals():
    result = apply_compounding(0.1, 0.0005)
    assert result == round(result, 6)
    assert result == pytest.approx(0.15005)


@pytest.mark.parametrize("cg", [0, 0.1, 3.5, 120.0])
@pytest.mark.parametrize("rate", [0.0005, 0.001, 0.0025, 0.004])
def test_apply_compounding_always_grows(cg, rate):
    assert apply_compounding(cg, rate) > cg


def test_second_check_rate_is_half():
    log = _log("2026-03-08", "2026-03-09")
    first = check_rate(log, "2026-03-10", 0)
    second = check_rate(log, "2026-03-10", 1)
    assert second == pytest.approx(first / 2)


def test_second_check_at_zero_momentum():
    assert check_rate(DayLog(), "2026-03-10", 1) == pytest.approx(0.0005)


def test_second_check_gp_delta_is_half():
    cg = 2.0
    rate = check_rate(DayLog(), "2026-03-10", 0)
    first_delta = apply_compounding(cg, rate) - cg
    second_delta = apply_compounding(cg, check_rate(DayLog(), "2026-03-10", 1)) - cg
    assert second_delta * 100 == pytest.approx(first_delta * 100 / 2, abs=1e-3)


def test_activity_score():
    log = _log(*window_keys("2026-03-10", 15))
    assert activity_score(log, "2026-03-10") == 50
    assert activity_score(None, "2026-03-10") == 0


# ── Daily GP ──────────────────────────────────────────────────


def test_daily_gp_no_checks():
    assert daily_gp(_log("2026-03-10"), "2026-03-10", 0) == 0


def test_daily_gp_single_check_fresh_skill():
    # rate 0.001 -> 0.1% -> 10 GP
    assert daily_gp(_log("2026-03-10"), "2026-03-10", 1) == 10


def test_daily_gp_two_checks_includes_penalty():
    # second check sees today marked: 0.001 + 0.003/7, halved
    expected = round(((1 + 0.001) * (1 + (0.001 + 0.003 / 7) / 2) - 1) * 10000)
    assert daily_gp(_log("2026-03-10"), "2026-03-10", 2) == expected


def test_daily_gp_scales_with_compounded_level():
    # level 2.002 after a 0.001 check started the day at 2.0
    assert daily_gp(_log("2026-03-10"), "2026-03-10", 1, cumulative_growth=100.2) == 20


# ── Leveling ──────────────────────────────────────────────────


def test_level_costs():
    assert level_cost(1, 25, 1.15) == 25
    assert level_cost(2, 25, 1.15) == 28
    assert level_cost(3, 25, 1.15) == 33
    assert total_points_needed(3) == 86


def test_calculate_level_zero():
    info = calculate_level(0)
    assert info.level == 0
    assert info.current_points == 0
    assert info.required_points == 25


def test_calculate_level_boundary():
    assert calculate_level(24.99).level == 0
    info = calculate_level(25)
    assert info.level == 1
    assert info.current_points == 0
    assert info.required_points == 28


@pytest.mark.parametrize("level", [0, 1, 2, 5, 12, 30])
@pytest.mark.parametrize("extra_ratio", [0.0, 0.5, 0.99])
def test_level_round_trip(level, extra_ratio):
    required = level_cost(level + 1, 25, 1.15)
    extra = required * extra_ratio
    info = calculate_level(total_points_needed(level) + extra)
    assert info.level == level
    assert info.current_points == pytest.approx(extra)
    assert info.required_points == required


def test_skill_level_uses_gp():
    skill = Skill(id="s", cumulative_growth=0.6)  # 60 GP
    info = skill_level(skill)
    assert info.level == 2
    assert info.current_points == pytest.approx(7)
    assert info.to_dict()["requiredPoints"] == 33
    assert "title" not in info.to_dict()


def test_personality_level_and_titles():
    info = personality_level(0)
    assert info.level == 0
    assert info.title == "Enthusiast"
    assert personality_level(100).level == 1
    assert personality_level(total_points_needed(10, 100, 1.10)).title == "Adept"
    assert personality_title(69) == "Legend"
    assert personality_title(70) == "Mythic"
    assert personality_title(25) == "Virtuoso"


def test_momentum_tier():
    assert momentum_tier(0)["label"] == "Relaxation"
    assert momentum_tier(7) == {"activeDays": 7, "multiplier": "x4.5", "emoji": "☄️", "label": "Comet"}


def test_sort_skills_growth_then_age():
    skills = [
        Skill(id="a", cumulative_growth=1.0, created_at=3),
        Skill(id="b", cumulative_growth=2.0, created_at=2),
        Skill(id="c", cumulative_growth=1.0, created_at=1),
    ]
    assert [s.id for s in sort_skills(skills)] == ["b", "c", "a"]
