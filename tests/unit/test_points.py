"""Points calculator tests: pure functions."""

from types import SimpleNamespace

import pytest

from goalix.exceptions import IllegalStateTransition
from goalix.progression.points import (
    award,
    calculate_kaizen_points,
    calculate_task_points,
    count_checked_areas,
    is_balanced_day,
    reverse,
    ritual_points,
    streak_bonus_percent,
)

ALL_AREAS = {
    "health": True,
    "relationships": True,
    "wealth": True,
    "career": True,
    "personal_growth": True,
    "lifestyle": True,
}


class TestTaskPoints:
    """Test base amounts per priority tier."""

    @pytest.mark.parametrize(("priority", "expected"), [("MIT", 100), ("PRIMARY", 50), ("SECONDARY", 25)])
    def test_base_points(self, priority, expected):
        breakdown = calculate_task_points(priority)
        assert breakdown.base == expected
        assert breakdown.bonus == 0
        assert breakdown.total == expected

    def test_unknown_priority_rejected(self):
        with pytest.raises(ValueError):
            calculate_task_points("URGENT")


class TestStreakBonus:
    """Test the MIT streak multiplier."""

    def test_ten_percent_per_day(self):
        assert streak_bonus_percent(3) == 30

    def test_capped_at_one_hundred_percent(self):
        assert streak_bonus_percent(10) == 100
        assert streak_bonus_percent(45) == 100

    def test_negative_days_give_no_bonus(self):
        assert streak_bonus_percent(-2) == 0

    def test_mit_bonus_applied(self):
        breakdown = calculate_task_points("MIT", streak_days=6)
        assert breakdown.base == 100
        assert breakdown.bonus == 60
        assert breakdown.total == 160

    def test_mit_bonus_cap_doubles_points(self):
        assert calculate_task_points("MIT", streak_days=30).total == 200

    def test_non_mit_ignores_streak(self):
        assert calculate_task_points("PRIMARY", streak_days=9).total == 50
        assert calculate_task_points("SECONDARY", streak_days=9).total == 25


class TestAwardAndReverse:
    """Test the task transition guards."""

    def test_award_pending_task(self):
        task = SimpleNamespace(id=1, status="PENDING", priority="PRIMARY", points_earned=0)
        assert award(task).total == 50

    def test_award_completed_task_raises(self):
        task = SimpleNamespace(id=1, status="COMPLETED", priority="PRIMARY", points_earned=50)
        with pytest.raises(IllegalStateTransition):
            award(task)

    def test_reverse_returns_recorded_amount(self):
        # Reversal uses what was credited, not today's table
        task = SimpleNamespace(id=1, status="COMPLETED", priority="MIT", points_earned=170)
        assert reverse(task) == 170

    def test_reverse_pending_task_raises(self):
        task = SimpleNamespace(id=1, status="PENDING", priority="MIT", points_earned=0)
        with pytest.raises(IllegalStateTransition):
            reverse(task)


class TestKaizenPoints:
    """Test reflection scoring."""

    def test_base_points_with_no_areas(self):
        assert calculate_kaizen_points({}) == 10

    def test_partial_day(self):
        areas = {"health": True, "career": True}
        assert count_checked_areas(areas) == 2
        assert is_balanced_day(areas) is False
        assert calculate_kaizen_points(areas) == 10

    def test_balanced_day_bonus(self):
        assert is_balanced_day(ALL_AREAS) is True
        assert calculate_kaizen_points(ALL_AREAS) == 35

    def test_unknown_keys_ignored(self):
        assert count_checked_areas({"health": True, "hobbies": True}) == 1


class TestRitualPoints:
    @pytest.mark.parametrize(
        ("ritual", "expected"),
        [("DAILY_PLANNING", 50), ("WEEKLY_REVIEW", 100), ("MONTHLY_REVIEW", 200)],
    )
    def test_ritual_points(self, ritual, expected):
        assert ritual_points(ritual) == expected
