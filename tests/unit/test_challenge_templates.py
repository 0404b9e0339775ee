"""Tests for challenge templates, eligibility and counter keys."""

import random
from datetime import date

import pytest

from goalix.enums import ChallengeType, ProgressionEvent
from goalix.progression.challenge_service import SNAPSHOT_METRICS, counter_source_key, period_bounds
from goalix.progression.challenge_templates import (
    COUNTER,
    DAILY_CHALLENGES,
    SNAPSHOT,
    TEMPLATES_BY_SLUG,
    WEEKLY_CHALLENGES,
    get_available_challenges,
    select_random_challenges,
    templates_for,
)


class TestTemplates:
    """Test template tables."""

    def test_template_counts(self):
        assert len(DAILY_CHALLENGES) == 8
        assert len(WEEKLY_CHALLENGES) == 11
        assert len(TEMPLATES_BY_SLUG) == 19

    def test_templates_for(self):
        assert templates_for(ChallengeType.DAILY) is DAILY_CHALLENGES
        assert templates_for(ChallengeType.WEEKLY) is WEEKLY_CHALLENGES

    def test_strategies_have_metrics(self):
        for template in (*DAILY_CHALLENGES, *WEEKLY_CHALLENGES):
            assert template.strategy in (COUNTER, SNAPSHOT)
            assert template.events, template.slug
            if template.strategy == SNAPSHOT:
                assert template.metric in SNAPSHOT_METRICS, template.slug

    def test_positive_targets_and_rewards(self):
        for template in (*DAILY_CHALLENGES, *WEEKLY_CHALLENGES):
            assert template.target_value > 0
            assert template.bonus_xp > 0


class TestEligibility:
    """Test level and streak gating."""

    def test_new_user_excludes_gated(self):
        available = {t.slug for t in get_available_challenges(DAILY_CHALLENGES, 1, 0)}
        assert "complete_5_tasks" not in available
        assert "complete_3_tasks" in available
        assert len(available) == 7

    def test_level_unlocks(self):
        available = {t.slug for t in get_available_challenges(WEEKLY_CHALLENGES, 4, 0)}
        assert {"complete_30_tasks", "mit_7_days", "weekly_alignment_100"} <= available
        assert "maintain_streak" not in available

    def test_streak_unlocks(self):
        available = {t.slug for t in get_available_challenges(WEEKLY_CHALLENGES, 1, 3)}
        assert "maintain_streak" in available

    def test_everything_at_high_level_and_streak(self):
        assert len(get_available_challenges(WEEKLY_CHALLENGES, 10, 30)) == 11


class TestSelection:
    """Test random selection."""

    def test_selects_requested_count(self):
        selected = select_random_challenges(list(DAILY_CHALLENGES), 3, random.Random(7))
        assert len(selected) == 3
        assert len({t.slug for t in selected}) == 3

    def test_returns_all_when_pool_small(self):
        pool = list(DAILY_CHALLENGES[:2])
        assert select_random_challenges(pool, 3) == pool

    def test_seeded_rng_is_deterministic(self):
        first = select_random_challenges(list(WEEKLY_CHALLENGES), 3, random.Random(42))
        second = select_random_challenges(list(WEEKLY_CHALLENGES), 3, random.Random(42))
        assert first == second


class TestCounterSourceKey:
    """Test identity keys for counter contributions."""

    def test_any_task(self):
        payload = {"task_id": 5, "priority": "SECONDARY", "local_hour": 18}
        assert counter_source_key("task", ProgressionEvent.TASK_COMPLETED, payload) == "task:5"

    def test_mit_requires_mit_priority(self):
        payload = {"task_id": 5, "priority": "PRIMARY", "local_hour": 9}
        assert counter_source_key("mit_task", ProgressionEvent.TASK_COMPLETED, payload) is None
        payload["priority"] = "MIT"
        assert counter_source_key("mit_task", ProgressionEvent.TASK_COMPLETED, payload) == "task:5"

    def test_mit_before_noon(self):
        morning = {"task_id": 8, "priority": "MIT", "local_hour": 11}
        noon = {"task_id": 8, "priority": "MIT", "local_hour": 12}
        assert counter_source_key("mit_before_noon", ProgressionEvent.TASK_COMPLETED, morning) == "task:8"
        assert counter_source_key("mit_before_noon", ProgressionEvent.TASK_COMPLETED, noon) is None

    def test_uncomplete_never_counts(self):
        payload = {"task_id": 5, "priority": "MIT", "local_hour": 9}
        assert counter_source_key("task", ProgressionEvent.TASK_UNCOMPLETED, payload) is None

    def test_kaizen_keyed_by_date(self):
        payload = {"checkin_date": "2026-03-04"}
        key = counter_source_key("kaizen_checkin", ProgressionEvent.REFLECTION_SUBMITTED, payload)
        assert key == "kaizen:2026-03-04"

    def test_kaizen_outside_period_ignored(self):
        event = ProgressionEvent.REFLECTION_SUBMITTED
        period = (date(2026, 3, 4), date(2026, 3, 4))
        assert counter_source_key("kaizen_checkin", event, {"checkin_date": "2026-02-20"}, period) is None
        assert counter_source_key("kaizen_checkin", event, {"checkin_date": "2026-03-04"}, period) == "kaizen:2026-03-04"

    def test_weekly_goal_completion_only(self):
        payload = {"goal_id": 3, "completed": True, "goal_level": "WEEKLY"}
        event = ProgressionEvent.GOAL_CHANGED
        assert counter_source_key("weekly_goal_completed", event, payload) == "goal:3"
        assert counter_source_key("weekly_goal_completed", event, {**payload, "completed": False}) is None
        assert counter_source_key("weekly_goal_completed", event, {**payload, "goal_level": "MONTHLY"}) is None

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            counter_source_key("nope", ProgressionEvent.TASK_COMPLETED, {})


class TestPeriodBounds:
    def test_daily(self):
        assert period_bounds(ChallengeType.DAILY, date(2026, 3, 4)) == (date(2026, 3, 4), date(2026, 3, 4))

    def test_weekly(self):
        assert period_bounds(ChallengeType.WEEKLY, date(2026, 3, 4)) == (date(2026, 3, 2), date(2026, 3, 8))
