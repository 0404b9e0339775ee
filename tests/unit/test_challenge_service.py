"""Tests for challenge generation, progress and reward claiming."""

import random
from datetime import date

import pytest
from sqlalchemy import func, select

from goalix.db.models import UserChallenge
from goalix.enums import ChallengeType, ProgressionEvent
from goalix.exceptions import IllegalStateTransition, NotFound
from goalix.progression import challenge_service
from goalix.progression.challenge_service import (
    claim_reward,
    ensure_challenges_exist,
    ensure_generated,
    list_challenges,
    period_bounds,
    update_progress,
)
from goalix.progression.challenge_templates import TEMPLATES_BY_SLUG
from goalix.progression.ledger_service import get_user

TODAY = date(2026, 3, 4)


async def _add_challenge(db, user_id: int, slug: str, challenge_type=ChallengeType.DAILY, today=TODAY):
    template = TEMPLATES_BY_SLUG[slug]
    start, end = period_bounds(challenge_type, today)
    challenge = UserChallenge(
        user_id=user_id,
        type=challenge_type.value,
        category=template.category.value,
        slug=slug,
        title=template.title,
        description=template.description,
        period_start=start,
        period_end=end,
        target_value=template.target_value,
        current_value=0,
        bonus_xp=template.bonus_xp,
    )
    db.add(challenge)
    await db.commit()
    return challenge


async def _reload(db, challenge_id: int) -> UserChallenge:
    result = await db.execute(
        select(UserChallenge)
        .where(UserChallenge.id == challenge_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def _task_payload(task_id: int, priority: str = "PRIMARY", local_hour: int = 15) -> dict:
    return {"task_id": task_id, "priority": priority, "local_hour": local_hour, "goal_id": None}


class TestGeneration:
    """Test per-period generation."""

    @pytest.mark.asyncio
    async def test_generates_once_per_period(self, db_session, user):
        assert await ensure_generated(db_session, user.id, ChallengeType.DAILY, TODAY, 3, random.Random(1)) is True
        assert await ensure_generated(db_session, user.id, ChallengeType.DAILY, TODAY, 3, random.Random(2)) is False

        count = await db_session.execute(
            select(func.count(UserChallenge.id)).where(UserChallenge.user_id == user.id)
        )
        assert count.scalar_one() == 3

    @pytest.mark.asyncio
    async def test_concurrent_generation_with_disjoint_picks(self, db_session, user, monkeypatch):
        """A request that loses the period to a concurrent one adds nothing."""
        user_id = user.id
        picks = []
        original_select = challenge_service.select_random_challenges
        original_get_streak = challenge_service.get_streak

        def _disjoint_select(available, count, rng=None):
            offset = len(picks) * count
            chosen = original_select(available[offset:offset + count], count, rng)
            picks.append([t.slug for t in chosen])
            return chosen

        async def _rival_first(db, user_id, streak_type):
            # The rival request generates its set between our existence check and insert
            monkeypatch.setattr(challenge_service, "get_streak", original_get_streak)
            assert await ensure_generated(db, user_id, ChallengeType.DAILY, TODAY, 3) is True
            return await original_get_streak(db, user_id, streak_type)

        monkeypatch.setattr(challenge_service, "select_random_challenges", _disjoint_select)
        monkeypatch.setattr(challenge_service, "get_streak", _rival_first)

        assert await ensure_generated(db_session, user_id, ChallengeType.DAILY, TODAY, 3) is False

        assert len(picks) == 2
        assert not set(picks[0]) & set(picks[1])
        listed = await list_challenges(db_session, user_id, TODAY)
        assert [c["slug"] for c in listed["daily"]] == picks[0]

    @pytest.mark.asyncio
    async def test_configured_count_and_periods(self, db_session, user):
        await ensure_challenges_exist(db_session, user.id, TODAY, daily_count=5, weekly_count=2)
        await ensure_challenges_exist(db_session, user.id, TODAY, daily_count=5, weekly_count=2)

        listed = await list_challenges(db_session, user.id, TODAY)
        assert len(listed["daily"]) == 5
        assert len(listed["weekly"]) == 2
        assert all(c["period_start"] == date(2026, 3, 2) for c in listed["weekly"])
        assert all(c["period_end"] == date(2026, 3, 8) for c in listed["weekly"])

    @pytest.mark.asyncio
    async def test_next_day_generates_new_set(self, db_session, user):
        await ensure_generated(db_session, user.id, ChallengeType.DAILY, TODAY)
        assert await ensure_generated(db_session, user.id, ChallengeType.DAILY, date(2026, 3, 5)) is True
        assert await ensure_generated(db_session, user.id, ChallengeType.WEEKLY, TODAY) is True
        assert await ensure_generated(db_session, user.id, ChallengeType.WEEKLY, date(2026, 3, 8)) is False

    @pytest.mark.asyncio
    async def test_gated_templates_skipped_for_new_user(self, db_session, user):
        await ensure_generated(db_session, user.id, ChallengeType.DAILY, TODAY, count=10)
        listed = await list_challenges(db_session, user.id, TODAY)
        slugs = {c["slug"] for c in listed["daily"]}
        assert len(slugs) == 7
        assert "complete_5_tasks" not in slugs

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        with pytest.raises(NotFound):
            await ensure_generated(db_session, 404, ChallengeType.DAILY, TODAY)


class TestCounterProgress:
    """Test counter challenges."""

    @pytest.mark.asyncio
    async def test_same_task_counts_once(self, db_session, user):
        challenge = await _add_challenge(db_session, user.id, "complete_3_tasks")

        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1), TODAY)
        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1), TODAY)

        assert (await _reload(db_session, challenge.id)).current_value == 1

    @pytest.mark.asyncio
    async def test_completes_at_target(self, db_session, user):
        challenge = await _add_challenge(db_session, user.id, "complete_3_tasks")

        for task_id in (1, 2):
            done = await update_progress(
                db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(task_id), TODAY
            )
            assert done == []
        done = await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(3), TODAY)

        assert [c["slug"] for c in done] == ["complete_3_tasks"]
        assert done[0]["bonus_xp"] == 30
        reloaded = await _reload(db_session, challenge.id)
        assert reloaded.is_completed is True
        assert reloaded.current_value == 3

    @pytest.mark.asyncio
    async def test_completed_counter_is_frozen(self, db_session, user):
        challenge = await _add_challenge(db_session, user.id, "complete_mit")
        payload = _task_payload(1, priority="MIT")
        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, payload, TODAY)
        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(2, "MIT"), TODAY)

        reloaded = await _reload(db_session, challenge.id)
        assert reloaded.current_value == 1
        assert reloaded.is_completed is True

    @pytest.mark.asyncio
    async def test_mit_before_noon_ignores_afternoon(self, db_session, user):
        challenge = await _add_challenge(db_session, user.id, "mit_before_noon")
        await update_progress(
            db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1, "MIT", local_hour=14), TODAY
        )
        assert (await _reload(db_session, challenge.id)).current_value == 0

    @pytest.mark.asyncio
    async def test_other_periods_untouched(self, db_session, user):
        stale = await _add_challenge(db_session, user.id, "complete_3_tasks", today=date(2026, 3, 3))
        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1), TODAY)
        assert (await _reload(db_session, stale.id)).current_value == 0


class TestSnapshotProgress:
    """Test snapshot challenges recomputed from source records."""

    @pytest.mark.asyncio
    async def test_all_primary_completed(self, db_session, user, make_task):
        challenge = await _add_challenge(db_session, user.id, "complete_all_primary")
        await make_task(user.id, TODAY, status="COMPLETED")
        second = await make_task(user.id, TODAY)

        done = await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1), TODAY)
        assert done == []

        second.status = "COMPLETED"
        await db_session.commit()
        done = await update_progress(
            db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(second.id), TODAY
        )
        assert [c["id"] for c in done] == [challenge.id]

    @pytest.mark.asyncio
    async def test_completed_snapshot_survives_undo(self, db_session, user, make_task):
        challenge = await _add_challenge(db_session, user.id, "complete_all_primary")
        task = await make_task(user.id, TODAY, status="COMPLETED")
        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(task.id), TODAY)

        task.status = "PENDING"
        await db_session.commit()
        await update_progress(db_session, user.id, ProgressionEvent.TASK_UNCOMPLETED, _task_payload(task.id), TODAY)

        reloaded = await _reload(db_session, challenge.id)
        assert reloaded.is_completed is True
        assert reloaded.current_value == 1

    @pytest.mark.asyncio
    async def test_weekly_mit_days(self, db_session, user, make_task):
        challenge = await _add_challenge(db_session, user.id, "mit_5_days", ChallengeType.WEEKLY)
        for day in (2, 3, 4):
            await make_task(user.id, date(2026, 3, day), priority="MIT", status="COMPLETED")
        await make_task(user.id, date(2026, 2, 28), priority="MIT", status="COMPLETED")

        await update_progress(
            db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1, "MIT"), TODAY
        )
        assert (await _reload(db_session, challenge.id)).current_value == 3

    @pytest.mark.asyncio
    async def test_alignment_rate_recomputed(self, db_session, user, make_goal, make_task):
        challenge = await _add_challenge(db_session, user.id, "weekly_alignment_80", ChallengeType.WEEKLY)
        goal = await make_goal(user.id)
        await make_task(user.id, TODAY, goal_id=goal.id, status="COMPLETED")
        loose = await make_task(user.id, TODAY, status="COMPLETED")

        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1), TODAY)
        reloaded = await _reload(db_session, challenge.id)
        assert reloaded.current_value == 50
        assert reloaded.is_completed is False

        loose.goal_id = goal.id
        await db_session.commit()
        done = await update_progress(
            db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(loose.id), TODAY
        )
        assert [c["slug"] for c in done] == ["weekly_alignment_80"]
        assert (await _reload(db_session, challenge.id)).current_value == 100


class TestClaimReward:
    """Test claiming bonus XP."""

    @pytest.mark.asyncio
    async def test_claim_open_challenge_rejected(self, db_session, user):
        challenge = await _add_challenge(db_session, user.id, "complete_3_tasks")
        with pytest.raises(IllegalStateTransition):
            await claim_reward(db_session, user.id, challenge.id)

    @pytest.mark.asyncio
    async def test_claim_once(self, db_session, user):
        challenge = await _add_challenge(db_session, user.id, "complete_mit")
        await update_progress(db_session, user.id, ProgressionEvent.TASK_COMPLETED, _task_payload(1, "MIT"), TODAY)

        bonus, ledger = await claim_reward(db_session, user.id, challenge.id)
        assert bonus == 25
        assert ledger.new_total == 25
        assert (await get_user(db_session, user.id)).total_points == 25

        with pytest.raises(IllegalStateTransition):
            await claim_reward(db_session, user.id, challenge.id)
        assert (await get_user(db_session, user.id)).total_points == 25

        listed = await list_challenges(db_session, user.id, TODAY)
        assert listed["daily"][0]["xp_claimed"] is True
        assert listed["daily"][0]["progress"] == 100

    @pytest.mark.asyncio
    async def test_other_users_challenge(self, db_session, user, make_user):
        other = await make_user()
        challenge = await _add_challenge(db_session, other.id, "complete_mit")
        with pytest.raises(NotFound):
            await claim_reward(db_session, user.id, challenge.id)
