"""Challenge generation, progress tracking and reward claiming.

Progress writes go through conditional UPDATEs on ``is_completed = false`` so
a completed challenge is frozen even if its source data later changes.
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timezone

from sqlalchemy import false, func, select, true, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.db.models import ChallengeContribution, ChallengePeriod, KaizenCheckin, User, UserChallenge
from goalix.enums import ChallengeType, GoalLevel, ProgressionEvent, StreakType, TaskPriority
from goalix.exceptions import IllegalStateTransition, NotFound
from goalix.progression import goal_hierarchy
from goalix.progression.challenge_templates import (
    COUNTER,
    TEMPLATES_BY_SLUG,
    ChallengeTemplate,
    get_available_challenges,
    select_random_challenges,
    templates_for,
)
from goalix.progression.events import CHALLENGE_COMPLETED_CHANNEL, publish_event
from goalix.progression.ledger_service import LedgerResult, apply_points
from goalix.progression.local_time import get_week_bounds
from goalix.progression.points import KAIZEN_AREAS, count_checked_areas
from goalix.progression.streak_service import get_streak

logger = logging.getLogger(__name__)


def period_bounds(challenge_type: ChallengeType, today: date) -> tuple[date, date]:
    """(start, end) of the user-local period containing ``today``."""
    if challenge_type is ChallengeType.WEEKLY:
        return get_week_bounds(today)
    return today, today


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


async def ensure_generated(
    db: AsyncSession,
    user_id: int,
    challenge_type: ChallengeType,
    today: date,
    count: int = 3,
    rng: random.Random | None = None,
) -> bool:
    """Generate this period's challenges unless they already exist.

    Returns True if a new set was created. Commits.
    """
    period_start, period_end = period_bounds(challenge_type, today)

    result = await db.execute(
        select(UserChallenge.id).where(
            UserChallenge.user_id == user_id,
            UserChallenge.type == challenge_type.value,
            UserChallenge.period_start == period_start,
        ).limit(1)
    )
    if result.scalar_one_or_none() is not None:
        return False

    level_result = await db.execute(select(User.level).where(User.id == user_id))
    user_level = level_result.scalar_one_or_none()
    if user_level is None:
        raise NotFound(f"User {user_id} not found")
    mit_streak = await get_streak(db, user_id, StreakType.MIT_COMPLETION.value)
    current_streak = mit_streak.current_count if mit_streak else 0

    available = get_available_challenges(templates_for(challenge_type), user_level, current_streak)
    selected = select_random_challenges(available, count, rng)

    now = datetime.now(timezone.utc)
    db.add(ChallengePeriod(
        user_id=user_id,
        type=challenge_type.value,
        period_start=period_start,
        created_at=now,
    ))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return False  # Race condition: a concurrent request claimed the period

    for template in selected:
        db.add(UserChallenge(
            user_id=user_id,
            type=challenge_type.value,
            category=template.category.value,
            slug=template.slug,
            title=template.title,
            description=template.description,
            period_start=period_start,
            period_end=period_end,
            target_value=template.target_value,
            current_value=0,
            bonus_xp=template.bonus_xp,
            created_at=now,
        ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False  # Race condition: a concurrent request generated the set

    logger.info(
        "Generated %d %s challenges for user %s: %s",
        len(selected), challenge_type.value, user_id, [t.slug for t in selected],
    )
    return True


async def ensure_challenges_exist(
    db: AsyncSession,
    user_id: int,
    today: date,
    daily_count: int = 3,
    weekly_count: int = 3,
) -> None:
    await ensure_generated(db, user_id, ChallengeType.DAILY, today, daily_count)
    await ensure_generated(db, user_id, ChallengeType.WEEKLY, today, weekly_count)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


def counter_source_key(
    metric: str,
    event: ProgressionEvent,
    payload: dict,
    period: tuple[date, date] | None = None,
) -> str | None:
    """Identity of the source record a counter event contributes, or None.

    With ``period``, dated sources outside (start, end) contribute nothing.
    """
    if metric in ("task", "mit_task", "mit_before_noon"):
        if event is not ProgressionEvent.TASK_COMPLETED:
            return None
        if metric != "task" and payload.get("priority") != TaskPriority.MIT.value:
            return None
        if metric == "mit_before_noon" and payload.get("local_hour", 24) >= 12:
            return None
        return f"task:{payload['task_id']}"
    if metric == "kaizen_checkin":
        if event is not ProgressionEvent.REFLECTION_SUBMITTED:
            return None
        if period is not None:
            checkin_date = date.fromisoformat(payload["checkin_date"])
            if not period[0] <= checkin_date <= period[1]:
                return None
        return f"kaizen:{payload['checkin_date']}"
    if metric == "weekly_goal_completed":
        if event is not ProgressionEvent.GOAL_CHANGED:
            return None
        if not payload.get("completed") or payload.get("goal_level") != GoalLevel.WEEKLY.value:
            return None
        return f"goal:{payload['goal_id']}"
    raise ValueError(f"Unknown counter metric: {metric}")


async def _kaizen_areas(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    result = await db.execute(
        select(KaizenCheckin).where(KaizenCheckin.user_id == user_id, KaizenCheckin.checkin_date == start)
    )
    checkin = result.scalar_one_or_none()
    if checkin is None:
        return 0
    return count_checked_areas({area: getattr(checkin, area) for area in KAIZEN_AREAS})


async def _kaizen_days(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    result = await db.execute(
        select(func.count(KaizenCheckin.id)).where(
            KaizenCheckin.user_id == user_id,
            KaizenCheckin.checkin_date >= start,
            KaizenCheckin.checkin_date <= end,
        )
    )
    return result.scalar_one()


async def _all_primary_completed(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    return int(await goal_hierarchy.all_primary_completed(db, user_id, start))


async def _full_alignment(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    alignment = await goal_hierarchy.alignment_rate(db, user_id, start, end)
    return 1 if alignment["rate"] == 100 else 0


async def _alignment_rate(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    alignment = await goal_hierarchy.alignment_rate(db, user_id, start, end)
    return alignment["rate"]


async def _streak_days_this_week(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    """Days of this week covered by the unbroken MIT streak."""
    streak = await get_streak(db, user_id, StreakType.MIT_COMPLETION.value)
    if streak is None or streak.last_action_at is None:
        return 0
    if not start <= streak.last_action_at <= end:
        return 0
    return min(streak.current_count, (streak.last_action_at - start).days + 1)


SNAPSHOT_METRICS = {
    "all_primary_completed": _all_primary_completed,
    "full_alignment": _full_alignment,
    "kaizen_areas": _kaizen_areas,
    "mit_days": goal_hierarchy.count_mit_days,
    "alignment_rate": _alignment_rate,
    "kaizen_days": _kaizen_days,
    "advanced_goals": goal_hierarchy.count_advanced_goals,
    "streak_days_this_week": _streak_days_this_week,
}


async def _complete_if_reached(db: AsyncSession, challenge_id: int, value: int, target: int) -> bool:
    if value < target:
        return False
    result = await db.execute(
        update(UserChallenge)
        .where(UserChallenge.id == challenge_id, UserChallenge.is_completed == false())
        .values(is_completed=True, completed_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _apply_counter(db: AsyncSession, row, source_key: str) -> bool:
    """Count one source record toward a counter challenge. Commits."""
    existing = await db.execute(
        select(ChallengeContribution.id).where(
            ChallengeContribution.user_challenge_id == row.id,
            ChallengeContribution.source_key == source_key,
        )
    )
    if existing.scalar_one_or_none() is not None:
        return False

    db.add(ChallengeContribution(
        user_challenge_id=row.id,
        source_key=source_key,
        created_at=datetime.now(timezone.utc),
    ))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return False  # Race condition: already counted

    result = await db.execute(
        update(UserChallenge)
        .where(UserChallenge.id == row.id, UserChallenge.is_completed == false())
        .values(current_value=UserChallenge.current_value + 1)
        .returning(UserChallenge.current_value)
    )
    new_value = result.scalar_one_or_none()
    completed = new_value is not None and await _complete_if_reached(db, row.id, new_value, row.target_value)
    await db.commit()
    return completed


async def _apply_snapshot(db: AsyncSession, row, template: ChallengeTemplate, user_id: int) -> bool:
    """Recompute a snapshot challenge from source records. Commits."""
    value = await SNAPSHOT_METRICS[template.metric](db, user_id, row.period_start, row.period_end)
    if value == row.current_value:
        return False
    await db.execute(
        update(UserChallenge)
        .where(UserChallenge.id == row.id, UserChallenge.is_completed == false())
        .values(current_value=value)
        .execution_options(synchronize_session=False)
    )
    completed = await _complete_if_reached(db, row.id, value, row.target_value)
    await db.commit()
    return completed


async def update_progress(
    db: AsyncSession,
    user_id: int,
    event: ProgressionEvent,
    payload: dict,
    today: date,
) -> list[dict]:
    """Advance every open challenge of the current periods that listens to ``event``.

    Returns the challenges this call completed.
    """
    week_start, _ = get_week_bounds(today)
    result = await db.execute(
        select(
            UserChallenge.id,
            UserChallenge.slug,
            UserChallenge.title,
            UserChallenge.type,
            UserChallenge.target_value,
            UserChallenge.current_value,
            UserChallenge.bonus_xp,
            UserChallenge.period_start,
            UserChallenge.period_end,
        ).where(
            UserChallenge.user_id == user_id,
            UserChallenge.is_completed == false(),
            (
                ((UserChallenge.type == ChallengeType.DAILY.value) & (UserChallenge.period_start == today))
                | ((UserChallenge.type == ChallengeType.WEEKLY.value) & (UserChallenge.period_start == week_start))
            ),
        )
    )
    rows = result.all()

    completed: list[dict] = []
    for row in rows:
        template = TEMPLATES_BY_SLUG.get(row.slug)
        if template is None:
            logger.warning("Challenge %s has unknown template %r", row.id, row.slug)
            continue
        if event not in template.events:
            continue

        if template.strategy == COUNTER:
            source_key = counter_source_key(
                template.metric, event, payload, (row.period_start, row.period_end)
            )
            if source_key is None:
                continue
            done = await _apply_counter(db, row, source_key)
        else:
            done = await _apply_snapshot(db, row, template, user_id)

        if done:
            logger.info("Challenge %s (%s) completed by user %s", row.id, row.slug, user_id)
            completed.append({
                "id": row.id,
                "slug": row.slug,
                "title": row.title,
                "type": row.type,
                "bonus_xp": row.bonus_xp,
            })
    return completed


async def emit_challenge_completed(redis: object, user_id: int, challenge: dict) -> None:
    await publish_event(redis, CHALLENGE_COMPLETED_CHANNEL, {"user_id": user_id, **challenge})


# ---------------------------------------------------------------------------
# Rewards and listing
# ---------------------------------------------------------------------------


async def claim_reward(db: AsyncSession, user_id: int, challenge_id: int) -> tuple[int, LedgerResult]:
    """Grant a completed challenge's bonus XP exactly once. Commits."""
    result = await db.execute(
        select(UserChallenge.is_completed, UserChallenge.bonus_xp, UserChallenge.title).where(
            UserChallenge.id == challenge_id,
            UserChallenge.user_id == user_id,
        )
    )
    row = result.one_or_none()
    if row is None:
        raise NotFound(f"Challenge {challenge_id} not found")
    if not row.is_completed:
        raise IllegalStateTransition(f"Challenge {challenge_id} is not completed")

    claimed = await db.execute(
        update(UserChallenge)
        .where(
            UserChallenge.id == challenge_id,
            UserChallenge.user_id == user_id,
            UserChallenge.is_completed == true(),
            UserChallenge.xp_claimed == false(),
        )
        .values(xp_claimed=True)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise IllegalStateTransition(f"Challenge {challenge_id} reward already claimed")

    ledger = await apply_points(
        db,
        user_id,
        row.bonus_xp,
        source="challenge",
        source_id=f"challenge:{challenge_id}",
        description=f'Challenge completed: "{row.title}"',
    )
    await db.commit()
    return row.bonus_xp, ledger


def _challenge_to_dict(challenge: UserChallenge) -> dict:
    return {
        "id": challenge.id,
        "type": challenge.type,
        "category": challenge.category,
        "slug": challenge.slug,
        "title": challenge.title,
        "description": challenge.description,
        "period_start": challenge.period_start,
        "period_end": challenge.period_end,
        "target_value": challenge.target_value,
        "current_value": challenge.current_value,
        "progress": min(100, round(challenge.current_value / challenge.target_value * 100))
        if challenge.target_value else 100,
        "bonus_xp": challenge.bonus_xp,
        "is_completed": challenge.is_completed,
        "completed_at": challenge.completed_at,
        "xp_claimed": challenge.xp_claimed,
    }


async def list_challenges(db: AsyncSession, user_id: int, today: date) -> dict:
    """Current daily and weekly challenges with progress."""
    week_start, _ = get_week_bounds(today)
    result = await db.execute(
        select(UserChallenge)
        .where(
            UserChallenge.user_id == user_id,
            (
                ((UserChallenge.type == ChallengeType.DAILY.value) & (UserChallenge.period_start == today))
                | ((UserChallenge.type == ChallengeType.WEEKLY.value) & (UserChallenge.period_start == week_start))
            ),
        )
        .order_by(UserChallenge.id)
        .execution_options(populate_existing=True)
    )
    daily, weekly = [], []
    for challenge in result.scalars():
        target = daily if challenge.type == ChallengeType.DAILY.value else weekly
        target.append(_challenge_to_dict(challenge))
    return {"daily": daily, "weekly": weekly}
