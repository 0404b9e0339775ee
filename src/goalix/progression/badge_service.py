"""Badge award service with duplicate prevention and notification."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.db.models import EarnedBadge, KaizenCheckin
from goalix.enums import GoalLevel, GoalStatus, ProgressionEvent
from goalix.exceptions import NotFound
from goalix.progression import goal_hierarchy
from goalix.progression.badge_catalog import (
    BADGES,
    BADGES_BY_SLUG,
    METRIC_CATEGORY_TASKS,
    METRIC_COMPLETED_GOALS,
    METRIC_COMPLETED_TASKS,
    METRIC_GOALS_AT_LEVEL,
    METRIC_KAIZEN_CHECKINS,
    BadgeDefinition,
    PredicateKind,
    badges_for_event,
)
from goalix.progression.events import BADGE_EARNED_CHANNEL, publish_event
from goalix.progression.streak_service import get_streak

logger = logging.getLogger(__name__)


def get_badge(slug: str) -> BadgeDefinition:
    badge = BADGES_BY_SLUG.get(slug)
    if badge is None:
        raise NotFound(f"Badge {slug!r} not found")
    return badge


async def has_badge(db: AsyncSession, user_id: int, slug: str) -> bool:
    """Check if user already has a specific badge."""
    result = await db.execute(
        select(EarnedBadge.id).where(
            EarnedBadge.user_id == user_id,
            EarnedBadge.badge_slug == slug,
        )
    )
    return result.scalar_one_or_none() is not None


async def get_earned_slugs(db: AsyncSession, user_id: int) -> set[str]:
    result = await db.execute(select(EarnedBadge.badge_slug).where(EarnedBadge.user_id == user_id))
    return set(result.scalars())


async def _count_metric(db: AsyncSession, user_id: int, badge: BadgeDefinition) -> int:
    metric = badge.params["metric"]
    if metric == METRIC_COMPLETED_TASKS:
        return await goal_hierarchy.count_completed_tasks(db, user_id)
    if metric == METRIC_CATEGORY_TASKS:
        return await goal_hierarchy.count_completed_tasks_in_category(db, user_id, badge.params["category"])
    if metric == METRIC_COMPLETED_GOALS:
        return await goal_hierarchy.count_goals(db, user_id, status=GoalStatus.COMPLETED.value)
    if metric == METRIC_GOALS_AT_LEVEL:
        return await goal_hierarchy.count_goals(db, user_id, level=badge.params["level"])
    if metric == METRIC_KAIZEN_CHECKINS:
        result = await db.execute(select(func.count(KaizenCheckin.id)).where(KaizenCheckin.user_id == user_id))
        return result.scalar_one()
    raise ValueError(f"Unknown badge metric: {metric}")


async def compute_current(db: AsyncSession, user_id: int, badge: BadgeDefinition, today: date) -> int:
    """Current value of the aggregate a badge's predicate compares to its target."""
    if badge.kind in (PredicateKind.COUNT_THRESHOLD, PredicateKind.FIRST_OCCURRENCE):
        return await _count_metric(db, user_id, badge)
    if badge.kind is PredicateKind.STREAK_THRESHOLD:
        streak = await get_streak(db, user_id, badge.params["streak_type"])
        return streak.current_count if streak else 0
    if badge.kind is PredicateKind.TODAY_POINTS_THRESHOLD:
        return await goal_hierarchy.points_from_tasks(db, user_id, today, today)
    if badge.kind is PredicateKind.ALL_LEVELS_ACTIVE:
        active = await goal_hierarchy.get_active_levels(db, user_id)
        return len(active & {level.value for level in GoalLevel})
    raise ValueError(f"Unknown predicate kind: {badge.kind}")


async def check_and_award(
    db: AsyncSession,
    user_id: int,
    slug: str,
    today: date,
    metadata: dict | None = None,
) -> bool:
    """Award a badge if its predicate holds.

    Returns True if awarded, False if already earned or not yet deserved.
    Commits the insert on success.
    """
    badge = get_badge(slug)

    if await has_badge(db, user_id, slug):
        return False

    current = await compute_current(db, user_id, badge, today)
    if current < badge.target:
        return False

    db.add(EarnedBadge(
        user_id=user_id,
        badge_slug=slug,
        earned_at=datetime.now(timezone.utc),
        badge_metadata=metadata or {},
    ))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False  # Race condition: badge already awarded

    logger.info("Badge %s awarded to user %s", slug, user_id)
    return True


async def evaluate_event(
    db: AsyncSession,
    user_id: int,
    event: ProgressionEvent,
    context: dict,
    today: date,
) -> list[str]:
    """Evaluate only the badges triggered by ``event``.

    Returns list of badge slugs awarded (may be empty).
    """
    awarded: list[str] = []
    for badge in badges_for_event(event):
        if not badge.matches_context(context):
            continue
        if await check_and_award(db, user_id, badge.slug, today, metadata={"event": event.value}):
            awarded.append(badge.slug)
    return awarded


async def emit_badge_earned(redis: object, user_id: int, slug: str) -> None:
    badge = BADGES_BY_SLUG[slug]
    await publish_event(redis, BADGE_EARNED_CHANNEL, {
        "user_id": user_id,
        "badge_slug": badge.slug,
        "badge_name": badge.name,
        "category": badge.category,
    })


def badge_to_dict(badge: BadgeDefinition) -> dict:
    return {
        "slug": badge.slug,
        "name": badge.name,
        "description": badge.description,
        "category": badge.category,
        "target": badge.target,
    }


async def get_earned_badges(db: AsyncSession, user_id: int, limit: int | None = None) -> list[dict]:
    """Earned badges, newest first, joined with their catalog entries."""
    query = (
        select(EarnedBadge)
        .where(EarnedBadge.user_id == user_id)
        .order_by(EarnedBadge.earned_at.desc(), EarnedBadge.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)

    earned = []
    for row in result.scalars():
        badge = BADGES_BY_SLUG.get(row.badge_slug)
        if badge is None:
            logger.error(
                "Invariant violation: user %s holds badge %r missing from catalog", user_id, row.badge_slug
            )
            continue
        earned.append({**badge_to_dict(badge), "earned_at": row.earned_at})
    return earned


async def get_all_badges_with_status(db: AsyncSession, user_id: int) -> list[dict]:
    """The whole catalog with earned status for one user."""
    result = await db.execute(select(EarnedBadge).where(EarnedBadge.user_id == user_id))
    earned_at = {row.badge_slug: row.earned_at for row in result.scalars()}
    for slug in earned_at.keys() - BADGES_BY_SLUG.keys():
        logger.error("Invariant violation: user %s holds badge %r missing from catalog", user_id, slug)
    return [
        {
            **badge_to_dict(badge),
            "earned": badge.slug in earned_at,
            "earned_at": earned_at.get(badge.slug),
        }
        for badge in BADGES
    ]


async def get_next_badge_progress(
    db: AsyncSession,
    user_id: int,
    today: date,
    limit: int | None = 3,
) -> list[dict]:
    """Unearned badges ranked by completion percentage, closest first."""
    earned = await get_earned_slugs(db, user_id)

    progress = []
    for badge in BADGES:
        if badge.slug in earned:
            continue
        current = await compute_current(db, user_id, badge, today)
        progress.append({
            **badge_to_dict(badge),
            "current": current,
            "percentage": min(100.0, current / badge.target * 100),
        })

    # sorted() is stable: ties keep catalog order
    progress = sorted(progress, key=lambda p: p["percentage"], reverse=True)
    if limit is not None:
        progress = progress[:limit]
    return progress
