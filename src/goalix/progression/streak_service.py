"""Streak tracking: per (user, streak type) continuation state machine.

Periods are user-local. MIT, planning and Kaizen streaks advance daily; the
review streaks advance per ISO week and per calendar month.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.db.models import Streak
from goalix.enums import StreakType
from goalix.progression.events import STREAK_MILESTONE_CHANNEL, publish_event
from goalix.progression.local_time import get_monday, get_month_start, local_now, previous_month_start

logger = logging.getLogger(__name__)

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"

STREAK_CADENCE: dict[StreakType, str] = {
    StreakType.MIT_COMPLETION: DAILY,
    StreakType.DAILY_PLANNING: DAILY,
    StreakType.KAIZEN_CHECKIN: DAILY,
    StreakType.WEEKLY_REVIEW: WEEKLY,
    StreakType.MONTHLY_REVIEW: MONTHLY,
}

STREAK_TYPE_LABELS: dict[StreakType, str] = {
    StreakType.DAILY_PLANNING: "Daily Planning",
    StreakType.MIT_COMPLETION: "MIT Completion",
    StreakType.WEEKLY_REVIEW: "Weekly Review",
    StreakType.MONTHLY_REVIEW: "Monthly Review",
    StreakType.KAIZEN_CHECKIN: "Kaizen Check-in",
}

STREAK_MILESTONES = (7, 14, 30, 60, 90)


@dataclass(frozen=True)
class StreakTransition:
    """Outcome of one qualifying event. Milestones are derived, never persisted."""

    streak_type: str
    previous_count: int
    current_count: int
    longest_count: int
    last_action_at: date
    changed: bool
    broken: bool
    milestone_crossed: int | None


def period_start(cadence: str, d: date) -> date:
    if cadence == WEEKLY:
        return get_monday(d)
    if cadence == MONTHLY:
        return get_month_start(d)
    return d


def previous_period_start(cadence: str, d: date) -> date:
    if cadence == WEEKLY:
        return get_monday(d) - timedelta(days=7)
    if cadence == MONTHLY:
        return previous_month_start(d)
    return d - timedelta(days=1)


def milestone_crossed(before: int, after: int) -> int | None:
    """First milestone m with before < m <= after, if any."""
    for milestone in STREAK_MILESTONES:
        if before < milestone <= after:
            return milestone
    return None


def advance(
    streak_type: str,
    count: int,
    longest: int,
    last_action_at: date | None,
    today: date,
) -> StreakTransition:
    """Apply one qualifying event at local date ``today``. Pure."""
    cadence = STREAK_CADENCE[StreakType(streak_type)]
    current_period = period_start(cadence, today)

    if last_action_at is not None and period_start(cadence, last_action_at) >= current_period:
        # Same period (or a later one after a timezone change): idempotent
        return StreakTransition(
            streak_type=streak_type,
            previous_count=count,
            current_count=count,
            longest_count=longest,
            last_action_at=last_action_at,
            changed=False,
            broken=False,
            milestone_crossed=None,
        )

    broken = False
    if last_action_at is None:
        new_count = 1
    elif period_start(cadence, last_action_at) == previous_period_start(cadence, today):
        new_count = count + 1
    else:
        new_count = 1
        broken = count > 0

    return StreakTransition(
        streak_type=streak_type,
        previous_count=count,
        current_count=new_count,
        longest_count=max(longest, new_count),
        last_action_at=today,
        changed=True,
        broken=broken,
        milestone_crossed=milestone_crossed(count, new_count),
    )


def is_streak_active(streak_type: str, last_action_at: date | None, today: date) -> bool:
    """Active if the last action falls in the current or the previous period."""
    if last_action_at is None:
        return False
    cadence = STREAK_CADENCE[StreakType(streak_type)]
    last_period = period_start(cadence, last_action_at)
    return last_period in (period_start(cadence, today), previous_period_start(cadence, today))


def is_at_risk(
    streak_type: str,
    count: int,
    last_action_at: date | None,
    local_dt: datetime,
    start_hour: int = 12,
    end_hour: int = 21,
) -> bool:
    """Read-only projection for daily streaks during the afternoon/evening window."""
    if STREAK_CADENCE[StreakType(streak_type)] != DAILY:
        return False
    if count <= 1 or last_action_at is None:
        return False
    today = local_dt.date()
    if last_action_at == today:
        return False
    if not is_streak_active(streak_type, last_action_at, today):
        return False
    return start_hour <= local_dt.hour < end_hour


def extending_streak_days(streak: Streak | None, today: date) -> int:
    """Length of the daily streak a completion today extends (0 if none).

    A streak already advanced today was extended from ``current_count - 1``,
    so later completions on the same day earn the same bonus.
    """
    if streak is None or streak.last_action_at is None:
        return 0
    if streak.last_action_at == today:
        return streak.current_count - 1
    if streak.last_action_at == today - timedelta(days=1):
        return streak.current_count
    return 0


async def get_streak(db: AsyncSession, user_id: int, streak_type: str) -> Streak | None:
    result = await db.execute(
        select(Streak).where(Streak.user_id == user_id, Streak.streak_type == streak_type)
    )
    return result.scalar_one_or_none()


async def record_streak_action(
    db: AsyncSession,
    user_id: int,
    streak_type: str,
    today: date,
) -> StreakTransition:
    """Advance a user's streak for a qualifying event on local date ``today``.

    The caller must have committed any earlier work: losing the lazy-creation
    race rolls the session back before re-reading the winner's row.
    """
    streak = await get_streak(db, user_id, streak_type)
    if streak is None:
        streak = Streak(
            user_id=user_id,
            streak_type=streak_type,
            current_count=0,
            longest_count=0,
            last_action_at=None,
            is_active=False,
        )
        db.add(streak)
        try:
            await db.flush()
        except IntegrityError:
            # Concurrent first action created the row
            await db.rollback()
            streak = await get_streak(db, user_id, streak_type)
            if streak is None:
                raise

    transition = advance(
        streak_type,
        streak.current_count,
        streak.longest_count,
        streak.last_action_at,
        today,
    )
    if transition.changed:
        streak.current_count = transition.current_count
        streak.longest_count = transition.longest_count
        streak.last_action_at = transition.last_action_at
        streak.is_active = True
        streak.updated_at = datetime.now(timezone.utc)
        await db.flush()
        if transition.broken:
            logger.info(
                "Streak %s for user %s broken after %d", streak_type, user_id, transition.previous_count
            )
    return transition


async def get_user_streaks(
    db: AsyncSession,
    user_id: int,
    tz_name: str,
    now: datetime | None = None,
    at_risk_start_hour: int = 12,
    at_risk_end_hour: int = 21,
) -> list[dict]:
    """All streak types for a user with read-time projections."""
    result = await db.execute(select(Streak).where(Streak.user_id == user_id))
    by_type = {s.streak_type: s for s in result.scalars()}
    local_dt = local_now(tz_name, now)
    today = local_dt.date()

    streaks = []
    for streak_type in StreakType:
        row = by_type.get(streak_type.value)
        count = row.current_count if row else 0
        last = row.last_action_at if row else None
        active = is_streak_active(streak_type.value, last, today)
        streaks.append({
            "type": streak_type.value,
            "label": STREAK_TYPE_LABELS[streak_type],
            "current_count": count,
            "longest_count": row.longest_count if row else 0,
            "last_action_at": last,
            "is_active": active,
            "effective_count": count if active else 0,
            "at_risk": is_at_risk(
                streak_type.value, count, last, local_dt, at_risk_start_hour, at_risk_end_hour
            ),
        })
    return streaks


async def emit_streak_milestone(redis: object, user_id: int, transition: StreakTransition) -> None:
    if transition.milestone_crossed is None:
        return
    await publish_event(redis, STREAK_MILESTONE_CHANNEL, {
        "user_id": user_id,
        "streak_type": transition.streak_type,
        "milestone": transition.milestone_crossed,
        "current_count": transition.current_count,
    })
