"""Read-side interface to the five-level goal hierarchy and daily tasks.

Every tier lives in the single ``goals`` table tagged by ``level``, so the
queries here take the level as data and never branch per tier.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.db.models import Goal, Task
from goalix.enums import GoalLevel, GoalStatus, TaskPriority, TaskStatus
from goalix.exceptions import NotFound

# Top-down order of the hierarchy
LEVEL_ORDER: tuple[GoalLevel, ...] = (
    GoalLevel.VISION,
    GoalLevel.THREE_YEAR,
    GoalLevel.ONE_YEAR,
    GoalLevel.MONTHLY,
    GoalLevel.WEEKLY,
)


async def get_goal(db: AsyncSession, user_id: int, goal_id: int) -> Goal:
    result = await db.execute(select(Goal).where(Goal.id == goal_id, Goal.user_id == user_id))
    goal = result.scalar_one_or_none()
    if goal is None:
        raise NotFound(f"Goal {goal_id} not found")
    return goal


async def get_ancestor_chain(db: AsyncSession, goal: Goal) -> list[Goal]:
    """The goal followed by its parents up to the root.

    Bounded by the number of tiers so a corrupt parent cycle cannot loop.
    """
    chain = [goal]
    seen = {goal.id}
    current = goal
    while current.parent_id is not None and len(chain) < len(LEVEL_ORDER):
        if current.parent_id in seen:
            break
        result = await db.execute(select(Goal).where(Goal.id == current.parent_id))
        parent = result.scalar_one_or_none()
        if parent is None:
            break
        chain.append(parent)
        seen.add(parent.id)
        current = parent
    return chain


async def get_active_levels(db: AsyncSession, user_id: int) -> set[str]:
    """Levels at which the user has at least one ACTIVE goal."""
    result = await db.execute(
        select(distinct(Goal.level)).where(
            Goal.user_id == user_id,
            Goal.status == GoalStatus.ACTIVE.value,
        )
    )
    return set(result.scalars())


async def count_goals(
    db: AsyncSession,
    user_id: int,
    level: str | None = None,
    status: str | None = None,
) -> int:
    query = select(func.count(Goal.id)).where(Goal.user_id == user_id)
    if level is not None:
        query = query.where(Goal.level == level)
    if status is not None:
        query = query.where(Goal.status == status)
    result = await db.execute(query)
    return result.scalar_one()


async def get_task_category(db: AsyncSession, task_goal_id: int | None) -> str | None:
    """Category of the goal a task is linked to, if any."""
    if task_goal_id is None:
        return None
    result = await db.execute(select(Goal.category).where(Goal.id == task_goal_id))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Task aggregates
# ---------------------------------------------------------------------------


async def count_completed_tasks(
    db: AsyncSession,
    user_id: int,
    start: date | None = None,
    end: date | None = None,
    priority: str | None = None,
) -> int:
    """Completed tasks scheduled within [start, end] (inclusive, optional)."""
    query = select(func.count(Task.id)).where(
        Task.user_id == user_id,
        Task.status == TaskStatus.COMPLETED.value,
    )
    if start is not None:
        query = query.where(Task.scheduled_date >= start)
    if end is not None:
        query = query.where(Task.scheduled_date <= end)
    if priority is not None:
        query = query.where(Task.priority == priority)
    result = await db.execute(query)
    return result.scalar_one()


async def count_completed_tasks_in_category(db: AsyncSession, user_id: int, category: str) -> int:
    result = await db.execute(
        select(func.count(Task.id))
        .join(Goal, Goal.id == Task.goal_id)
        .where(
            Task.user_id == user_id,
            Task.status == TaskStatus.COMPLETED.value,
            Goal.category == category,
        )
    )
    return result.scalar_one()


async def count_mit_days(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    """Distinct days in [start, end] with a completed MIT."""
    result = await db.execute(
        select(func.count(distinct(Task.scheduled_date))).where(
            Task.user_id == user_id,
            Task.priority == TaskPriority.MIT.value,
            Task.status == TaskStatus.COMPLETED.value,
            Task.scheduled_date >= start,
            Task.scheduled_date <= end,
        )
    )
    return result.scalar_one()


async def count_advanced_goals(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    """Distinct goals with at least one completed task scheduled in [start, end]."""
    result = await db.execute(
        select(func.count(distinct(Task.goal_id))).where(
            Task.user_id == user_id,
            Task.status == TaskStatus.COMPLETED.value,
            Task.goal_id.is_not(None),
            Task.scheduled_date >= start,
            Task.scheduled_date <= end,
        )
    )
    return result.scalar_one()


async def alignment_rate(db: AsyncSession, user_id: int, start: date, end: date) -> dict:
    """Share of completed tasks in [start, end] that are linked to a goal.

    Returns the rounded percentage (0 when nothing was completed) with its
    numerator and denominator.
    """
    result = await db.execute(
        select(func.count(Task.id), func.count(Task.goal_id)).where(
            Task.user_id == user_id,
            Task.status == TaskStatus.COMPLETED.value,
            Task.scheduled_date >= start,
            Task.scheduled_date <= end,
        )
    )
    total, linked = result.one()
    rate = round(linked / total * 100) if total else 0
    return {"rate": rate, "linked_completed": linked, "total_completed": total}


async def all_primary_completed(db: AsyncSession, user_id: int, day: date) -> bool:
    """True when the day has PRIMARY tasks and none of them is still open."""
    result = await db.execute(
        select(Task.status).where(
            Task.user_id == user_id,
            Task.scheduled_date == day,
            Task.priority == TaskPriority.PRIMARY.value,
        )
    )
    statuses = list(result.scalars())
    return bool(statuses) and all(s == TaskStatus.COMPLETED.value for s in statuses)


async def today_summary(db: AsyncSession, user_id: int, day: date) -> dict:
    """Task counts and points for one local day."""
    result = await db.execute(
        select(Task.priority, Task.status, Task.points_earned).where(
            Task.user_id == user_id,
            Task.scheduled_date == day,
        )
    )
    rows = result.all()
    completed = [r for r in rows if r.status == TaskStatus.COMPLETED.value]
    return {
        "total": len(rows),
        "completed": len(completed),
        "mit_completed": any(r.priority == TaskPriority.MIT.value for r in completed),
        "points_earned": sum(r.points_earned for r in completed),
    }


async def points_from_tasks(db: AsyncSession, user_id: int, start: date, end: date) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(Task.points_earned), 0)).where(
            Task.user_id == user_id,
            Task.status == TaskStatus.COMPLETED.value,
            Task.scheduled_date >= start,
            Task.scheduled_date <= end,
        )
    )
    return result.scalar_one()
