"""Points calculator: pure functions, no I/O.

Task amounts depend only on the priority tier. The amount actually credited
is persisted on the task row and reversed verbatim, so changing these tables
never corrupts historical reversals.
"""

from __future__ import annotations

from dataclasses import dataclass

from goalix.enums import Ritual, TaskPriority, TaskStatus
from goalix.exceptions import IllegalStateTransition

TASK_POINTS: dict[TaskPriority, int] = {
    TaskPriority.MIT: 100,
    TaskPriority.PRIMARY: 50,
    TaskPriority.SECONDARY: 25,
}

# +10% per streak day, capped at +100%
STREAK_BONUS_PERCENT_PER_DAY = 10
STREAK_BONUS_MAX_PERCENT = 100

RITUAL_POINTS: dict[Ritual, int] = {
    Ritual.DAILY_PLANNING: 50,
    Ritual.WEEKLY_REVIEW: 100,
    Ritual.MONTHLY_REVIEW: 200,
}

KAIZEN_BASE_POINTS = 10
KAIZEN_BALANCED_DAY_BONUS = 25

KAIZEN_AREAS = ("health", "relationships", "wealth", "career", "personal_growth", "lifestyle")


@dataclass(frozen=True)
class PointsBreakdown:
    base: int
    bonus: int

    @property
    def total(self) -> int:
        return self.base + self.bonus


def base_points(priority: str) -> int:
    return TASK_POINTS[TaskPriority(priority)]


def streak_bonus_percent(streak_days: int) -> int:
    return min(max(streak_days, 0) * STREAK_BONUS_PERCENT_PER_DAY, STREAK_BONUS_MAX_PERCENT)


def calculate_task_points(priority: str, streak_days: int = 0) -> PointsBreakdown:
    """Base amount for the tier plus the streak bonus.

    Only MIT completions earn a streak bonus; ``streak_days`` is the length of
    the MIT streak this completion extends (0 if it extends none).
    """
    base = base_points(priority)
    if TaskPriority(priority) is not TaskPriority.MIT:
        return PointsBreakdown(base=base, bonus=0)
    bonus = round(base * streak_bonus_percent(streak_days) / 100)
    return PointsBreakdown(base=base, bonus=bonus)


def award(task, streak_days: int = 0) -> PointsBreakdown:
    """Points for a task transitioning PENDING -> COMPLETED."""
    if task.status == TaskStatus.COMPLETED:
        raise IllegalStateTransition(f"Task {task.id} is already completed")
    return calculate_task_points(task.priority, streak_days)


def reverse(task) -> int:
    """Exact amount to subtract when a completed task is reopened."""
    if task.status != TaskStatus.COMPLETED:
        raise IllegalStateTransition(f"Task {task.id} is not completed")
    return task.points_earned


def count_checked_areas(areas: dict[str, bool]) -> int:
    return sum(1 for area in KAIZEN_AREAS if areas.get(area))


def is_balanced_day(areas: dict[str, bool]) -> bool:
    return count_checked_areas(areas) == len(KAIZEN_AREAS)


def calculate_kaizen_points(areas: dict[str, bool]) -> int:
    points = KAIZEN_BASE_POINTS
    if is_balanced_day(areas):
        points += KAIZEN_BALANCED_DAY_BONUS
    return points


def ritual_points(ritual: str) -> int:
    return RITUAL_POINTS[Ritual(ritual)]
