"""Enumerations shared by the ORM models and the progression engine.

Values are persisted as plain strings.
"""

from __future__ import annotations

from enum import Enum


class TaskPriority(str, Enum):
    MIT = "MIT"
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"


class GoalLevel(str, Enum):
    VISION = "VISION"
    THREE_YEAR = "THREE_YEAR"
    ONE_YEAR = "ONE_YEAR"
    MONTHLY = "MONTHLY"
    WEEKLY = "WEEKLY"


class GoalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    ABANDONED = "ABANDONED"


class GoalCategory(str, Enum):
    HEALTH = "HEALTH"
    WEALTH = "WEALTH"
    RELATIONSHIPS = "RELATIONSHIPS"
    CAREER = "CAREER"
    PERSONAL_GROWTH = "PERSONAL_GROWTH"
    LIFESTYLE = "LIFESTYLE"
    OTHER = "OTHER"


class StreakType(str, Enum):
    MIT_COMPLETION = "MIT_COMPLETION"
    DAILY_PLANNING = "DAILY_PLANNING"
    KAIZEN_CHECKIN = "KAIZEN_CHECKIN"
    WEEKLY_REVIEW = "WEEKLY_REVIEW"
    MONTHLY_REVIEW = "MONTHLY_REVIEW"


class Ritual(str, Enum):
    """Planning/review actions that feed a streak of the same name."""

    DAILY_PLANNING = "DAILY_PLANNING"
    WEEKLY_REVIEW = "WEEKLY_REVIEW"
    MONTHLY_REVIEW = "MONTHLY_REVIEW"


class ChallengeType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class ChallengeCategory(str, Enum):
    TASKS = "TASKS"
    MIT = "MIT"
    ALIGNMENT = "ALIGNMENT"
    KAIZEN = "KAIZEN"
    GOALS = "GOALS"
    STREAKS = "STREAKS"


class ProgressionEvent(str, Enum):
    """Triggering event kinds that drive badge and challenge evaluation."""

    TASK_COMPLETED = "task_completed"
    TASK_UNCOMPLETED = "task_uncompleted"
    CATEGORY_TOUCHED = "category_touched"
    STREAK_UPDATED = "streak_updated"
    REFLECTION_SUBMITTED = "reflection_submitted"
    GOAL_CHANGED = "goal_changed"
