"""Daily and weekly challenge templates.

Counter templates advance by one per distinct qualifying source record.
Snapshot templates are recomputed from the period's source records on every
relevant event.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from goalix.enums import ChallengeCategory, ChallengeType, ProgressionEvent

COUNTER = "counter"
SNAPSHOT = "snapshot"

_TASK_EVENTS = (ProgressionEvent.TASK_COMPLETED, ProgressionEvent.TASK_UNCOMPLETED)


@dataclass(frozen=True)
class ChallengeTemplate:
    slug: str
    title: str
    description: str
    category: ChallengeCategory
    type: ChallengeType
    target_value: int
    bonus_xp: int
    strategy: str
    metric: str
    events: tuple[ProgressionEvent, ...]
    min_level: int | None = None
    min_streak: int | None = None


DAILY_CHALLENGES: tuple[ChallengeTemplate, ...] = (
    # Task completion
    ChallengeTemplate(
        slug="complete_3_tasks",
        title="Task Tackler",
        description="Complete 3 tasks today",
        category=ChallengeCategory.TASKS,
        type=ChallengeType.DAILY,
        target_value=3,
        bonus_xp=30,
        strategy=COUNTER,
        metric="task",
        events=(ProgressionEvent.TASK_COMPLETED,),
    ),
    ChallengeTemplate(
        slug="complete_5_tasks",
        title="Productivity Surge",
        description="Complete 5 tasks today",
        category=ChallengeCategory.TASKS,
        type=ChallengeType.DAILY,
        target_value=5,
        bonus_xp=50,
        strategy=COUNTER,
        metric="task",
        events=(ProgressionEvent.TASK_COMPLETED,),
        min_level=2,
    ),
    ChallengeTemplate(
        slug="complete_all_primary",
        title="Primary Focus",
        description="Complete all your PRIMARY tasks today",
        category=ChallengeCategory.TASKS,
        type=ChallengeType.DAILY,
        target_value=1,
        bonus_xp=40,
        strategy=SNAPSHOT,
        metric="all_primary_completed",
        events=_TASK_EVENTS,
    ),
    # MIT
    ChallengeTemplate(
        slug="complete_mit",
        title="MIT Master",
        description="Complete your Most Important Task",
        category=ChallengeCategory.MIT,
        type=ChallengeType.DAILY,
        target_value=1,
        bonus_xp=25,
        strategy=COUNTER,
        metric="mit_task",
        events=(ProgressionEvent.TASK_COMPLETED,),
    ),
    ChallengeTemplate(
        slug="mit_before_noon",
        title="Early Bird",
        description="Complete your MIT before noon",
        category=ChallengeCategory.MIT,
        type=ChallengeType.DAILY,
        target_value=1,
        bonus_xp=35,
        strategy=COUNTER,
        metric="mit_before_noon",
        events=(ProgressionEvent.TASK_COMPLETED,),
    ),
    # Alignment
    ChallengeTemplate(
        slug="all_tasks_aligned",
        title="Goal Aligned",
        description="Complete only goal-linked tasks today",
        category=ChallengeCategory.ALIGNMENT,
        type=ChallengeType.DAILY,
        target_value=1,
        bonus_xp=45,
        strategy=SNAPSHOT,
        metric="full_alignment",
        events=_TASK_EVENTS,
    ),
    # Kaizen
    ChallengeTemplate(
        slug="kaizen_checkin",
        title="Reflect & Grow",
        description="Complete your Kaizen check-in",
        category=ChallengeCategory.KAIZEN,
        type=ChallengeType.DAILY,
        target_value=1,
        bonus_xp=20,
        strategy=COUNTER,
        metric="kaizen_checkin",
        events=(ProgressionEvent.REFLECTION_SUBMITTED,),
    ),
    ChallengeTemplate(
        slug="kaizen_all_areas",
        title="Balanced Day",
        description="Check all 6 areas in your Kaizen reflection",
        category=ChallengeCategory.KAIZEN,
        type=ChallengeType.DAILY,
        target_value=6,
        bonus_xp=40,
        strategy=SNAPSHOT,
        metric="kaizen_areas",
        events=(ProgressionEvent.REFLECTION_SUBMITTED,),
    ),
)

WEEKLY_CHALLENGES: tuple[ChallengeTemplate, ...] = (
    # Task completion
    ChallengeTemplate(
        slug="complete_20_tasks",
        title="Weekly Warrior",
        description="Complete 20 tasks this week",
        category=ChallengeCategory.TASKS,
        type=ChallengeType.WEEKLY,
        target_value=20,
        bonus_xp=150,
        strategy=COUNTER,
        metric="task",
        events=(ProgressionEvent.TASK_COMPLETED,),
    ),
    ChallengeTemplate(
        slug="complete_30_tasks",
        title="Productivity Champion",
        description="Complete 30 tasks this week",
        category=ChallengeCategory.TASKS,
        type=ChallengeType.WEEKLY,
        target_value=30,
        bonus_xp=250,
        strategy=COUNTER,
        metric="task",
        events=(ProgressionEvent.TASK_COMPLETED,),
        min_level=3,
    ),
    # MIT
    ChallengeTemplate(
        slug="mit_5_days",
        title="MIT Streak",
        description="Complete your MIT 5 days this week",
        category=ChallengeCategory.MIT,
        type=ChallengeType.WEEKLY,
        target_value=5,
        bonus_xp=200,
        strategy=SNAPSHOT,
        metric="mit_days",
        events=_TASK_EVENTS,
    ),
    ChallengeTemplate(
        slug="mit_7_days",
        title="Perfect MIT Week",
        description="Complete your MIT every day this week",
        category=ChallengeCategory.MIT,
        type=ChallengeType.WEEKLY,
        target_value=7,
        bonus_xp=350,
        strategy=SNAPSHOT,
        metric="mit_days",
        events=_TASK_EVENTS,
        min_level=2,
    ),
    # Alignment
    ChallengeTemplate(
        slug="weekly_alignment_80",
        title="Focused Week",
        description="Maintain 80%+ goal alignment this week",
        category=ChallengeCategory.ALIGNMENT,
        type=ChallengeType.WEEKLY,
        target_value=80,
        bonus_xp=175,
        strategy=SNAPSHOT,
        metric="alignment_rate",
        events=_TASK_EVENTS,
    ),
    ChallengeTemplate(
        slug="weekly_alignment_100",
        title="Laser Focus",
        description="Achieve 100% goal alignment this week",
        category=ChallengeCategory.ALIGNMENT,
        type=ChallengeType.WEEKLY,
        target_value=100,
        bonus_xp=300,
        strategy=SNAPSHOT,
        metric="alignment_rate",
        events=_TASK_EVENTS,
        min_level=4,
    ),
    # Kaizen
    ChallengeTemplate(
        slug="kaizen_5_days",
        title="Reflection Habit",
        description="Complete Kaizen check-in 5 days this week",
        category=ChallengeCategory.KAIZEN,
        type=ChallengeType.WEEKLY,
        target_value=5,
        bonus_xp=125,
        strategy=SNAPSHOT,
        metric="kaizen_days",
        events=(ProgressionEvent.REFLECTION_SUBMITTED,),
    ),
    ChallengeTemplate(
        slug="kaizen_7_days",
        title="Perfect Reflection",
        description="Complete Kaizen check-in every day this week",
        category=ChallengeCategory.KAIZEN,
        type=ChallengeType.WEEKLY,
        target_value=7,
        bonus_xp=250,
        strategy=SNAPSHOT,
        metric="kaizen_days",
        events=(ProgressionEvent.REFLECTION_SUBMITTED,),
    ),
    # Goals
    ChallengeTemplate(
        slug="complete_weekly_goal",
        title="Goal Crusher",
        description="Complete a weekly goal",
        category=ChallengeCategory.GOALS,
        type=ChallengeType.WEEKLY,
        target_value=1,
        bonus_xp=200,
        strategy=COUNTER,
        metric="weekly_goal_completed",
        events=(ProgressionEvent.GOAL_CHANGED,),
    ),
    ChallengeTemplate(
        slug="advance_3_goals",
        title="Multi-Goal Progress",
        description="Make progress on 3 different goals",
        category=ChallengeCategory.GOALS,
        type=ChallengeType.WEEKLY,
        target_value=3,
        bonus_xp=175,
        strategy=SNAPSHOT,
        metric="advanced_goals",
        events=(*_TASK_EVENTS, ProgressionEvent.GOAL_CHANGED),
    ),
    # Streaks
    ChallengeTemplate(
        slug="maintain_streak",
        title="Streak Guardian",
        description="Maintain your current streak all week",
        category=ChallengeCategory.STREAKS,
        type=ChallengeType.WEEKLY,
        target_value=7,
        bonus_xp=150,
        strategy=SNAPSHOT,
        metric="streak_days_this_week",
        events=(ProgressionEvent.STREAK_UPDATED,),
        min_streak=3,
    ),
)

TEMPLATES_BY_SLUG: dict[str, ChallengeTemplate] = {
    t.slug: t for t in (*DAILY_CHALLENGES, *WEEKLY_CHALLENGES)
}


def templates_for(challenge_type: ChallengeType) -> tuple[ChallengeTemplate, ...]:
    return DAILY_CHALLENGES if challenge_type is ChallengeType.DAILY else WEEKLY_CHALLENGES


def get_available_challenges(
    templates: tuple[ChallengeTemplate, ...] | list[ChallengeTemplate],
    user_level: int,
    current_streak: int,
) -> list[ChallengeTemplate]:
    """Templates the user is eligible for at this level and MIT streak."""
    available = []
    for template in templates:
        if template.min_level and user_level < template.min_level:
            continue
        if template.min_streak and current_streak < template.min_streak:
            continue
        available.append(template)
    return available


def select_random_challenges(
    templates: list[ChallengeTemplate],
    count: int,
    rng: random.Random | None = None,
) -> list[ChallengeTemplate]:
    if len(templates) <= count:
        return list(templates)
    return (rng or random).sample(templates, count)
