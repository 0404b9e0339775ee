"""Fixed badge catalog.

Each badge is a predicate descriptor evaluated against aggregates computed
fresh from source tables. Adding a badge means adding an entry here; the
service has no per-badge code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from goalix.enums import GoalCategory, GoalLevel, ProgressionEvent, StreakType


class PredicateKind(str, Enum):
    COUNT_THRESHOLD = "count_threshold"
    STREAK_THRESHOLD = "streak_threshold"
    TODAY_POINTS_THRESHOLD = "today_points_threshold"
    ALL_LEVELS_ACTIVE = "all_levels_active"
    FIRST_OCCURRENCE = "first_occurrence"


# Count metrics understood by COUNT_THRESHOLD / FIRST_OCCURRENCE
METRIC_COMPLETED_TASKS = "completed_tasks"
METRIC_CATEGORY_TASKS = "category_tasks"
METRIC_COMPLETED_GOALS = "completed_goals"
METRIC_GOALS_AT_LEVEL = "goals_at_level"
METRIC_KAIZEN_CHECKINS = "kaizen_checkins"


@dataclass(frozen=True)
class BadgeDefinition:
    slug: str
    name: str
    description: str
    category: str
    kind: PredicateKind
    target: int
    triggers: tuple[ProgressionEvent, ...]
    params: dict = field(default_factory=dict)
    # Context keys an event must carry; when params hold the same key the
    # values must match (e.g. only HEALTH touches evaluate health_nut).
    required_context: tuple[str, ...] = ()

    def matches_context(self, context: dict) -> bool:
        for key in self.required_context:
            if context.get(key) is None:
                return False
            if key in self.params and str(context[key]) != str(self.params[key]):
                return False
        return True


BADGES: tuple[BadgeDefinition, ...] = (
    BadgeDefinition(
        slug="first_blood",
        name="First Blood",
        description="Complete your first task ever",
        category="streak",
        kind=PredicateKind.FIRST_OCCURRENCE,
        target=1,
        params={"metric": METRIC_COMPLETED_TASKS},
        triggers=(ProgressionEvent.TASK_COMPLETED,),
    ),
    BadgeDefinition(
        slug="on_fire_7",
        name="On Fire",
        description="Maintain a 7-day streak",
        category="streak",
        kind=PredicateKind.STREAK_THRESHOLD,
        target=7,
        params={"streak_type": StreakType.MIT_COMPLETION.value},
        required_context=("streak_type",),
        triggers=(ProgressionEvent.STREAK_UPDATED,),
    ),
    BadgeDefinition(
        slug="on_fire_30",
        name="Unstoppable",
        description="Maintain a 30-day streak",
        category="streak",
        kind=PredicateKind.STREAK_THRESHOLD,
        target=30,
        params={"streak_type": StreakType.MIT_COMPLETION.value},
        required_context=("streak_type",),
        triggers=(ProgressionEvent.STREAK_UPDATED,),
    ),
    BadgeDefinition(
        slug="rockstar",
        name="Rockstar",
        description="Maintain an 80+ day streak",
        category="streak",
        kind=PredicateKind.STREAK_THRESHOLD,
        target=80,
        params={"streak_type": StreakType.MIT_COMPLETION.value},
        required_context=("streak_type",),
        triggers=(ProgressionEvent.STREAK_UPDATED,),
    ),
    BadgeDefinition(
        slug="century_club",
        name="Century Club",
        description="Earn 100 points in one day",
        category="achievement",
        kind=PredicateKind.TODAY_POINTS_THRESHOLD,
        target=100,
        triggers=(ProgressionEvent.TASK_COMPLETED,),
    ),
    BadgeDefinition(
        slug="goal_getter",
        name="Goal Getter",
        description="Complete your first goal",
        category="achievement",
        kind=PredicateKind.FIRST_OCCURRENCE,
        target=1,
        params={"metric": METRIC_COMPLETED_GOALS},
        triggers=(ProgressionEvent.GOAL_CHANGED,),
    ),
    BadgeDefinition(
        slug="dream_starter",
        name="Vision Starter",
        description="Create your first 7-year vision",
        category="achievement",
        kind=PredicateKind.FIRST_OCCURRENCE,
        target=1,
        params={"metric": METRIC_GOALS_AT_LEVEL, "level": GoalLevel.VISION.value},
        triggers=(ProgressionEvent.GOAL_CHANGED,),
    ),
    BadgeDefinition(
        slug="planner_pro",
        name="Planner Pro",
        description="Complete daily planning 7 days in a row",
        category="achievement",
        kind=PredicateKind.STREAK_THRESHOLD,
        target=7,
        params={"streak_type": StreakType.DAILY_PLANNING.value},
        required_context=("streak_type",),
        triggers=(ProgressionEvent.STREAK_UPDATED,),
    ),
    BadgeDefinition(
        slug="visionary",
        name="Visionary",
        description="Have active goals at all 5 levels",
        category="achievement",
        kind=PredicateKind.ALL_LEVELS_ACTIVE,
        target=len(GoalLevel),
        triggers=(ProgressionEvent.GOAL_CHANGED,),
    ),
    BadgeDefinition(
        slug="health_nut",
        name="Health Nut",
        description="Complete 10 health-related tasks",
        category="category",
        kind=PredicateKind.COUNT_THRESHOLD,
        target=10,
        params={"metric": METRIC_CATEGORY_TASKS, "category": GoalCategory.HEALTH.value},
        required_context=("category",),
        triggers=(ProgressionEvent.CATEGORY_TOUCHED,),
    ),
    BadgeDefinition(
        slug="wealth_builder",
        name="Wealth Builder",
        description="Complete 10 wealth-related tasks",
        category="category",
        kind=PredicateKind.COUNT_THRESHOLD,
        target=10,
        params={"metric": METRIC_CATEGORY_TASKS, "category": GoalCategory.WEALTH.value},
        required_context=("category",),
        triggers=(ProgressionEvent.CATEGORY_TOUCHED,),
    ),
    BadgeDefinition(
        slug="kaizen_starter",
        name="Kaizen Starter",
        description="Complete your first Kaizen check-in",
        category="kaizen",
        kind=PredicateKind.FIRST_OCCURRENCE,
        target=1,
        params={"metric": METRIC_KAIZEN_CHECKINS},
        triggers=(ProgressionEvent.REFLECTION_SUBMITTED,),
    ),
)

BADGES_BY_SLUG: dict[str, BadgeDefinition] = {b.slug: b for b in BADGES}


def badges_for_event(event: ProgressionEvent) -> list[BadgeDefinition]:
    return [b for b in BADGES if event in b.triggers]
