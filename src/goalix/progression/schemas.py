"""Pydantic request and response models for progression endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

# --- Shared ---


class BadgeSummary(BaseModel):
    slug: str
    name: str
    description: str
    category: str
    target: int


class StreakUpdate(BaseModel):
    type: str
    current_count: int
    longest_count: int
    changed: bool
    milestone_crossed: int | None = None


class CompletedChallenge(BaseModel):
    id: int
    slug: str
    title: str
    type: str
    bonus_xp: int


# --- Tasks ---


class TaskCompletionResponse(BaseModel):
    task_id: int
    points_earned: int
    base_points: int
    bonus_points: int
    new_total: int
    level: int
    leveled_up: bool
    new_level: int | None = None
    level_name: str
    streak: StreakUpdate | None = None
    badges_earned: list[BadgeSummary] = []
    challenges_completed: list[CompletedChallenge] = []
    degraded: list[str] = []


class TaskReversalResponse(BaseModel):
    task_id: int
    points_removed: int
    new_total: int
    level: int
    degraded: list[str] = []


# --- Kaizen ---


class KaizenCheckinRequest(BaseModel):
    health: bool = False
    relationships: bool = False
    wealth: bool = False
    career: bool = False
    personal_growth: bool = False
    lifestyle: bool = False
    notes: str | None = Field(default=None, max_length=2000)
    checkin_date: date | None = None

    def areas(self) -> dict[str, bool]:
        return self.model_dump(exclude={"notes", "checkin_date"})


class KaizenCheckinResponse(BaseModel):
    checkin_date: date
    points_earned: int
    points_delta: int
    areas_checked: int
    is_balanced_day: bool
    new_total: int
    level: int
    leveled_up: bool
    new_level: int | None = None
    level_name: str
    streak: StreakUpdate | None = None
    badges_earned: list[BadgeSummary] = []
    challenges_completed: list[CompletedChallenge] = []
    degraded: list[str] = []


# --- Rituals ---


class RitualResponse(BaseModel):
    ritual: str
    period_start: date
    points_awarded: int
    already_recorded: bool
    new_total: int
    level: int
    leveled_up: bool
    new_level: int | None = None
    level_name: str
    streak: StreakUpdate | None = None
    badges_earned: list[BadgeSummary] = []
    degraded: list[str] = []


# --- Goals ---


class GoalEventRequest(BaseModel):
    completed: bool = False


class GoalEventResponse(BaseModel):
    goal_id: int
    badges_earned: list[BadgeSummary] = []
    challenges_completed: list[CompletedChallenge] = []
    degraded: list[str] = []


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    name: str
    points_required: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


class LevelInfo(BaseModel):
    level: int
    name: str
    points_into_level: int
    points_to_next_level: int
    next_level: int
    next_name: str
    progress: int
    is_max_level: bool


# --- Streaks ---


class StreakResponse(BaseModel):
    type: str
    label: str
    current_count: int
    longest_count: int
    last_action_at: date | None = None
    is_active: bool
    effective_count: int
    at_risk: bool


class UserStreaksResponse(BaseModel):
    streaks: list[StreakResponse]


# --- Badges ---


class BadgeStatusResponse(BadgeSummary):
    earned: bool
    earned_at: datetime | None = None


class AllBadgesResponse(BaseModel):
    badges: list[BadgeSummary]


class UserBadgesResponse(BaseModel):
    badges: list[BadgeStatusResponse]
    total_available: int
    total_earned: int


class EarnedBadgeResponse(BadgeSummary):
    earned_at: datetime


class NextBadgeProgress(BadgeSummary):
    current: int
    percentage: float


class NextBadgeResponse(BaseModel):
    badges: list[NextBadgeProgress]


# --- Stats ---


class TodayStats(BaseModel):
    total: int
    completed: int
    mit_completed: bool
    points_earned: int


class WeekStats(BaseModel):
    tasks_completed: int
    points_earned: int


class UserStatsResponse(BaseModel):
    total_points: int
    level: int
    level_info: LevelInfo
    streaks: list[StreakResponse]
    recent_badges: list[EarnedBadgeResponse]
    today: TodayStats
    this_week: WeekStats


class AlignmentWeek(BaseModel):
    week_start: date
    week_end: date
    rate: int
    linked_completed: int
    total_completed: int


class AlignmentTrendResponse(BaseModel):
    weeks: list[AlignmentWeek]
    overall_average: int
    recent_average: int
    trend: int
    trend_label: str


class PointsHistoryEntry(BaseModel):
    amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class PointsHistoryResponse(BaseModel):
    entries: list[PointsHistoryEntry]


# --- Challenges ---


class ChallengeResponse(BaseModel):
    id: int
    type: str
    category: str
    slug: str
    title: str
    description: str
    period_start: date
    period_end: date
    target_value: int
    current_value: int
    progress: int
    bonus_xp: int
    is_completed: bool
    completed_at: datetime | None = None
    xp_claimed: bool


class ChallengeListResponse(BaseModel):
    daily: list[ChallengeResponse]
    weekly: list[ChallengeResponse]


class ChallengeClaimResponse(BaseModel):
    challenge_id: int
    bonus_xp: int
    new_total: int
    level: int
    leveled_up: bool
    new_level: int | None = None
    level_name: str
