"""Progression API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.dependencies import get_current_user_id, get_db, get_redis_dep
from goalix.enums import Ritual
from goalix.progression.badge_catalog import BADGES
from goalix.progression.badge_service import badge_to_dict, get_all_badges_with_status
from goalix.progression.engine import ProgressionEngine
from goalix.progression.ledger_service import get_ledger_entries
from goalix.progression.levels import LEVELS
from goalix.progression.schemas import (
    AlignmentTrendResponse,
    AllBadgesResponse,
    AllLevelsResponse,
    ChallengeClaimResponse,
    ChallengeListResponse,
    GoalEventRequest,
    GoalEventResponse,
    KaizenCheckinRequest,
    KaizenCheckinResponse,
    LevelEntry,
    NextBadgeResponse,
    PointsHistoryEntry,
    PointsHistoryResponse,
    RitualResponse,
    TaskCompletionResponse,
    TaskReversalResponse,
    UserBadgesResponse,
    UserStatsResponse,
    UserStreaksResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Progression"])


async def get_progression_engine(
    db: AsyncSession = Depends(get_db),  # noqa: B008
    redis: object = Depends(get_redis_dep),  # noqa: B008
) -> ProgressionEngine:
    return ProgressionEngine(db, redis)


# ── Public endpoints ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get all level thresholds."""
    return AllLevelsResponse(levels=[LevelEntry(**entry) for entry in LEVELS])


@router.get("/badges", response_model=AllBadgesResponse)
async def list_badges():
    """Get the badge catalog."""
    return AllBadgesResponse(badges=[badge_to_dict(b) for b in BADGES])


# ── Actions ──


@router.post("/tasks/{task_id}/complete", response_model=TaskCompletionResponse)
async def complete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return await engine.complete_task(user_id, task_id)


@router.post("/tasks/{task_id}/uncomplete", response_model=TaskReversalResponse)
async def uncomplete_task(
    task_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return await engine.uncomplete_task(user_id, task_id)


@router.post("/kaizen", response_model=KaizenCheckinResponse)
async def submit_kaizen(
    body: KaizenCheckinRequest,
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """Submit (or update) a Kaizen check-in."""
    return await engine.submit_reflection(user_id, body.areas(), body.notes, body.checkin_date)


@router.post("/rituals/{ritual}", response_model=RitualResponse)
async def record_ritual(
    ritual: Ritual,
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return await engine.record_ritual(user_id, ritual)


@router.post("/goals/{goal_id}/events", response_model=GoalEventResponse)
async def goal_changed(
    goal_id: int,
    body: GoalEventRequest,
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """Notify the engine that a goal was created, updated or completed."""
    return await engine.on_goal_changed(user_id, goal_id, completed=body.completed)


# ── User progress ──


@router.get("/user/stats", response_model=UserStatsResponse)
async def get_stats(
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return await engine.get_user_stats(user_id)


@router.get("/user/streaks", response_model=UserStreaksResponse)
async def get_streaks(
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return UserStreaksResponse(streaks=await engine.get_user_streaks(user_id))


@router.get("/user/badges", response_model=UserBadgesResponse)
async def get_user_badges(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Get the badge catalog with the user's earned status."""
    badges = await get_all_badges_with_status(db, user_id)
    return UserBadgesResponse(
        badges=badges,
        total_available=len(badges),
        total_earned=sum(1 for b in badges if b["earned"]),
    )


@router.get("/user/next-badge", response_model=NextBadgeResponse)
async def get_next_badge(
    limit: int | None = Query(None, ge=1, le=20),
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """Unearned badges closest to completion."""
    return NextBadgeResponse(badges=await engine.get_next_badge_progress(user_id, limit))


@router.get("/user/alignment", response_model=AlignmentTrendResponse)
async def get_alignment(
    weeks: int = Query(12, ge=1, le=52),
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """Weekly goal-alignment trend."""
    return await engine.get_alignment_trend(user_id, weeks)


@router.get("/user/points/history", response_model=PointsHistoryResponse)
async def get_points_history(
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    entries = await get_ledger_entries(db, user_id, limit)
    return PointsHistoryResponse(entries=[
        PointsHistoryEntry(
            amount=e.amount,
            source=e.source,
            source_id=e.source_id,
            description=e.description,
            created_at=e.created_at,
        )
        for e in entries
    ])


# ── Challenges ──


@router.get("/challenges", response_model=ChallengeListResponse)
async def list_challenges(
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    return await engine.list_challenges(user_id)


@router.post("/challenges/ensure", response_model=ChallengeListResponse)
async def ensure_challenges(
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """Generate today's and this week's challenges if missing, then list them."""
    await engine.ensure_challenges_exist(user_id)
    return await engine.list_challenges(user_id)


@router.post("/challenges/{challenge_id}/claim", response_model=ChallengeClaimResponse)
async def claim_challenge(
    challenge_id: int,
    user_id: int = Depends(get_current_user_id),
    engine: ProgressionEngine = Depends(get_progression_engine),
):
    """Claim the bonus XP of a completed challenge."""
    return await engine.claim_challenge(user_id, challenge_id)
