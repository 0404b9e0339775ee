"""Progression engine: the single entry point for user actions that earn progress.

Each operation commits its primary effect (task status plus points, a
reflection, a ritual) first. Streak, badge and challenge evaluation then run
as isolated stages: a failing stage is logged, rolled back and reported in
``degraded`` without undoing the committed points.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.config import Settings, get_settings
from goalix.db.models import KaizenCheckin, RitualLog, Task
from goalix.enums import ProgressionEvent, Ritual, StreakType, TaskPriority, TaskStatus
from goalix.exceptions import IllegalStateTransition, NotFound, ProgressionError
from goalix.progression import badge_service, challenge_service, goal_hierarchy, points, streak_service
from goalix.progression.badge_catalog import BADGES_BY_SLUG
from goalix.progression.ledger_service import LedgerResult, apply_points, emit_level_up, get_user
from goalix.progression.levels import compute_level, level_name
from goalix.progression.local_time import get_week_bounds, local_now

logger = structlog.get_logger()


def _ledger_summary(ledger: LedgerResult) -> dict:
    return {
        "new_total": ledger.new_total,
        "level": ledger.new_level,
        "leveled_up": ledger.leveled_up,
        "new_level": ledger.new_level if ledger.leveled_up else None,
        "level_name": level_name(ledger.new_level),
    }


def _streak_summary(transition: streak_service.StreakTransition | None) -> dict | None:
    if transition is None:
        return None
    return {
        "type": transition.streak_type,
        "current_count": transition.current_count,
        "longest_count": transition.longest_count,
        "changed": transition.changed,
        "milestone_crossed": transition.milestone_crossed,
    }


class ProgressionEngine:
    """Orchestrates points, streaks, levels, badges and challenges for one request."""

    def __init__(self, db: AsyncSession, redis: object = None, settings: Settings | None = None) -> None:
        self.db = db
        self.redis = redis
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _user_clock(self, user_id: int, now: datetime | None) -> tuple[str, datetime]:
        """(timezone, user-local now). Raises NotFound for unknown users."""
        user = await get_user(self.db, user_id)
        tz_name = user.timezone
        return tz_name, local_now(tz_name, now)

    async def _run_stage(
        self,
        stage: str,
        user_id: int,
        degraded: list[str],
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        default: Any = None,
    ) -> Any:
        """Run one post-commit stage. Failures are logged and isolated."""
        try:
            return await func(*args)
        except Exception:
            logger.error("progression_stage_failed", stage=stage, user_id=user_id, exc_info=True)
            await self.db.rollback()
            degraded.append(stage)
            return default

    async def _get_task(self, user_id: int, task_id: int) -> Task:
        result = await self.db.execute(
            select(Task)
            .where(Task.id == task_id, Task.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        task = result.scalar_one_or_none()
        if task is None:
            raise NotFound(f"Task {task_id} not found")
        return task

    async def _streak_stage(
        self, user_id: int, streak_type: StreakType, today: date
    ) -> streak_service.StreakTransition:
        transition = await streak_service.record_streak_action(self.db, user_id, streak_type.value, today)
        await self.db.commit()
        await streak_service.emit_streak_milestone(self.redis, user_id, transition)
        return transition

    async def _badge_stage(
        self, user_id: int, events: list[tuple[ProgressionEvent, dict]], today: date
    ) -> list[dict]:
        earned: list[dict] = []
        for event, context in events:
            for slug in await badge_service.evaluate_event(self.db, user_id, event, context, today):
                await badge_service.emit_badge_earned(self.redis, user_id, slug)
                earned.append(badge_service.badge_to_dict(BADGES_BY_SLUG[slug]))
        return earned

    async def _challenge_stage(
        self, user_id: int, events: list[tuple[ProgressionEvent, dict]], today: date
    ) -> list[dict]:
        completed: list[dict] = []
        for event, payload in events:
            for challenge in await challenge_service.update_progress(self.db, user_id, event, payload, today):
                await challenge_service.emit_challenge_completed(self.redis, user_id, challenge)
                completed.append(challenge)
        return completed

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def complete_task(self, user_id: int, task_id: int, now: datetime | None = None) -> dict:
        """Complete a PENDING task, credit its points and run the follow-up stages."""
        _, local_dt = await self._user_clock(user_id, now)
        today = local_dt.date()
        task = await self._get_task(user_id, task_id)
        priority, goal_id = task.priority, task.goal_id
        is_mit = priority == TaskPriority.MIT.value

        streak_days = 0
        if is_mit:
            mit_streak = await streak_service.get_streak(self.db, user_id, StreakType.MIT_COMPLETION.value)
            streak_days = streak_service.extending_streak_days(mit_streak, today)
        breakdown = points.award(task, streak_days)

        claimed = await self.db.execute(
            update(Task)
            .where(
                Task.id == task_id,
                Task.user_id == user_id,
                Task.status != TaskStatus.COMPLETED.value,
            )
            .values(
                status=TaskStatus.COMPLETED.value,
                completed_at=now or datetime.now(timezone.utc),
                points_earned=breakdown.total,
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await self.db.rollback()
            raise IllegalStateTransition(f"Task {task_id} is already completed")

        ledger = await apply_points(
            self.db,
            user_id,
            breakdown.total,
            source="task",
            source_id=f"task:{task_id}",
            description=f"Completed {priority} task",
        )
        await self.db.commit()
        await emit_level_up(self.redis, user_id, ledger)
        logger.info(
            "task_completed", user_id=user_id, task_id=task_id, points=breakdown.total, bonus=breakdown.bonus
        )

        degraded: list[str] = []
        transition = None
        if is_mit:
            transition = await self._run_stage(
                "streak", user_id, degraded, self._streak_stage, user_id, StreakType.MIT_COMPLETION, today
            )
        streak_changed = transition is not None and transition.changed

        category = await self._run_stage(
            "goal_hierarchy", user_id, degraded, goal_hierarchy.get_task_category, self.db, goal_id
        )

        badge_events: list[tuple[ProgressionEvent, dict]] = [(ProgressionEvent.TASK_COMPLETED, {})]
        if category:
            badge_events.append((ProgressionEvent.CATEGORY_TOUCHED, {"category": category}))
        if streak_changed:
            badge_events.append((ProgressionEvent.STREAK_UPDATED, {"streak_type": transition.streak_type}))
        badges = await self._run_stage(
            "badges", user_id, degraded, self._badge_stage, user_id, badge_events, today, default=[]
        )

        payload = {"task_id": task_id, "priority": priority, "local_hour": local_dt.hour, "goal_id": goal_id}
        challenge_events: list[tuple[ProgressionEvent, dict]] = [(ProgressionEvent.TASK_COMPLETED, payload)]
        if streak_changed:
            challenge_events.append((ProgressionEvent.STREAK_UPDATED, {"streak_type": transition.streak_type}))
        challenges = await self._run_stage(
            "challenges", user_id, degraded, self._challenge_stage, user_id, challenge_events, today, default=[]
        )

        return {
            "task_id": task_id,
            "points_earned": breakdown.total,
            "base_points": breakdown.base,
            "bonus_points": breakdown.bonus,
            **_ledger_summary(ledger),
            "streak": _streak_summary(transition),
            "badges_earned": badges,
            "challenges_completed": challenges,
            "degraded": degraded,
        }

    async def uncomplete_task(self, user_id: int, task_id: int, now: datetime | None = None) -> dict:
        """Reopen a COMPLETED task and remove exactly the points it earned.

        Streaks are not decremented.
        """
        _, local_dt = await self._user_clock(user_id, now)
        task = await self._get_task(user_id, task_id)
        amount = points.reverse(task)

        reopened = await self.db.execute(
            update(Task)
            .where(
                Task.id == task_id,
                Task.user_id == user_id,
                Task.status == TaskStatus.COMPLETED.value,
            )
            .values(status=TaskStatus.PENDING.value, completed_at=None, points_earned=0)
            .execution_options(synchronize_session=False)
        )
        if reopened.rowcount != 1:
            await self.db.rollback()
            raise IllegalStateTransition(f"Task {task_id} is not completed")

        ledger = await apply_points(
            self.db,
            user_id,
            -amount,
            source="task_reversal",
            source_id=f"task:{task_id}",
            description="Task marked incomplete",
        )
        await self.db.commit()
        logger.info("task_uncompleted", user_id=user_id, task_id=task_id, points=amount)

        degraded: list[str] = []
        await self._run_stage(
            "challenges",
            user_id,
            degraded,
            self._challenge_stage,
            user_id,
            [(ProgressionEvent.TASK_UNCOMPLETED, {"task_id": task_id})],
            local_dt.date(),
            default=[],
        )
        return {
            "task_id": task_id,
            "points_removed": amount,
            "new_total": ledger.new_total,
            "level": ledger.new_level,
            "degraded": degraded,
        }

    # ------------------------------------------------------------------
    # Reflections and rituals
    # ------------------------------------------------------------------

    async def _upsert_checkin(
        self, user_id: int, day: date, areas: dict[str, bool], notes: str | None, earned: int
    ) -> tuple[int, bool]:
        """Write the day's check-in. Returns (previously credited points, created)."""
        now = datetime.now(timezone.utc)
        for _ in range(2):
            result = await self.db.execute(
                select(KaizenCheckin).where(KaizenCheckin.user_id == user_id, KaizenCheckin.checkin_date == day)
            )
            checkin = result.scalar_one_or_none()
            if checkin is not None:
                previous = checkin.points_earned
                for area in points.KAIZEN_AREAS:
                    setattr(checkin, area, bool(areas.get(area)))
                checkin.notes = notes
                checkin.points_earned = earned
                checkin.updated_at = now
                await self.db.flush()
                return previous, False

            self.db.add(KaizenCheckin(
                user_id=user_id,
                checkin_date=day,
                notes=notes,
                points_earned=earned,
                created_at=now,
                updated_at=now,
                **{area: bool(areas.get(area)) for area in points.KAIZEN_AREAS},
            ))
            try:
                await self.db.flush()
                return 0, True
            except IntegrityError:
                # Concurrent first submission; update the winner's row instead
                await self.db.rollback()
        raise IllegalStateTransition(f"Check-in for {day} could not be written")

    async def submit_reflection(
        self,
        user_id: int,
        areas: dict[str, bool],
        notes: str | None = None,
        checkin_date: date | None = None,
        now: datetime | None = None,
    ) -> dict:
        """Record the day's Kaizen check-in.

        Re-submitting the same day credits only the difference from what was
        already credited. Back-dated check-ins earn points but do not advance
        the streak.
        """
        _, local_dt = await self._user_clock(user_id, now)
        today = local_dt.date()
        day = checkin_date or today
        if day > today:
            raise ProgressionError(f"Cannot check in for a future date ({day})")

        earned = points.calculate_kaizen_points(areas)
        previous, created = await self._upsert_checkin(user_id, day, areas, notes, earned)
        delta = earned - previous

        ledger = None
        if delta:
            ledger = await apply_points(
                self.db,
                user_id,
                delta,
                source="kaizen",
                source_id=f"kaizen:{day.isoformat()}",
                description="Kaizen check-in" if created else "Kaizen check-in updated",
            )
        await self.db.commit()
        if ledger is not None:
            await emit_level_up(self.redis, user_id, ledger)
        else:
            ledger = await self._unchanged_ledger(user_id)
        logger.info("reflection_submitted", user_id=user_id, checkin_date=str(day), delta=delta)

        degraded: list[str] = []
        transition = None
        if day == today:
            transition = await self._run_stage(
                "streak", user_id, degraded, self._streak_stage, user_id, StreakType.KAIZEN_CHECKIN, today
            )

        badge_events: list[tuple[ProgressionEvent, dict]] = [(ProgressionEvent.REFLECTION_SUBMITTED, {})]
        if transition is not None and transition.changed:
            badge_events.append((ProgressionEvent.STREAK_UPDATED, {"streak_type": transition.streak_type}))
        badges = await self._run_stage(
            "badges", user_id, degraded, self._badge_stage, user_id, badge_events, today, default=[]
        )
        challenges = await self._run_stage(
            "challenges",
            user_id,
            degraded,
            self._challenge_stage,
            user_id,
            [(ProgressionEvent.REFLECTION_SUBMITTED, {"checkin_date": day.isoformat()})],
            today,
            default=[],
        )

        return {
            "checkin_date": day,
            "points_earned": earned,
            "points_delta": delta,
            "areas_checked": points.count_checked_areas(areas),
            "is_balanced_day": points.is_balanced_day(areas),
            **_ledger_summary(ledger),
            "streak": _streak_summary(transition),
            "badges_earned": badges,
            "challenges_completed": challenges,
            "degraded": degraded,
        }

    async def _unchanged_ledger(self, user_id: int) -> LedgerResult:
        user = await get_user(self.db, user_id)
        return LedgerResult(
            amount=0,
            old_total=user.total_points,
            new_total=user.total_points,
            old_level=user.level,
            new_level=user.level,
        )

    async def record_ritual(self, user_id: int, ritual: Ritual, now: datetime | None = None) -> dict:
        """Log a planning/review ritual once per period and advance its streak."""
        _, local_dt = await self._user_clock(user_id, now)
        today = local_dt.date()
        streak_type = StreakType(ritual.value)
        period_start = streak_service.period_start(streak_service.STREAK_CADENCE[streak_type], today)

        existing = await self.db.execute(
            select(RitualLog.id).where(
                RitualLog.user_id == user_id,
                RitualLog.ritual == ritual.value,
                RitualLog.period_start == period_start,
            )
        )
        already_recorded = existing.scalar_one_or_none() is not None
        awarded = 0
        ledger = None
        if not already_recorded:
            awarded = points.ritual_points(ritual.value)
            self.db.add(RitualLog(
                user_id=user_id,
                ritual=ritual.value,
                period_start=period_start,
                points_earned=awarded,
                created_at=datetime.now(timezone.utc),
            ))
            try:
                await self.db.flush()
            except IntegrityError:
                await self.db.rollback()
                already_recorded, awarded = True, 0  # Race condition: logged concurrently
            else:
                ledger = await apply_points(
                    self.db,
                    user_id,
                    awarded,
                    source="ritual",
                    source_id=f"{ritual.value.lower()}:{period_start.isoformat()}",
                    description=f"{ritual.value.replace('_', ' ').title()} completed",
                )
                await self.db.commit()
                await emit_level_up(self.redis, user_id, ledger)
        if ledger is None:
            ledger = await self._unchanged_ledger(user_id)
        logger.info("ritual_recorded", user_id=user_id, ritual=ritual.value, already_recorded=already_recorded)

        degraded: list[str] = []
        transition = await self._run_stage("streak", user_id, degraded, self._streak_stage, user_id, streak_type, today)
        badge_events: list[tuple[ProgressionEvent, dict]] = []
        if transition is not None and transition.changed:
            badge_events.append((ProgressionEvent.STREAK_UPDATED, {"streak_type": transition.streak_type}))
        badges = await self._run_stage(
            "badges", user_id, degraded, self._badge_stage, user_id, badge_events, today, default=[]
        )

        return {
            "ritual": ritual.value,
            "period_start": period_start,
            "points_awarded": awarded,
            "already_recorded": already_recorded,
            **_ledger_summary(ledger),
            "streak": _streak_summary(transition),
            "badges_earned": badges,
            "degraded": degraded,
        }

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    async def on_goal_changed(
        self, user_id: int, goal_id: int, completed: bool = False, now: datetime | None = None
    ) -> dict:
        """Hook called by the goal subsystem after it creates, updates or completes a goal."""
        _, local_dt = await self._user_clock(user_id, now)
        today = local_dt.date()
        goal = await goal_hierarchy.get_goal(self.db, user_id, goal_id)
        goal_level = goal.level

        degraded: list[str] = []
        badges = await self._run_stage(
            "badges",
            user_id,
            degraded,
            self._badge_stage,
            user_id,
            [(ProgressionEvent.GOAL_CHANGED, {"goal_id": goal_id})],
            today,
            default=[],
        )
        payload = {"goal_id": goal_id, "goal_level": goal_level, "completed": completed}
        challenges = await self._run_stage(
            "challenges",
            user_id,
            degraded,
            self._challenge_stage,
            user_id,
            [(ProgressionEvent.GOAL_CHANGED, payload)],
            today,
            default=[],
        )
        return {
            "goal_id": goal_id,
            "badges_earned": badges,
            "challenges_completed": challenges,
            "degraded": degraded,
        }

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    async def ensure_challenges_exist(self, user_id: int, now: datetime | None = None) -> None:
        _, local_dt = await self._user_clock(user_id, now)
        await challenge_service.ensure_challenges_exist(
            self.db,
            user_id,
            local_dt.date(),
            daily_count=self.settings.daily_challenge_count,
            weekly_count=self.settings.weekly_challenge_count,
        )

    async def list_challenges(self, user_id: int, now: datetime | None = None) -> dict:
        _, local_dt = await self._user_clock(user_id, now)
        return await challenge_service.list_challenges(self.db, user_id, local_dt.date())

    async def claim_challenge(self, user_id: int, challenge_id: int) -> dict:
        bonus_xp, ledger = await challenge_service.claim_reward(self.db, user_id, challenge_id)
        await emit_level_up(self.redis, user_id, ledger)
        logger.info("challenge_claimed", user_id=user_id, challenge_id=challenge_id, bonus_xp=bonus_xp)
        return {"challenge_id": challenge_id, "bonus_xp": bonus_xp, **_ledger_summary(ledger)}

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    async def get_next_badge_progress(
        self, user_id: int, limit: int | None = None, now: datetime | None = None
    ) -> list[dict]:
        _, local_dt = await self._user_clock(user_id, now)
        return await badge_service.get_next_badge_progress(
            self.db, user_id, local_dt.date(), limit if limit is not None else self.settings.next_badges_limit
        )

    async def get_user_streaks(self, user_id: int, now: datetime | None = None) -> list[dict]:
        tz_name, _ = await self._user_clock(user_id, now)
        return await streak_service.get_user_streaks(
            self.db,
            user_id,
            tz_name,
            now,
            self.settings.streak_at_risk_start_hour,
            self.settings.streak_at_risk_end_hour,
        )

    async def get_user_stats(self, user_id: int, now: datetime | None = None) -> dict:
        """Dashboard summary: points, level, streaks, recent badges, today and this week."""
        user = await get_user(self.db, user_id)
        total_points = user.total_points
        level_info = compute_level(total_points)
        local_dt = local_now(user.timezone, now)
        today = local_dt.date()
        week_start, week_end = get_week_bounds(today)

        return {
            "total_points": total_points,
            "level": level_info["level"],
            "level_info": level_info,
            "streaks": await self.get_user_streaks(user_id, now),
            "recent_badges": await badge_service.get_earned_badges(
                self.db, user_id, limit=self.settings.recent_badges_limit
            ),
            "today": await goal_hierarchy.today_summary(self.db, user_id, today),
            "this_week": {
                "tasks_completed": await goal_hierarchy.count_completed_tasks(self.db, user_id, week_start, week_end),
                "points_earned": await goal_hierarchy.points_from_tasks(self.db, user_id, week_start, week_end),
            },
        }

    async def get_alignment_trend(self, user_id: int, weeks: int = 12, now: datetime | None = None) -> dict:
        """Weekly goal-alignment rate for the last ``weeks`` weeks, oldest first."""
        _, local_dt = await self._user_clock(user_id, now)
        current_week_start, _ = get_week_bounds(local_dt.date())

        history = []
        for offset in range(weeks - 1, -1, -1):
            start = current_week_start - timedelta(weeks=offset)
            end = start + timedelta(days=6)
            alignment = await goal_hierarchy.alignment_rate(self.db, user_id, start, end)
            history.append({"week_start": start, "week_end": end, **alignment})

        active = [w["rate"] for w in history if w["total_completed"]]
        recent = [w["rate"] for w in history[-4:] if w["total_completed"]]
        older = [w["rate"] for w in history[:-4] if w["total_completed"]]
        recent_avg = round(sum(recent) / len(recent)) if recent else 0
        older_avg = round(sum(older) / len(older)) if older else 0
        trend = recent_avg - older_avg if recent and older else 0
        return {
            "weeks": history,
            "overall_average": round(sum(active) / len(active)) if active else 0,
            "recent_average": recent_avg,
            "trend": trend,
            "trend_label": "improving" if trend > 5 else "declining" if trend < -5 else "stable",
        }
