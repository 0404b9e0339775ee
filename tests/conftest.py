"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.database import close_db, create_all, get_session, init_db
from goalix.db.models import Goal, Streak, Task, User
from goalix.main import create_app

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test with all tables created."""
    await init_db(TEST_DATABASE_URL)
    await create_all()
    async for session in get_session():
        yield session
        break
    await close_db()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client sharing the test database. Redis stays uninitialised."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: create and commit a user."""

    async def _make(timezone: str = "UTC", total_points: int = 0, level: int = 1) -> User:
        user = User(display_name="tester", timezone=timezone, total_points=total_points, level=level)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def user(make_user) -> User:
    return await make_user()


@pytest.fixture
def make_goal(db_session: AsyncSession):
    """Factory: create and commit a goal at any hierarchy level."""

    async def _make(
        user_id: int,
        level: str = "WEEKLY",
        category: str = "OTHER",
        status: str = "ACTIVE",
        parent_id: int | None = None,
        title: str = "Goal",
    ) -> Goal:
        goal = Goal(
            user_id=user_id,
            level=level,
            category=category,
            status=status,
            parent_id=parent_id,
            title=title,
        )
        db_session.add(goal)
        await db_session.commit()
        return goal

    return _make


@pytest.fixture
def make_task(db_session: AsyncSession):
    """Factory: create and commit a task."""

    async def _make(
        user_id: int,
        scheduled_date: date,
        priority: str = "PRIMARY",
        goal_id: int | None = None,
        status: str = "PENDING",
        points_earned: int = 0,
        title: str = "Task",
    ) -> Task:
        task = Task(
            user_id=user_id,
            scheduled_date=scheduled_date,
            priority=priority,
            goal_id=goal_id,
            status=status,
            points_earned=points_earned,
            title=title,
        )
        db_session.add(task)
        await db_session.commit()
        return task

    return _make


@pytest.fixture
def make_streak(db_session: AsyncSession):
    """Factory: seed a streak row."""

    async def _make(
        user_id: int,
        streak_type: str,
        current_count: int,
        last_action_at: date | None,
        longest_count: int | None = None,
    ) -> Streak:
        streak = Streak(
            user_id=user_id,
            streak_type=streak_type,
            current_count=current_count,
            longest_count=longest_count if longest_count is not None else current_count,
            last_action_at=last_action_at,
            is_active=True,
        )
        db_session.add(streak)
        await db_session.commit()
        return streak

    return _make
