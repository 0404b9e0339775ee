"""Integration tests for progression API endpoints."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from goalix.progression.local_time import local_today


def _auth(user_id: int) -> dict[str, str]:
    return {"X-User-Id": str(user_id)}


class TestPublicEndpoints:
    """Catalog endpoints need no identity."""

    @pytest.mark.asyncio
    async def test_list_levels(self, client: AsyncClient):
        response = await client.get("/api/v1/levels")
        assert response.status_code == 200
        levels = response.json()["levels"]
        assert len(levels) == 10
        assert levels[0] == {"level": 1, "name": "Beginner", "points_required": 0}
        assert levels[-1]["name"] == "Fastlaner"

    @pytest.mark.asyncio
    async def test_list_badges(self, client: AsyncClient):
        response = await client.get("/api/v1/badges")
        assert response.status_code == 200
        badges = response.json()["badges"]
        assert len(badges) == 12
        assert set(badges[0]) == {"slug", "name", "description", "category", "target"}


class TestIdentity:
    """Caller identity comes from the gateway header."""

    @pytest.mark.asyncio
    async def test_missing_header(self, client: AsyncClient):
        response = await client.get("/api/v1/user/stats")
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_header(self, client: AsyncClient):
        response = await client.get("/api/v1/user/stats", headers={"X-User-Id": "abc"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        response = await client.get("/api/v1/user/stats", headers=_auth(9999))
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"


class TestTaskEndpoints:
    """Complete and uncomplete over HTTP."""

    @pytest.mark.asyncio
    async def test_complete_and_uncomplete(self, client: AsyncClient, user, make_task):
        task = await make_task(user.id, local_today("UTC"), priority="MIT")

        response = await client.post(f"/api/v1/tasks/{task.id}/complete", headers=_auth(user.id))
        assert response.status_code == 200
        data = response.json()
        assert data["points_earned"] == 100
        assert data["streak"]["current_count"] == 1
        assert "first_blood" in [b["slug"] for b in data["badges_earned"]]

        response = await client.post(f"/api/v1/tasks/{task.id}/uncomplete", headers=_auth(user.id))
        assert response.status_code == 200
        assert response.json()["new_total"] == 0

    @pytest.mark.asyncio
    async def test_double_complete_conflict(self, client: AsyncClient, user, make_task):
        task = await make_task(user.id, local_today("UTC"))
        await client.post(f"/api/v1/tasks/{task.id}/complete", headers=_auth(user.id))

        response = await client.post(f"/api/v1/tasks/{task.id}/complete", headers=_auth(user.id))
        assert response.status_code == 409
        assert response.json()["error"] == "IllegalStateTransition"

    @pytest.mark.asyncio
    async def test_unknown_task(self, client: AsyncClient, user):
        response = await client.post("/api/v1/tasks/424242/complete", headers=_auth(user.id))
        assert response.status_code == 404


class TestKaizenAndRituals:
    """Reflections and rituals over HTTP."""

    @pytest.mark.asyncio
    async def test_submit_kaizen(self, client: AsyncClient, user):
        response = await client.post(
            "/api/v1/kaizen", json={"health": True, "career": True, "notes": "Walked"}, headers=_auth(user.id)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["points_earned"] == 10
        assert data["areas_checked"] == 2

    @pytest.mark.asyncio
    async def test_notes_too_long(self, client: AsyncClient, user):
        response = await client.post("/api/v1/kaizen", json={"notes": "x" * 2001}, headers=_auth(user.id))
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_record_ritual(self, client: AsyncClient, user):
        response = await client.post("/api/v1/rituals/MONTHLY_REVIEW", headers=_auth(user.id))
        assert response.status_code == 200
        assert response.json()["points_awarded"] == 200

    @pytest.mark.asyncio
    async def test_unknown_ritual(self, client: AsyncClient, user):
        response = await client.post("/api/v1/rituals/YEARLY_REVIEW", headers=_auth(user.id))
        assert response.status_code == 422


class TestUserEndpoints:
    """Read-side endpoints."""

    @pytest.mark.asyncio
    async def test_stats(self, client: AsyncClient, user):
        response = await client.get("/api/v1/user/stats", headers=_auth(user.id))
        assert response.status_code == 200
        data = response.json()
        assert data["total_points"] == 0
        assert data["level_info"]["name"] == "Beginner"
        assert len(data["streaks"]) == 5

    @pytest.mark.asyncio
    async def test_badges_with_status(self, client: AsyncClient, user, make_task):
        task = await make_task(user.id, local_today("UTC"))
        await client.post(f"/api/v1/tasks/{task.id}/complete", headers=_auth(user.id))

        response = await client.get("/api/v1/user/badges", headers=_auth(user.id))
        data = response.json()
        assert data["total_available"] == 12
        assert data["total_earned"] == 1

    @pytest.mark.asyncio
    async def test_next_badge_limit(self, client: AsyncClient, user):
        response = await client.get("/api/v1/user/next-badge?limit=5", headers=_auth(user.id))
        assert response.status_code == 200
        assert len(response.json()["badges"]) == 5

    @pytest.mark.asyncio
    async def test_streaks(self, client: AsyncClient, user):
        response = await client.get("/api/v1/user/streaks", headers=_auth(user.id))
        assert response.status_code == 200
        assert len(response.json()["streaks"]) == 5

    @pytest.mark.asyncio
    async def test_alignment(self, client: AsyncClient, user):
        response = await client.get("/api/v1/user/alignment?weeks=4", headers=_auth(user.id))
        assert response.status_code == 200
        data = response.json()
        assert len(data["weeks"]) == 4
        assert data["trend_label"] == "stable"

    @pytest.mark.asyncio
    async def test_points_history(self, client: AsyncClient, user):
        await client.post("/api/v1/rituals/DAILY_PLANNING", headers=_auth(user.id))

        response = await client.get("/api/v1/user/points/history", headers=_auth(user.id))
        entries = response.json()["entries"]
        assert len(entries) == 1
        assert entries[0]["amount"] == 50
        assert entries[0]["source"] == "ritual"

    @pytest.mark.asyncio
    async def test_goal_event(self, client: AsyncClient, user, make_goal):
        goal = await make_goal(user.id, level="VISION")
        response = await client.post(f"/api/v1/goals/{goal.id}/events", json={}, headers=_auth(user.id))
        assert response.status_code == 200
        assert [b["slug"] for b in response.json()["badges_earned"]] == ["dream_starter"]


class TestChallengeEndpoints:
    """Challenge generation and claiming over HTTP."""

    @pytest.mark.asyncio
    async def test_ensure_is_idempotent(self, client: AsyncClient, user):
        first = await client.post("/api/v1/challenges/ensure", headers=_auth(user.id))
        second = await client.post("/api/v1/challenges/ensure", headers=_auth(user.id))

        assert first.status_code == 200
        assert len(first.json()["daily"]) == 3
        assert len(first.json()["weekly"]) == 3
        assert [c["id"] for c in second.json()["daily"]] == [c["id"] for c in first.json()["daily"]]

    @pytest.mark.asyncio
    async def test_list_empty(self, client: AsyncClient, user):
        response = await client.get("/api/v1/challenges", headers=_auth(user.id))
        assert response.json() == {"daily": [], "weekly": []}

    @pytest.mark.asyncio
    async def test_claim_unknown(self, client: AsyncClient, user):
        response = await client.post("/api/v1/challenges/777/claim", headers=_auth(user.id))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_claim_incomplete_conflict(self, client: AsyncClient, user):
        ensured = await client.post("/api/v1/challenges/ensure", headers=_auth(user.id))
        challenge_id = ensured.json()["daily"][0]["id"]

        response = await client.post(f"/api/v1/challenges/{challenge_id}/claim", headers=_auth(user.id))
        assert response.status_code == 409
