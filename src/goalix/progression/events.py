"""Best-effort broadcast of progression events over Redis pub/sub.

Consumers (notification delivery, activity feeds) live outside this service.
"""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"
BADGE_EARNED_CHANNEL = "pubsub:badge_earned"
STREAK_MILESTONE_CHANNEL = "pubsub:streak_milestone"
CHALLENGE_COMPLETED_CHANNEL = "pubsub:challenge_completed"


async def publish_event(redis: object, channel: str, payload: dict) -> None:
    """Publish a JSON payload. A missing or failing Redis never affects the caller."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[union-attr]
    except Exception:
        logger.warning("Failed to publish %s event", channel, exc_info=True)
