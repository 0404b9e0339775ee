"""Points ledger: atomic point deltas with level-up detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from goalix.db.models import PointsLedger, User
from goalix.exceptions import NotFound
from goalix.progression.events import LEVEL_UP_CHANNEL, publish_event
from goalix.progression.levels import level_for, level_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerResult:
    amount: int
    old_total: int
    new_total: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


async def get_user(db: AsyncSession, user_id: int) -> User:
    """Fetch a user or raise NotFound."""
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound(f"User {user_id} not found")
    return user


async def apply_points(
    db: AsyncSession,
    user_id: int,
    amount: int,
    source: str,
    source_id: str | None,
    description: str,
) -> LedgerResult:
    """Apply a signed point delta. Does not commit.

    The before/after totals both come from the single UPDATE ... RETURNING
    that applies the delta, so two racing awards each see their own crossing.
    """
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_points=User.total_points + amount)
        .returning(User.total_points)
    )
    new_total = result.scalar_one_or_none()
    if new_total is None:
        raise NotFound(f"User {user_id} not found")

    old_total = new_total - amount
    old_level = level_for(old_total)
    new_level = level_for(new_total)

    # Cached projection, rewritten from the authoritative total on every write
    await db.execute(update(User).where(User.id == user_id).values(level=new_level))

    db.add(PointsLedger(
        user_id=user_id,
        amount=amount,
        source=source,
        source_id=source_id,
        description=description,
        created_at=datetime.now(timezone.utc),
    ))
    await db.flush()

    ledger = LedgerResult(
        amount=amount,
        old_total=old_total,
        new_total=new_total,
        old_level=old_level,
        new_level=new_level,
    )
    if ledger.leveled_up:
        logger.info("User %s leveled up %d -> %d", user_id, old_level, new_level)
    return ledger


async def emit_level_up(redis: object, user_id: int, ledger: LedgerResult) -> None:
    """Broadcast a level-up after the ledger write has been committed."""
    if not ledger.leveled_up:
        return
    await publish_event(redis, LEVEL_UP_CHANNEL, {
        "user_id": user_id,
        "old_level": ledger.old_level,
        "new_level": ledger.new_level,
        "name": level_name(ledger.new_level),
    })


async def get_ledger_entries(
    db: AsyncSession,
    user_id: int,
    limit: int = 50,
) -> list[PointsLedger]:
    """Most recent ledger entries for a user."""
    result = await db.execute(
        select(PointsLedger)
        .where(PointsLedger.user_id == user_id)
        .order_by(PointsLedger.id.desc())
        .limit(limit)
    )
    return list(result.scalars())
