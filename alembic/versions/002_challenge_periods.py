"""Challenge period markers.

One row per (user, challenge type, period) so that concurrent generation of
the same period's set conflicts regardless of which templates were picked.

Revision ID: 002_challenge_periods
Revises: 001_progression_tables
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_challenge_periods"
down_revision: str | None = "001_progression_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_periods (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(8) NOT NULL,
            period_start DATE NOT NULL,
            created_at TIMESTAMPTZ,
            CONSTRAINT uq_challenge_periods_user_type_period UNIQUE(user_id, type, period_start)
        )
    """)

    # Backfill markers for sets generated before this table existed
    op.execute("""
        INSERT INTO challenge_periods (user_id, type, period_start, created_at)
        SELECT user_id, type, period_start, MIN(created_at)
        FROM user_challenges
        GROUP BY user_id, type, period_start
        ON CONFLICT DO NOTHING
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS challenge_periods CASCADE")
