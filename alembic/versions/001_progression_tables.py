"""Progression engine tables.

Creates users, goals and tasks (when the goal/task subsystem has not already
created them) plus streaks, earned_badges, kaizen_checkins, ritual_logs,
user_challenges, challenge_contributions and points_ledger.

Revision ID: 001_progression_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            display_name VARCHAR(64),
            timezone VARCHAR(64) NOT NULL DEFAULT 'UTC',
            total_points BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Goals (all hierarchy levels) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS goals (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            parent_id BIGINT REFERENCES goals(id) ON DELETE SET NULL,
            level VARCHAR(16) NOT NULL,
            title VARCHAR(256) NOT NULL,
            category VARCHAR(32) NOT NULL DEFAULT 'OTHER',
            status VARCHAR(16) NOT NULL DEFAULT 'ACTIVE',
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_goals_user_level
        ON goals(user_id, level, status)
    """)

    # --- Tasks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            goal_id BIGINT REFERENCES goals(id) ON DELETE SET NULL,
            title VARCHAR(256) NOT NULL,
            priority VARCHAR(16) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'PENDING',
            scheduled_date DATE NOT NULL,
            completed_at TIMESTAMPTZ,
            points_earned INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_tasks_user_date
        ON tasks(user_id, scheduled_date)
    """)

    # --- Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS streaks (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            streak_type VARCHAR(32) NOT NULL,
            current_count INTEGER NOT NULL DEFAULT 0,
            longest_count INTEGER NOT NULL DEFAULT 0,
            last_action_at DATE,
            is_active BOOLEAN NOT NULL DEFAULT false,
            updated_at TIMESTAMPTZ,
            CONSTRAINT uq_streaks_user_type UNIQUE(user_id, streak_type)
        )
    """)

    # --- Earned Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS earned_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_slug VARCHAR(64) NOT NULL,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            metadata JSONB NOT NULL DEFAULT '{}',
            CONSTRAINT uq_earned_badges_user_slug UNIQUE(user_id, badge_slug)
        )
    """)

    # --- Kaizen Check-ins ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS kaizen_checkins (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            checkin_date DATE NOT NULL,
            health BOOLEAN NOT NULL DEFAULT false,
            relationships BOOLEAN NOT NULL DEFAULT false,
            wealth BOOLEAN NOT NULL DEFAULT false,
            career BOOLEAN NOT NULL DEFAULT false,
            personal_growth BOOLEAN NOT NULL DEFAULT false,
            lifestyle BOOLEAN NOT NULL DEFAULT false,
            notes TEXT,
            points_earned INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ,
            CONSTRAINT uq_kaizen_checkins_user_date UNIQUE(user_id, checkin_date)
        )
    """)

    # --- Ritual Logs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS ritual_logs (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            ritual VARCHAR(32) NOT NULL,
            period_start DATE NOT NULL,
            points_earned INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ,
            CONSTRAINT uq_ritual_logs_user_period UNIQUE(user_id, ritual, period_start)
        )
    """)

    # --- User Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_challenges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(8) NOT NULL,
            category VARCHAR(16) NOT NULL,
            slug VARCHAR(64) NOT NULL,
            title VARCHAR(128) NOT NULL,
            description VARCHAR(256) NOT NULL,
            period_start DATE NOT NULL,
            period_end DATE NOT NULL,
            target_value INTEGER NOT NULL,
            current_value INTEGER NOT NULL DEFAULT 0,
            bonus_xp INTEGER NOT NULL DEFAULT 0,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            xp_claimed BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ,
            CONSTRAINT uq_user_challenges_user_period_slug UNIQUE(user_id, type, slug, period_start)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_challenges_open
        ON user_challenges(user_id, type, period_start)
        WHERE is_completed = false
    """)

    # --- Challenge Contributions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_contributions (
            id BIGSERIAL PRIMARY KEY,
            user_challenge_id BIGINT NOT NULL REFERENCES user_challenges(id) ON DELETE CASCADE,
            source_key VARCHAR(128) NOT NULL,
            created_at TIMESTAMPTZ,
            CONSTRAINT uq_challenge_contributions_source UNIQUE(user_challenge_id, source_key)
        )
    """)

    # --- Points Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS points_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            created_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_points_ledger_user
        ON points_ledger(user_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS points_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS challenge_contributions CASCADE")
    op.execute("DROP TABLE IF EXISTS user_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS ritual_logs CASCADE")
    op.execute("DROP TABLE IF EXISTS kaizen_checkins CASCADE")
    op.execute("DROP TABLE IF EXISTS earned_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS streaks CASCADE")
