"""add reading sessions and status transitions

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from alembic import op

revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS bookbuddy.reading_sessions (
            session_id          BIGSERIAL PRIMARY KEY,
            user_id             BIGINT NOT NULL,
            book_id             BIGINT REFERENCES bookbuddy.books (book_id) ON DELETE SET NULL,
            started_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            ended_at            TIMESTAMPTZ,
            duration_minutes    INTEGER,
            pages_read          INTEGER,
            notes               TEXT,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT check_reading_sessions_duration
                CHECK (duration_minutes IS NULL OR duration_minutes >= 0),
            CONSTRAINT check_reading_sessions_pages
                CHECK (pages_read IS NULL OR pages_read >= 0)
        )
    """)

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_reading_sessions_user_started "
        "ON bookbuddy.reading_sessions (user_id, started_at)"
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_reading_sessions_book ON bookbuddy.reading_sessions (book_id)")
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS uq_reading_sessions_user_active "
        "ON bookbuddy.reading_sessions (user_id) WHERE ended_at IS NULL"
    )

    op.execute("""
        CREATE TRIGGER trig_reading_sessions_updated_at
            BEFORE UPDATE ON bookbuddy.reading_sessions
            FOR EACH ROW
            EXECUTE FUNCTION bookbuddy.update_updated_at()
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS bookbuddy.status_transitions (
            transition_id       BIGSERIAL PRIMARY KEY,
            book_id             BIGINT NOT NULL REFERENCES bookbuddy.books (book_id) ON DELETE CASCADE,
            user_id             BIGINT NOT NULL,
            from_status         VARCHAR(20),
            to_status           VARCHAR(20) NOT NULL,
            transitioned_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT check_status_transitions_from
                CHECK (from_status IS NULL OR from_status IN ('want-to-read', 'reading', 'read')),
            CONSTRAINT check_status_transitions_to
                CHECK (to_status IN ('want-to-read', 'reading', 'read'))
        )
    """)

    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_status_transitions_book "
        "ON bookbuddy.status_transitions (book_id, transitioned_at)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bookbuddy.status_transitions CASCADE")
    op.execute("DROP TRIGGER IF EXISTS trig_reading_sessions_updated_at ON bookbuddy.reading_sessions")
    op.execute("DROP TABLE IF EXISTS bookbuddy.reading_sessions CASCADE")
