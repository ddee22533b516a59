"""create bookbuddy schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op

revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute('CREATE SCHEMA IF NOT EXISTS bookbuddy')

    op.execute("""
        CREATE TABLE IF NOT EXISTS bookbuddy.books (
            book_id         BIGSERIAL PRIMARY KEY,
            user_id         BIGINT NOT NULL,
            title           VARCHAR(500) NOT NULL,
            author          VARCHAR(200) NOT NULL,
            authors         JSONB NOT NULL DEFAULT '[]'::jsonb,
            isbn            VARCHAR(20),
            isbn13          VARCHAR(20),
            external_id     VARCHAR(100),
            publisher       VARCHAR(200),
            page_count      INTEGER,
            genres          JSONB NOT NULL DEFAULT '[]'::jsonb,
            status          VARCHAR(20) NOT NULL DEFAULT 'want-to-read',
            current_page    INTEGER DEFAULT 0,
            rating          SMALLINT,
            review          TEXT,
            finished_at     TIMESTAMPTZ,
            added_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT check_books_status
                CHECK (status IN ('want-to-read', 'reading', 'read')),
            CONSTRAINT check_books_rating_range
                CHECK (rating IS NULL OR (rating >= 1 AND rating <= 5)),
            CONSTRAINT check_books_rating_requires_read
                CHECK (rating IS NULL OR status = 'read'),
            CONSTRAINT check_books_current_page
                CHECK (current_page IS NULL OR current_page >= 0)
        )
    """)

    op.execute("CREATE INDEX IF NOT EXISTS idx_books_user_status ON bookbuddy.books (user_id, status)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_books_user_isbn ON bookbuddy.books (user_id, isbn)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_books_user_isbn13 ON bookbuddy.books (user_id, isbn13)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_books_user_external_id ON bookbuddy.books (user_id, external_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS bookbuddy.goals (
            goal_id             BIGSERIAL PRIMARY KEY,
            user_id             BIGINT NOT NULL,
            name                VARCHAR(255) NOT NULL,
            target_count        INTEGER NOT NULL,
            progress_count      INTEGER NOT NULL DEFAULT 0,
            bonus_count         INTEGER NOT NULL DEFAULT 0,
            status              VARCHAR(20) NOT NULL DEFAULT 'active',
            deadline_at_utc     TIMESTAMPTZ NOT NULL,
            deadline_timezone   VARCHAR(64) NOT NULL,
            completed_at        TIMESTAMPTZ,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT check_goals_status
                CHECK (status IN ('active', 'completed', 'expired')),
            CONSTRAINT check_goals_target_count
                CHECK (target_count >= 1 AND target_count <= 9999),
            CONSTRAINT check_goals_progress_count CHECK (progress_count >= 0),
            CONSTRAINT check_goals_bonus_count CHECK (bonus_count >= 0)
        )
    """)

    op.execute("CREATE INDEX IF NOT EXISTS idx_goals_user_status ON bookbuddy.goals (user_id, status)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_goals_user_deadline ON bookbuddy.goals (user_id, deadline_at_utc)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS bookbuddy.goal_progress (
            goal_id             BIGINT NOT NULL REFERENCES bookbuddy.goals (goal_id) ON DELETE CASCADE,
            book_id             BIGINT NOT NULL REFERENCES bookbuddy.books (book_id) ON DELETE CASCADE,
            applied_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            applied_from_status VARCHAR(20),
            PRIMARY KEY (goal_id, book_id)
        )
    """)

    op.execute("CREATE INDEX IF NOT EXISTS idx_goal_progress_book ON bookbuddy.goal_progress (book_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS bookbuddy.reading_activity (
            activity_id     BIGSERIAL PRIMARY KEY,
            user_id         BIGINT NOT NULL,
            book_id         BIGINT REFERENCES bookbuddy.books (book_id) ON DELETE SET NULL,
            activity_date   DATE NOT NULL,
            pages_read      INTEGER NOT NULL DEFAULT 0,
            minutes_read    INTEGER NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_reading_activity_user_date UNIQUE (user_id, activity_date),
            CONSTRAINT check_reading_activity_amounts
                CHECK (pages_read >= 0 AND minutes_read >= 0)
        )
    """)

    op.execute("""
        CREATE OR REPLACE FUNCTION bookbuddy.update_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
    """)

    for table in ("books", "goals", "reading_activity"):
        op.execute(f"""
            CREATE TRIGGER trig_{table}_updated_at
                BEFORE UPDATE ON bookbuddy.{table}
                FOR EACH ROW
                EXECUTE FUNCTION bookbuddy.update_updated_at()
        """)


def downgrade() -> None:
    for table in ("reading_activity", "goals", "books"):
        op.execute(f"DROP TRIGGER IF EXISTS trig_{table}_updated_at ON bookbuddy.{table}")
    op.execute("DROP FUNCTION IF EXISTS bookbuddy.update_updated_at()")

    op.execute("DROP TABLE IF EXISTS bookbuddy.reading_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS bookbuddy.goal_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS bookbuddy.goals CASCADE")
    op.execute("DROP TABLE IF EXISTS bookbuddy.books CASCADE")
    op.execute("DROP SCHEMA IF EXISTS bookbuddy")
