import datetime
import os
import typing
import pytest
import pytest_asyncio
import sqlalchemy
import sqlalchemy.ext.asyncio
import sqlalchemy.pool
import bookbuddy.clock
import bookbuddy.models.base
import bookbuddy.models.book
import bookbuddy.models.goal
import bookbuddy.models.goal_progress
import bookbuddy.models.reading_activity
import bookbuddy.models.reading_session
import bookbuddy.models.status_transition
import bookbuddy.services.book_service as book_service
import bookbuddy.services.goal_progress_service as goal_progress_service
import bookbuddy.services.goal_service as goal_service
from tests.conftest import NOW

TEST_DATABASE_URL = os.environ.get("BOOKBUDDY_TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="BOOKBUDDY_TEST_DATABASE_URL is not set"),
]

USER_ID = 10


@pytest_asyncio.fixture
async def db_session() -> typing.AsyncGenerator[sqlalchemy.ext.asyncio.AsyncSession, None]:
    engine = sqlalchemy.ext.asyncio.create_async_engine(
        TEST_DATABASE_URL, poolclass=sqlalchemy.pool.NullPool
    )
    async with engine.begin() as conn:
        await conn.execute(sqlalchemy.text(f"DROP SCHEMA IF EXISTS {bookbuddy.models.base.SCHEMA} CASCADE"))
        await conn.execute(sqlalchemy.text(f"CREATE SCHEMA {bookbuddy.models.base.SCHEMA}"))
        await conn.run_sync(bookbuddy.models.base.Base.metadata.create_all)

    async_session = sqlalchemy.ext.asyncio.async_sessionmaker(
        engine, class_=sqlalchemy.ext.asyncio.AsyncSession, expire_on_commit=False
    )
    async with async_session() as session:
        yield session

    await engine.dispose()


async def reload(session, row):
    await session.refresh(row)
    return row


async def add_read_book(session, clock, title):
    return await book_service.add_book(
        session, USER_ID, title, ["Frank Herbert"], status="read", page_count=300, clock=clock
    )


class TestCompletionFanOut:
    @pytest.mark.asyncio
    async def test_book_counts_once_toward_every_open_goal(self, db_session):
        clock = bookbuddy.clock.FixedClock(NOW)
        small = await goal_service.create_goal(db_session, USER_ID, "One book", 1, 30, "UTC", clock=clock)
        large = await goal_service.create_goal(db_session, USER_ID, "Three books", 3, 30, "UTC", clock=clock)
        expired = bookbuddy.models.goal.Goal(
            user_id=USER_ID,
            name="Old goal",
            target_count=5,
            status=bookbuddy.models.goal.GOAL_STATUS_EXPIRED,
            deadline_at_utc=NOW - datetime.timedelta(days=1),
            deadline_timezone="UTC",
        )
        db_session.add(expired)
        await db_session.commit()

        first = await add_read_book(db_session, clock, "Dune")

        small = await reload(db_session, small)
        large = await reload(db_session, large)
        expired = await reload(db_session, expired)
        assert (small.progress_count, small.bonus_count, small.status) == (1, 0, "completed")
        assert small.completed_at == NOW
        assert (large.progress_count, large.status) == (1, "active")
        assert large.progress_percentage == 33
        assert expired.progress_count == 0

        clock.advance(hours=1)
        await add_read_book(db_session, clock, "Dune Messiah")

        small = await reload(db_session, small)
        assert (small.progress_count, small.bonus_count, small.status) == (2, 1, "completed")
        assert small.completed_at == NOW
        assert small.progress_percentage == 100
        assert small.bonus_count == max(0, small.progress_count - small.target_count)

        again = await goal_progress_service.on_book_completed(db_session, USER_ID, first.book_id, clock=clock)
        await db_session.commit()
        assert again == []
        assert (await reload(db_session, small)).progress_count == 2


class TestReversion:
    @pytest.mark.asyncio
    async def test_unfinishing_reopens_goal_before_deadline(self, db_session):
        clock = bookbuddy.clock.FixedClock(NOW)
        goal = await goal_service.create_goal(db_session, USER_ID, "One book", 1, 30, "UTC", clock=clock)
        book = await add_read_book(db_session, clock, "Dune")

        clock.advance(days=1)
        await book_service.update_status(db_session, USER_ID, book.book_id, "reading", clock=clock)

        goal = await reload(db_session, goal)
        assert (goal.progress_count, goal.bonus_count, goal.status) == (0, 0, "active")
        assert goal.completed_at is None

        links = await db_session.execute(sqlalchemy.select(sqlalchemy.func.count()).select_from(
            bookbuddy.models.goal_progress.GoalProgress
        ))
        assert links.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_completed_goal_stays_completed_after_deadline(self, db_session):
        clock = bookbuddy.clock.FixedClock(NOW)
        goal = await goal_service.create_goal(db_session, USER_ID, "One book", 1, 2, "UTC", clock=clock)
        book = await add_read_book(db_session, clock, "Dune")

        clock.advance(days=10)
        await book_service.update_status(db_session, USER_ID, book.book_id, "want-to-read", clock=clock)

        goal = await reload(db_session, goal)
        assert goal.status == "completed"
        assert goal.progress_count == 0
        assert goal.completed_at == NOW

    @pytest.mark.asyncio
    async def test_bonus_shrinks_before_status_changes(self, db_session):
        clock = bookbuddy.clock.FixedClock(NOW)
        goal = await goal_service.create_goal(db_session, USER_ID, "One book", 1, 30, "UTC", clock=clock)
        await add_read_book(db_session, clock, "Dune")
        second = await add_read_book(db_session, clock, "Dune Messiah")

        await book_service.delete_book(db_session, USER_ID, second.book_id, clock=clock)

        goal = await reload(db_session, goal)
        assert (goal.progress_count, goal.bonus_count, goal.status) == (1, 0, "completed")
