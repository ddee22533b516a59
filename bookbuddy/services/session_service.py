import datetime
import logging
import math
import typing
import pydantic
import sqlalchemy
import sqlalchemy.exc
import sqlalchemy.ext.asyncio
import bookbuddy.clock
import bookbuddy.errors
import bookbuddy.goodreads.validation
import bookbuddy.models.reading_session
import bookbuddy.services.activity_service
import bookbuddy.services.book_service

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 2000

_ACTIVE_SESSION_MESSAGE = "You already have an active reading session. Please end it before starting a new one."
_ENDED_SESSION_MESSAGE = "This session has already ended"


class SessionStatistics(pydantic.BaseModel):
    total_sessions: int
    total_minutes: int
    total_pages: int
    average_session_length: float
    longest_session: int
    sessions_this_week: int
    minutes_this_week: int


class UserSessions(typing.NamedTuple):
    sessions: typing.List[bookbuddy.models.reading_session.ReadingSession]
    active_session: typing.Optional[bookbuddy.models.reading_session.ReadingSession]
    statistics: SessionStatistics
    today_minutes: int
    week_minutes: int


def session_duration_minutes(started_at: datetime.datetime, ended_at: datetime.datetime) -> int:
    """Whole minutes between two instants, rounded half up and never negative."""
    seconds = (ended_at - started_at).total_seconds()
    return max(0, math.floor(seconds / 60 + 0.5))


def start_of_day(now: datetime.datetime) -> datetime.datetime:
    day = now.astimezone(datetime.timezone.utc).date()
    return datetime.datetime(day.year, day.month, day.day, tzinfo=datetime.timezone.utc)


def start_of_week(now: datetime.datetime) -> datetime.datetime:
    """Midnight UTC of the Sunday that opens the week containing ``now``."""
    today = start_of_day(now)
    return today - datetime.timedelta(days=(today.weekday() + 1) % 7)


async def get_active_session(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int
) -> typing.Optional[bookbuddy.models.reading_session.ReadingSession]:
    reading_session = bookbuddy.models.reading_session.ReadingSession
    stmt = sqlalchemy.select(reading_session).where(
        reading_session.user_id == user_id,
        reading_session.ended_at.is_(None)
    ).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_reading_session(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    session_id: int
) -> bookbuddy.models.reading_session.ReadingSession:
    stmt = sqlalchemy.select(bookbuddy.models.reading_session.ReadingSession).where(
        bookbuddy.models.reading_session.ReadingSession.session_id == session_id
    )
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise bookbuddy.errors.NotFoundError("ReadingSession", session_id)
    if row.user_id != user_id:
        raise bookbuddy.errors.ForbiddenError("You do not have permission to access this reading session")
    return row


async def start_session(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: typing.Optional[int] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.reading_session.ReadingSession:
    if not user_id:
        raise bookbuddy.errors.ValidationError("User ID is required")

    if book_id is not None:
        await bookbuddy.services.book_service.get_book(session, user_id, book_id)

    if await get_active_session(session, user_id) is not None:
        raise bookbuddy.errors.InvalidStateError(_ACTIVE_SESSION_MESSAGE)

    row = bookbuddy.models.reading_session.ReadingSession(
        user_id=user_id,
        book_id=book_id,
        started_at=clock.now()
    )
    session.add(row)
    try:
        await session.commit()
    except sqlalchemy.exc.IntegrityError:
        # uq_reading_sessions_user_active lost a race with another start
        await session.rollback()
        raise bookbuddy.errors.InvalidStateError(_ACTIVE_SESSION_MESSAGE)
    await session.refresh(row)

    logger.info(f"User {user_id} started reading session {row.session_id}")
    return row


async def end_session(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    session_id: int,
    pages_read: typing.Optional[int] = None,
    notes: typing.Optional[str] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.reading_session.ReadingSession:
    """Close an open session and add its minutes and pages to the day's reading activity."""
    if pages_read is not None:
        if isinstance(pages_read, bool) or not isinstance(pages_read, int) or pages_read < 0:
            raise bookbuddy.errors.ValidationError("Pages read must be a non-negative whole number")

    if notes is not None:
        notes_check = bookbuddy.goodreads.validation.validate_text_length(notes, "Notes", MAX_NOTES_LENGTH)
        if not notes_check.is_valid:
            raise bookbuddy.errors.ValidationError(notes_check.error)
        notes = notes_check.value

    row = await get_reading_session(session, user_id, session_id)
    if row.ended_at is not None:
        raise bookbuddy.errors.InvalidStateError(_ENDED_SESSION_MESSAGE)

    now = clock.now()
    duration = session_duration_minutes(row.started_at, now)

    reading_session = bookbuddy.models.reading_session.ReadingSession
    stmt = sqlalchemy.update(reading_session).where(
        reading_session.session_id == session_id,
        reading_session.ended_at.is_(None)
    ).values(
        ended_at=now,
        duration_minutes=duration,
        pages_read=pages_read,
        notes=notes,
        updated_at=sqlalchemy.func.now()
    ).returning(reading_session).execution_options(
        synchronize_session=False,
        populate_existing=True
    )
    result = await session.execute(stmt)
    updated = result.scalar_one_or_none()
    if updated is None:
        await session.rollback()
        raise bookbuddy.errors.InvalidStateError(_ENDED_SESSION_MESSAGE)

    if duration > 0 or pages_read:
        # record_activity commits the session update together with the daily total
        await bookbuddy.services.activity_service.record_activity(
            session,
            user_id,
            pages_read=pages_read or 0,
            minutes_read=duration,
            activity_date=now,
            book_id=updated.book_id,
            clock=clock
        )
    else:
        await session.commit()

    logger.info(f"User {user_id} ended reading session {session_id} after {duration} minutes")
    return updated


async def list_sessions(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: typing.Optional[int] = None,
    start_date: typing.Optional[datetime.datetime] = None,
    end_date: typing.Optional[datetime.datetime] = None,
    limit: int = 50
) -> typing.List[bookbuddy.models.reading_session.ReadingSession]:
    reading_session = bookbuddy.models.reading_session.ReadingSession
    conditions = [reading_session.user_id == user_id]
    if book_id is not None:
        conditions.append(reading_session.book_id == book_id)
    if start_date is not None:
        conditions.append(reading_session.started_at >= start_date)
    if end_date is not None:
        conditions.append(reading_session.started_at <= end_date)

    stmt = sqlalchemy.select(reading_session).where(*conditions).order_by(
        reading_session.started_at.desc()
    ).limit(limit)
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_session_statistics(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    start_date: typing.Optional[datetime.datetime] = None,
    end_date: typing.Optional[datetime.datetime] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> SessionStatistics:
    """Totals over finished sessions only."""
    reading_session = bookbuddy.models.reading_session.ReadingSession
    conditions = [
        reading_session.user_id == user_id,
        reading_session.ended_at.is_not(None)
    ]
    if start_date is not None:
        conditions.append(reading_session.started_at >= start_date)
    if end_date is not None:
        conditions.append(reading_session.started_at <= end_date)

    in_week = reading_session.started_at >= start_of_week(clock.now())
    stmt = sqlalchemy.select(
        sqlalchemy.func.count().label("total_sessions"),
        sqlalchemy.func.coalesce(sqlalchemy.func.sum(reading_session.duration_minutes), 0).label("total_minutes"),
        sqlalchemy.func.coalesce(sqlalchemy.func.sum(reading_session.pages_read), 0).label("total_pages"),
        sqlalchemy.func.coalesce(sqlalchemy.func.max(reading_session.duration_minutes), 0).label("longest_session"),
        sqlalchemy.func.count().filter(in_week).label("sessions_this_week"),
        sqlalchemy.func.coalesce(
            sqlalchemy.func.sum(reading_session.duration_minutes).filter(in_week), 0
        ).label("minutes_this_week"),
    ).where(*conditions)

    result = await session.execute(stmt)
    row = dict(result.mappings().one())

    total_sessions = row["total_sessions"]
    average = row["total_minutes"] / total_sessions if total_sessions else 0.0
    return SessionStatistics(average_session_length=round(average, 1), **row)


async def _minutes_since(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    since: datetime.datetime
) -> int:
    reading_session = bookbuddy.models.reading_session.ReadingSession
    stmt = sqlalchemy.select(
        sqlalchemy.func.coalesce(sqlalchemy.func.sum(reading_session.duration_minutes), 0)
    ).where(
        reading_session.user_id == user_id,
        reading_session.ended_at.is_not(None),
        reading_session.started_at >= since
    )
    result = await session.execute(stmt)
    return result.scalar_one()


async def get_user_sessions(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: typing.Optional[int] = None,
    start_date: typing.Optional[datetime.datetime] = None,
    end_date: typing.Optional[datetime.datetime] = None,
    limit: int = 50,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> UserSessions:
    now = clock.now()
    return UserSessions(
        sessions=await list_sessions(session, user_id, book_id, start_date, end_date, limit),
        active_session=await get_active_session(session, user_id),
        statistics=await get_session_statistics(session, user_id, start_date, end_date, clock=clock),
        today_minutes=await _minutes_since(session, user_id, start_of_day(now)),
        week_minutes=await _minutes_since(session, user_id, start_of_week(now)),
    )
