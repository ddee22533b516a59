import datetime
import logging
import typing
import sqlalchemy
import sqlalchemy.ext.asyncio
import sqlalchemy.dialects.postgresql
import bookbuddy.clock
import bookbuddy.errors
import bookbuddy.models.reading_activity
import bookbuddy.streaks
import bookbuddy.utils

logger = logging.getLogger(__name__)


def _validate_amounts(pages_read: int, minutes_read: int) -> None:
    for value in (pages_read, minutes_read):
        if isinstance(value, bool) or not isinstance(value, int):
            raise bookbuddy.errors.ValidationError("Pages read and minutes read must be whole numbers")

    if pages_read < 0 or minutes_read < 0:
        raise bookbuddy.errors.ValidationError("Pages read and minutes read must be non-negative")
    if pages_read == 0 and minutes_read == 0:
        raise bookbuddy.errors.ValidationError("At least pages read or minutes read must be provided")


async def record_activity(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    pages_read: int = 0,
    minutes_read: int = 0,
    activity_date: typing.Optional[typing.Union[datetime.date, datetime.datetime]] = None,
    book_id: typing.Optional[int] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.reading_activity.ReadingActivity:
    """Add a reading session to the user's total for that UTC day."""
    if not user_id:
        raise bookbuddy.errors.ValidationError("User ID is required")
    _validate_amounts(pages_read, minutes_read)

    if activity_date is None:
        day = bookbuddy.clock.utc_today(clock)
    else:
        day = bookbuddy.utils.to_utc_date(activity_date)

    activity = bookbuddy.models.reading_activity.ReadingActivity
    stmt = sqlalchemy.dialects.postgresql.insert(activity).values(
        user_id=user_id,
        book_id=book_id,
        activity_date=day,
        pages_read=pages_read,
        minutes_read=minutes_read
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_reading_activity_user_date",
        set_={
            "pages_read": activity.pages_read + stmt.excluded.pages_read,
            "minutes_read": activity.minutes_read + stmt.excluded.minutes_read,
            "book_id": sqlalchemy.func.coalesce(stmt.excluded.book_id, activity.book_id),
            "updated_at": sqlalchemy.func.now()
        }
    ).returning(activity).execution_options(populate_existing=True)

    result = await session.execute(stmt)
    await session.commit()
    row = result.scalar_one()

    logger.debug(f"Recorded {pages_read} pages / {minutes_read} minutes for user {user_id} on {day}")
    return row


async def get_user_activities(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    start_date: typing.Optional[datetime.date] = None,
    end_date: typing.Optional[datetime.date] = None
) -> typing.List[bookbuddy.models.reading_activity.ReadingActivity]:
    activity = bookbuddy.models.reading_activity.ReadingActivity
    conditions = [activity.user_id == user_id]
    if start_date is not None:
        conditions.append(activity.activity_date >= start_date)
    if end_date is not None:
        conditions.append(activity.activity_date <= end_date)

    stmt = sqlalchemy.select(activity).where(*conditions).order_by(activity.activity_date.desc())
    result = await session.execute(stmt)
    return result.scalars().all()


async def get_user_streak(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.streaks.StreakStats:
    activity = bookbuddy.models.reading_activity.ReadingActivity
    stmt = sqlalchemy.select(activity.activity_date).where(
        activity.user_id == user_id
    ).order_by(activity.activity_date.desc())

    result = await session.execute(stmt)
    dates = result.scalars().all()

    streak = bookbuddy.streaks.ReadingStreak(dates, bookbuddy.clock.utc_today(clock))
    return streak.to_stats()
