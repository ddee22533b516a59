import logging
import typing
import sqlalchemy
import sqlalchemy.ext.asyncio
import sqlalchemy.dialects.postgresql
import bookbuddy.clock
import bookbuddy.models.book
import bookbuddy.models.goal
import bookbuddy.models.goal_progress

logger = logging.getLogger(__name__)

_COUNTABLE_GOAL_STATUSES = (
    bookbuddy.models.goal.GOAL_STATUS_ACTIVE,
    bookbuddy.models.goal.GOAL_STATUS_COMPLETED,
)


def _update_goal_counters(
    goal_id: int,
    new_progress: typing.Any,
    new_status: typing.Any,
    new_completed_at: typing.Any
) -> typing.Any:
    goal = bookbuddy.models.goal.Goal
    return sqlalchemy.update(goal).where(
        goal.goal_id == goal_id
    ).values(
        progress_count=new_progress,
        bonus_count=sqlalchemy.func.greatest(new_progress - goal.target_count, 0),
        status=new_status,
        completed_at=new_completed_at,
        updated_at=sqlalchemy.func.now()
    ).returning(goal).execution_options(
        synchronize_session=False,
        populate_existing=True
    )


async def on_book_completed(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    from_status: typing.Optional[str] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> typing.List[bookbuddy.models.goal.Goal]:
    """Count ``book_id`` once toward every active or completed goal of the user.

    The caller owns the transaction. Returns the goals whose counters moved.
    """
    goal = bookbuddy.models.goal.Goal
    now = clock.now()

    goals_stmt = sqlalchemy.select(goal.goal_id).where(
        goal.user_id == user_id,
        goal.status.in_(_COUNTABLE_GOAL_STATUSES)
    ).order_by(goal.goal_id)
    goal_ids = (await session.execute(goals_stmt)).scalars().all()

    updated = []
    for goal_id in goal_ids:
        link_stmt = sqlalchemy.dialects.postgresql.insert(
            bookbuddy.models.goal_progress.GoalProgress
        ).values(
            goal_id=goal_id,
            book_id=book_id,
            applied_at=now,
            applied_from_status=from_status
        ).on_conflict_do_nothing(
            index_elements=["goal_id", "book_id"]
        ).returning(bookbuddy.models.goal_progress.GoalProgress.goal_id)

        link = await session.execute(link_stmt)
        if link.scalar_one_or_none() is None:
            continue

        new_progress = goal.progress_count + 1
        completes = sqlalchemy.and_(
            goal.status == bookbuddy.models.goal.GOAL_STATUS_ACTIVE,
            new_progress >= goal.target_count
        )
        stmt = _update_goal_counters(
            goal_id,
            new_progress,
            sqlalchemy.case((completes, bookbuddy.models.goal.GOAL_STATUS_COMPLETED), else_=goal.status),
            sqlalchemy.case((completes, now), else_=goal.completed_at)
        )
        row = (await session.execute(stmt)).scalar_one()
        if row.is_completed and row.completed_at == now:
            logger.info(f"Goal {goal_id} for user {user_id} completed with book {book_id}")
        updated.append(row)

    return updated


async def on_book_uncompleted(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> typing.List[bookbuddy.models.goal.Goal]:
    """Undo the contribution of ``book_id`` to every goal it was counted toward.

    Completed goals go back to active only while their deadline has not passed.
    """
    goal = bookbuddy.models.goal.Goal
    goal_progress = bookbuddy.models.goal_progress.GoalProgress
    now = clock.now()

    unlink_stmt = sqlalchemy.delete(goal_progress).where(
        goal_progress.book_id == book_id,
        goal_progress.goal_id.in_(
            sqlalchemy.select(goal.goal_id).where(goal.user_id == user_id)
        )
    ).returning(goal_progress.goal_id)
    goal_ids = (await session.execute(unlink_stmt)).scalars().all()

    updated = []
    for goal_id in sorted(goal_ids):
        new_progress = sqlalchemy.func.greatest(goal.progress_count - 1, 0)
        reverts = sqlalchemy.and_(
            goal.status == bookbuddy.models.goal.GOAL_STATUS_COMPLETED,
            new_progress < goal.target_count,
            goal.deadline_at_utc > now
        )
        stmt = _update_goal_counters(
            goal_id,
            new_progress,
            sqlalchemy.case((reverts, bookbuddy.models.goal.GOAL_STATUS_ACTIVE), else_=goal.status),
            sqlalchemy.case((reverts, sqlalchemy.null()), else_=goal.completed_at)
        )
        row = (await session.execute(stmt)).scalar_one()
        logger.debug(f"Goal {goal_id} progress reverted to {row.progress_count} (status {row.status})")
        updated.append(row)

    return updated


async def reconcile_status_change(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    old_status: typing.Optional[str],
    new_status: str,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> typing.List[bookbuddy.models.goal.Goal]:
    was_read = old_status == bookbuddy.models.book.STATUS_READ
    is_read = new_status == bookbuddy.models.book.STATUS_READ

    if is_read and not was_read:
        return await on_book_completed(session, user_id, book_id, from_status=old_status, clock=clock)
    if was_read and not is_read:
        return await on_book_uncompleted(session, user_id, book_id, clock=clock)
    return []
