import datetime
import logging
import typing
import dateutil.tz
import sqlalchemy
import sqlalchemy.ext.asyncio
import bookbuddy.clock
import bookbuddy.config
import bookbuddy.errors
import bookbuddy.models.goal

logger = logging.getLogger(__name__)

MAX_GOAL_NAME_LENGTH = 255

_GOAL_STATUS_ORDER = sqlalchemy.case(
    (bookbuddy.models.goal.Goal.status == bookbuddy.models.goal.GOAL_STATUS_ACTIVE, 1),
    (bookbuddy.models.goal.Goal.status == bookbuddy.models.goal.GOAL_STATUS_COMPLETED, 2),
    (bookbuddy.models.goal.Goal.status == bookbuddy.models.goal.GOAL_STATUS_EXPIRED, 3),
    else_=4
)


def _is_positive_int(value: typing.Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def resolve_timezone(timezone_name: typing.Optional[str]) -> datetime.tzinfo:
    if not timezone_name or not timezone_name.strip():
        raise bookbuddy.errors.ValidationError("Timezone is required")

    tzinfo = dateutil.tz.gettz(timezone_name.strip())
    if tzinfo is None:
        raise bookbuddy.errors.ValidationError(f"Invalid timezone: {timezone_name}")
    return tzinfo


def compute_deadline(
    now: datetime.datetime,
    timezone_name: str,
    days: int
) -> datetime.datetime:
    """End of the local day ``days`` days after ``now`` in ``timezone_name``, as UTC."""
    # Day arithmetic happens on the wall clock so DST shifts never move the deadline off 23:59:59
    local = now.astimezone(resolve_timezone(timezone_name)) + datetime.timedelta(days=days)
    end_of_day = local.replace(hour=23, minute=59, second=59, microsecond=999999)
    return end_of_day.astimezone(datetime.timezone.utc)


def _validate_target(target_count: typing.Any) -> typing.Optional[str]:
    max_target = bookbuddy.config.settings.goal_max_target
    if not _is_positive_int(target_count):
        return "Target count must be a positive integer"
    if target_count > max_target:
        return f"Target count cannot exceed {max_target}"
    return None


async def create_goal(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    name: str,
    target_count: int,
    days_to_complete: int,
    timezone: str,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.goal.Goal:
    errors = []
    if not user_id:
        errors.append("User ID is required")
    if not name or not name.strip():
        errors.append("Goal name is required")
    elif len(name.strip()) > MAX_GOAL_NAME_LENGTH:
        errors.append(f"Goal name must be {MAX_GOAL_NAME_LENGTH} characters or less")
    target_error = _validate_target(target_count)
    if target_error:
        errors.append(target_error)
    if not _is_positive_int(days_to_complete):
        errors.append("Days to complete must be at least 1")
    if not timezone or not timezone.strip():
        errors.append("Timezone is required")

    if errors:
        raise bookbuddy.errors.ValidationError(f"Validation failed: {', '.join(errors)}")

    now = clock.now()
    deadline = compute_deadline(now, timezone, days_to_complete)
    if deadline <= now:
        raise bookbuddy.errors.ValidationError("Deadline must be in the future. Please choose a longer timeframe.")

    row = bookbuddy.models.goal.Goal(
        user_id=user_id,
        name=name.strip(),
        target_count=target_count,
        progress_count=0,
        bonus_count=0,
        status=bookbuddy.models.goal.GOAL_STATUS_ACTIVE,
        deadline_at_utc=deadline,
        deadline_timezone=timezone.strip()
    )
    session.add(row)
    await session.commit()
    await session.refresh(row)

    logger.info(f"Created goal {row.goal_id} for user {user_id}: {target_count} books by {deadline.isoformat()}")
    return row


async def get_goal(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    goal_id: int
) -> bookbuddy.models.goal.Goal:
    stmt = sqlalchemy.select(bookbuddy.models.goal.Goal).where(
        bookbuddy.models.goal.Goal.goal_id == goal_id
    )
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise bookbuddy.errors.NotFoundError("Goal", goal_id)
    if row.user_id != user_id:
        raise bookbuddy.errors.ForbiddenError("You do not have permission to access this goal")
    return row


async def list_goals(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    status_filter: typing.Optional[str] = None
) -> typing.Tuple[typing.List[bookbuddy.models.goal.Goal], int]:
    base_conditions = [bookbuddy.models.goal.Goal.user_id == user_id]
    if status_filter:
        if status_filter not in bookbuddy.models.goal.VALID_GOAL_STATUSES:
            raise bookbuddy.errors.ValidationError(f"Invalid goal status: {status_filter}")
        base_conditions.append(bookbuddy.models.goal.Goal.status == status_filter)

    count_stmt = sqlalchemy.select(sqlalchemy.func.count()).select_from(
        bookbuddy.models.goal.Goal
    ).where(*base_conditions)
    count_result = await session.execute(count_stmt)
    total_count = count_result.scalar_one()

    stmt = sqlalchemy.select(bookbuddy.models.goal.Goal).where(
        *base_conditions
    ).order_by(
        _GOAL_STATUS_ORDER,
        bookbuddy.models.goal.Goal.deadline_at_utc.asc()
    ).limit(limit).offset(offset)

    result = await session.execute(stmt)
    return result.scalars().all(), total_count


async def update_goal(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    goal_id: int,
    name: typing.Optional[str] = None,
    target_count: typing.Optional[int] = None,
    days_to_add: typing.Optional[int] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.goal.Goal:
    goal = bookbuddy.models.goal.Goal

    if name is None and target_count is None and days_to_add is None:
        raise bookbuddy.errors.ValidationError("No valid fields to update")

    row = await get_goal(session, user_id, goal_id)
    if row.status != bookbuddy.models.goal.GOAL_STATUS_ACTIVE:
        raise bookbuddy.errors.InvalidStateError(
            f"Cannot edit {row.status} goals. Only active goals can be modified."
        )

    values: typing.Dict[str, typing.Any] = {"updated_at": sqlalchemy.func.now()}

    if name is not None:
        if not name.strip():
            raise bookbuddy.errors.ValidationError("Goal name is required")
        if len(name.strip()) > MAX_GOAL_NAME_LENGTH:
            raise bookbuddy.errors.ValidationError(
                f"Goal name must be {MAX_GOAL_NAME_LENGTH} characters or less"
            )
        values["name"] = name.strip()

    if target_count is not None:
        target_error = _validate_target(target_count)
        if target_error:
            raise bookbuddy.errors.ValidationError(target_error)
        reaches_target = goal.progress_count >= target_count
        values["target_count"] = target_count
        values["bonus_count"] = sqlalchemy.func.greatest(goal.progress_count - target_count, 0)
        values["status"] = sqlalchemy.case(
            (reaches_target, bookbuddy.models.goal.GOAL_STATUS_COMPLETED), else_=goal.status
        )
        values["completed_at"] = sqlalchemy.case((reaches_target, clock.now()), else_=goal.completed_at)

    if days_to_add is not None:
        if not _is_positive_int(days_to_add):
            raise bookbuddy.errors.ValidationError("Days to add must be at least 1")
        values["deadline_at_utc"] = compute_deadline(row.deadline_at_utc, row.deadline_timezone, days_to_add)

    stmt = sqlalchemy.update(goal).where(
        goal.goal_id == goal_id,
        goal.status == bookbuddy.models.goal.GOAL_STATUS_ACTIVE
    ).values(**values).returning(goal).execution_options(
        synchronize_session=False,
        populate_existing=True
    )
    result = await session.execute(stmt)
    updated = result.scalar_one_or_none()
    if updated is None:
        await session.rollback()
        raise bookbuddy.errors.InvalidStateError("Goal is no longer active and cannot be modified.")

    await session.commit()
    return updated


async def delete_goal(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    goal_id: int
) -> None:
    await get_goal(session, user_id, goal_id)

    stmt = sqlalchemy.delete(bookbuddy.models.goal.Goal).where(
        bookbuddy.models.goal.Goal.goal_id == goal_id,
        bookbuddy.models.goal.Goal.user_id == user_id
    ).returning(bookbuddy.models.goal.Goal.goal_id)

    result = await session.execute(stmt)
    if result.scalar_one_or_none() is None:
        raise bookbuddy.errors.NotFoundError("Goal", goal_id)
    await session.commit()


async def expire_overdue_goals(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock,
    user_id: typing.Optional[int] = None
) -> int:
    conditions = [
        bookbuddy.models.goal.Goal.status == bookbuddy.models.goal.GOAL_STATUS_ACTIVE,
        bookbuddy.models.goal.Goal.deadline_at_utc <= clock.now()
    ]
    if user_id is not None:
        conditions.append(bookbuddy.models.goal.Goal.user_id == user_id)

    stmt = sqlalchemy.update(bookbuddy.models.goal.Goal).where(*conditions).values(
        status=bookbuddy.models.goal.GOAL_STATUS_EXPIRED,
        updated_at=sqlalchemy.func.now()
    ).returning(bookbuddy.models.goal.Goal.goal_id).execution_options(synchronize_session=False)

    result = await session.execute(stmt)
    expired_ids = result.scalars().all()
    await session.commit()

    if expired_ids:
        logger.info(f"Expired {len(expired_ids)} overdue goals")
    return len(expired_ids)
