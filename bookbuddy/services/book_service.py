import datetime
import logging
import typing
import sqlalchemy
import sqlalchemy.ext.asyncio
import bookbuddy.clock
import bookbuddy.errors
import bookbuddy.goodreads.validation
import bookbuddy.models.book
import bookbuddy.models.status_transition
import bookbuddy.services.duplicate_service
import bookbuddy.services.goal_progress_service

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_AUTHOR_LENGTH = 200
MAX_REVIEW_LENGTH = 10000

_BOOK_SORT_COLUMNS: typing.Dict[str, typing.Any] = {
    "added_at": bookbuddy.models.book.Book.added_at,
    "updated_at": bookbuddy.models.book.Book.updated_at,
    "finished_at": bookbuddy.models.book.Book.finished_at,
    "title": bookbuddy.models.book.Book.title,
    "rating": bookbuddy.models.book.Book.rating,
}

_STATUS_ALIASES = {
    "TO_READ": bookbuddy.models.book.STATUS_WANT_TO_READ,
    "READING": bookbuddy.models.book.STATUS_READING,
    "FINISHED": bookbuddy.models.book.STATUS_READ,
}

_DUPLICATE_FIELDS = {
    bookbuddy.services.duplicate_service.MATCH_ISBN: "ISBN",
    bookbuddy.services.duplicate_service.MATCH_ISBN13: "ISBN-13",
    bookbuddy.services.duplicate_service.MATCH_TITLE_AUTHOR: "title and author",
    bookbuddy.services.duplicate_service.MATCH_EXTERNAL_ID: "external id",
}


def normalize_status(status: typing.Optional[str]) -> str:
    if not status:
        raise bookbuddy.errors.ValidationError("Status is required")

    normalized = _STATUS_ALIASES.get(status.strip(), status.strip())
    if normalized not in bookbuddy.models.book.VALID_STATUSES:
        raise bookbuddy.errors.ValidationError(
            f"Invalid status: {status}. Must be one of: {', '.join(bookbuddy.models.book.VALID_STATUSES)}"
        )
    return normalized


def apply_status_transition(
    book: bookbuddy.models.book.Book,
    new_status: str,
    now: datetime.datetime
) -> str:
    """Move ``book`` to ``new_status`` in memory and return the previous status."""
    old_status = book.status
    if new_status == old_status:
        raise bookbuddy.errors.ValidationError(f"Cannot transition from {old_status} to {new_status}")

    if new_status == bookbuddy.models.book.STATUS_READ:
        if book.finished_at is None:
            book.finished_at = now
        if book.page_count:
            book.current_page = book.page_count
    else:
        if old_status == bookbuddy.models.book.STATUS_READ:
            book.finished_at = None
            book.rating = None
        book.current_page = 0

    book.status = new_status
    return old_status


def record_transition(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    book: bookbuddy.models.book.Book,
    from_status: typing.Optional[str],
    now: datetime.datetime
) -> bookbuddy.models.status_transition.StatusTransition:
    transition = bookbuddy.models.status_transition.StatusTransition(
        book_id=book.book_id,
        user_id=book.user_id,
        from_status=from_status,
        to_status=book.status,
        transitioned_at=now
    )
    session.add(transition)
    return transition


async def get_book(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int
) -> bookbuddy.models.book.Book:
    stmt = sqlalchemy.select(bookbuddy.models.book.Book).where(
        bookbuddy.models.book.Book.book_id == book_id
    )
    result = await session.execute(stmt)
    row = result.scalar_one_or_none()
    if row is None:
        raise bookbuddy.errors.NotFoundError("Book", book_id)
    if row.user_id != user_id:
        raise bookbuddy.errors.ForbiddenError("You do not have permission to access this book")
    return row


async def add_book(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    title: str,
    authors: typing.List[str],
    status: str = bookbuddy.models.book.STATUS_WANT_TO_READ,
    isbn: typing.Optional[str] = None,
    isbn13: typing.Optional[str] = None,
    page_count: typing.Optional[int] = None,
    publisher: typing.Optional[str] = None,
    genres: typing.Optional[typing.List[str]] = None,
    external_id: typing.Optional[str] = None,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.book.Book:
    if not user_id:
        raise bookbuddy.errors.ValidationError("User ID is required")

    title = (title or "").strip()
    if not title:
        raise bookbuddy.errors.ValidationError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise bookbuddy.errors.ValidationError(f"Title must be {MAX_TITLE_LENGTH} characters or less")

    authors = [a.strip() for a in (authors or []) if a and a.strip()]
    if not authors:
        raise bookbuddy.errors.ValidationError("At least one author is required")
    for author in authors:
        if len(author) > MAX_AUTHOR_LENGTH:
            raise bookbuddy.errors.ValidationError(f"Author must be {MAX_AUTHOR_LENGTH} characters or less")

    for value, label in ((isbn, "ISBN"), (isbn13, "ISBN13")):
        if value and not bookbuddy.goodreads.validation.is_valid_isbn(value):
            raise bookbuddy.errors.ValidationError(f"Invalid {label} format. ISBN must be 10 or 13 digits.")
    isbn = bookbuddy.goodreads.validation.normalize_isbn(isbn)
    isbn13 = bookbuddy.goodreads.validation.normalize_isbn(isbn13)

    if page_count is not None:
        page_check = bookbuddy.goodreads.validation.validate_page_count(page_count)
        if not page_check.is_valid:
            raise bookbuddy.errors.ValidationError(page_check.error)

    status = normalize_status(status)

    match = await bookbuddy.services.duplicate_service.find_duplicate(
        session,
        user_id,
        title=title,
        author=authors[0],
        isbn=isbn,
        isbn13=isbn13,
        external_id=external_id
    )
    if match is not None:
        match_kind, existing = match
        raise bookbuddy.errors.DuplicateError(
            f'"{existing.title}" is already in your library (matched by {_DUPLICATE_FIELDS[match_kind]})'
        )

    now = clock.now()
    row = bookbuddy.models.book.Book(
        user_id=user_id,
        title=title,
        author=authors[0],
        authors=authors,
        isbn=isbn,
        isbn13=isbn13,
        external_id=external_id,
        publisher=publisher,
        page_count=page_count,
        genres=genres or [],
        status=status,
        current_page=0,
        added_at=now
    )
    if status == bookbuddy.models.book.STATUS_READ:
        row.finished_at = now
        row.current_page = page_count or 0

    session.add(row)
    await session.flush()
    record_transition(session, row, None, now)

    await bookbuddy.services.goal_progress_service.reconcile_status_change(
        session, user_id, row.book_id, None, status, clock=clock
    )
    await session.commit()
    await session.refresh(row)

    logger.info(f"User {user_id} added book {row.book_id} with status {status}")
    return row


async def update_status(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    status: str,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.book.Book:
    new_status = normalize_status(status)
    row = await get_book(session, user_id, book_id)

    now = clock.now()
    old_status = apply_status_transition(row, new_status, now)
    record_transition(session, row, old_status, now)
    await session.flush()

    await bookbuddy.services.goal_progress_service.reconcile_status_change(
        session, user_id, book_id, old_status, new_status, clock=clock
    )
    await session.commit()
    await session.refresh(row)

    logger.info(f"Book {book_id} for user {user_id} moved from {old_status} to {new_status}")
    return row


async def update_progress(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    current_page: int,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> bookbuddy.models.book.Book:
    if isinstance(current_page, bool) or not isinstance(current_page, int):
        raise bookbuddy.errors.ValidationError("Current page must be a whole number")
    if current_page < 0:
        raise bookbuddy.errors.ValidationError("Current page cannot be negative")

    row = await get_book(session, user_id, book_id)
    if row.page_count is not None and current_page > row.page_count:
        raise bookbuddy.errors.ValidationError(
            f"Current page ({current_page}) cannot exceed total pages ({row.page_count})"
        )

    row.current_page = current_page

    if (
        row.status == bookbuddy.models.book.STATUS_READING
        and row.page_count
        and current_page >= row.page_count
    ):
        now = clock.now()
        old_status = apply_status_transition(row, bookbuddy.models.book.STATUS_READ, now)
        record_transition(session, row, old_status, now)
        await session.flush()
        await bookbuddy.services.goal_progress_service.reconcile_status_change(
            session, user_id, book_id, old_status, bookbuddy.models.book.STATUS_READ, clock=clock
        )
        logger.info(f"Book {book_id} for user {user_id} finished by reaching the last page")

    await session.commit()
    await session.refresh(row)
    return row


async def get_status_history(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int
) -> typing.List[bookbuddy.models.status_transition.StatusTransition]:
    """Status changes of one book, newest first."""
    await get_book(session, user_id, book_id)

    transition = bookbuddy.models.status_transition.StatusTransition
    stmt = sqlalchemy.select(transition).where(
        transition.book_id == book_id
    ).order_by(transition.transitioned_at.desc(), transition.transition_id.desc())

    result = await session.execute(stmt)
    return result.scalars().all()


async def rate_book(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    rating: int,
    review: typing.Optional[str] = None
) -> bookbuddy.models.book.Book:
    if isinstance(rating, bool) or not isinstance(rating, int) or rating < 1 or rating > 5:
        raise bookbuddy.errors.ValidationError("Rating must be between 1 and 5")

    if review is not None:
        review_check = bookbuddy.goodreads.validation.validate_text_length(review, "Review", MAX_REVIEW_LENGTH)
        if not review_check.is_valid:
            raise bookbuddy.errors.ValidationError(review_check.error)
        review = review_check.value or None

    row = await get_book(session, user_id, book_id)
    if row.status != bookbuddy.models.book.STATUS_READ:
        raise bookbuddy.errors.InvalidStateError("Only finished books can be rated")

    row.rating = rating
    if review is not None:
        row.review = review
    await session.commit()
    await session.refresh(row)
    return row


async def delete_book(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    book_id: int,
    clock: bookbuddy.clock.Clock = bookbuddy.clock.system_clock
) -> None:
    row = await get_book(session, user_id, book_id)

    if row.status == bookbuddy.models.book.STATUS_READ:
        await bookbuddy.services.goal_progress_service.on_book_uncompleted(
            session, user_id, book_id, clock=clock
        )

    stmt = sqlalchemy.delete(bookbuddy.models.book.Book).where(
        bookbuddy.models.book.Book.book_id == book_id,
        bookbuddy.models.book.Book.user_id == user_id
    ).returning(bookbuddy.models.book.Book.book_id)

    result = await session.execute(stmt)
    if result.scalar_one_or_none() is None:
        raise bookbuddy.errors.NotFoundError("Book", book_id)
    await session.commit()

    logger.info(f"User {user_id} deleted book {book_id}")


async def list_books(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    status_filter: typing.Optional[str] = None,
    sort_by: str = "added_at",
    order: str = "desc"
) -> typing.Tuple[typing.List[bookbuddy.models.book.Book], int]:
    sort_col = _BOOK_SORT_COLUMNS.get(sort_by, bookbuddy.models.book.Book.added_at)
    order_expr = sort_col.desc() if order == "desc" else sort_col.asc()

    base_conditions = [bookbuddy.models.book.Book.user_id == user_id]
    if status_filter:
        base_conditions.append(bookbuddy.models.book.Book.status == normalize_status(status_filter))

    count_stmt = sqlalchemy.select(sqlalchemy.func.count()).select_from(
        bookbuddy.models.book.Book
    ).where(*base_conditions)
    count_result = await session.execute(count_stmt)
    total_count = count_result.scalar_one()

    stmt = sqlalchemy.select(bookbuddy.models.book.Book).where(
        *base_conditions
    ).order_by(order_expr, bookbuddy.models.book.Book.book_id).limit(limit).offset(offset)

    result = await session.execute(stmt)
    return result.scalars().all(), total_count


async def get_reading_stats(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int
) -> typing.Dict[str, typing.Any]:
    result = await session.execute(sqlalchemy.text("""
        SELECT
            COUNT(*)                                              AS total_books,
            COUNT(CASE WHEN status = 'want-to-read' THEN 1 END)   AS want_to_read_count,
            COUNT(CASE WHEN status = 'reading'      THEN 1 END)   AS reading_count,
            COUNT(CASE WHEN status = 'read'         THEN 1 END)   AS read_count,
            COUNT(rating)                                         AS rated_count,
            ROUND(AVG(rating)::NUMERIC, 2)                        AS average_rating,
            COALESCE(SUM(CASE WHEN status = 'read' THEN page_count END), 0) AS pages_read
        FROM bookbuddy.books
        WHERE user_id = :user_id
    """), {"user_id": user_id})
    row = result.mappings().one()

    stats = dict(row)
    if stats["average_rating"] is not None:
        stats["average_rating"] = float(stats["average_rating"])
    return stats
