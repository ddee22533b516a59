import logging
import typing
import sqlalchemy
import sqlalchemy.ext.asyncio
import bookbuddy.goodreads.validation
import bookbuddy.models.book
import bookbuddy.utils

logger = logging.getLogger(__name__)

MATCH_ISBN = "isbn"
MATCH_ISBN13 = "isbn13"
MATCH_TITLE_AUTHOR = "title_author"
MATCH_EXTERNAL_ID = "external_id"


def _normalized_column(column: typing.Any) -> typing.Any:
    collapsed = sqlalchemy.func.regexp_replace(sqlalchemy.func.trim(column), r"\s+", " ", "g")
    return sqlalchemy.func.lower(collapsed)


async def _find_by_any_isbn(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    value: typing.Optional[str]
) -> typing.Optional[bookbuddy.models.book.Book]:
    value = bookbuddy.goodreads.validation.normalize_isbn(value)
    if not value:
        return None

    # Either column may hold a 10 or 13 digit value depending on how the book was added
    stmt = sqlalchemy.select(bookbuddy.models.book.Book).where(
        bookbuddy.models.book.Book.user_id == user_id,
        sqlalchemy.or_(
            bookbuddy.models.book.Book.isbn == value,
            bookbuddy.models.book.Book.isbn13 == value
        )
    ).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_by_isbn(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    isbn: str
) -> typing.Optional[bookbuddy.models.book.Book]:
    return await _find_by_any_isbn(session, user_id, isbn)


async def find_by_isbn13(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    isbn13: str
) -> typing.Optional[bookbuddy.models.book.Book]:
    return await _find_by_any_isbn(session, user_id, isbn13)


async def find_by_title_and_author(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    title: str,
    author: str
) -> typing.Optional[bookbuddy.models.book.Book]:
    stmt = sqlalchemy.select(bookbuddy.models.book.Book).where(
        bookbuddy.models.book.Book.user_id == user_id,
        _normalized_column(bookbuddy.models.book.Book.title) == bookbuddy.utils.normalize_text(title),
        _normalized_column(bookbuddy.models.book.Book.author) == bookbuddy.utils.normalize_text(author)
    ).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_by_external_id(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    external_id: str
) -> typing.Optional[bookbuddy.models.book.Book]:
    stmt = sqlalchemy.select(bookbuddy.models.book.Book).where(
        bookbuddy.models.book.Book.user_id == user_id,
        bookbuddy.models.book.Book.external_id == external_id
    ).limit(1)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_duplicate(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    title: str,
    author: str,
    isbn: typing.Optional[str] = None,
    isbn13: typing.Optional[str] = None,
    external_id: typing.Optional[str] = None
) -> typing.Optional[typing.Tuple[str, bookbuddy.models.book.Book]]:
    """Return ``(match_kind, book)`` for the first tier that matches, checked in order
    ISBN, ISBN-13, normalized title+author, external id."""
    if isbn:
        book = await find_by_isbn(session, user_id, isbn)
        if book is not None:
            return MATCH_ISBN, book

    if isbn13:
        book = await find_by_isbn13(session, user_id, isbn13)
        if book is not None:
            return MATCH_ISBN13, book

    if bookbuddy.utils.normalize_text(title) and bookbuddy.utils.normalize_text(author):
        book = await find_by_title_and_author(session, user_id, title, author)
        if book is not None:
            return MATCH_TITLE_AUTHOR, book

    if external_id:
        book = await find_by_external_id(session, user_id, external_id)
        if book is not None:
            return MATCH_EXTERNAL_ID, book

    return None


async def is_duplicate(
    session: sqlalchemy.ext.asyncio.AsyncSession,
    user_id: int,
    title: str,
    author: str,
    isbn: typing.Optional[str] = None,
    isbn13: typing.Optional[str] = None,
    external_id: typing.Optional[str] = None
) -> bool:
    match = await find_duplicate(session, user_id, title, author, isbn, isbn13, external_id)
    if match is None:
        return False

    match_kind, book = match
    logger.debug(f"Book '{title}' for user {user_id} matches existing book {book.book_id} by {match_kind}")
    return True
