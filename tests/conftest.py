import datetime
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.ext.asyncio import AsyncSession
import bookbuddy.clock
import bookbuddy.models.book
import bookbuddy.models.goal

NOW = datetime.datetime(2026, 3, 15, 12, 0, 0, tzinfo=datetime.timezone.utc)

GOODREADS_HEADER = (
    "Book Id,Title,Author,Author l-f,Additional Authors,ISBN,ISBN13,My Rating,Average Rating,"
    "Publisher,Binding,Number of Pages,Year Published,Original Publication Year,Date Read,"
    "Date Added,Bookshelves,Bookshelves with positions,Exclusive Shelf,My Review,Spoiler,"
    "Private Notes,Read Count,Owned Copies"
)


def goodreads_line(
    book_id="1",
    title="Dune",
    author="Frank Herbert",
    additional_authors="",
    isbn='="0441013597"',
    isbn13='="9780441013593"',
    my_rating="5",
    pages="688",
    year="2005",
    date_read="2024/01/20",
    date_added="2024/01/01",
    bookshelves="sci-fi, favorites",
    shelf="read",
    review=""
):
    fields = [
        book_id, title, author, "", additional_authors, isbn, isbn13, my_rating, "4.25",
        "Ace", "Paperback", pages, year, "1965", date_read, date_added, bookshelves, "",
        shelf, review, "", "", "1", "0",
    ]
    return ",".join(_quote(f) for f in fields)


def _quote(value):
    if "," in value or '"' in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def goodreads_csv(*lines):
    return "\n".join((GOODREADS_HEADER,) + lines) + "\n"


@pytest.fixture
def mock_session():
    return AsyncMock(spec=AsyncSession)


@pytest.fixture
def clock():
    return bookbuddy.clock.FixedClock(NOW)


@pytest.fixture
def book():
    return bookbuddy.models.book.Book(
        book_id=100,
        user_id=10,
        title="Dune",
        author="Frank Herbert",
        authors=["Frank Herbert"],
        page_count=400,
        status=bookbuddy.models.book.STATUS_READING,
        current_page=120,
        rating=None,
        finished_at=None,
    )


@pytest.fixture
def goal():
    return bookbuddy.models.goal.Goal(
        goal_id=1,
        user_id=10,
        name="Read 12 books",
        target_count=12,
        progress_count=3,
        bonus_count=0,
        status=bookbuddy.models.goal.GOAL_STATUS_ACTIVE,
        deadline_at_utc=datetime.datetime(2026, 12, 31, 23, 59, 59, tzinfo=datetime.timezone.utc),
        deadline_timezone="UTC",
        completed_at=None,
    )


@pytest.fixture
def mock_goal():
    row = MagicMock()
    row.goal_id = 1
    row.user_id = 10
    row.target_count = 2
    row.progress_count = 2
    row.bonus_count = 0
    row.status = "completed"
    row.completed_at = NOW
    row.is_completed = True
    return row


def make_scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    result.scalars.return_value.all.return_value = value if isinstance(value, list) else []
    return result


def make_list_result(items, count):
    count_result = MagicMock()
    count_result.scalar_one.return_value = count

    items_result = MagicMock()
    items_result.scalars.return_value.all.return_value = items

    return count_result, items_result
