import datetime
import math
import typing
import bookbuddy.errors
import bookbuddy.goodreads.schemas
import bookbuddy.goodreads.validation
import bookbuddy.models.book

MAX_TITLE_LENGTH = 500
MAX_AUTHOR_LENGTH = 200
MAX_PUBLISHER_LENGTH = 200
MAX_REVIEW_LENGTH = 10000
MAX_BOOKSHELF_LENGTH = 100

EXTERNAL_ID_PREFIX = "external-"

_SHELF_TO_STATUS = {
    "to-read": bookbuddy.models.book.STATUS_WANT_TO_READ,
    "currently-reading": bookbuddy.models.book.STATUS_READING,
    "read": bookbuddy.models.book.STATUS_READ,
}


def _require(
    result: bookbuddy.goodreads.validation.ValidationResult,
    prefix: str = ""
) -> typing.Any:
    if not result.is_valid:
        raise bookbuddy.errors.RowValidationError(f"{prefix}{result.error}")
    return result.value


def _text(value: str, field_name: str, max_length: int) -> typing.Optional[str]:
    sanitized = bookbuddy.goodreads.validation.sanitize_csv_field(value)
    text = _require(bookbuddy.goodreads.validation.validate_text_length(sanitized, field_name, max_length))
    return text or None


def _split_list(value: str) -> typing.List[str]:
    items = [bookbuddy.goodreads.validation.sanitize_csv_field(item) for item in value.split(",")]
    return [item for item in items if item]


def round_rating(value: float) -> int:
    """Round half up onto the 1-5 star scale."""
    stars = math.floor(value + 0.5)
    return max(1, min(bookbuddy.goodreads.validation.MAX_RATING, stars))


def transform_row(
    row: bookbuddy.goodreads.schemas.GoodreadsRow,
    now: datetime.datetime
) -> bookbuddy.goodreads.schemas.GoodreadsBook:
    """Validate a raw export row and convert it to a typed book.

    Raises RowValidationError with a user-facing reason on the first invalid field.
    """
    title = _text(row.title, "Title", MAX_TITLE_LENGTH)
    author = _text(row.author, "Author", MAX_AUTHOR_LENGTH)
    review = _text(row.my_review, "Review", MAX_REVIEW_LENGTH)
    publisher = _text(row.publisher, "Publisher", MAX_PUBLISHER_LENGTH)

    isbn = bookbuddy.goodreads.validation.extract_isbn(row.isbn)
    if isbn and not bookbuddy.goodreads.validation.is_valid_isbn(isbn):
        raise bookbuddy.errors.RowValidationError(
            f'Invalid ISBN format: "{isbn}". ISBN must be 10 or 13 digits.'
        )

    isbn13 = bookbuddy.goodreads.validation.extract_isbn(row.isbn13)
    if isbn13 and not bookbuddy.goodreads.validation.is_valid_isbn(isbn13):
        raise bookbuddy.errors.RowValidationError(
            f'Invalid ISBN13 format: "{isbn13}". ISBN must be 10 or 13 digits.'
        )

    date_added = _require(bookbuddy.goodreads.validation.validate_date(row.date_added, now), "Date Added: ")
    if date_added is None:
        raise bookbuddy.errors.RowValidationError("Date Added is required but was not provided or is invalid")
    date_read = _require(bookbuddy.goodreads.validation.validate_date(row.date_read, now), "Date Read: ")

    my_rating = _require(bookbuddy.goodreads.validation.validate_rating(row.my_rating), "My Rating: ")
    average_rating = _require(
        bookbuddy.goodreads.validation.validate_rating(row.average_rating), "Average Rating: "
    )
    number_of_pages = _require(bookbuddy.goodreads.validation.validate_page_count(row.number_of_pages))
    year_published = _require(
        bookbuddy.goodreads.validation.validate_year(row.year_published, now), "Year Published: "
    )
    original_publication_year = _require(
        bookbuddy.goodreads.validation.validate_year(row.original_publication_year, now),
        "Original Publication Year: "
    )

    bookshelves = _split_list(row.bookshelves)
    for shelf_name in bookshelves:
        if len(shelf_name) > MAX_BOOKSHELF_LENGTH:
            raise bookbuddy.errors.RowValidationError(
                f'Bookshelf name "{shelf_name[:20]}..." exceeds maximum length of {MAX_BOOKSHELF_LENGTH} characters'
            )

    exclusive_shelf = _require(bookbuddy.goodreads.validation.validate_exclusive_shelf(row.exclusive_shelf))

    if not title:
        raise bookbuddy.errors.RowValidationError(
            "Title is required and cannot be empty. Please ensure the CSV contains a valid title."
        )
    if not author:
        raise bookbuddy.errors.RowValidationError(
            "Author is required and cannot be empty. Please ensure the CSV contains a valid author."
        )

    book_id = row.book_id.strip()
    if not book_id:
        raise bookbuddy.errors.RowValidationError("Book Id is required and cannot be empty.")

    return bookbuddy.goodreads.schemas.GoodreadsBook(
        book_id=book_id,
        title=title,
        author=author,
        additional_authors=_split_list(row.additional_authors),
        isbn=bookbuddy.goodreads.validation.normalize_isbn(isbn),
        isbn13=bookbuddy.goodreads.validation.normalize_isbn(isbn13),
        my_rating=my_rating,
        average_rating=average_rating,
        publisher=publisher,
        number_of_pages=number_of_pages,
        year_published=year_published,
        original_publication_year=original_publication_year,
        date_read=date_read,
        date_added=date_added,
        bookshelves=bookshelves,
        exclusive_shelf=exclusive_shelf,
        my_review=review,
    )


def map_to_book(
    goodreads_book: bookbuddy.goodreads.schemas.GoodreadsBook,
    user_id: int
) -> typing.Dict[str, typing.Any]:
    """Build column values for a new Book row owned by ``user_id``."""
    if not user_id:
        raise bookbuddy.errors.RowValidationError("User ID is required for mapping")

    authors = goodreads_book.all_authors
    if not authors:
        raise bookbuddy.errors.RowValidationError("At least one author is required")

    status = _SHELF_TO_STATUS[goodreads_book.exclusive_shelf]
    is_read = status == bookbuddy.models.book.STATUS_READ

    rating = None
    if is_read and goodreads_book.my_rating and goodreads_book.my_rating > 0:
        rating = round_rating(goodreads_book.my_rating)

    return {
        "user_id": user_id,
        "title": goodreads_book.title,
        "author": goodreads_book.author,
        "authors": authors,
        "isbn": goodreads_book.isbn,
        "isbn13": goodreads_book.isbn13,
        "external_id": f"{EXTERNAL_ID_PREFIX}{goodreads_book.book_id}",
        "publisher": goodreads_book.publisher,
        "page_count": goodreads_book.number_of_pages,
        "genres": goodreads_book.genres,
        "status": status,
        "current_page": 0,
        "rating": rating,
        "review": goodreads_book.my_review,
        "finished_at": goodreads_book.date_read if is_read else None,
        "added_at": goodreads_book.date_added,
    }
