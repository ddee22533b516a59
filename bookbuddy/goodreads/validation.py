import datetime
import math
import re
import typing
import bookbuddy.utils

REQUIRED_COLUMNS = (
    "Book Id",
    "Title",
    "Author",
    "Exclusive Shelf",
    "Date Added",
)

VALID_SHELVES = ("to-read", "currently-reading", "read")

MIN_DATE = datetime.datetime(1900, 1, 1, tzinfo=datetime.timezone.utc)
MIN_YEAR = 1000
MAX_YEARS_AHEAD = 5
MAX_RATING = 5
MAX_PAGE_COUNT = 50000

_ISBN_RE = re.compile(r"^([0-9]{10}|[0-9]{13})$")
_ISBN_SEPARATORS_RE = re.compile(r"[-\s]")


class ValidationResult(typing.NamedTuple):
    is_valid: bool
    error: typing.Optional[str] = None
    value: typing.Any = None


def _ok(value: typing.Any = None) -> ValidationResult:
    return ValidationResult(is_valid=True, value=value)


def _fail(error: str) -> ValidationResult:
    return ValidationResult(is_valid=False, error=error)


def _parse_number(value: typing.Union[str, int, float]) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    number = float(value.strip()) if isinstance(value, str) else float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError("not a finite number")
    return number


def _is_blank(value: typing.Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def is_valid_isbn(isbn: typing.Optional[str]) -> bool:
    if not isbn:
        return False
    cleaned = _ISBN_SEPARATORS_RE.sub("", isbn)
    return bool(_ISBN_RE.fullmatch(cleaned))


def normalize_isbn(isbn: typing.Optional[str]) -> typing.Optional[str]:
    """Drop hyphens and whitespace so equal ISBNs compare equal however they were written."""
    if not isbn:
        return None
    return _ISBN_SEPARATORS_RE.sub("", isbn) or None


def extract_isbn(value: typing.Optional[str]) -> typing.Optional[str]:
    """Unwrap spreadsheet-style ``="0123456789"`` values. Empty input yields None."""
    if not value:
        return None
    cleaned = value.strip()
    if cleaned.startswith("="):
        cleaned = cleaned[1:]
    cleaned = cleaned.strip('"').strip()
    return cleaned or None


def validate_date(value: typing.Optional[str], now: datetime.datetime) -> ValidationResult:
    if _is_blank(value):
        return _ok()

    try:
        parsed = bookbuddy.utils.parse_date(value)
    except (ValueError, OverflowError):
        return _fail("Invalid date format. Expected format: YYYY/MM/DD")

    if parsed > now:
        return _fail("Date cannot be in the future")
    if parsed < MIN_DATE:
        return _fail("Date is too far in the past (before 1900)")

    return _ok(parsed)


def validate_rating(value: typing.Union[str, int, float, None]) -> ValidationResult:
    if _is_blank(value):
        return _ok()

    try:
        rating = _parse_number(value)
    except ValueError:
        return _fail("Rating must be a number")

    if rating < 0 or rating > MAX_RATING:
        return _fail(f"Rating must be between 0 and {MAX_RATING}")

    return _ok(rating)


def validate_page_count(value: typing.Union[str, int, float, None]) -> ValidationResult:
    if _is_blank(value):
        return _ok()

    try:
        pages = _parse_number(value)
    except ValueError:
        return _fail("Page count must be a number")

    if pages < 0:
        return _fail("Page count cannot be negative")
    if pages > MAX_PAGE_COUNT:
        return _fail("Page count seems unreasonably high (max 50,000 pages)")

    return _ok(int(pages))


def validate_exclusive_shelf(value: typing.Optional[str]) -> ValidationResult:
    if _is_blank(value):
        return _fail("Exclusive shelf is required")

    shelf = value.strip().lower()
    if shelf not in VALID_SHELVES:
        return _fail(f'Invalid shelf value "{shelf}". Must be one of: {", ".join(VALID_SHELVES)}')

    return _ok(shelf)


def validate_text_length(
    value: typing.Optional[str],
    field_name: str,
    max_length: int
) -> ValidationResult:
    if value is None:
        return _ok()

    text = value.strip()
    if len(text) > max_length:
        return _fail(
            f"{field_name} exceeds maximum length of {max_length} characters (current: {len(text)})"
        )

    return _ok(text or None)


def validate_year(value: typing.Union[str, int, float, None], now: datetime.datetime) -> ValidationResult:
    if _is_blank(value):
        return _ok()

    try:
        number = _parse_number(value)
    except ValueError:
        return _fail("Year must be a number")

    if not number.is_integer():
        return _fail("Year must be a whole number")

    year = int(number)
    max_year = now.year + MAX_YEARS_AHEAD
    if year < MIN_YEAR:
        return _fail(f"Year {year} seems too far in the past (minimum: {MIN_YEAR})")
    if year > max_year:
        return _fail(f"Year {year} is too far in the future (maximum: {max_year})")

    return _ok(year)


def sanitize_csv_field(value: typing.Optional[str]) -> typing.Optional[str]:
    if not value:
        return None
    cleaned = value.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n").strip()
    return cleaned or None


def validate_csv_headers(headers: typing.Iterable[str]) -> ValidationResult:
    present = {header.strip() for header in headers if header is not None}
    missing = [column for column in REQUIRED_COLUMNS if column not in present]

    if missing:
        return ValidationResult(
            is_valid=False,
            error=f"Missing required columns: {', '.join(missing)}",
            value=missing
        )

    return _ok([])
