import datetime
import typing
from dateutil import parser as date_parser


def normalize_text(value: typing.Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(value.split()).lower()


def parse_date(date_str: typing.Optional[str]) -> typing.Optional[datetime.datetime]:
    """Parse a free-form date string. Naive results are taken as UTC."""
    if not date_str or not date_str.strip():
        return None

    parsed = date_parser.parse(date_str.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def to_utc_date(value: typing.Union[datetime.date, datetime.datetime]) -> datetime.date:
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value.date()
    return value


def calculate_bonus(progress_count: int, target_count: int) -> int:
    return max(0, progress_count - target_count)


def calculate_progress_percentage(progress_count: int, target_count: int) -> int:
    if target_count <= 0:
        return 0
    return min(100, (progress_count * 100) // target_count)
