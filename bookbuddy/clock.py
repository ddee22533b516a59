import datetime
import typing


class Clock(typing.Protocol):
    def now(self) -> datetime.datetime:
        ...


class SystemClock:
    def now(self) -> datetime.datetime:
        return datetime.datetime.now(datetime.timezone.utc)


class FixedClock:
    """Clock pinned to a single instant. Naive datetimes are read as UTC."""

    def __init__(self, now: datetime.datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=datetime.timezone.utc)
        self._now = now

    def now(self) -> datetime.datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now = self._now + datetime.timedelta(**kwargs)


system_clock = SystemClock()


def utc_today(clock: Clock) -> datetime.date:
    return clock.now().astimezone(datetime.timezone.utc).date()
