import datetime
import typing
import pydantic
import bookbuddy.utils

_ONE_DAY = datetime.timedelta(days=1)


class StreakStats(pydantic.BaseModel):
    current_streak: int
    longest_streak: int
    total_days_read: int
    last_activity_date: typing.Optional[datetime.date]
    is_active_today: bool
    is_at_risk: bool
    message: str


class ReadingStreak:
    """Streak figures over a user's set of reading days.

    Several activities on one UTC date count as a single day.
    """

    def __init__(
        self,
        activity_dates: typing.Iterable[typing.Union[datetime.date, datetime.datetime]],
        today: typing.Union[datetime.date, datetime.datetime]
    ) -> None:
        self._dates = sorted({bookbuddy.utils.to_utc_date(d) for d in activity_dates}, reverse=True)
        self._today = bookbuddy.utils.to_utc_date(today)

    @property
    def last_activity_date(self) -> typing.Optional[datetime.date]:
        return self._dates[0] if self._dates else None

    @property
    def total_days_read(self) -> int:
        return len(self._dates)

    @property
    def is_active_today(self) -> bool:
        return self.last_activity_date == self._today

    @property
    def is_at_risk(self) -> bool:
        return self.last_activity_date == self._today - _ONE_DAY

    @property
    def current_streak(self) -> int:
        if not self._dates or not (self.is_active_today or self.is_at_risk):
            return 0

        streak = 1
        previous = self._dates[0]
        for day in self._dates[1:]:
            if previous - day != _ONE_DAY:
                break
            streak += 1
            previous = day
        return streak

    @property
    def longest_streak(self) -> int:
        longest = 0
        run = 0
        previous = None
        for day in reversed(self._dates):
            run = run + 1 if previous is not None and day - previous == _ONE_DAY else 1
            longest = max(longest, run)
            previous = day
        return longest

    @property
    def message(self) -> str:
        current = self.current_streak
        if current == 0:
            return "Start your reading streak today!"
        if self.is_at_risk and not self.is_active_today:
            return f"Don't break your {current}-day streak! Read today to keep it going."
        if current >= 30:
            return f"Amazing! {current} days and counting. You're a reading champion!"
        if current >= 7:
            return f"Great job! {current}-day streak. Keep the momentum going!"
        if current >= 3:
            return f"Nice! {current} days in a row. You're building a habit!"
        return f"{current}-day streak. Every day counts!"

    def to_stats(self) -> StreakStats:
        return StreakStats(
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            total_days_read=self.total_days_read,
            last_activity_date=self.last_activity_date,
            is_active_today=self.is_active_today,
            is_at_risk=self.is_at_risk,
            message=self.message,
        )
