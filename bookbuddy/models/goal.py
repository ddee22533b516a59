import datetime
import math
import typing
import sqlalchemy
import sqlalchemy.orm
import bookbuddy.models.base
import bookbuddy.utils

GOAL_STATUS_ACTIVE = "active"
GOAL_STATUS_COMPLETED = "completed"
GOAL_STATUS_EXPIRED = "expired"

VALID_GOAL_STATUSES = (GOAL_STATUS_ACTIVE, GOAL_STATUS_COMPLETED, GOAL_STATUS_EXPIRED)


class Goal(bookbuddy.models.base.Base):
    __tablename__ = "goals"
    __table_args__ = (
        sqlalchemy.CheckConstraint(
            "status IN ('active', 'completed', 'expired')", name="check_goals_status"
        ),
        sqlalchemy.CheckConstraint(
            "target_count >= 1 AND target_count <= 9999", name="check_goals_target_count"
        ),
        sqlalchemy.CheckConstraint("progress_count >= 0", name="check_goals_progress_count"),
        sqlalchemy.CheckConstraint("bonus_count >= 0", name="check_goals_bonus_count"),
        sqlalchemy.Index("idx_goals_user_status", "user_id", "status"),
        sqlalchemy.Index("idx_goals_user_deadline", "user_id", "deadline_at_utc"),
        {"schema": bookbuddy.models.base.SCHEMA}
    )

    goal_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, primary_key=True
    )
    user_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, nullable=False
    )
    name: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(255), nullable=False
    )
    target_count: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=False
    )
    progress_count: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=False, server_default="0"
    )
    bonus_count: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=False, server_default="0"
    )
    status: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=False, server_default=GOAL_STATUS_ACTIVE
    )
    deadline_at_utc: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False
    )
    deadline_timezone: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(64), nullable=False
    )
    completed_at: sqlalchemy.orm.Mapped[typing.Optional[datetime.datetime]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=True
    )
    created_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    updated_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )

    @property
    def progress_percentage(self) -> int:
        return bookbuddy.utils.calculate_progress_percentage(self.progress_count, self.target_count)

    @property
    def is_completed(self) -> bool:
        return self.status == GOAL_STATUS_COMPLETED

    @property
    def is_active(self) -> bool:
        return self.status == GOAL_STATUS_ACTIVE

    @property
    def is_expired(self) -> bool:
        return self.status == GOAL_STATUS_EXPIRED

    @property
    def has_bonus(self) -> bool:
        return self.bonus_count > 0

    @property
    def books_remaining(self) -> int:
        return max(0, self.target_count - self.progress_count)

    def days_remaining(self, now: datetime.datetime) -> int:
        seconds = (self.deadline_at_utc - now).total_seconds()
        return max(0, math.ceil(seconds / 86400))
