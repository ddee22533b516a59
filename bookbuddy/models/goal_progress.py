import datetime
import typing
import sqlalchemy
import sqlalchemy.orm
import bookbuddy.models.base


class GoalProgress(bookbuddy.models.base.Base):
    """One row per (goal, book) pair that has been counted toward the goal."""

    __tablename__ = "goal_progress"
    __table_args__ = (
        sqlalchemy.Index("idx_goal_progress_book", "book_id"),
        {"schema": bookbuddy.models.base.SCHEMA}
    )

    goal_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger,
        sqlalchemy.ForeignKey(f"{bookbuddy.models.base.SCHEMA}.goals.goal_id", ondelete="CASCADE"),
        primary_key=True
    )
    book_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger,
        sqlalchemy.ForeignKey(f"{bookbuddy.models.base.SCHEMA}.books.book_id", ondelete="CASCADE"),
        primary_key=True
    )
    applied_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    applied_from_status: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=True
    )
