import datetime
import typing
import sqlalchemy
import sqlalchemy.orm
import bookbuddy.models.base


class ReadingSession(bookbuddy.models.base.Base):
    __tablename__ = "reading_sessions"
    __table_args__ = (
        sqlalchemy.CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes >= 0", name="check_reading_sessions_duration"
        ),
        sqlalchemy.CheckConstraint(
            "pages_read IS NULL OR pages_read >= 0", name="check_reading_sessions_pages"
        ),
        sqlalchemy.Index("idx_reading_sessions_user_started", "user_id", "started_at"),
        sqlalchemy.Index("idx_reading_sessions_book", "book_id"),
        # At most one open session per user
        sqlalchemy.Index(
            "uq_reading_sessions_user_active",
            "user_id",
            unique=True,
            postgresql_where=sqlalchemy.text("ended_at IS NULL")
        ),
        {"schema": bookbuddy.models.base.SCHEMA}
    )

    session_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, primary_key=True
    )
    user_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, nullable=False
    )
    book_id: sqlalchemy.orm.Mapped[typing.Optional[int]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger,
        sqlalchemy.ForeignKey(f"{bookbuddy.models.base.SCHEMA}.books.book_id", ondelete="SET NULL"),
        nullable=True
    )
    started_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    ended_at: sqlalchemy.orm.Mapped[typing.Optional[datetime.datetime]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=True
    )
    duration_minutes: sqlalchemy.orm.Mapped[typing.Optional[int]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=True
    )
    pages_read: sqlalchemy.orm.Mapped[typing.Optional[int]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=True
    )
    notes: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Text, nullable=True
    )
    created_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    updated_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )

    @property
    def is_active(self) -> bool:
        return self.ended_at is None
