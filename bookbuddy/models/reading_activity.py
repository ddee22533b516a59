import datetime
import typing
import sqlalchemy
import sqlalchemy.orm
import bookbuddy.models.base


class ReadingActivity(bookbuddy.models.base.Base):
    __tablename__ = "reading_activity"
    __table_args__ = (
        sqlalchemy.UniqueConstraint("user_id", "activity_date", name="uq_reading_activity_user_date"),
        sqlalchemy.CheckConstraint(
            "pages_read >= 0 AND minutes_read >= 0", name="check_reading_activity_amounts"
        ),
        {"schema": bookbuddy.models.base.SCHEMA}
    )

    activity_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
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
    activity_date: sqlalchemy.orm.Mapped[datetime.date] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Date, nullable=False
    )
    pages_read: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=False, server_default="0"
    )
    minutes_read: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=False, server_default="0"
    )
    created_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    updated_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
