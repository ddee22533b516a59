import datetime
import typing
import sqlalchemy
import sqlalchemy.orm
import bookbuddy.models.base


class StatusTransition(bookbuddy.models.base.Base):
    __tablename__ = "status_transitions"
    __table_args__ = (
        sqlalchemy.CheckConstraint(
            "from_status IS NULL OR from_status IN ('want-to-read', 'reading', 'read')",
            name="check_status_transitions_from"
        ),
        sqlalchemy.CheckConstraint(
            "to_status IN ('want-to-read', 'reading', 'read')", name="check_status_transitions_to"
        ),
        sqlalchemy.Index("idx_status_transitions_book", "book_id", "transitioned_at"),
        {"schema": bookbuddy.models.base.SCHEMA}
    )

    transition_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, primary_key=True
    )
    book_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger,
        sqlalchemy.ForeignKey(f"{bookbuddy.models.base.SCHEMA}.books.book_id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, nullable=False
    )
    from_status: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=True
    )
    to_status: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=False
    )
    transitioned_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
