import datetime
import typing
import sqlalchemy
import sqlalchemy.orm
import sqlalchemy.dialects.postgresql
import bookbuddy.models.base

STATUS_WANT_TO_READ = "want-to-read"
STATUS_READING = "reading"
STATUS_READ = "read"

VALID_STATUSES = (STATUS_WANT_TO_READ, STATUS_READING, STATUS_READ)


class Book(bookbuddy.models.base.Base):
    __tablename__ = "books"
    __table_args__ = (
        sqlalchemy.CheckConstraint(
            "status IN ('want-to-read', 'reading', 'read')", name="check_books_status"
        ),
        sqlalchemy.CheckConstraint(
            "rating IS NULL OR (rating >= 1 AND rating <= 5)", name="check_books_rating_range"
        ),
        sqlalchemy.CheckConstraint(
            "rating IS NULL OR status = 'read'", name="check_books_rating_requires_read"
        ),
        sqlalchemy.CheckConstraint(
            "current_page IS NULL OR current_page >= 0", name="check_books_current_page"
        ),
        sqlalchemy.Index("idx_books_user_status", "user_id", "status"),
        sqlalchemy.Index("idx_books_user_isbn", "user_id", "isbn"),
        sqlalchemy.Index("idx_books_user_isbn13", "user_id", "isbn13"),
        sqlalchemy.Index("idx_books_user_external_id", "user_id", "external_id"),
        {"schema": bookbuddy.models.base.SCHEMA}
    )

    book_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, primary_key=True
    )
    user_id: sqlalchemy.orm.Mapped[int] = sqlalchemy.orm.mapped_column(
        sqlalchemy.BigInteger, nullable=False
    )
    title: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(500), nullable=False
    )
    author: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(200), nullable=False
    )
    authors: sqlalchemy.orm.Mapped[typing.List[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.dialects.postgresql.JSONB, nullable=False, server_default=sqlalchemy.text("'[]'::jsonb")
    )
    isbn: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=True
    )
    isbn13: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=True
    )
    external_id: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(100), nullable=True
    )
    publisher: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(200), nullable=True
    )
    page_count: sqlalchemy.orm.Mapped[typing.Optional[int]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=True
    )
    genres: sqlalchemy.orm.Mapped[typing.List[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.dialects.postgresql.JSONB, nullable=False, server_default=sqlalchemy.text("'[]'::jsonb")
    )
    status: sqlalchemy.orm.Mapped[str] = sqlalchemy.orm.mapped_column(
        sqlalchemy.String(20), nullable=False, server_default=STATUS_WANT_TO_READ
    )
    current_page: sqlalchemy.orm.Mapped[typing.Optional[int]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Integer, nullable=True, server_default="0"
    )
    rating: sqlalchemy.orm.Mapped[typing.Optional[int]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.SmallInteger, nullable=True
    )
    review: sqlalchemy.orm.Mapped[typing.Optional[str]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.Text, nullable=True
    )
    finished_at: sqlalchemy.orm.Mapped[typing.Optional[datetime.datetime]] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=True
    )
    added_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    created_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
    updated_at: sqlalchemy.orm.Mapped[datetime.datetime] = sqlalchemy.orm.mapped_column(
        sqlalchemy.DateTime(timezone=True), nullable=False, server_default=sqlalchemy.func.now()
    )
