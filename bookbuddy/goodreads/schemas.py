import datetime
import typing
import pydantic

GENRE_EXCLUDED_SHELVES = frozenset({"to-read", "currently-reading", "read", "favorites"})


class GoodreadsRow(pydantic.BaseModel):
    """Raw Goodreads export row keyed by the export's column headers."""

    model_config = pydantic.ConfigDict(populate_by_name=True, extra="ignore")

    book_id: str = pydantic.Field(default="", alias="Book Id")
    title: str = pydantic.Field(default="", alias="Title")
    author: str = pydantic.Field(default="", alias="Author")
    author_lf: str = pydantic.Field(default="", alias="Author l-f")
    additional_authors: str = pydantic.Field(default="", alias="Additional Authors")
    isbn: str = pydantic.Field(default="", alias="ISBN")
    isbn13: str = pydantic.Field(default="", alias="ISBN13")
    my_rating: str = pydantic.Field(default="", alias="My Rating")
    average_rating: str = pydantic.Field(default="", alias="Average Rating")
    publisher: str = pydantic.Field(default="", alias="Publisher")
    binding: str = pydantic.Field(default="", alias="Binding")
    number_of_pages: str = pydantic.Field(default="", alias="Number of Pages")
    year_published: str = pydantic.Field(default="", alias="Year Published")
    original_publication_year: str = pydantic.Field(default="", alias="Original Publication Year")
    date_read: str = pydantic.Field(default="", alias="Date Read")
    date_added: str = pydantic.Field(default="", alias="Date Added")
    bookshelves: str = pydantic.Field(default="", alias="Bookshelves")
    exclusive_shelf: str = pydantic.Field(default="", alias="Exclusive Shelf")
    my_review: str = pydantic.Field(default="", alias="My Review")


class GoodreadsBook(pydantic.BaseModel):
    book_id: str
    title: str
    author: str
    additional_authors: typing.List[str] = pydantic.Field(default_factory=list)
    isbn: typing.Optional[str] = None
    isbn13: typing.Optional[str] = None
    my_rating: typing.Optional[float] = None
    average_rating: typing.Optional[float] = None
    publisher: typing.Optional[str] = None
    number_of_pages: typing.Optional[int] = None
    year_published: typing.Optional[int] = None
    original_publication_year: typing.Optional[int] = None
    date_read: typing.Optional[datetime.datetime] = None
    date_added: datetime.datetime
    bookshelves: typing.List[str] = pydantic.Field(default_factory=list)
    exclusive_shelf: typing.Literal["to-read", "currently-reading", "read"]
    my_review: typing.Optional[str] = None

    @property
    def all_authors(self) -> typing.List[str]:
        return [self.author] + [a for a in self.additional_authors if a]

    @property
    def genres(self) -> typing.List[str]:
        return [shelf for shelf in self.bookshelves if shelf.lower() not in GENRE_EXCLUDED_SHELVES]

    @property
    def is_read(self) -> bool:
        return self.exclusive_shelf == "read"

    @property
    def is_currently_reading(self) -> bool:
        return self.exclusive_shelf == "currently-reading"

    @property
    def is_to_read(self) -> bool:
        return self.exclusive_shelf == "to-read"


class ImportRowError(pydantic.BaseModel):
    row: int
    book: typing.Dict[str, str]
    reason: str


class ImportResult(pydantic.BaseModel):
    success: bool = False
    imported: int = 0
    skipped: int = 0
    errors: typing.List[ImportRowError] = pydantic.Field(default_factory=list)
    message: str = ""
