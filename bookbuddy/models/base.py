import sqlalchemy.orm

SCHEMA = "bookbuddy"


class Base(sqlalchemy.orm.DeclarativeBase):
    pass
