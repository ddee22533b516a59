import asyncio
import logging
import os
import sqlalchemy
import sqlalchemy.ext.asyncio
import bookbuddy.config
import bookbuddy.models.base
import bookbuddy.models.book
import bookbuddy.models.goal
import bookbuddy.models.goal_progress
import bookbuddy.models.reading_activity
import bookbuddy.models.reading_session
import bookbuddy.models.status_transition

logger = logging.getLogger(__name__)

engine: sqlalchemy.ext.asyncio.AsyncEngine = None
async_session_maker: sqlalchemy.ext.asyncio.async_sessionmaker = None


async def run_migrations() -> None:
    alembic_ini = os.path.join(os.path.dirname(__file__), '..', 'alembic.ini')

    # Skip migrations if alembic.ini doesn't exist
    if not os.path.exists(alembic_ini):
        logger.debug("No alembic.ini found, skipping migrations")
        return

    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(alembic_ini)
    alembic_cfg.set_main_option("sqlalchemy.url", bookbuddy.config.settings.database_url)

    await asyncio.get_running_loop().run_in_executor(
        None,
        lambda: command.upgrade(alembic_cfg, "head")
    )
    logger.info("Database migrations completed successfully")


async def init_db() -> None:
    global engine, async_session_maker

    logger.info("Running database migrations")
    await run_migrations()

    engine = sqlalchemy.ext.asyncio.create_async_engine(
        bookbuddy.config.settings.database_url,
        pool_size=bookbuddy.config.settings.db_pool_size,
        max_overflow=bookbuddy.config.settings.db_max_overflow,
        pool_pre_ping=True,
        echo=bookbuddy.config.settings.debug
    )

    async_session_maker = sqlalchemy.ext.asyncio.async_sessionmaker(
        engine,
        class_=sqlalchemy.ext.asyncio.AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.execute(sqlalchemy.text(f"CREATE SCHEMA IF NOT EXISTS {bookbuddy.models.base.SCHEMA}"))
        await conn.run_sync(bookbuddy.models.base.Base.metadata.create_all)
    logger.info("Database schema is up to date")


async def close_db() -> None:
    global engine
    if engine:
        await engine.dispose()


async def get_session() -> sqlalchemy.ext.asyncio.AsyncSession:
    async with async_session_maker() as session:
        yield session
