"""
Storage wiring: the async engine, the per-request session and table creation.

MySQL (aiomysql) in production; any SQLAlchemy async URL can be supplied
through DATABASE_URL, e.g. sqlite+aiosqlite for local runs.
"""
import logging

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from wishwall.config import settings

logger = logging.getLogger(__name__)


def engine_options(url: str) -> dict:
    """Keyword arguments for create_async_engine suited to the URL's dialect."""
    options = {"echo": settings.db_echo}
    if make_url(url).get_backend_name() != "sqlite":
        # SQLite runs without a sized pool; server databases get one
        options.update(
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    return options


engine = create_async_engine(settings.sqlalchemy_url, **engine_options(settings.sqlalchemy_url))

# Rows stay readable after commit; handlers publish change events from them
AsyncSessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create the wish wall tables that are missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Tables ready on %s", make_url(settings.sqlalchemy_url).get_backend_name())


async def get_db():
    """One session per request: committed when the handler returns, rolled back if it raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            logger.debug("Rolling back request transaction: %r", exc)
            await session.rollback()
            raise
