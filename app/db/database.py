"""
Database configuration with async support
"""

import logging
from contextlib import contextmanager
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import Session, sessionmaker, with_loader_criteria
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as AsyncSessionSQLModel
from typing import AsyncGenerator, Iterator

from app.core.config import settings
from app.models.bookmark import Bookmark

# Configure logging based on environment
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

logger.info(f"Environment: {settings.ENVIRONMENT}")

OWNER_SCOPE_KEY = "owner_id"


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        options = {}
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            # One shared connection, otherwise every checkout sees an empty database
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": 20,  # Number of connections to maintain
        "max_overflow": 30,  # Additional connections that can be created
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "connect_args": {
            "server_settings": {
                "application_name": "bookmarks_app",
            }
        },
    }


async_engine = create_async_engine(
    settings.ASYNC_DATABASE_URL,
    echo=settings.SQL_ECHO,
    future=True,
    **_engine_options(settings.ASYNC_DATABASE_URL),
)

# Async session factory
AsyncSessionLocal = sessionmaker(
    bind=async_engine,
    class_=AsyncSessionSQLModel,
    expire_on_commit=False,
    autoflush=False
)


@event.listens_for(Session, "do_orm_execute")
def _apply_owner_criteria(orm_execute_state):
    """Restrict every ORM SELECT of Bookmark to the session's owner, when one is set."""
    owner_id = orm_execute_state.session.info.get(OWNER_SCOPE_KEY)
    if owner_id is None or not orm_execute_state.is_select:
        return
    if orm_execute_state.is_column_load or orm_execute_state.is_relationship_load:
        return
    orm_execute_state.statement = orm_execute_state.statement.options(
        with_loader_criteria(Bookmark, Bookmark.owner_id == owner_id, include_aliases=True)
    )


@contextmanager
def owner_scope(db: AsyncSession, owner_id: str) -> Iterator[AsyncSession]:
    """Mark ``db`` as acting on behalf of ``owner_id`` for the duration of the block."""
    previous = db.info.get(OWNER_SCOPE_KEY)
    db.info[OWNER_SCOPE_KEY] = owner_id
    try:
        yield db
    finally:
        if previous is None:
            db.info.pop(OWNER_SCOPE_KEY, None)
        else:
            db.info[OWNER_SCOPE_KEY] = previous


async def init_db():
    """Initialize database tables"""
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Async database session dependency
    Usage:
    async def some_endpoint(db: AsyncSession = Depends(get_db)):
        ...
    """
    try:
        async with AsyncSessionLocal() as session:
            yield session
    except SQLAlchemyError as e:
        logger.error(f"Database session failed: {str(e)}", exc_info=True)
        raise
