"""
Async database engine and session management.

Uses SQLAlchemy async with aiosqlite (SQLite) or asyncpg (PostgreSQL).

Example:
    >>> db = Database("sqlite+aiosqlite:///./data/dealflow.db")
    >>> await db.create_tables()
    >>> async with db.session() as session:
    ...     session.add(run)
    ...     await session.commit()
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.infrastructure.database.models import Base
from src.utils.config import DatabaseConfig
from src.utils.exceptions import DatabaseError, RecordNotFoundError
from src.utils.logger import get_logger

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


async def get_required(session: AsyncSession, model: Type[ModelT], key: object) -> ModelT:
    """Row by primary key; raises RecordNotFoundError when it is gone."""
    record = await session.get(model, key)
    if record is None:
        raise RecordNotFoundError(f"{model.__name__} not found: {key}", record_id=key)
    return record


class Database:
    """
    Owns one async engine and its session factory.

    Attributes:
        url: Async SQLAlchemy URL.
        engine: The underlying AsyncEngine.
    """

    def __init__(self, url: str, echo: bool = False):
        # Reuse the config validator so sync URLs get an async driver
        self.url = DatabaseConfig(url=url, echo=echo).url
        self._ensure_sqlite_directory()

        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=echo,
            connect_args={"check_same_thread": False} if "sqlite" in self.url else {},
        )
        self._session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.debug(f"Database engine created for {self.url.split('@')[-1]}")

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        return cls(config.url, echo=config.echo)

    def _ensure_sqlite_directory(self) -> None:
        prefix = "sqlite+aiosqlite:///"
        if self.url.startswith(prefix) and ":memory:" not in self.url:
            Path(self.url[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)

    async def create_tables(self) -> None:
        """Create all tables if they don't exist."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to create tables: {e}") from e
        logger.info("Database tables created/verified")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Open a session; rolls back on error.

        Callers commit explicitly so that each logical step is its own
        transaction.
        """
        session = self._session_factory()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()


_database: Optional[Database] = None


def get_database(config: Optional[DatabaseConfig] = None) -> Database:
    """Process-wide Database built from config on first use."""
    global _database
    if _database is None:
        if config is None:
            from src.utils.config import get_config
            config = get_config().database
        _database = Database.from_config(config)
    return _database
