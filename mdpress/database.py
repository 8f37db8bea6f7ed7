"""
Async database engine and transactional session scope
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from .config import get_database_settings
from .exceptions import ConflictError
from .logging import logger
from .orm import Base

T = TypeVar("T")


class Database:
    """Owns the engine and hands out transactional sessions"""

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        settings = get_database_settings()
        self.url = url or settings.database_url
        echo = settings.database_echo if echo is None else echo

        engine_kwargs = {"echo": echo, "future": True}
        if self.url.startswith("sqlite"):
            if ":memory:" in self.url or self.url.rstrip("/").endswith("sqlite+aiosqlite:"):
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)
        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            autoflush=True,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create every table that does not exist yet"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready", url=self._safe_url())

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def ping(self) -> bool:
        """Cheap connectivity check for health probes"""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[AsyncSession]:
        """
        Provide a transactional scope around a unit of work.

        Commits when the block exits normally, rolls back and re-raises otherwise.
        """
        session = self.SessionLocal()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def run_with_retry(
        self,
        operation: Callable[[AsyncSession], Awaitable[T]],
        resource: str,
        max_retries: int = 5,
    ) -> T:
        """
        Run ``operation`` in a fresh session, retrying the whole unit of work
        when a unique constraint rejects it.

        Raises:
            ConflictError: if every attempt hit an integrity violation
        """
        last_error: Optional[IntegrityError] = None
        for attempt in range(1, max_retries + 1):
            try:
                async with self.session_scope() as session:
                    return await operation(session)
            except IntegrityError as e:
                last_error = e
                logger.warning("Unique constraint conflict, retrying",
                               resource=resource,
                               attempt=attempt,
                               max_retries=max_retries,
                               error=str(e.orig))
        raise ConflictError(resource, f"gave up after {max_retries} attempts: {last_error.orig}")

    def _safe_url(self) -> str:
        return self.engine.url.render_as_string(hide_password=True)
