# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# DESIGN DECISION: No module-level engine. A `Database` object is
# constructed once in the FastAPI lifespan (or by the bootstrap script),
# handed to the stores that need it, and disposed at shutdown. Tests build
# their own against a temporary SQLite file.
#
# SESSION LIFECYCLE:
# Stores open one short session per operation via `Database.session()`:
#   create → yield → commit (or rollback on error) → close
# There is no request-scoped session; each store call is its own
# transaction, which is what the validation flow needs (reads and the
# usage update are independent).
# =============================================================================

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from keygate.config import Settings
from keygate.db.models import Base


class Database:
    """Owns the async engine and its session factory."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        # expire_on_commit=False: rows stay readable after commit without a
        # new round-trip, which async sessions cannot do implicitly.
        self.session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False, **engine_kwargs) -> "Database":
        return cls(create_async_engine(url, echo=echo, **engine_kwargs))

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        engine_kwargs = {}
        # SQLite's pools do not take sizing arguments
        if not settings.database_url.startswith("sqlite"):
            engine_kwargs = {
                "pool_size": settings.database_pool_size,
                "max_overflow": settings.database_max_overflow,
            }
        return cls.from_url(
            settings.database_url,
            echo=settings.debug,
            **engine_kwargs,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a transactional session.

        Commits on normal exit, rolls back and re-raises on any exception.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Create missing tables. Not a migration tool."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
