"""Database engine, session factory, and declarative base.

The connection pool is owned by a `Database` instance that `create_app()`
builds from settings and stores on `app.state.database`. Nothing opens a
connection at import time; the lifespan hook disposes the engine on shutdown.

Session dependency for FastAPI:
  - get_db()  → one session per request, committed on success and rolled
                back on any exception (including HTTP errors raised by the
                route), always returned to the pool.
"""

from collections.abc import AsyncIterator
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are stored without tz)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Base class ──────────────────────────────────────────────

class Base(DeclarativeBase):
    pass


# ── Engine / pool ownership ─────────────────────────────────

def _configure_sqlite(engine: AsyncEngine) -> None:
    """Turn on FK enforcement and let SQLAlchemy own BEGIN so SAVEPOINT works."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Owns the async engine (connection pool) and the session factory."""

    def __init__(
        self,
        url: str,
        *,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
        command_timeout: float | None = None,
    ):
        self.url = url
        if url.startswith("sqlite"):
            self.engine = create_async_engine(url, echo=echo)
            _configure_sqlite(self.engine)
        else:
            connect_args = {}
            if command_timeout:
                connect_args["command_timeout"] = command_timeout
            self.engine = create_async_engine(
                url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
        self.sessionmaker = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            command_timeout=settings.db_command_timeout,
        )

    async def create_all(self) -> None:
        """Create every table known to `Base.metadata` (dev / tests only)."""
        import app.models  # noqa: F401  register all mappers

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def dispose(self) -> None:
        """Close every pooled connection. Checked-out sessions finish first."""
        await self.engine.dispose()


# ── Session dependency ──────────────────────────────────────

async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a request-scoped session bound to the app's Database."""
    database: Database = request.app.state.database
    async with database.sessionmaker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
