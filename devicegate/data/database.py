# DeviceGate - Device Session Admission & Consistency Engine
# Copyright (c) 2026 George Scott Foley
# ORCID: 0009-0006-4957-0540
# Email: Georgescottfoley@proton.me
# Licensed under the MIT License - see LICENSE file for details

"""
Database engine management.

Supports:
- PostgreSQL via asyncpg (production)
- SQLite via aiosqlite (development / tests)

The backend is determined by the database URL. A ``Database`` instance is
created by the caller and handed to the session engine; there are no
module-level engine singletons.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..core.settings import DatabaseSettings
from .models import Base

logger = logging.getLogger(__name__)


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


class Database:
    """
    Owns the async engine and the session factory.

    Usage:
        db = Database(settings.database)
        await db.create_schema()
        async with db.session_factory() as session:
            ...
        await db.close()
    """

    def __init__(self, settings: DatabaseSettings):
        self.url = settings.url
        engine_kwargs: dict = {}

        if _is_sqlite(self.url):
            # SQLite: no pool, check_same_thread off
            engine_kwargs.update(
                connect_args={"check_same_thread": False},
                pool_pre_ping=False,
            )
            logger.info("Initializing SQLite database: %s", self.url)
        else:
            # PostgreSQL: connection pooling
            engine_kwargs.update(
                pool_size=settings.pool_size,
                max_overflow=settings.max_overflow,
                pool_pre_ping=True,
            )
            logger.info("Initializing PostgreSQL database")

        self.engine: AsyncEngine = create_async_engine(
            self.url,
            echo=settings.echo,
            **engine_kwargs,
        )
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_schema(self) -> None:
        """Create the identities and device_sessions tables if missing."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created from ORM metadata")

    async def close(self) -> None:
        """Dispose the engine and release all connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")
