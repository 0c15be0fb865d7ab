"""Async database engine and session management.

Request handlers get one session per request through get_db. Services that
need explicit transaction boundaries (the giftcard ledger) commit or roll back
on the session they are handed; everything else flushes and lets get_db commit.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from claybook.core.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Per-request session, committed when the handler returns normally."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            logger.debug("Rolling back request session", exc_info=True)
            await session.rollback()
            raise
        else:
            await session.commit()
