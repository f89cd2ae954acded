"""Async engine for the session store."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from voice_interview.config import DATABASE_URL

LOG = logging.getLogger("interview.db")

engine: AsyncEngine = create_async_engine(DATABASE_URL, echo=False, future=True)
session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db(reset: bool = False) -> None:
    """Create the session table; reset=True drops existing rows first."""
    from voice_interview import models  # noqa: F401

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    LOG.info("Session store ready at %s", engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session
