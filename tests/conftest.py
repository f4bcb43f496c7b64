from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from circlerank.db.base import Base
from circlerank.models import *  # noqa: F401,F403


@pytest.fixture
def run_db():
    """Run ``scenario(session_factory)`` against a fresh in-memory database."""

    def _run(scenario):
        async def _main():
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            try:
                return await scenario(factory)
            finally:
                await engine.dispose()

        return asyncio.run(_main())

    return _run
