"""
Pytest configuration and fixtures for synotag tests.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from synotag.config.settings import Settings
from synotag.db.models import Base
from synotag.repositories import TagRepository, TaggingRepository
from synotag.services.canonical_resolver import CanonicalResolver
from synotag.services.query_compiler import TagQueryCompiler
from synotag.services.tagging_service import TaggingService

# Host models must be registered on Base.metadata before create_all
from tests.factories.host_models import Photo, Post  # noqa: F401

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        debug=False,
        log_level="INFO",
    )


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with a fresh schema per test."""
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Provide database session for tests.

    Each test gets a fresh session; uncommitted work is rolled back.
    """
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture
def tag_repo() -> TagRepository:
    return TagRepository(
        resolver=CanonicalResolver(),
        compiler=TagQueryCompiler(canonical_default=True),
    )


@pytest.fixture
def tagging_repo() -> TaggingRepository:
    return TaggingRepository()


@pytest.fixture
def tagging_service(
    tag_repo: TagRepository, tagging_repo: TaggingRepository
) -> TaggingService:
    """TaggingService with canonical queries on and tag pruning off."""
    return TaggingService(
        tag_repo,
        tagging_repo,
        compiler=TagQueryCompiler(canonical_default=True),
        destroy_unused=False,
    )
