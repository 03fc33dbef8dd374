"""Pytest configuration and fixtures for occupation taxonomy tests.

Provides an in-memory SQLite database with the audit triggers installed and
a few seeded taxonomy rows.
"""

from __future__ import annotations

import os

# Configuration is read lazily, but modules may touch it at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from occutax.config import DBConfig, reset_config
from occutax.db.connection import create_engine_for, init_db, set_session_factory
from occutax.db.models import OccupationModel, TaxonomyGroupModel
from occutax.models import AuditContext


@pytest.fixture(autouse=True)
def _fresh_config():
    """Forget cached configuration between tests."""
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture()
async def engine():
    """In-memory database with schema and audit triggers."""
    engine = create_engine_for(DBConfig(url="sqlite+aiosqlite:///:memory:"))
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    set_session_factory(factory)
    try:
        yield factory
    finally:
        set_session_factory(None)


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    """Plain session for setup and assertions (no audit context)."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit_context() -> AuditContext:
    return AuditContext(
        user_id="tester",
        session_id="session-123",
        ip_address="10.0.0.7",
        user_agent="pytest",
    )


@pytest_asyncio.fixture()
async def taxonomy(session_factory) -> dict[str, int]:
    """Seed a small hierarchy-free taxonomy and return its ids by name."""
    async with session_factory() as session:
        async with session.begin():
            chefs = TaxonomyGroupModel(preferred_label_en="Chefs", esco_code="3434")
            cooks = TaxonomyGroupModel(preferred_label_en="Cooks", esco_code="5120")
            chef = OccupationModel(preferred_label_en="Chef", preferred_label_ar="طاهٍ")
            sous_chef = OccupationModel(preferred_label_en="Sous Chef")
            line_cook = OccupationModel(preferred_label_en="Line Cook")
            session.add_all([chefs, cooks, chef, sous_chef, line_cook])
            await session.flush()
            ids = {
                "chefs": chefs.id,
                "cooks": cooks.id,
                "chef": chef.id,
                "sous_chef": sous_chef.id,
                "line_cook": line_cook.id,
            }
    return ids
