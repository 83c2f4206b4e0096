"""Shared test fixtures for all test groups."""

import os

# Set before any bsos module reads settings (get_settings is cached)
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("METRICS_ENABLED", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bsos.billing.ledger import IdempotencyLedger
from bsos.billing.store import FinancialRecordStore
from bsos.db.base import Base, create_engine_for


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite database with all tables, one per test."""
    import bsos.db.models  # noqa: F401

    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_factory) -> FinancialRecordStore:
    return FinancialRecordStore(session_factory)


@pytest.fixture
def ledger(session_factory) -> IdempotencyLedger:
    return IdempotencyLedger(session_factory, lease_seconds=60)
