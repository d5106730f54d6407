"""Shared test fixtures."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from zonepay.engine.orchestrator import PaymentOrchestrator
from zonepay.models.payment import Base, Client
from zonepay.providers.mock_provider import MockPaymentProvider


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """
    Fresh file-backed SQLite database per test.

    File-backed rather than in-memory so that every session the orchestrator
    opens sees the same database, including concurrent ones.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'zonepay_test.db'}",
        echo=False,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_factory(session_factory):
    """Database pre-loaded with sample clients."""
    async with session_factory() as session:
        session.add_all([
            Client(id=7, username="amahoro", name="Amahoro Guesthouse", phone_number="0788000111", zone_id=1),
            Client(id=8, username="ineza", name="Ineza Boutique", phone_number="+250 788 000 222", zone_id=1),
            Client(id=9, username="no_phone", name="No Phone Kiosk", phone_number=None, zone_id=2),
        ])
        await session.commit()
    return session_factory


@pytest.fixture
def provider():
    return MockPaymentProvider(failure_rate=0.0, latency_ms=0)


@pytest.fixture
def orchestrator(seeded_factory, provider):
    return PaymentOrchestrator(
        seeded_factory,
        provider,
        default_currency="RWF",
        default_country_code="250",
    )
