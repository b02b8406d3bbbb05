"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ADMIN_TOKEN"] = ""
os.environ["DEBUG"] = "true"

from aggzap.addresses import derive_address
from aggzap.chain import Chain
from aggzap.config import Settings
from aggzap.ledger.models import Base
from aggzap.ledger.registry import RegistryRepository
from aggzap.ledger.repository import LedgerRepository
from aggzap.services.deployment import ProtocolDeployment, deploy_protocol


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest_asyncio.fixture
async def registry_repo(db_session: AsyncSession) -> RegistryRepository:
    """Create registry repository for testing."""
    return RegistryRepository(db_session)


@pytest_asyncio.fixture
async def chain() -> AsyncGenerator[Chain, None]:
    """A single fresh chain."""
    chain = Chain(2, "amoy", lock_timeout=5.0)
    await chain.start()
    yield chain
    await chain.close()


@pytest.fixture
def settings() -> Settings:
    """Settings from the test environment only."""
    return Settings(_env_file=None)


@pytest_asyncio.fixture
async def deployment(settings: Settings) -> AsyncGenerator[ProtocolDeployment, None]:
    """Fully wired protocol on fresh source and destination chains."""
    deployment = await deploy_protocol(settings)
    yield deployment
    await deployment.close()


@pytest.fixture
def user() -> str:
    return derive_address("test", "user")


@pytest.fixture
def stranger() -> str:
    return derive_address("test", "stranger")


@pytest_asyncio.fixture
async def funded_user(deployment: ProtocolDeployment, user: str) -> str:
    """User holding 10,000 USDC and 10 ETH on the source chain."""
    await deployment.fund(user, "USDC", 10_000 * 10**6)
    await deployment.fund(user, "ETH", 10 * 10**18)
    return user
