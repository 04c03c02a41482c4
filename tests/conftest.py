"""Shared test fixtures."""

import random

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taste_machine.api.app import app
from taste_machine.api.deps import get_service
from taste_machine.engine.service import TasteMachine
from taste_machine.models.base import Base
from taste_machine.rating.config import RatingConfig, RetryConfig


@pytest.fixture
async def test_engine(tmp_path):
    """Create an async SQLite engine on a per-test database file.

    A file (not ``:memory:``) gives every session its own connection, so
    concurrent transactions behave like they do against PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'taste_machine.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
def rating_config() -> RatingConfig:
    """Default tunables with near-instant retry backoff."""
    return RatingConfig(retry=RetryConfig(backoff_min=0.0, backoff_max=0.01))


@pytest.fixture
def service(test_session_factory, rating_config) -> TasteMachine:
    """A fresh engine instance with a seeded RNG."""
    return TasteMachine(test_session_factory, rating_config, rng=random.Random(1234))


@pytest.fixture
def register_nfts(service):
    """Register NFTs given as ``{nft_id: collection}``."""

    async def _register(nfts: dict[str, str]) -> None:
        for nft_id, collection in nfts.items():
            await service.register_nft(nft_id, collection, name=f"NFT {nft_id}")

    return _register


@pytest.fixture
async def api_client(service):
    """Async HTTP client hitting the FastAPI app with the test service."""
    app.dependency_overrides[get_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
