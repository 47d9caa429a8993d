"""Shared fixtures."""

from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dealfinder.db.models import Base
from dealfinder.rank.models import NormalizedDeal


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


@pytest.fixture
def make_deal():
    """Factory for NormalizedDeal with sensible defaults."""

    def _make(
        title: str = "iPhone 15 Pro",
        price="1000",
        source: str = "Amazon",
        relevance: float = 1.0,
        link: str | None = None,
        **kwargs,
    ) -> NormalizedDeal:
        price = Decimal(str(price))
        return NormalizedDeal(
            title=title,
            price=price,
            currency=kwargs.pop("currency", "NGN"),
            original_price=kwargs.pop("original_price", price),
            original_currency=kwargs.pop("original_currency", "NGN"),
            source=source,
            link=link or f"https://example.com/{abs(hash((title, source, str(price))))}",
            relevance=relevance,
            **kwargs,
        )

    return _make


@pytest.fixture
def now():
    return datetime(2026, 10, 18, 12, 0, 0)
