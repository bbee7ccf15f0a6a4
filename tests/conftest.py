from contextlib import asynccontextmanager
from typing import AsyncIterator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app import create_app
from store import InMemoryUserStore, UserStore


@asynccontextmanager
async def serve(store: UserStore) -> AsyncIterator[AsyncClient]:
    """Run the app's lifespan around an HTTP client bound to it."""
    app = create_app(store)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def mock_store() -> AsyncMock:
    """Store double that records calls; set side_effect to simulate failures."""
    return AsyncMock(spec=UserStore)


@pytest_asyncio.fixture
async def client(store: InMemoryUserStore) -> AsyncIterator[AsyncClient]:
    async with serve(store) as ac:
        yield ac


@pytest_asyncio.fixture
async def mock_client(mock_store: AsyncMock) -> AsyncIterator[AsyncClient]:
    async with serve(mock_store) as ac:
        yield ac
