"""API test fixtures.

Provides an async HTTP client wired to the FastAPI app with the DI
container overridden to use fakes. The app lifespan is not run, so no
real container, database or metrics server is created.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from paybridge.api.deps import get_container


@pytest_asyncio.fixture
async def client(test_container):
    """Async HTTP client with a faked DI container."""
    from paybridge.main import app

    app.dependency_overrides[get_container] = lambda: test_container

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
