"""
Test configuration and fixtures for the UX Audit AI API.

The database URL is pointed at a throwaway sqlite file before anything from
`app` is imported, because settings and the engine are built at import time.
"""

import os
import tempfile
from typing import AsyncGenerator, Callable, Generator

import jwt
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    if "postgresql://" in test_db_url and "asyncpg" not in test_db_url:
        test_db_url = test_db_url.replace("postgresql://", "postgresql+asyncpg://")
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = tempfile.mktemp(suffix=".db")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"

os.environ["ENVIRONMENT"] = "local"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["INFERENCE_API_KEY"] = ""
os.environ["QUOTA_EXEMPT_USER_IDS"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="ux-audit-uploads-")


@pytest_asyncio.fixture
async def db_session():
    """A session on freshly emptied tables."""
    from app.platform.db.base import Base
    from app.platform.db.session import SessionLocal, engine, init_models

    await init_models()
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())

    async with SessionLocal() as session:
        yield session


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    with TestClient(test_app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def async_client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """In-process client on clean tables. Lifespan is skipped; db_session created the schema."""
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://testserver") as ac:
        yield ac
    test_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[..., dict]:
    """Bearer headers for a user id, signed with the test secret."""
    from app.platform.config import settings

    def _headers(user_id: str = "user-1") -> dict:
        token = jwt.encode({"sub": user_id}, settings.JWT_SECRET_KEY, algorithm=settings.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}

    return _headers
