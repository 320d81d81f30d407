"""
Compyy Backend — Test Configuration (conftest.py)
===================================================

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── mock_db_session: Mock database session (no real DB needed)
    ├── database:        Empty tables in the SQLite test database
    ├── db_session:      Real AsyncSession on those tables
    ├── temp_storage:    Temporary directory for file operations
    ├── test_client:     HTTPX AsyncClient on a fresh create_app()
    └── register_user:   Creates an account through the API, returns auth headers
"""

import os
import tempfile
import uuid
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before any compyy import: settings and the engine are built at import time
_TEST_DIR = tempfile.mkdtemp(prefix="compyy_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["STORAGE_ROOT"] = os.path.join(_TEST_DIR, "storage")
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["RESEND_API_KEY"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["AUTH_RATE_LIMIT_ATTEMPTS"] = "10000"
os.environ["PASSWORD_CHANGE_LIMIT"] = "10000"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["RETRY_JITTER"] = "0"
os.environ["NEWSLETTER_DOUBLE_OPT_IN"] = "false"

from compyy.database import Base, async_session_factory, engine  # noqa: E402
import compyy.models  # noqa: E402,F401


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock AsyncSession for unit tests that should not touch a database.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = user
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.refresh = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def database():
    """Recreate every table, and release pooled connections afterwards."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    # connections belong to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_png_bytes():
    """A 1x1 transparent PNG."""
    return bytes.fromhex(
        "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
        "1f15c4890000000d49444154789c6360000002000154a24f5d"
        "000000000000000049454e44ae426082"
    )


@pytest_asyncio.fixture
async def test_client(database):
    """
    HTTPX AsyncClient talking to a fresh application.

    Each call to create_app() gets empty rate limiters and play sessions.
    """
    from compyy.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def register_user(test_client):
    """
    Factory creating an account through the API.

    Returns {"id", "email", "token", "headers"}. The auth cookie set by the
    response is dropped so later requests are anonymous unless they pass
    the returned headers.
    """

    async def _register(**overrides: Any) -> Dict[str, Any]:
        payload = {
            "email": f"teacher-{uuid.uuid4().hex[:8]}@example.com",
            "password": "correct-horse",
            "firstName": "Ada",
            "lastName": "Lovelace",
        }
        payload.update(overrides)
        response = await test_client.post("/api/auth/register", json=payload)
        assert response.status_code == 201, response.text
        test_client.cookies.clear()
        body = response.json()
        return {
            "id": body["user"]["id"],
            "email": body["user"]["email"],
            "password": payload["password"],
            "token": body["token"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _register


def jeopardy_board(title: str = "Science Review", categories: int = 2, questions: int = 2) -> Dict[str, Any]:
    """A complete, valid board document."""
    return {
        "title": title,
        "categories": [
            {
                "id": f"cat-{c}",
                "name": f"Category {c + 1}",
                "questions": [
                    {
                        "id": f"q-{c}-{q}",
                        "value": (q + 1) * 100,
                        "question": f"Question {c + 1}.{q + 1}?",
                        "answer": f"Answer {c + 1}.{q + 1}",
                        "isAnswered": False,
                    }
                    for q in range(questions)
                ],
            }
            for c in range(categories)
        ],
    }
