"""Shared test configuration and fixtures."""

from __future__ import annotations

import os
from pathlib import Path

# Settings are read once at import time, so the environment is fixed up front.
TEST_DB_PATH = Path(__file__).resolve().parent / "test_bookshelf.db"
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "console"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from bookshelf import models  # noqa: E402,F401
from bookshelf.auth.password import hash_password  # noqa: E402
from bookshelf.database import Base, async_session, engine  # noqa: E402
from bookshelf.errors import UpstreamGenerationFailure  # noqa: E402
from bookshelf.models.user import User  # noqa: E402


class FakeLLM:
    """
    Stand-in for TextGenerationClient.

    ``responses`` maps a call site to the text to return, or to an exception
    instance to raise. Every call is recorded in ``calls``.
    """

    def __init__(self, responses: dict | None = None) -> None:
        self.responses = responses or {}
        self.calls: list[dict] = []

    async def complete(self, prompt, tier=None, json_output=False, call_site="default"):
        self.calls.append(
            {
                "prompt": prompt,
                "tier": tier,
                "json_output": json_output,
                "call_site": call_site,
            }
        )
        response = self.responses.get(call_site, "")
        if isinstance(response, Exception):
            raise response
        return response

    def calls_for(self, call_site: str) -> list[dict]:
        return [c for c in self.calls if c["call_site"] == call_site]


class RecordingDispatcher:
    def __init__(self, task_id: str | None = "task-123") -> None:
        self.task_id = task_id
        self.user_ids: list[int] = []

    def __call__(self, user_id: int) -> str | None:
        self.user_ids.append(user_id)
        return self.task_id


@pytest_asyncio.fixture
async def db():
    """Fresh schema per test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def session(db):
    async with async_session() as s:
        yield s


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def failing_llm():
    return FakeLLM(
        {
            "detect_genre": UpstreamGenerationFailure(),
            "search_books": UpstreamGenerationFailure(),
            "generate_recommendations": UpstreamGenerationFailure(),
        }
    )


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest_asyncio.fixture
async def client(db, fake_llm, dispatcher):
    """Test client with the model and the job queue replaced by fakes."""
    from bookshelf.main import app
    from bookshelf.routers.deps import get_dispatcher
    from bookshelf.services.llm_client import get_llm_client

    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def register(client: AsyncClient, name: str) -> dict[str, str]:
    """Register ``name`` and return bearer headers for it."""
    response = await client.post(
        "/auth/register",
        json={
            "email": f"{name}@example.com",
            "username": name,
            "password": "SecurePass123",
        },
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def make_user(session, name: str = "reader") -> User:
    user = User(
        email=f"{name}@example.com",
        username=name,
        hashed_password=hash_password("SecurePass123"),
    )
    session.add(user)
    await session.commit()
    return user
