"""
Shared fixtures for the Backlog Pilot API tests.

The app runs against an in-memory SQLite database (aiosqlite) substituted
through dependency overrides, and a scripted stand-in for the LLM client.
"""
import json
import os
from datetime import datetime, timezone, timedelta
from typing import Any, List, Optional

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "text")

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from server import app
from db import get_db
from db.models import Base
from routes.auth import AUTH_JWT_SECRET, AUTH_JWT_AUDIENCE
from services.llm_service import GenerationEvent, get_llm_service
from services.rate_limit import limiter

limiter.enabled = False


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


class FakeLLMService:
    """Scripted replacement for LLMService; records every call"""

    def __init__(self):
        self.text_chunks: List[str] = ["Happy to help", " with this backlog."]
        self.partials: List[Any] = []
        self.result: Any = None
        self.error: Optional[Exception] = None
        self.calls: List[dict] = []

    async def stream_text(self, profile, system_prompt, messages, user_id=None):
        self.calls.append({
            "kind": "text",
            "profile": profile,
            "system_prompt": system_prompt,
            "messages": messages,
            "user_id": user_id,
        })
        for chunk in self.text_chunks:
            yield chunk
        if self.error:
            raise self.error

    async def stream_object(self, profile, system_prompt, user_prompt, schema, user_id=None):
        self.calls.append({
            "kind": "object",
            "profile": profile,
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "schema": schema,
            "user_id": user_id,
        })
        for partial in self.partials:
            yield GenerationEvent(type="partial", data=partial)
        if self.error:
            raise self.error
        yield GenerationEvent(type="complete", data=self.result)


@pytest.fixture
def fake_llm():
    return FakeLLMService()


@pytest.fixture
async def client(session_factory, fake_llm):
    """Test client wired to the SQLite database and the fake LLM"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_llm_service] = lambda: fake_llm

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def make_token(
    user_id: Optional[str],
    expires_in: int = 3600,
    audience: str = AUTH_JWT_AUDIENCE,
    secret: str = AUTH_JWT_SECRET
) -> str:
    payload = {
        "aud": audience,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "iat": datetime.now(timezone.utc),
    }
    if user_id is not None:
        payload["sub"] = user_id
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def auth_headers():
    """Authorization headers for a given user id"""
    def _headers(user_id: str = "user-alice") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _headers


def read_sse(body: str) -> List[dict]:
    """Decode an SSE body into its JSON payloads"""
    events = []
    for block in body.split("\n\n"):
        block = block.strip()
        if block.startswith("data: "):
            events.append(json.loads(block[len("data: "):]))
    return events


@pytest.fixture
def sse_events():
    return read_sse
