"""Pytest configuration and fixtures."""

import asyncio
import os

# Settings are read at import time; configure before importing the app
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite://"

from collections.abc import AsyncGenerator, AsyncIterator
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
import sse_starlette.sse as sse_module

from edubot.api.deps import create_access_token, get_completion_bridge
from edubot.db.base import Base
from edubot.db.models import Assessment, Enrollment, Grade, Subject, User, UserRole
from edubot.db.session import get_db, get_session_factory
from edubot.main import app
from edubot.services.prompting import TITLE_PROMPT


class FakeCompletionBridge:
    """
    Scripted stand-in for the Anthropic-backed bridge.

    ``stream`` yields ``deltas``, then optionally waits on ``gate`` and/or
    raises ``stream_error``. Title requests are recognised by their prompt.
    """

    def __init__(self):
        self.title = "Study Plan Help"
        self.title_error: Exception | None = None
        self.reply = "Your GPA is 3.55."
        self.complete_error: Exception | None = None
        self.deltas: list[str] = ["Your GPA ", "is 3.55."]
        self.stream_error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.prompts: list[str] = []
        self.stream_closed = False

    async def complete(self, system_prompt, message, *, max_tokens=None, temperature=None):
        if system_prompt == TITLE_PROMPT:
            if self.title_error is not None:
                raise self.title_error
            return self.title
        self.prompts.append(system_prompt)
        if self.complete_error is not None:
            raise self.complete_error
        return self.reply

    async def stream(self, system_prompt, message) -> AsyncIterator[str]:
        self.prompts.append(system_prompt)
        try:
            for delta in self.deltas:
                yield delta
            if self.gate is not None:
                await self.gate.wait()
            if self.stream_error is not None:
                raise self.stream_error
        finally:
            self.stream_closed = True


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def bridge() -> FakeCompletionBridge:
    return FakeCompletionBridge()


@pytest.fixture
async def client(session_factory, bridge) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_completion_bridge] = lambda: bridge

    # sse-starlette keeps a module-level exit event bound to the first loop
    app_status = getattr(sse_module, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None

    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    app.dependency_overrides.clear()


@pytest.fixture
async def records(db) -> SimpleNamespace:
    """
    One lecturer teaching MATH101 with two assessments (weights 30/70) and
    one enrolled student graded 50/100 and 80/100.
    """
    lecturer = User(username="dr.smith", full_name="Dana Smith", role=UserRole.LECTURER.value)
    student = User(
        username="alex", full_name="Alex Doe", role=UserRole.STUDENT.value, student_number="S1001"
    )
    db.add_all([lecturer, student])
    await db.flush()

    subject = Subject(lecturer_id=lecturer.id, name="Calculus", code="MATH101")
    db.add(subject)
    await db.flush()

    midterm = Assessment(subject_id=subject.id, name="Midterm", max_score=100, weight=30)
    final = Assessment(subject_id=subject.id, name="Final", max_score=100, weight=70)
    db.add_all([midterm, final])
    await db.flush()

    db.add(Enrollment(user_id=student.id, subject_id=subject.id, lecturer_id=lecturer.id))
    db.add_all([
        Grade(student_id=student.id, assessment_id=midterm.id, student_number="S1001", score=50),
        Grade(student_id=student.id, assessment_id=final.id, student_number="S1001", score=80),
    ])
    await db.commit()

    return SimpleNamespace(
        lecturer=lecturer, student=student, subject=subject, midterm=midterm, final=final
    )


@pytest.fixture
def auth_headers():
    """Bearer headers for a seeded user."""

    def make(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return make
