"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from contextlib import contextmanager

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of goalcircle.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, event  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from goalcircle.config import GoalCircleConfig  # noqa: E402
from goalcircle.database.models import Base  # noqa: E402
from goalcircle.services import user_service  # noqa: E402


# ---------------------------------------------------------------------------
# Map BigInteger → INTEGER so SQLite treats BIGINT keys as rowid aliases.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all GoalCircle tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by the FastAPI thread pool and ``asyncio.to_thread``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def users(db_engine: Engine) -> dict[str, int]:
    """Register three users: alice (owner), bob, carol."""
    ids = {"alice": 101, "bob": 102, "carol": 103}
    for name, user_id in ids.items():
        user_service.sync_user(db_engine, user_id, name)
    return ids


def make_token(sub: str = "101", username: str = "alice") -> str:
    """Create a signed identity JWT.  Usable as a factory in any test."""
    import jwt

    from goalcircle.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": sub, "username": username}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def app_config() -> GoalCircleConfig:
    return GoalCircleConfig()


@pytest.fixture
def client(db_engine: Engine, app_config: GoalCircleConfig):
    """A TestClient wired to the in-memory engine.

    Entering the client runs the lifespan, so every request and WebSocket
    session shares one event loop and one chat registry.
    """
    from fastapi.testclient import TestClient

    from goalcircle.api.deps import get_config, get_engine
    from goalcircle.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: app_config
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.chat_rooms = None


@contextmanager
def failing_statements(engine: Engine, marker: str):
    """Make every statement containing *marker* fail like a driver error.

    Usable as a context manager in any test; the listener is removed on exit.
    """

    def _fail(conn, cursor, statement, parameters, context, executemany):
        if marker in statement:
            raise OperationalError(statement, parameters, Exception("disk I/O error"))

    event.listen(engine, "before_cursor_execute", _fail)
    try:
        yield
    finally:
        event.remove(engine, "before_cursor_execute", _fail)
