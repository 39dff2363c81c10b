"""
goalcircle.database.engine — Database Connection, Unit of Work & Async Helper
==============================================================================

FastAPI serves HTTP and WebSocket traffic from an ``asyncio`` event loop,
while SQLAlchemy + psycopg2 is **synchronous**.  Service functions stay
synchronous and the async entry points hand them to a thread pool with
:func:`run_db`, so the loop never waits on the database.

Every mutating service call runs inside :func:`unit_of_work`: one session,
one transaction, commit on success, rollback on any exception.  Driver
errors are logged here and replaced by a :class:`StoreFailureError` that
carries a caller-chosen, client-safe message.

Usage::

    from goalcircle.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async endpoint:
    msg = await run_db(chat_service.post_message, engine, user_id, goal_id, text)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from goalcircle.database.models import Base
from goalcircle.services.errors import GoalCircleError, StoreFailureError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    Pool sizing:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`goalcircle.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is kept for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(Goal(name="Run 5k", created_by=1))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def unit_of_work(engine: Engine, failure_message: str) -> Iterator[Session]:
    """:func:`get_session` plus store-failure translation.

    Domain errors (:class:`GoalCircleError`) roll back and propagate as-is.
    Any other :class:`SQLAlchemyError` is logged with its traceback and
    re-raised as :class:`StoreFailureError` carrying *failure_message*.
    """
    try:
        with get_session(engine) as session:
            yield session
    except GoalCircleError:
        raise
    except SQLAlchemyError as exc:
        logger.exception("%s", failure_message)
        raise StoreFailureError(failure_message) from exc


# ---------------------------------------------------------------------------
# Dialect-specific INSERT (for ON CONFLICT upserts)
# ---------------------------------------------------------------------------
def dialect_insert(session: Session, table):
    """Return an ``insert()`` construct that supports ``on_conflict_do_*``.

    PostgreSQL in production, SQLite in tests — both expose the same
    ``on_conflict_do_update`` / ``excluded`` API.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Upserts are not supported on dialect {dialect!r}")
    return insert(table)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the event loop is never
    blocked.  Cancelling the awaiting task does not cancel the thread; the
    store call finishes or fails on its own.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
