"""
goalcircle.services.user_service — User Directory
==================================================

The identity gate hands us ``(user_id, username)`` from a verified token.
This module keeps the ``users`` table in step with it so that foreign keys
resolve and display names can be looked up at read/send time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from goalcircle.database.engine import unit_of_work
from goalcircle.database.models import User

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


def get_or_create_user(session: Session, user_id: int, username: str) -> User:
    """Fetch or insert a User row, refreshing the stored display name."""
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, username=username)
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(user)
                session.flush()
        except IntegrityError:
            # Another request registered the same identity first.
            user = session.get(User, user_id)
            if user is None:
                raise
        else:
            logger.info("Registered user %d (%s)", user_id, username)
            return user
    if user.username != username:
        user.username = username
    return user


def sync_user(engine: Engine, user_id: int, username: str) -> None:
    """Ensure the verified identity has an up-to-date ``users`` row."""
    with unit_of_work(engine, "Failed to register user") as session:
        get_or_create_user(session, user_id, username)


def username_for(session: Session, user_id: int) -> str:
    """Resolve a display name from the store, falling back to ``Anonymous``."""
    name = session.scalar(select(User.username).where(User.id == user_id))
    return name or ANONYMOUS_NAME
