"""
goalcircle.services.chat_service — Membership-Gated Chat Persistence
=====================================================================

Store half of the chat subsystem.  Synchronous; the WebSocket endpoint
calls these through :func:`goalcircle.database.engine.run_db`.

Membership is read from the store on **every** call.  A user can leave a
goal between joining a room and sending a message, so nothing about
membership is cached on the connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from goalcircle.database.engine import unit_of_work
from goalcircle.database.models import ChatMessage, GoalMember, User
from goalcircle.services.errors import ForbiddenError, InvalidInputError
from goalcircle.services.user_service import ANONYMOUS_NAME, username_for

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_BACKLOG_SIZE = 50
DEFAULT_HISTORY_LIMIT = 100

NOT_A_MEMBER = "User is not a member of this group"


def message_dict(m: ChatMessage, user_name: str | None) -> dict:
    return {
        "id": m.id,
        "goal_id": m.goal_id,
        "user_id": m.user_id,
        "message_text": m.message_text,
        "created_at": m.created_at.isoformat() if m.created_at else None,
        "user_name": user_name or ANONYMOUS_NAME,
    }


def _is_member(session: Session, user_id: int, goal_id: int) -> bool:
    return bool(session.scalar(
        select(
            exists().where(
                GoalMember.user_id == user_id, GoalMember.goal_id == goal_id
            )
        )
    ))


def _latest(session: Session, goal_id: int, limit: int) -> list[dict]:
    """The most recent *limit* messages, returned oldest → newest."""
    rows = session.execute(
        select(ChatMessage, User.username)
        .outerjoin(User, User.id == ChatMessage.user_id)
        .where(ChatMessage.goal_id == goal_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    ).all()
    return [message_dict(m, name) for m, name in reversed(rows)]


def join_backlog(
    engine: Engine, user_id: int, goal_id: int, limit: int = DEFAULT_BACKLOG_SIZE
) -> list[dict]:
    """Verify membership and return the backlog snapshot for a room join."""
    with unit_of_work(engine, "Error joining group") as session:
        if not _is_member(session, user_id, goal_id):
            raise ForbiddenError(NOT_A_MEMBER)
        return _latest(session, goal_id, limit)


@dataclass(frozen=True, slots=True)
class PostedMessage:
    """A stored message plus the goal's members at the moment it was stored."""

    message: dict
    member_ids: frozenset[int]


def post_message(engine: Engine, user_id: int, goal_id: int, text: str) -> PostedMessage:
    """Re-check membership, persist the message, and resolve the sender name.

    The display name is looked up now, not taken from the connection, so a
    rename shows up on the very next message.  ``member_ids`` is read in the
    same unit of work and decides who the broadcast may reach.
    """
    text = (text or "").strip()
    if not text:
        raise InvalidInputError("Message text is required")

    with unit_of_work(engine, "Failed to send message") as session:
        if not _is_member(session, user_id, goal_id):
            raise ForbiddenError(NOT_A_MEMBER)
        message = ChatMessage(goal_id=goal_id, user_id=user_id, message_text=text)
        session.add(message)
        session.flush()
        logger.debug("Message %d stored in goal %d", message.id, goal_id)
        member_ids = frozenset(session.scalars(
            select(GoalMember.user_id).where(GoalMember.goal_id == goal_id)
        ))
        return PostedMessage(
            message=message_dict(message, username_for(session, user_id)),
            member_ids=member_ids,
        )


def chat_history(
    engine: Engine, user_id: int, goal_id: int, limit: int = DEFAULT_HISTORY_LIMIT
) -> list[dict]:
    """Membership-gated history read for the HTTP endpoint."""
    with unit_of_work(engine, "Failed to fetch chat messages") as session:
        if not _is_member(session, user_id, goal_id):
            raise ForbiddenError("Forbidden: not a member of this group")
        return _latest(session, goal_id, limit)
