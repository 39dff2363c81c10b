"""
goalcircle.api.routes.chat — Real-time goal chat over WebSocket
================================================================

Authenticates via:
1. JWT token in query parameter (``?token=...``)
2. Or an ``Authorization: Bearer ...`` header

Client frames::

    {"type": "join_group",   "goal_id": 7}
    {"type": "send_message", "goal_id": 7, "text": "hello"}

Server frames are ``initial_messages``, ``new_message``, and ``error``.
Errors never close the socket once it is open.  A connection whose
caller cannot be registered is refused with close code 1011.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from jwt.exceptions import InvalidTokenError

from goalcircle.api.chat_rooms import ChatConnection, ChatRoomRegistry, registry_for
from goalcircle.api.deps import bearer_token, decode_identity, get_config, get_engine
from goalcircle.database.engine import run_db
from goalcircle.services import chat_service, user_service
from goalcircle.services.errors import GoalCircleError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["chat"])

INVALID_PAYLOAD = "Invalid payload"

# RFC 6455 "internal error"; the store could not register the caller
STORE_FAILURE_CLOSE_CODE = 1011


def _error(message: str) -> dict:
    return {"type": "error", "message": message}


def _parse_frame(raw: str) -> tuple[str, int, dict] | None:
    """Return ``(type, goal_id, frame)`` or None for a malformed frame."""
    try:
        frame = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(frame, dict):
        return None
    kind = frame.get("type")
    goal_id = frame.get("goal_id")
    if not isinstance(kind, str) or isinstance(goal_id, bool) or not isinstance(goal_id, int):
        return None
    return kind, goal_id, frame


def _resolve(websocket: WebSocket, dependency):
    """Honour ``app.dependency_overrides`` for plain factory dependencies."""
    return websocket.app.dependency_overrides.get(dependency, dependency)()


def _message_goal(event: dict) -> int | None:
    message = event.get("message")
    return message.get("goal_id") if isinstance(message, dict) else None


async def _handle_join(
    websocket: WebSocket, conn: ChatConnection, rooms: ChatRoomRegistry, goal_id: int
) -> None:
    """Subscribe first, then snapshot the backlog.

    Broadcasts that land while the backlog is being read are held on the
    connection and flushed after ``initial_messages``, minus any message the
    snapshot already carries.
    """
    engine = _resolve(websocket, get_engine)
    cfg = _resolve(websocket, get_config)
    conn.hold()
    await rooms.join(conn, goal_id)
    try:
        backlog = await run_db(
            chat_service.join_backlog, engine, conn.user_id, goal_id, cfg.chat_backlog_size
        )
    except GoalCircleError as exc:
        await rooms.leave(conn, goal_id)
        await conn.release(_error(exc.message), skip=lambda e: _message_goal(e) == goal_id)
        return

    seen = {m["id"] for m in backlog}
    await conn.release(
        {"type": "initial_messages", "goal_id": goal_id, "messages": backlog},
        skip=lambda e: _message_goal(e) == goal_id and e["message"].get("id") in seen,
    )
    logger.info("User %d joined chat for goal %d", conn.user_id, goal_id)


async def _handle_send(
    websocket: WebSocket, conn: ChatConnection, rooms: ChatRoomRegistry,
    goal_id: int, text,
) -> None:
    if not isinstance(text, str):
        await conn.send(_error(INVALID_PAYLOAD))
        return
    engine = _resolve(websocket, get_engine)
    try:
        posted = await run_db(chat_service.post_message, engine, conn.user_id, goal_id, text)
    except GoalCircleError as exc:
        await conn.send(_error(exc.message))
        return
    await rooms.broadcast(
        goal_id,
        {"type": "new_message", "message": posted.message},
        member_ids=posted.member_ids,
    )


@router.websocket("/chat")
async def chat_socket(
    websocket: WebSocket,
    token: str | None = Query(None),
):
    token = token or bearer_token(websocket.headers.get("authorization"))
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return
    try:
        identity = decode_identity(token)
    except InvalidTokenError:
        await websocket.close(code=4001, reason="Invalid token")
        return

    engine = _resolve(websocket, get_engine)
    try:
        await run_db(user_service.sync_user, engine, identity.id, identity.username)
    except GoalCircleError:
        logger.warning("Refusing chat connection for user %d: store unavailable", identity.id)
        await websocket.close(code=STORE_FAILURE_CLOSE_CODE, reason="Store unavailable")
        return

    await websocket.accept()
    rooms = registry_for(websocket.app)
    conn = ChatConnection(websocket, identity.id)
    logger.info("Chat connection opened for user %d", identity.id)

    try:
        while True:
            raw = await websocket.receive_text()
            parsed = _parse_frame(raw)
            if parsed is None:
                await conn.send(_error(INVALID_PAYLOAD))
                continue

            kind, goal_id, frame = parsed
            if kind == "join_group":
                await _handle_join(websocket, conn, rooms, goal_id)
            elif kind == "send_message":
                await _handle_send(websocket, conn, rooms, goal_id, frame.get("text"))
            else:
                await conn.send(_error(INVALID_PAYLOAD))
    except WebSocketDisconnect:
        pass
    finally:
        await rooms.leave_all(conn)
        logger.info("Chat connection closed for user %d", identity.id)
