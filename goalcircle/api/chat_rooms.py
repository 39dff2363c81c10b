"""
goalcircle.api.chat_rooms — Live Chat Room Registry
====================================================

Maps a goal id to the set of live connections subscribed to that goal's
chat room.  The registry is the only in-process shared state in the
service; it is mutated solely through :meth:`ChatRoomRegistry.join`,
:meth:`ChatRoomRegistry.leave` and :meth:`ChatRoomRegistry.leave_all` and
guarded by an :class:`asyncio.Lock`.

Rooms hold **weak** references.  The WebSocket endpoint owns its
:class:`ChatConnection`; once the endpoint returns, the connection drops
out of every room even if ``leave_all`` was never reached.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Callable, Collection
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class JsonSender(Protocol):
    async def send_json(self, data: Any) -> None: ...


class ChatConnection:
    """One live socket plus the identity that authenticated it.

    While a room join is reading its backlog the connection is *held*:
    broadcasts are queued instead of written, so the backlog snapshot is
    always the first thing the client sees and nothing committed in between
    is lost.
    """

    def __init__(self, socket: JsonSender, user_id: int) -> None:
        self.socket = socket
        self.user_id = user_id
        self.rooms: set[int] = set()
        self._held: list[dict] | None = None

    async def send(self, event: dict) -> None:
        if self._held is not None:
            self._held.append(event)
            return
        await self.socket.send_json(event)

    def hold(self) -> None:
        if self._held is None:
            self._held = []

    async def release(
        self, first: dict, skip: Callable[[dict], bool] | None = None
    ) -> None:
        """Send *first*, then drain the queued events (minus *skip* matches)."""
        await self.socket.send_json(first)
        while self._held:
            event = self._held.pop(0)
            if skip is not None and skip(event):
                continue
            await self.socket.send_json(event)
        self._held = None

    def __repr__(self) -> str:
        return f"<ChatConnection user={self.user_id} rooms={sorted(self.rooms)}>"


class ChatRoomRegistry:
    """goal_id → weak set of subscribed :class:`ChatConnection` handles."""

    def __init__(self) -> None:
        self._rooms: dict[int, weakref.WeakSet[ChatConnection]] = {}
        self._lock = asyncio.Lock()

    async def join(self, conn: ChatConnection, goal_id: int) -> None:
        """Subscribe *conn* to *goal_id*'s room (idempotent)."""
        async with self._lock:
            self._rooms.setdefault(goal_id, weakref.WeakSet()).add(conn)
            conn.rooms.add(goal_id)

    async def leave(self, conn: ChatConnection, goal_id: int) -> None:
        """Unsubscribe *conn* from a single room."""
        async with self._lock:
            self._discard(conn, goal_id)

    async def leave_all(self, conn: ChatConnection) -> None:
        """Unsubscribe *conn* from every room it joined."""
        async with self._lock:
            for goal_id in list(conn.rooms):
                self._discard(conn, goal_id)

    def _discard(self, conn: ChatConnection, goal_id: int) -> None:
        conn.rooms.discard(goal_id)
        room = self._rooms.get(goal_id)
        if room is None:
            return
        room.discard(conn)
        if not room:
            del self._rooms[goal_id]

    def members(self, goal_id: int) -> list[ChatConnection]:
        room = self._rooms.get(goal_id)
        return list(room) if room else []

    def room_count(self) -> int:
        return sum(1 for room in self._rooms.values() if room)

    async def broadcast(
        self,
        goal_id: int,
        event: dict,
        member_ids: Collection[int] | None = None,
    ) -> int:
        """Send *event* to every connection in the room.

        When *member_ids* is given, connections whose user is not in it are
        unsubscribed from the room instead of receiving the event.
        Connections whose send fails are dropped from all rooms.  Returns
        the number of successful deliveries.
        """
        async with self._lock:
            targets = []
            for conn in self.members(goal_id):
                if member_ids is not None and conn.user_id not in member_ids:
                    logger.info(
                        "User %d is no longer a member of goal %d; leaving room",
                        conn.user_id, goal_id,
                    )
                    self._discard(conn, goal_id)
                    continue
                targets.append(conn)

        delivered = 0
        dead: list[ChatConnection] = []
        for conn in targets:
            try:
                await conn.send(event)
                delivered += 1
            except Exception:
                logger.warning(
                    "Dropping chat connection for user %d from goal %d",
                    conn.user_id, goal_id,
                )
                dead.append(conn)

        for conn in dead:
            await self.leave_all(conn)
        return delivered


def registry_for(app) -> ChatRoomRegistry:
    """Return the app's registry, creating it on first use."""
    registry = getattr(app.state, "chat_rooms", None)
    if registry is None:
        registry = ChatRoomRegistry()
        app.state.chat_rooms = registry
    return registry
