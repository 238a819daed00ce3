"""
Connection to room binding and per-room fan-out.

All handlers run on one asyncio event loop. Sends are awaited, so every
membership change and the broadcasts that report it run under that room's
``asyncio.Lock``; location relays are best effort and take no lock.
"""
import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from constants import INVALID_LINK_MESSAGE
from logging_config import get_logger
from schemas.messages import (
    ERROR_MESSAGE,
    JOIN,
    LOC_UPDATE,
    PEER_LEFT,
    PEER_LOC,
    ROOM_INFO,
    Frame,
    JoinRequest,
    LocationUpdate,
)

logger = get_logger(__name__)


class Connection(ABC):
    """A live client session. Bound to at most one room at a time."""

    def __init__(self, connection_id: Optional[str] = None):
        self.id = connection_id or str(uuid.uuid4())
        self.token: Optional[str] = None
        self.nickname = ""

    @property
    def is_bound(self) -> bool:
        return self.token is not None

    @abstractmethod
    async def send(self, event: str, data: Any):
        """Write one tagged frame to the client."""


class WebSocketConnection(Connection):
    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        super().__init__(connection_id)
        self.websocket = websocket
        # one writer at a time, in call order
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: Any):
        async with self._send_lock:
            await self.websocket.send_text(json.dumps({"event": event, "data": data}))


class RoomBroadcaster:
    """Delivers one message to a group of connections in the same process.

    A failed send is logged and skipped; the failing connection is cleaned up
    by its own disconnect path.
    """

    async def broadcast(self, connections: Iterable[Connection], event: str, data: Any) -> int:
        recipients = list(connections)
        if not recipients:
            return 0
        results = await asyncio.gather(*(conn.send(event, data) for conn in recipients), return_exceptions=True)
        delivered = 0
        for conn, result in zip(recipients, results):
            if isinstance(result, Exception):
                logger.warning(f"Error sending {event} to connection {conn.id}: {result}")
            else:
                delivered += 1
        return delivered


class Coordinator:
    def __init__(self, registry, broadcaster: Optional[RoomBroadcaster] = None):
        self.registry = registry
        self.broadcaster = broadcaster or RoomBroadcaster()
        # {token: {connection_id: connection}}
        self.room_connections: Dict[str, Dict[str, Connection]] = {}
        self._room_locks: Dict[str, asyncio.Lock] = {}
        # handlers holding or waiting for a room lock
        self._pending: Dict[str, int] = {}

    def _lock(self, token: str) -> asyncio.Lock:
        lock = self._room_locks.get(token)
        if lock is None:
            lock = self._room_locks[token] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def _room_guard(self, token: str):
        lock = self._lock(token)
        self._pending[token] = self._pending.get(token, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._pending[token] -= 1
            if not self._pending[token]:
                del self._pending[token]

    def members(self, token: str) -> List[Connection]:
        return list(self.room_connections.get(token, {}).values())

    def member_count(self, token: str) -> int:
        return len(self.room_connections.get(token, {}))

    async def handle_join(self, connection: Connection, token: Optional[str], nickname: Optional[str] = None) -> bool:
        if not token or not self.registry.is_active(token):
            logger.warning(f"Join rejected for connection {connection.id}: invalid or expired token {token!r}")
            try:
                await connection.send(ERROR_MESSAGE, INVALID_LINK_MESSAGE)
            except Exception as e:
                logger.warning(f"Could not deliver join error to connection {connection.id}: {e}")
            return False

        if connection.token is not None and connection.token != token:
            logger.info(f"Connection {connection.id} moves from room {connection.token} to room {token}")
            await self._leave(connection)

        async with self._room_guard(token):
            connection.token = token
            connection.nickname = nickname or ""
            members = self.room_connections.setdefault(token, {})
            members[connection.id] = connection
            count = len(members)
            logger.info(f"Connection {connection.id} ({connection.nickname!r}) joined room {token}, count={count}")
            await self.broadcaster.broadcast(list(members.values()), ROOM_INFO, {"count": count})
        return True

    async def handle_location_update(self, connection: Connection, payload: Any) -> int:
        """Relay a location update to the other members of the sender's room.

        Updates from a connection that has not joined yet are dropped without
        an error. Returns the number of members the update reached.
        """
        token = connection.token
        if not token:
            logger.debug(f"Dropping location update from unbound connection {connection.id}")
            return 0
        try:
            update = LocationUpdate.model_validate(payload)
        except ValidationError as e:
            logger.debug(f"Dropping malformed location update from {connection.id}: {e.error_count()} errors")
            return 0

        message = {"id": connection.id, "nickname": connection.nickname, **update.relay_fields()}
        others = [conn for conn in self.members(token) if conn.id != connection.id]
        return await self.broadcaster.broadcast(others, PEER_LOC, message)

    async def handle_disconnect(self, connection: Connection):
        if connection.token is None:
            return
        logger.info(f"Connection {connection.id} left room {connection.token}")
        await self._leave(connection)

    async def _leave(self, connection: Connection):
        token = connection.token
        async with self._room_guard(token):
            connection.token = None
            members = self.room_connections.get(token)
            if members is None or members.pop(connection.id, None) is None:
                return
            if not members:
                del self.room_connections[token]
                return
            remaining = list(members.values())
            # peer_left must reach every member before the recount
            await self.broadcaster.broadcast(remaining, PEER_LEFT, {"id": connection.id})
            await self.broadcaster.broadcast(remaining, ROOM_INFO, {"count": len(remaining)})

    async def handle_message(self, connection: Connection, raw: str):
        """Parse one text frame and dispatch it by event name."""
        try:
            frame = Frame.model_validate_json(raw)
        except ValidationError:
            logger.debug(f"Ignoring non-frame message from connection {connection.id}")
            return

        if frame.event == JOIN:
            try:
                request = JoinRequest.model_validate(frame.data or {})
            except ValidationError:
                request = JoinRequest()
            await self.handle_join(connection, request.token, request.nickname)
        elif frame.event == LOC_UPDATE:
            await self.handle_location_update(connection, frame.data)
        else:
            logger.debug(f"Ignoring unknown event {frame.event!r} from connection {connection.id}")

    def prune_idle_rooms(self) -> int:
        """Forget locks of rooms that have no members and no pending handler."""
        idle = [
            token for token, lock in self._room_locks.items()
            if token not in self._pending and not lock.locked() and not self.room_connections.get(token)
        ]
        for token in idle:
            self._room_locks.pop(token, None)
            self.room_connections.pop(token, None)
        return len(idle)
