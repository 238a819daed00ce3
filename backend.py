import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, ROOM_BACKEND, ROOM_TTL_MINUTES
from redis_keys import REDIS_META_KEY
from logging_config import get_logger

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Room:
    token: str
    created_at: datetime
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class MemoryRoomStore:
    """Rooms kept in a dict inside this process.

    Room records are immutable, so lookups run without a lock while new rooms
    are being added.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def put(self, room: Room, ttl: int):
        self._rooms[room.token] = room

    def get(self, token: str) -> Optional[Room]:
        return self._rooms.get(token)

    def contains(self, token: str) -> bool:
        return token in self._rooms

    def delete_expired(self, now: datetime) -> int:
        expired = [token for token, room in list(self._rooms.items()) if not room.is_active(now)]
        for token in expired:
            self._rooms.pop(token, None)
        return len(expired)

    def __len__(self):
        return len(self._rooms)


class RedisRoomStore:
    """Rooms kept as Redis hashes; Redis evicts them through the key TTL."""

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        if redis_client is None:
            try:
                redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
                redis_client.ping()
                logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
            except Exception as e:
                logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
                raise
        self.redis_client = redis_client

    def put(self, room: Room, ttl: int):
        key = REDIS_META_KEY.format(slug=room.token)
        self.redis_client.hset(key, mapping={
            "token": room.token,
            "created_at": room.created_at.isoformat(),
            "expires_at": room.expires_at.isoformat(),
        })
        if ttl:
            self.redis_client.expire(key, ttl)
        logger.debug(f"Room {room.token} stored with key {key} and TTL {ttl} seconds")

    def get(self, token: str) -> Optional[Room]:
        room_data = self.redis_client.hgetall(REDIS_META_KEY.format(slug=token))
        if not room_data:
            return None
        try:
            return Room(
                token=token,
                created_at=datetime.fromisoformat(room_data["created_at"]),
                expires_at=datetime.fromisoformat(room_data["expires_at"]),
            )
        except (KeyError, ValueError) as e:
            logger.warning(f"Ignoring malformed room record for {token}: {e}")
            return None

    def contains(self, token: str) -> bool:
        return bool(self.redis_client.exists(REDIS_META_KEY.format(slug=token)))

    def delete_expired(self, now: datetime) -> int:
        # key expiry already removes stale rooms
        return 0


class RoomRegistry:
    """Creates room tokens and answers whether a token still opens a room.

    The TTL is fixed when a room is created and is never extended by
    activity. Expiry is checked lazily on lookup; ``sweep_expired`` only
    reclaims memory.
    """

    def __init__(self, store, ttl_minutes: int = ROOM_TTL_MINUTES, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.ttl_minutes = ttl_minutes
        self.clock = clock

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.ttl_minutes)

    def create_room(self) -> str:
        token = uuid.uuid4().hex
        while self.store.contains(token):
            token = uuid.uuid4().hex
        now = self.clock()
        room = Room(token=token, created_at=now, expires_at=now + self.ttl)
        self.store.put(room, ttl=int(self.ttl.total_seconds()))
        logger.info(f"Room {token} created, expires_at={room.expires_at.isoformat()}")
        return token

    def get_room(self, token: str) -> Optional[Room]:
        if not token:
            return None
        return self.store.get(token)

    def is_active(self, token: str) -> bool:
        room = self.get_room(token)
        if room is None:
            return False
        return room.is_active(self.clock())

    def sweep_expired(self) -> int:
        removed = self.store.delete_expired(self.clock())
        if removed:
            logger.info(f"Swept {removed} expired rooms")
        return removed


def build_room_store(backend: str = ROOM_BACKEND):
    if backend == "redis":
        return RedisRoomStore()
    if backend != "memory":
        logger.warning(f"Unknown ROOM_BACKEND {backend!r}, falling back to memory")
    return MemoryRoomStore()


room_registry = RoomRegistry(build_room_store())
