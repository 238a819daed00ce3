"""
Shared fixtures: a controllable clock, an in-memory registry and fake
connections that record every frame they are sent.
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

# must be set before constants is imported
os.environ.setdefault("ROOM_BACKEND", "memory")
os.environ.setdefault("PUBLIC_BASE_URL", "http://relay.test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from backend import MemoryRoomStore, RoomRegistry  # noqa: E402
from relay import Connection, Coordinator  # noqa: E402


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeConnection(Connection):
    """Connection that keeps sent frames in ``sent`` as (event, data) pairs."""

    def __init__(self, connection_id=None, fail=False):
        super().__init__(connection_id)
        self.sent = []
        self.fail = fail

    async def send(self, event, data):
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append((event, data))

    def events(self, name=None):
        return [data for event, data in self.sent if name is None or event == name]


@pytest.fixture()
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def registry(clock):
    return RoomRegistry(MemoryRoomStore(), ttl_minutes=120, clock=clock)


@pytest.fixture()
def coordinator(registry):
    return Coordinator(registry)


@pytest.fixture()
def make_connection():
    def _make(name=None, fail=False):
        return FakeConnection(connection_id=name, fail=fail)
    return _make
