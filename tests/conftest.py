import json
from typing import Any, Dict, List, Optional

import pytest

from dal.message_dal import MessageDAL
from services.realtime.connection_hub import ConnectionHub
from services.realtime.routing_engine import RoutingEngine
from services.realtime.session_registry import SessionRegistry
from utils.database_init import AsyncDatabaseInitializer


class FakeSocket:
    """Stands in for a starlette WebSocket; records every frame sent to it."""

    def __init__(self, fail: bool = False) -> None:
        self.frames: List[Dict[str, Any]] = []
        self.fail = fail

    async def send_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(json.loads(text))

    def events(self, name: Optional[str] = None) -> List[Dict[str, Any]]:
        return [f for f in self.frames if name is None or f["type"] == name]

    def last(self, name: str) -> Any:
        matching = self.events(name)
        assert matching, f"no {name!r} frame received; got {[f['type'] for f in self.frames]}"
        return matching[-1]["data"]

    def clear(self) -> None:
        self.frames.clear()


@pytest.fixture
def db(tmp_path):
    return AsyncDatabaseInitializer(tmp_path, reset=False)


@pytest.fixture
def store(db):
    return MessageDAL(db)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def engine(registry, hub, store):
    return RoutingEngine(registry, hub, store)


@pytest.fixture
def connect(hub):
    """Register a fake websocket with the hub; returns (connection_id, socket)."""

    def _connect(fail: bool = False):
        sock = FakeSocket(fail=fail)
        return hub.register(sock), sock

    return _connect
