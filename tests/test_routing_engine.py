import asyncio

import pytest

from dal.message_dal import MessageDAL
from models.message_record import MessageRecord, MessageScope
from models.session_models import SessionMode
from services.realtime.connection_hub import direct_channel, room_channel
from services.realtime.pairing import canonical_pair
from services.realtime.routing_engine import PREVIEW_LENGTH, RoutingEngine, message_preview
from utils.errors import StoreError

PNG_URI = "data:image/png;base64,iVBORw0KGgo="


class FailingStore(MessageDAL):
    async def persist(self, record):
        raise StoreError("disk full")


class FailingHistoryStore(MessageDAL):
    async def query_room(self, room_id):
        raise StoreError("database is locked")


class GatedStore(MessageDAL):
    """Holds every room-history query until `gate` is set."""

    def __init__(self, db):
        super().__init__(db)
        self.gate = asyncio.Event()
        self.arrived = asyncio.Event()

    async def query_room(self, room_id):
        self.arrived.set()
        await self.gate.wait()
        return await super().query_room(room_id)


async def join(engine, connect, identity, room="general"):
    cid, sock = connect()
    await engine.handle(cid, {"type": "join", "identity": identity, "roomId": room})
    return cid, sock


def identities(frame_data):
    return [entry["identity"] for entry in frame_data]


@pytest.mark.asyncio
async def test_join_announces_presence_and_sends_history(engine, connect, store, registry):
    await store.persist(
        MessageRecord(id=None, sender="bob", scope=MessageScope.ROOM, content="earlier", room_id="general")
    )
    cid, sock = await join(engine, connect, "alice")

    assert [f["type"] for f in sock.frames] == ["spaceUsers", "allUsers", "chatHistory"]
    assert sock.last("spaceUsers") == [{"connectionId": cid, "identity": "alice"}]
    assert sock.last("allUsers") == [{"identity": "alice"}]
    assert [m["content"] for m in sock.last("chatHistory")] == ["earlier"]
    session = registry.get(cid)
    assert session.mode is SessionMode.ROOM and session.room_id == "general"


@pytest.mark.asyncio
async def test_latest_room_wins_and_only_one_room_is_subscribed(engine, connect, hub, registry):
    cid, _ = await join(engine, connect, "alice")
    for room in ("random", "lobby", "random", "dev"):
        await engine.handle(cid, {"type": "switchRoom", "roomId": room})
        assert registry.get(cid).room_id == room
        assert hub.channels_of(cid) == [room_channel(room)]

    await engine.handle(cid, {"type": "join", "identity": "alice", "roomId": "ops"})
    assert registry.get(cid).room_id == "ops"
    assert hub.channels_of(cid) == [room_channel("ops")]


@pytest.mark.asyncio
async def test_switch_room_updates_both_rosters(engine, connect):
    a, sock_a = await join(engine, connect, "alice")
    b, sock_b = await join(engine, connect, "bob")
    sock_a.clear()
    sock_b.clear()

    await engine.handle(a, {"type": "switchRoom", "roomId": "random"})

    assert identities(sock_b.last("spaceUsers")) == ["bob"]
    assert identities(sock_a.last("spaceUsers")) == ["alice"]
    assert sock_a.last("chatHistory") == []
    assert sock_b.events("chatHistory") == []


@pytest.mark.asyncio
async def test_rejoin_into_another_room_refreshes_the_old_roster(engine, connect):
    a, _ = await join(engine, connect, "alice")
    _, sock_b = await join(engine, connect, "bob")
    sock_b.clear()

    await engine.handle(a, {"type": "join", "identity": "alice", "roomId": "random"})

    assert identities(sock_b.last("spaceUsers")) == ["bob"]


@pytest.mark.asyncio
async def test_events_without_session_are_ignored(engine, connect, registry, store):
    cid, sock = connect()
    for payload in (
        {"type": "switchRoom", "roomId": "random"},
        {"type": "startDirect", "peerIdentity": "bob"},
        {"type": "endDirect"},
        {"type": "send", "content": "hello?"},
    ):
        await engine.handle(cid, payload)

    assert sock.frames == []
    assert len(registry) == 0
    assert await store.list_messages() == []


@pytest.mark.asyncio
async def test_malformed_event_is_rejected_without_state_change(engine, connect, registry):
    cid, sock = connect()
    await engine.handle(cid, {"type": "join", "roomId": "general"})

    assert len(registry) == 0
    assert [f["type"] for f in sock.frames] == ["error"]
    assert sock.last("error")["event"] == "join"


@pytest.mark.asyncio
async def test_room_message_reaches_every_room_member_including_sender(engine, connect, store):
    a, sock_a = await join(engine, connect, "alice")
    _, sock_b = await join(engine, connect, "bob")
    _, sock_c = await join(engine, connect, "carol", room="random")

    await engine.handle(a, {"type": "send", "content": "hi"})

    received = sock_b.last("receiveMessage")
    assert received["sender"] == "alice"
    assert received["content"] == "hi"
    assert received["roomId"] == "general"
    assert len(sock_a.events("receiveMessage")) == 1
    assert len(sock_b.events("receiveMessage")) == 1
    assert sock_c.events("receiveMessage") == []

    stored = await store.query_room("general")
    assert [(m.sender, m.content) for m in stored] == [("alice", "hi")]


@pytest.mark.asyncio
async def test_sender_field_in_payload_is_ignored(engine, connect, store):
    a, _ = await join(engine, connect, "alice")
    await engine.handle(a, {"type": "sendMessage", "sender": "mallory", "content": "hi"})
    assert [m.sender for m in await store.query_room("general")] == ["alice"]


@pytest.mark.asyncio
async def test_direct_conversation_converges_and_delivers_to_both(engine, connect, registry, store, hub):
    a, sock_a = await join(engine, connect, "alice")
    b, sock_b = await join(engine, connect, "bob")
    _, sock_c = await join(engine, connect, "carol")

    await engine.handle(a, {"type": "startDirect", "peerIdentity": "bob"})
    await engine.handle(b, {"type": "startDirect", "peerIdentity": "alice"})

    conversation_id = registry.get(a).conversation_id
    assert conversation_id == registry.get(b).conversation_id == canonical_pair("alice", "bob")
    assert hub.channels_of(a) == [direct_channel(conversation_id)]

    await engine.handle(a, {"type": "send", "content": "secret"})

    for sock in (sock_a, sock_b):
        message = sock.last("receiveDM")
        assert (message["sender"], message["recipient"], message["content"]) == ("alice", "bob", "secret")
    assert sock_c.events("receiveDM") == []
    assert sock_c.events("dmNotification") == []
    assert [m.content for m in await store.query_conversation("bob", "alice")] == ["secret"]
    assert await store.query_room("general") == []


@pytest.mark.asyncio
async def test_start_direct_sends_conversation_history(engine, connect, store):
    await store.persist(MessageRecord(id=None, sender="alice", scope=MessageScope.DIRECT, content="1", recipient="bob"))
    await store.persist(MessageRecord(id=None, sender="bob", scope=MessageScope.DIRECT, content="2", recipient="alice"))
    await store.persist(MessageRecord(id=None, sender="alice", scope=MessageScope.DIRECT, content="x", recipient="carol"))
    a, sock = await join(engine, connect, "alice")

    await engine.handle(a, {"type": "startDM", "receiver": "bob"})

    assert [m["content"] for m in sock.last("dmHistory")] == ["1", "2"]


@pytest.mark.asyncio
async def test_start_direct_leaves_the_room_roster(engine, connect):
    a, _ = await join(engine, connect, "alice")
    _, sock_b = await join(engine, connect, "bob")
    sock_b.clear()

    await engine.handle(a, {"type": "startDirect", "peerIdentity": "carol"})

    assert identities(sock_b.last("spaceUsers")) == ["bob"]


@pytest.mark.asyncio
async def test_direct_message_pings_peer_sessions_outside_the_conversation(engine, connect):
    a, _ = await join(engine, connect, "alice")
    b_room, sock_b_room = await join(engine, connect, "bob")
    b_dm, sock_b_dm = await join(engine, connect, "bob")
    await engine.handle(b_dm, {"type": "startDirect", "peerIdentity": "alice"})
    await engine.handle(a, {"type": "startDirect", "peerIdentity": "bob"})

    await engine.handle(a, {"type": "send", "content": "x" * 80})

    note = sock_b_room.last("dmNotification")
    assert note["from"] == "alice"
    assert len(note["preview"]) == PREVIEW_LENGTH
    assert note["preview"].endswith("...")
    assert sock_b_room.events("receiveDM") == []
    assert sock_b_dm.events("dmNotification") == []
    assert len(sock_b_dm.events("receiveDM")) == 1

    await engine.handle(a, {"type": "send", "image": PNG_URI})
    assert sock_b_room.last("dmNotification")["preview"] == "[image]"


def test_message_preview_keeps_short_content():
    record = MessageRecord(id=None, sender="a", scope=MessageScope.DIRECT, content=" hey ", recipient="b")
    assert message_preview(record) == "hey"


@pytest.mark.asyncio
async def test_self_conversation_is_rejected(engine, connect, registry, hub):
    a, sock = await join(engine, connect, "alice")
    sock.clear()

    await engine.handle(a, {"type": "startDirect", "peerIdentity": "alice"})

    assert [f["type"] for f in sock.frames] == ["error"]
    assert registry.get(a).mode is SessionMode.ROOM
    assert hub.channels_of(a) == [room_channel("general")]


@pytest.mark.asyncio
async def test_end_direct_returns_to_fallback_room(engine, connect, registry, hub):
    a, sock = await join(engine, connect, "alice")
    await engine.handle(a, {"type": "startDirect", "peerIdentity": "bob"})
    sock.clear()

    await engine.handle(a, {"type": "endDirect", "roomId": "random"})

    session = registry.get(a)
    assert session.mode is SessionMode.ROOM
    assert session.room_id == "random"
    assert session.conversation_id is None
    assert hub.channels_of(a) == [room_channel("random")]
    assert identities(sock.last("spaceUsers")) == ["alice"]
    assert sock.last("chatHistory") == []


@pytest.mark.asyncio
async def test_end_direct_defaults_to_general(engine, connect, registry):
    a, _ = await join(engine, connect, "alice", room="random")
    await engine.handle(a, {"type": "startDirect", "peerIdentity": "bob"})
    await engine.handle(a, {"type": "closeDM"})
    assert registry.get(a).room_id == "general"


@pytest.mark.asyncio
async def test_end_direct_outside_direct_mode_is_rejected(engine, connect, registry):
    a, sock = await join(engine, connect, "alice", room="random")
    sock.clear()

    await engine.handle(a, {"type": "endDirect"})

    assert [f["type"] for f in sock.frames] == ["error"]
    assert registry.get(a).room_id == "random"


@pytest.mark.asyncio
async def test_disconnect_removes_session_and_refreshes_presence(engine, connect, registry, hub):
    a, _ = await join(engine, connect, "alice")
    _, sock_b = await join(engine, connect, "bob")
    sock_b.clear()

    hub.unregister(a)
    removed = await engine.disconnect(a)

    assert removed.identity == "alice"
    assert a not in registry
    assert identities(sock_b.last("spaceUsers")) == ["bob"]
    assert identities(sock_b.last("allUsers")) == ["bob"]
    assert all(e.connection_id != a for e in engine.presence.room_roster("general"))


@pytest.mark.asyncio
async def test_identity_stays_listed_while_another_session_uses_it(engine, connect, hub):
    a1, _ = await join(engine, connect, "alice")
    await join(engine, connect, "alice", room="random")
    _, sock_b = await join(engine, connect, "bob")
    sock_b.clear()

    hub.unregister(a1)
    await engine.disconnect(a1)

    assert identities(sock_b.last("allUsers")) == ["alice", "bob"]


@pytest.mark.asyncio
async def test_direct_mode_disconnect_skips_roster_broadcast(engine, connect, hub):
    a, _ = await join(engine, connect, "alice")
    await engine.handle(a, {"type": "startDirect", "peerIdentity": "bob"})
    _, sock_b = await join(engine, connect, "bob")
    sock_b.clear()

    hub.unregister(a)
    await engine.disconnect(a)

    assert [f["type"] for f in sock_b.frames] == ["allUsers"]


@pytest.mark.asyncio
async def test_disconnect_without_session_is_a_no_op(engine, connect):
    cid, sock = connect()
    assert await engine.disconnect(cid) is None
    assert sock.frames == []


@pytest.mark.asyncio
async def test_store_failure_is_reported_only_to_sender(registry, hub, db, connect):
    engine = RoutingEngine(registry, hub, FailingStore(db))
    a, sock_a = await join(engine, connect, "alice")
    b, sock_b = await join(engine, connect, "bob")
    sock_a.clear()
    sock_b.clear()

    await engine.handle(a, {"type": "send", "content": "hi"})

    assert [f["type"] for f in sock_a.frames] == ["error"]
    assert sock_a.last("error")["event"] == "send"
    assert sock_b.frames == []
    assert a in registry and b in registry


@pytest.mark.asyncio
async def test_history_failure_keeps_the_session(registry, hub, db, connect):
    engine = RoutingEngine(registry, hub, FailingHistoryStore(db))
    a, sock = await join(engine, connect, "alice")

    assert [f["type"] for f in sock.frames] == ["spaceUsers", "allUsers", "error"]
    assert registry.get(a).room_id == "general"


@pytest.mark.asyncio
async def test_history_is_dropped_when_session_disconnects_mid_query(registry, hub, db, connect):
    store = GatedStore(db)
    engine = RoutingEngine(registry, hub, store)
    a, sock = connect()

    task = asyncio.create_task(engine.handle(a, {"type": "join", "identity": "alice"}))
    await store.arrived.wait()
    await engine.disconnect(a)
    store.gate.set()
    await task

    assert sock.events("chatHistory") == []
    assert a not in registry


@pytest.mark.asyncio
async def test_only_latest_room_history_is_delivered_after_rapid_switch(registry, hub, db, connect):
    store = GatedStore(db)
    await store.persist(
        MessageRecord(id=None, sender="bob", scope=MessageScope.ROOM, content="welcome", room_id="random")
    )
    engine = RoutingEngine(registry, hub, store)
    a, sock = connect()

    first = asyncio.create_task(engine.handle(a, {"type": "join", "identity": "alice"}))
    await store.arrived.wait()
    second = asyncio.create_task(engine.handle(a, {"type": "switchRoom", "roomId": "random"}))
    await asyncio.sleep(0.05)
    store.gate.set()
    await asyncio.gather(first, second)

    histories = sock.events("chatHistory")
    assert len(histories) == 1
    assert [m["content"] for m in histories[0]["data"]] == ["welcome"]
    assert registry.get(a).room_id == "random"


@pytest.mark.asyncio
async def test_failed_send_discards_the_session_of_the_dead_socket(engine, connect, registry, hub):
    a, sock_a = await join(engine, connect, "alice")
    b, sock_b = await join(engine, connect, "bob")
    sock_a.clear()
    sock_b.fail = True

    await engine.handle(a, {"type": "send", "content": "anyone there?"})

    assert b not in hub
    assert b not in registry
    assert identities(sock_a.last("spaceUsers")) == ["alice"]
    assert identities(sock_a.last("allUsers")) == ["alice"]
