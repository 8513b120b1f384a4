"""Route chat events between rooms and direct conversations."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from dal.message_dal import MessageDAL
from models.chat_events import (
	EndDirectEvent,
	JoinEvent,
	SendEvent,
	StartDirectEvent,
	SwitchRoomEvent,
	parse_event,
)
from models.message_record import MessageRecord, MessageScope
from models.room_record import DEFAULT_ROOM_NAME
from models.session_models import ChatSession, SessionMode
from services.realtime.connection_hub import ConnectionHub, direct_channel, room_channel
from services.realtime.pairing import canonical_pair
from services.realtime.presence import PresenceProjector
from services.realtime.session_registry import SessionRegistry
from utils.errors import StaleSessionError, StoreError, UnknownSessionError, ValidationError

LOGGER = logging.getLogger(__name__)

PREVIEW_LENGTH = 50
IMAGE_PREVIEW = "[image]"


def message_preview(record: MessageRecord) -> str:
	"""Return at most PREVIEW_LENGTH characters describing a message."""
	content = (record.content or "").strip()
	if not content:
		return IMAGE_PREVIEW
	if len(content) <= PREVIEW_LENGTH:
		return content
	return content[: PREVIEW_LENGTH - 3] + "..."


class RoutingEngine:
	"""Apply inbound session events to the registry and fan results out.

	Every handler that awaits the store or the transport re-reads the session
	afterwards and drops its pending output if the session is gone or has
	moved on (see `_ensure_current`).
	"""

	def __init__(
		self,
		registry: SessionRegistry,
		hub: ConnectionHub,
		store: MessageDAL,
		presence: Optional[PresenceProjector] = None,
	) -> None:
		self.registry = registry
		self.hub = hub
		self.store = store
		self.presence = presence or PresenceProjector(registry)
		hub.on_drop = self.disconnect

	async def handle(self, connection_id: str, payload: Any) -> None:
		"""Process a single inbound websocket payload; never raises."""
		event_type = payload.get("type") if isinstance(payload, dict) else None
		try:
			event = parse_event(payload)
			if isinstance(event, JoinEvent):
				await self.join(connection_id, event.identity, event.room_id)
			elif isinstance(event, SwitchRoomEvent):
				await self.switch_room(connection_id, event.room_id)
			elif isinstance(event, StartDirectEvent):
				await self.start_direct(connection_id, event.peer_identity)
			elif isinstance(event, EndDirectEvent):
				await self.end_direct(connection_id, event.room_id)
			elif isinstance(event, SendEvent):
				await self.send(connection_id, event.content, event.image)
		except ValidationError as exc:
			LOGGER.warning("Rejected %s event from %s: %s", event_type, connection_id, exc)
			await self._send_error(connection_id, event_type, str(exc))
		except UnknownSessionError:
			LOGGER.debug("Ignoring %s event from %s: no session", event_type, connection_id)
		except StaleSessionError:
			LOGGER.debug("Dropped stale %s result for %s", event_type, connection_id)
		except StoreError as exc:
			LOGGER.error("Store failure handling %s for %s: %s", event_type, connection_id, exc)
			await self._send_error(connection_id, event_type, "Message store unavailable, please retry.")

	async def join(self, connection_id: str, identity: str, room_id: str = DEFAULT_ROOM_NAME) -> ChatSession:
		"""Create (or replace) the session for a connection in `room_id`."""
		previous = self.registry.get(connection_id)
		left_room = self._release(connection_id, previous) if previous is not None else None

		session = ChatSession(connection_id=connection_id, identity=identity, room_id=room_id)
		self.registry.upsert(connection_id, session)
		self.hub.subscribe(connection_id, room_channel(room_id))
		revision = session.revision
		LOGGER.info("%s joined room %s", identity, room_id)

		if left_room is not None and left_room != room_id:
			await self._broadcast_roster(left_room)
		await self._broadcast_roster(room_id)
		await self._broadcast_identities()
		await self._send_room_history(connection_id, session, revision)
		return session

	async def switch_room(self, connection_id: str, room_id: str) -> ChatSession:
		"""Move an existing session into `room_id`."""
		session = self.registry.require(connection_id)
		left_room = self._release(connection_id, session)
		session.enter_room(room_id)
		self.hub.subscribe(connection_id, room_channel(room_id))
		revision = session.revision
		LOGGER.info("%s switched to room %s", session.identity, room_id)

		if left_room is not None and left_room != room_id:
			await self._broadcast_roster(left_room)
		await self._broadcast_roster(room_id)
		await self._broadcast_identities()
		await self._send_room_history(connection_id, session, revision)
		return session

	async def start_direct(self, connection_id: str, peer_identity: str) -> ChatSession:
		"""Open the direct conversation between the session's identity and `peer_identity`."""
		session = self.registry.require(connection_id)
		if peer_identity == session.identity:
			raise ValidationError("Cannot open a direct conversation with yourself.")
		conversation_id = canonical_pair(session.identity, peer_identity)

		left_room = self._release(connection_id, session)
		session.enter_direct(peer_identity, conversation_id)
		self.hub.subscribe(connection_id, direct_channel(conversation_id))
		revision = session.revision
		LOGGER.info("%s opened a direct conversation with %s", session.identity, peer_identity)

		if left_room is not None:
			await self._broadcast_roster(left_room)
		history = await self.store.query_conversation(session.identity, peer_identity)
		self._ensure_current(connection_id, session, revision)
		await self.hub.emit(connection_id, "dmHistory", [m.to_payload() for m in history])
		return session

	async def end_direct(self, connection_id: str, room_id: str = DEFAULT_ROOM_NAME) -> ChatSession:
		"""Close the open direct conversation and return to `room_id`."""
		session = self.registry.require(connection_id)
		if session.mode is not SessionMode.DIRECT:
			raise ValidationError("No direct conversation is open.")
		self._release(connection_id, session)
		session.enter_room(room_id)
		self.hub.subscribe(connection_id, room_channel(room_id))
		revision = session.revision
		LOGGER.info("%s closed a direct conversation, back in %s", session.identity, room_id)

		await self._broadcast_roster(room_id)
		await self._send_room_history(connection_id, session, revision)
		return session

	async def send(self, connection_id: str, content: Optional[str], image: Optional[str] = None) -> MessageRecord:
		"""Persist a message from the session and deliver it to its channel.

		The destination is fixed before the store call; once persisted the
		message is delivered there even if the sender moved on meanwhile.

		Raises:
			StoreError: If persisting fails; nothing is delivered.
		"""
		session = self.registry.require(connection_id)
		if not content and not image:
			raise ValidationError("Message content or an image is required.")

		if session.mode is SessionMode.DIRECT:
			record = MessageRecord(
				id=None,
				sender=session.identity,
				scope=MessageScope.DIRECT,
				content=content,
				image=image,
				recipient=session.peer_identity,
			)
			conversation_id = session.conversation_id
			channel = direct_channel(conversation_id)
			stored = await self.store.persist(record)
			await self.hub.broadcast(channel, "receiveDM", stored.to_payload())
			await self._notify_peer_elsewhere(stored, channel, conversation_id)
		else:
			record = MessageRecord(
				id=None,
				sender=session.identity,
				scope=MessageScope.ROOM,
				content=content,
				image=image,
				room_id=session.room_id,
			)
			stored = await self.store.persist(record)
			await self.hub.broadcast(room_channel(stored.room_id), "receiveMessage", stored.to_payload())
		return stored

	async def disconnect(self, connection_id: str) -> Optional[ChatSession]:
		"""Remove the session of a closed connection and refresh presence."""
		session = self.registry.remove(connection_id)
		if session is None:
			return None
		left_room = self._release(connection_id, session)
		LOGGER.info("%s disconnected", session.identity)
		if left_room is not None:
			await self._broadcast_roster(left_room)
		await self._broadcast_identities()
		return session

	def _release(self, connection_id: str, session: ChatSession) -> Optional[str]:
		"""Unsubscribe from the session's current channel; return the room it left, if any."""
		if session.mode is SessionMode.DIRECT:
			if session.conversation_id:
				self.hub.unsubscribe(connection_id, direct_channel(session.conversation_id))
			return None
		if session.room_id:
			self.hub.unsubscribe(connection_id, room_channel(session.room_id))
		return session.room_id

	def _ensure_current(self, connection_id: str, session: ChatSession, revision: int) -> None:
		if self.registry.get(connection_id) is not session or session.revision != revision:
			raise StaleSessionError(f"Session for {connection_id} changed while suspended")

	async def _send_room_history(self, connection_id: str, session: ChatSession, revision: int) -> None:
		self._ensure_current(connection_id, session, revision)
		history = await self.store.query_room(session.room_id)
		self._ensure_current(connection_id, session, revision)
		await self.hub.emit(connection_id, "chatHistory", [m.to_payload() for m in history])

	async def _notify_peer_elsewhere(self, record: MessageRecord, channel: str, conversation_id: str) -> None:
		"""Ping the recipient's sessions that are not looking at the conversation."""
		preview: Dict[str, Any] = {
			"from": record.sender,
			"preview": message_preview(record),
			"conversationId": conversation_id,
			"createdAt": record.to_payload()["createdAt"],
		}
		targets: List[str] = [
			cid
			for cid, other in self.registry.snapshot()
			if other.identity == record.recipient and not self.hub.is_subscribed(cid, channel)
		]
		for cid in targets:
			await self.hub.emit(cid, "dmNotification", preview)

	async def _broadcast_roster(self, room_id: str) -> None:
		await self.hub.broadcast(room_channel(room_id), "spaceUsers", self.presence.roster_payload(room_id))

	async def _broadcast_identities(self) -> None:
		await self.hub.broadcast_all("allUsers", self.presence.identities_payload())

	async def _send_error(self, connection_id: str, event_type: Any, detail: str) -> None:
		await self.hub.emit(connection_id, "error", {"event": event_type, "detail": detail})
