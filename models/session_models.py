"""Session domain models for realtime chat connections."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from models.room_record import DEFAULT_ROOM_NAME


class SessionMode(str, Enum):
	ROOM = "room"
	DIRECT = "direct"


@dataclass
class ChatSession:
	"""Live state of one websocket connection.

	Exactly one of `room_id` (ROOM mode) or `peer_identity`/`conversation_id`
	(DIRECT mode) is set. `revision` increases on every transition so that
	handlers resuming after an await can tell whether the session moved on.
	"""

	connection_id: str
	identity: str
	mode: SessionMode = SessionMode.ROOM
	room_id: Optional[str] = DEFAULT_ROOM_NAME
	peer_identity: Optional[str] = None
	conversation_id: Optional[str] = None
	revision: int = 0

	def enter_room(self, room_id: str) -> None:
		"""Switch to ROOM mode in `room_id`, clearing any direct conversation."""
		self.mode = SessionMode.ROOM
		self.room_id = room_id
		self.peer_identity = None
		self.conversation_id = None
		self.revision += 1

	def enter_direct(self, peer_identity: str, conversation_id: str) -> None:
		"""Switch to DIRECT mode with `peer_identity`, leaving the current room."""
		self.mode = SessionMode.DIRECT
		self.room_id = None
		self.peer_identity = peer_identity
		self.conversation_id = conversation_id
		self.revision += 1


@dataclass(frozen=True)
class RosterEntry:
	"""One connection present in a room."""

	connection_id: str
	identity: str
