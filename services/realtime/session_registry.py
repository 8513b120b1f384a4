"""In-memory registry of live chat sessions keyed by connection id."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from models.session_models import ChatSession
from utils.errors import UnknownSessionError


class SessionRegistry:
	"""Track which connection is where.

	Owned by the routing engine, which is its only writer. Iteration always
	goes through `snapshot()` so a handler that mutates the registry while
	another one iterates cannot break the iteration.
	"""

	def __init__(self) -> None:
		self._sessions: Dict[str, ChatSession] = {}

	def upsert(self, connection_id: str, session: ChatSession) -> ChatSession:
		"""Store `session` for `connection_id`, replacing any previous one."""
		self._sessions[connection_id] = session
		return session

	def get(self, connection_id: str) -> Optional[ChatSession]:
		return self._sessions.get(connection_id)

	def require(self, connection_id: str) -> ChatSession:
		"""Return a session or raise UnknownSessionError if missing."""
		state = self._sessions.get(connection_id)
		if state is None:
			raise UnknownSessionError(f"Connection {connection_id} has no session")
		return state

	def remove(self, connection_id: str) -> Optional[ChatSession]:
		return self._sessions.pop(connection_id, None)

	def snapshot(self) -> List[Tuple[str, ChatSession]]:
		"""Return a copy of the (connection_id, session) pairs in insertion order."""
		return list(self._sessions.items())

	def for_each(self, fn: Callable[[str, ChatSession], None]) -> None:
		for connection_id, session in self.snapshot():
			fn(connection_id, session)

	def __contains__(self, connection_id: object) -> bool:
		return connection_id in self._sessions

	def __len__(self) -> int:
		return len(self._sessions)
