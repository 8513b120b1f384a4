"""Presence views derived from the session registry."""

from __future__ import annotations

from typing import Dict, List

from models.session_models import RosterEntry, SessionMode
from services.realtime.session_registry import SessionRegistry


class PresenceProjector:
	"""Read-only projections of who is connected and where."""

	def __init__(self, registry: SessionRegistry) -> None:
		self.registry = registry

	def room_roster(self, room_id: str) -> List[RosterEntry]:
		"""Return the connections currently in `room_id`, in registry order."""
		return [
			RosterEntry(connection_id=connection_id, identity=session.identity)
			for connection_id, session in self.registry.snapshot()
			if session.mode is SessionMode.ROOM and session.room_id == room_id
		]

	def global_identities(self) -> List[str]:
		"""Return each connected identity once, in first-seen order."""
		seen: Dict[str, None] = {}
		for _, session in self.registry.snapshot():
			seen.setdefault(session.identity, None)
		return list(seen)

	def roster_payload(self, room_id: str) -> List[Dict[str, str]]:
		return [{"connectionId": e.connection_id, "identity": e.identity} for e in self.room_roster(room_id)]

	def identities_payload(self) -> List[Dict[str, str]]:
		return [{"identity": identity} for identity in self.global_identities()]
