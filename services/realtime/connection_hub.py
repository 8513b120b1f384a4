"""Websocket connections and the channels they are subscribed to."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set
from uuid import uuid4

from fastapi import WebSocket

LOGGER = logging.getLogger(__name__)


def room_channel(room_id: str) -> str:
	return f"room:{room_id}"


def direct_channel(conversation_id: str) -> str:
	return f"dm:{conversation_id}"


class ConnectionHub:
	"""Deliver JSON frames to single connections or to every member of a channel.

	Frames have the shape `{"type": <event>, "data": <payload>}`. A connection
	whose send fails is unregistered so later broadcasts skip it, and `on_drop`
	(when set) is awaited with its id so the owner can discard its session.
	"""

	def __init__(self, on_drop: Optional[Callable[[str], Awaitable[Any]]] = None) -> None:
		self._sockets: Dict[str, WebSocket] = {}
		self._channels: Dict[str, Set[str]] = {}
		self.on_drop = on_drop

	def register(self, websocket: WebSocket) -> str:
		"""Track a newly accepted websocket and return its connection id."""
		connection_id = uuid4().hex
		self._sockets[connection_id] = websocket
		return connection_id

	def unregister(self, connection_id: str) -> None:
		"""Forget a connection and drop all of its subscriptions."""
		self._sockets.pop(connection_id, None)
		for channel in list(self._channels):
			self.unsubscribe(connection_id, channel)

	def subscribe(self, connection_id: str, channel: str) -> None:
		if connection_id not in self._sockets:
			return
		self._channels.setdefault(channel, set()).add(connection_id)

	def unsubscribe(self, connection_id: str, channel: str) -> None:
		members = self._channels.get(channel)
		if members is None:
			return
		members.discard(connection_id)
		if not members:
			del self._channels[channel]

	def is_subscribed(self, connection_id: str, channel: str) -> bool:
		return connection_id in self._channels.get(channel, ())

	def channels_of(self, connection_id: str) -> List[str]:
		return sorted(channel for channel, members in self._channels.items() if connection_id in members)

	def members(self, channel: str) -> List[str]:
		return list(self._channels.get(channel, ()))

	def __contains__(self, connection_id: object) -> bool:
		return connection_id in self._sockets

	def __len__(self) -> int:
		return len(self._sockets)

	async def emit(self, connection_id: str, event: str, payload: Any) -> None:
		"""Send one frame to a single connection."""
		await self._deliver([connection_id], self._frame(event, payload))

	async def broadcast(self, channel: str, event: str, payload: Any) -> None:
		"""Send one frame to every subscriber of `channel`."""
		await self._deliver(self.members(channel), self._frame(event, payload))

	async def broadcast_all(self, event: str, payload: Any) -> None:
		"""Send one frame to every registered connection."""
		await self._deliver(list(self._sockets), self._frame(event, payload))

	async def _deliver(self, connection_ids: Iterable[str], frame: str) -> None:
		targets = [(cid, self._sockets[cid]) for cid in connection_ids if cid in self._sockets]
		if not targets:
			return
		results = await asyncio.gather(
			*(websocket.send_text(frame) for _, websocket in targets),
			return_exceptions=True,
		)
		dropped: List[str] = []
		for (connection_id, _), result in zip(targets, results):
			if isinstance(result, Exception):
				LOGGER.warning("Dropping connection %s after failed send: %s", connection_id, result)
				self.unregister(connection_id)
				dropped.append(connection_id)
		if self.on_drop is not None:
			for connection_id in dropped:
				await self.on_drop(connection_id)

	@staticmethod
	def _frame(event: str, payload: Any) -> str:
		return json.dumps({"type": event, "data": payload})
