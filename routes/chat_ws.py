"""WebSocket endpoint for realtime chat."""

from __future__ import annotations

import json

import anyio
from fastapi import APIRouter, Depends, HTTPException, WebSocket
from starlette.websockets import WebSocketDisconnect

from services.realtime.connection_hub import ConnectionHub
from services.realtime.routing_engine import RoutingEngine
from utils.media_validation import MAX_PAYLOAD_BYTES

router = APIRouter()


def _require_hub(websocket: WebSocket) -> ConnectionHub:
	hub = getattr(websocket.app.state, "connection_hub", None)
	if hub is None:
		raise HTTPException(status_code=500, detail="Connection hub unavailable")
	return hub


def _require_engine(websocket: WebSocket) -> RoutingEngine:
	engine = getattr(websocket.app.state, "routing_engine", None)
	if engine is None:
		raise HTTPException(status_code=500, detail="Routing engine unavailable")
	return engine


@router.websocket("/ws")
async def chat_socket(
	websocket: WebSocket,
	hub: ConnectionHub = Depends(_require_hub),
	engine: RoutingEngine = Depends(_require_engine),
):
	"""Feed JSON event frames from one websocket into the routing engine."""
	await websocket.accept()
	connection_id = hub.register(websocket)
	try:
		await hub.emit(connection_id, "connected", {"connectionId": connection_id})
		while True:
			try:
				raw = await websocket.receive_text()
			except WebSocketDisconnect:
				break
			except KeyError:
				# binary frame
				await hub.emit(connection_id, "error", {"event": None, "detail": "Frames must be JSON text"})
				continue
			if len(raw.encode("utf-8")) > MAX_PAYLOAD_BYTES:
				await hub.emit(connection_id, "error", {"event": None, "detail": "Frame too large"})
				continue
			try:
				payload = json.loads(raw)
			except ValueError:
				await hub.emit(connection_id, "error", {"event": None, "detail": "Payload must be JSON"})
				continue
			await engine.handle(connection_id, payload)
	finally:
		hub.unregister(connection_id)
		# the server may cancel this task on close; presence must still be refreshed
		with anyio.CancelScope(shield=True):
			await engine.disconnect(connection_id)
