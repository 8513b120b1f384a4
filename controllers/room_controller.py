"""Room directory helpers for the HTTP API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request

from dal.room_dal import RoomDAL
from models.room_record import RoomRecord


def _room_dal(request: Request) -> RoomDAL:
	db_initializer = getattr(request.app.state, "db_initializer", None)
	if db_initializer is None:
		raise HTTPException(status_code=500, detail="Database not initialized.")
	return RoomDAL(db_initializer)


async def list_rooms(request: Request) -> List[Dict[str, Any]]:
	"""Return every room, oldest first."""
	rooms = await _room_dal(request).list_rooms()
	return [room.to_payload() for room in rooms]


async def create_room(
	request: Request,
	name: str,
	description: Optional[str] = None,
	creator: Optional[str] = None,
) -> Dict[str, Any]:
	"""Create a room; names must be non-blank and unique."""
	name = (name or "").strip()
	if not name:
		raise HTTPException(status_code=400, detail="Room name is required.")
	dal = _room_dal(request)
	if await dal.get_room_by_name(name) is not None:
		raise HTTPException(status_code=400, detail="Room already exists.")
	room = await dal.create_room(RoomRecord(id=None, name=name, description=description, creator=creator))
	return room.to_payload()
