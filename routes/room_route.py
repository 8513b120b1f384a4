"""FastAPI routes for the room directory."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from controllers.room_controller import create_room, list_rooms
from utils.errors import StoreError

router = APIRouter(prefix="/api/spaces", tags=["spaces"])


class RoomPayload(BaseModel):
	name: str = ""
	description: Optional[str] = None
	created_by: Optional[str] = Field(None, alias="createdBy")


@router.get("")
async def list_rooms_route(request: Request):
	try:
		return await list_rooms(request)
	except HTTPException:
		raise
	except StoreError as exc:
		raise HTTPException(status_code=500, detail="Failed to list rooms.") from exc


@router.post("", status_code=201)
async def create_room_route(request: Request, payload: RoomPayload):
	try:
		return await create_room(request, payload.name, payload.description, payload.created_by)
	except HTTPException:
		raise
	except StoreError as exc:
		raise HTTPException(status_code=500, detail="Failed to create room.") from exc
