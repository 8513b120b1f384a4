"""FastAPI routes for stored messages."""

from fastapi import APIRouter, HTTPException, Query, Request

from controllers.message_controller import list_messages
from utils.errors import StoreError

router = APIRouter(prefix="/api/messages", tags=["messages"])


@router.get("")
async def list_messages_route(
	request: Request,
	limit: int = Query(500, ge=1, le=5000),
	offset: int = Query(0, ge=0),
):
	try:
		return await list_messages(request, limit=limit, offset=offset)
	except HTTPException:
		raise
	except StoreError as exc:
		raise HTTPException(status_code=500, detail="Failed to list messages.") from exc
