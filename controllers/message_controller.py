"""Message listing for the HTTP API."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import HTTPException, Request

from dal.message_dal import MessageDAL


async def list_messages(request: Request, limit: int = 500, offset: int = 0) -> List[Dict[str, Any]]:
	"""Return stored messages, oldest first."""
	db_initializer = getattr(request.app.state, "db_initializer", None)
	if db_initializer is None:
		raise HTTPException(status_code=500, detail="Database not initialized.")
	messages = await MessageDAL(db_initializer).list_messages(limit=limit, offset=offset)
	return [message.to_payload() for message in messages]
