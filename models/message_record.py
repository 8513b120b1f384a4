from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class MessageScope(str, Enum):
    ROOM = "room"
    DIRECT = "direct"


@dataclass
class MessageRecord:
    """In-memory representation of a row in the MESSAGE table.

    Attributes:
        id: Primary key (None until persisted).
        sender: Identity of the author.
        scope: Whether the message belongs to a room or a direct conversation.
        content: Optional text body; required when no image is attached.
        image: Optional image payload (data URI, base64 text or URL).
        room_id: Room name for ROOM messages.
        recipient: Peer identity for DIRECT messages.
        created_at: Unix timestamp (seconds, float) assigned by the store.
    """

    id: Optional[int]
    sender: str
    scope: MessageScope
    content: Optional[str] = None
    image: Optional[str] = None
    room_id: Optional[str] = None
    recipient: Optional[str] = None
    created_at: Optional[float] = None

    def __post_init__(self) -> None:
        self.scope = MessageScope(self.scope)
        if not self.content and not self.image:
            raise ValueError("A message needs content or an image.")
        if self.scope is MessageScope.ROOM and not self.room_id:
            raise ValueError("Room messages require a room_id.")
        if self.scope is MessageScope.DIRECT and not self.recipient:
            raise ValueError("Direct messages require a recipient.")

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire form sent to websocket and HTTP clients."""
        created = None
        if self.created_at is not None:
            created = datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat()
        return {
            "id": self.id,
            "sender": self.sender,
            "content": self.content,
            "image": self.image,
            "scope": self.scope.value,
            "roomId": self.room_id,
            "recipient": self.recipient,
            "createdAt": created,
        }
