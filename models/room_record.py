from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_ROOM_NAME = "general"


@dataclass
class RoomRecord:
    """In-memory representation of a row in the ROOM table.

    Attributes:
        id: Primary key (None for new records).
        name: Unique room name, also the routing key for room messages.
        description: Optional free-text description.
        creator: Optional identity that created the room.
        is_default: True for the auto-provisioned "general" room.
        created_at: Unix timestamp (seconds) when the row was inserted.
    """

    id: Optional[int]
    name: str
    description: Optional[str] = None
    creator: Optional[str] = None
    is_default: bool = False
    created_at: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "createdBy": self.creator,
            "isDefault": self.is_default,
            "createdAt": self.created_at,
        }
