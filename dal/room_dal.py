"""Async Data Access Layer for the ROOM table."""

from __future__ import annotations

import time
from dataclasses import replace
from typing import List, Optional, Sequence

import aiosqlite

from models.room_record import DEFAULT_ROOM_NAME, RoomRecord
from utils.database_init import AsyncDatabaseInitializer
from utils.errors import StoreError


class RoomDAL:
    """Directory of named rooms.

    Rooms are metadata only: the routing engine can route to a room name that
    has no row here.
    """

    _COLUMNS = ("id", "name", "description", "creator", "is_default", "created_at")
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_room(self, record: RoomRecord) -> RoomRecord:
        """Insert a ROOM row and return it with id and timestamp.

        Raises:
            StoreError: If the write fails, including a duplicate name.
        """
        created_at = record.created_at if record.created_at is not None else time.time()
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"INSERT INTO ROOM ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                    (record.name, record.description, record.creator, int(record.is_default), created_at),
                )
                await conn.commit()
                room_id = cur.lastrowid
        except (aiosqlite.Error, OSError) as exc:
            raise StoreError(f"Failed to create room {record.name!r}: {exc}") from exc
        return replace(record, id=room_id, created_at=created_at)

    async def get_room_by_name(self, name: str) -> Optional[RoomRecord]:
        """Return the room called `name`, or None if not found."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(f"SELECT {self._COLUMN_LIST} FROM ROOM WHERE name = ?", (name,))
                row = await cur.fetchone()
        except (aiosqlite.Error, OSError) as exc:
            raise StoreError(f"Failed to read room {name!r}: {exc}") from exc
        return self._row_to_record(row) if row else None

    async def list_rooms(self) -> List[RoomRecord]:
        """List rooms in creation order."""
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(f"SELECT {self._COLUMN_LIST} FROM ROOM ORDER BY created_at ASC, id ASC")
                rows = await cur.fetchall()
        except (aiosqlite.Error, OSError) as exc:
            raise StoreError(f"Failed to list rooms: {exc}") from exc
        return [self._row_to_record(r) for r in rows]

    async def ensure_default_room(self) -> RoomRecord:
        """Create the "general" room if it does not exist yet."""
        existing = await self.get_room_by_name(DEFAULT_ROOM_NAME)
        if existing is not None:
            return existing
        return await self.create_room(
            RoomRecord(
                id=None,
                name=DEFAULT_ROOM_NAME,
                description="Default room",
                creator="system",
                is_default=True,
            )
        )

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> RoomRecord:
        return RoomRecord(
            id=row[0],
            name=row[1],
            description=row[2],
            creator=row[3],
            is_default=bool(row[4]),
            created_at=row[5],
        )
