"""Async Data Access Layer for the MESSAGE table.

Provides MessageDAL, the message store used by the routing engine and the
HTTP API. All failures surface as `utils.errors.StoreError`.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import List, Sequence

import aiosqlite

from models.message_record import MessageRecord, MessageScope
from utils.database_init import AsyncDatabaseInitializer
from utils.errors import StoreError


class MessageDAL:
    """Append-only store of chat messages.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "sender",
        "content",
        "image",
        "scope",
        "room_id",
        "recipient",
        "created_at",
    )
    _COLUMN_LIST, _INSERT_COLUMNS = ", ".join(_COLUMNS), ", ".join(_COLUMNS[1:])
    _ORDER = "ORDER BY created_at ASC, id ASC"

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def persist(self, record: MessageRecord) -> MessageRecord:
        """Insert a new MESSAGE row.

        Args:
            record: MessageRecord with `id=None`.

        Returns:
            A copy of `record` carrying the generated id and `created_at`.

        Raises:
            StoreError: If the row could not be written.
        """
        created_at = record.created_at if record.created_at is not None else time.time()
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(
                    f"INSERT INTO MESSAGE ({self._INSERT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.sender,
                        record.content,
                        record.image,
                        record.scope.value,
                        record.room_id,
                        record.recipient,
                        created_at,
                    ),
                )
                await conn.commit()
                message_id = cur.lastrowid
        except (aiosqlite.Error, OSError) as exc:
            raise StoreError(f"Failed to persist message: {exc}") from exc
        return replace(record, id=message_id, created_at=created_at)

    async def query_room(self, room_id: str) -> List[MessageRecord]:
        """Return the messages of `room_id`, oldest first."""
        return await self._fetch(
            f"SELECT {self._COLUMN_LIST} FROM MESSAGE WHERE scope = ? AND room_id = ? {self._ORDER}",
            (MessageScope.ROOM.value, room_id),
        )

    async def query_conversation(self, identity_a: str, identity_b: str) -> List[MessageRecord]:
        """Return the direct messages exchanged between two identities, oldest first."""
        return await self._fetch(
            f"SELECT {self._COLUMN_LIST} FROM MESSAGE WHERE scope = ? AND "
            f"((sender = ? AND recipient = ?) OR (sender = ? AND recipient = ?)) {self._ORDER}",
            (MessageScope.DIRECT.value, identity_a, identity_b, identity_b, identity_a),
        )

    async def list_messages(self, limit: int = 500, offset: int = 0) -> List[MessageRecord]:
        """List every message, oldest first, with optional paging."""
        return await self._fetch(
            f"SELECT {self._COLUMN_LIST} FROM MESSAGE {self._ORDER} LIMIT ? OFFSET ?",
            (limit, offset),
        )

    async def _fetch(self, sql: str, params: tuple) -> List[MessageRecord]:
        try:
            async with self._db.connection() as conn:
                cur = await conn.execute(sql, params)
                rows = await cur.fetchall()
        except (aiosqlite.Error, OSError) as exc:
            raise StoreError(f"Failed to query messages: {exc}") from exc
        return [self._row_to_record(r) for r in rows]

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> MessageRecord:
        """Convert a DB row tuple into a MessageRecord."""
        return MessageRecord(
            id=row[0],
            sender=row[1],
            content=row[2],
            image=row[3],
            scope=MessageScope(row[4]),
            room_id=row[5],
            recipient=row[6],
            created_at=row[7],
        )
