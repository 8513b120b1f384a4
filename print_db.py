"""Print the rooms and message transcripts stored in the chat database.

Reuses the same `DATABASE_DIR` behavior as the application via
`utils.database_init.AsyncDatabaseInitializer`.

Run: set the `DATABASE_DIR` environment variable and run `python print_db.py`.
Room images are shown as a placeholder rather than dumped.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from dal.message_dal import MessageDAL
from dal.room_dal import RoomDAL
from models.message_record import MessageRecord, MessageScope
from utils.database_init import AsyncDatabaseInitializer


def _format_line(record: MessageRecord) -> str:
    """Render one message as `[time] sender: text`."""
    stamp = datetime.fromtimestamp(record.created_at or 0, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    text = (record.content or "").strip()
    if record.image:
        text = f"{text} [image]".strip()
    return f"  [{stamp}] {record.sender}: {text}"


async def render_transcripts(db_initializer: AsyncDatabaseInitializer) -> List[str]:
    """Return printable lines for every room and direct conversation.

    Args:
        db_initializer: Initializer pointing at the database to read.

    Returns:
        Lines grouped under `Room: <name>` and `Direct: <a> <-> <b>` headers.
    """
    rooms = await RoomDAL(db_initializer).list_rooms()
    messages = await MessageDAL(db_initializer).list_messages(limit=-1)

    by_room: Dict[str, List[MessageRecord]] = {room.name: [] for room in rooms}
    by_pair: Dict[Tuple[str, str], List[MessageRecord]] = {}
    for message in messages:
        if message.scope is MessageScope.ROOM:
            by_room.setdefault(message.room_id, []).append(message)
        else:
            pair = tuple(sorted((message.sender, message.recipient)))
            by_pair.setdefault(pair, []).append(message)

    lines: List[str] = []
    for name, room_messages in by_room.items():
        lines.append(f"Room: {name} ({len(room_messages)} messages)")
        lines.extend(_format_line(m) for m in room_messages)
    for (first, second), pair_messages in by_pair.items():
        lines.append(f"Direct: {first} <-> {second} ({len(pair_messages)} messages)")
        lines.extend(_format_line(m) for m in pair_messages)
    return lines


async def main() -> None:
    """Print every transcript in the configured database."""
    for line in await render_transcripts(AsyncDatabaseInitializer(reset=False)):
        print(line)


if __name__ == "__main__":
    asyncio.run(main())
