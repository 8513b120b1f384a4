import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite


def _env_flag(name: str) -> bool:
    return (os.getenv(name) or "").strip().lower() in {"1", "true", "yes", "on"}


class AsyncDatabaseInitializer:
    """
    Manage the async SQLite database holding chat messages and rooms.

    - The database file is located at: <db_dir>/chat.db
    - `db_dir` defaults to the DATABASE_DIR environment variable. A RuntimeError
      is raised if neither is given or the path is not a usable directory.
    - On the first call to `ensure_database()` for a given instance the MESSAGE
      and ROOM tables and their indexes are created. When `reset` is true (or
      DATABASE_RESET is set) any existing file is deleted first.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, db_dir: Optional[Path | str] = None, reset: Optional[bool] = None) -> None:
        env_dir = str(db_dir) if db_dir is not None else os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        path = Path(env_dir).expanduser()

        if path.exists() and not path.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({path}). Please set DATABASE_DIR to a directory path."
            )

        try:
            path.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {path}"
            ) from exc

        self.db_dir = path
        self.db_path = self.db_dir / "chat.db"
        self.reset = _env_flag("DATABASE_RESET") if reset is None else reset

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite schema exists at `self.db_path`.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        if self.reset and self.db_path.exists():
            try:
                self.db_path.unlink()
            except Exception as exc:
                raise RuntimeError(
                    f"Failed to delete existing database at {self.db_path}"
                ) from exc

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS MESSAGE (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            sender TEXT NOT NULL,
                            content TEXT,
                            image TEXT,
                            scope TEXT NOT NULL,
                            room_id TEXT,
                            recipient TEXT,
                            created_at REAL NOT NULL
                        )
                        """
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_message_room ON MESSAGE(scope, room_id, created_at)"
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_message_pair ON MESSAGE(scope, sender, recipient, created_at)"
                    )
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS ROOM (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            name TEXT NOT NULL UNIQUE,
                            description TEXT,
                            creator TEXT,
                            is_default INTEGER NOT NULL DEFAULT 0,
                            created_at REAL NOT NULL
                        )
                        """
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
