"""SQLite thread and message store.

Persists chat threads and their messages using aiosqlite. Messages are
deleted together with their thread.
"""

import logging
import os
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import aiosqlite

from assistant_relay.models.schemas import MessageRole, MessageType, StoredMessage, Thread

logger = logging.getLogger(__name__)

_DATA_DIR = Path(os.getenv("DATA_DIR", Path(__file__).parent.parent.parent / "data"))
_THREADS_DB = _DATA_DIR / "threads.db"


class ThreadNotFoundError(Exception):
    """Raised when a thread id does not exist."""


class ThreadStore:
    """Key-based thread/message persistence on a single SQLite file."""

    def __init__(self, path: str | Path = _THREADS_DB) -> None:
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create the schema if needed."""
        if self._connection is not None:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        self._connection.row_factory = aiosqlite.Row
        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._create_schema()
        logger.info(f"Thread store ready at {self._db_path}")

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS threads (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                seq INTEGER NOT NULL,
                thread_id TEXT NOT NULL,
                role TEXT NOT NULL,
                content TEXT NOT NULL,
                type TEXT NOT NULL DEFAULT 'text',
                image_url TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (thread_id) REFERENCES threads(id) ON DELETE CASCADE
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_thread
            ON messages(thread_id, seq)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def _db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("ThreadStore is not connected")
        return self._connection

    @staticmethod
    def _now() -> str:
        return datetime.now(UTC).isoformat()

    async def list_threads(self) -> list[Thread]:
        """Return all threads, newest first."""
        async with self._db.execute(
            "SELECT id, name, created_at FROM threads ORDER BY created_at DESC, rowid DESC"
        ) as cursor:
            rows = await cursor.fetchall()
        return [Thread(**dict(row)) for row in rows]

    async def get_thread(self, thread_id: str) -> Thread:
        async with self._db.execute(
            "SELECT id, name, created_at FROM threads WHERE id = ?", (thread_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise ThreadNotFoundError(thread_id)
        return Thread(**dict(row))

    async def create_thread(self, name: str) -> Thread:
        thread = Thread(id=str(uuid4()), name=name, created_at=self._now())
        await self._db.execute(
            "INSERT INTO threads (id, name, created_at) VALUES (?, ?, ?)",
            (thread.id, thread.name, thread.created_at),
        )
        await self._db.commit()
        logger.info(f"Created thread {thread.id} ({name!r})")
        return thread

    async def rename_thread(self, thread_id: str, name: str) -> Thread:
        cursor = await self._db.execute(
            "UPDATE threads SET name = ? WHERE id = ?", (name, thread_id)
        )
        await self._db.commit()
        if cursor.rowcount == 0:
            raise ThreadNotFoundError(thread_id)
        return await self.get_thread(thread_id)

    async def delete_thread(self, thread_id: str) -> None:
        cursor = await self._db.execute("DELETE FROM threads WHERE id = ?", (thread_id,))
        await self._db.commit()
        if cursor.rowcount == 0:
            raise ThreadNotFoundError(thread_id)
        logger.info(f"Deleted thread {thread_id}")

    async def list_messages(self, thread_id: str) -> list[StoredMessage]:
        """Return a thread's messages, oldest first."""
        await self.get_thread(thread_id)
        async with self._db.execute(
            """
            SELECT id, thread_id, role, content, type, image_url, created_at
            FROM messages
            WHERE thread_id = ?
            ORDER BY seq ASC
            """,
            (thread_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [StoredMessage(**dict(row)) for row in rows]

    async def append_message(
        self,
        thread_id: str,
        role: MessageRole,
        content: str,
        type: MessageType = MessageType.TEXT,
        image_url: str | None = None,
    ) -> StoredMessage:
        """Append a message; image replies keep their URL so they reload as images."""
        await self.get_thread(thread_id)
        async with self._db.execute(
            "SELECT COALESCE(MAX(seq), 0) + 1 FROM messages WHERE thread_id = ?",
            (thread_id,),
        ) as cursor:
            (seq,) = await cursor.fetchone()

        message = StoredMessage(
            id=str(uuid4()),
            thread_id=thread_id,
            role=role,
            content=content,
            type=type,
            image_url=image_url,
            created_at=self._now(),
        )
        await self._db.execute(
            """
            INSERT INTO messages (id, seq, thread_id, role, content, type, image_url, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                seq,
                thread_id,
                message.role.value,
                content,
                message.type.value,
                image_url,
                message.created_at,
            ),
        )
        await self._db.commit()
        return message


# Module-level singleton instance
_thread_store: ThreadStore | None = None


async def get_thread_store() -> ThreadStore:
    """Get or create the connected global thread store."""
    global _thread_store
    if _thread_store is None:
        store = ThreadStore()
        await store.connect()
        _thread_store = store
    return _thread_store


async def close_thread_store() -> None:
    """Disconnect the global thread store if it was ever opened."""
    global _thread_store
    if _thread_store is not None:
        await _thread_store.disconnect()
        _thread_store = None
