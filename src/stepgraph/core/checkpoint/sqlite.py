"""Durable checkpoint store backed by an SQLite file via aiosqlite."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional, Union

import aiosqlite

from stepgraph.core.checkpoint.base import BaseCheckpointSaver, Checkpoint, logger
from stepgraph.core.checkpoint.serde import JsonSerializer
from stepgraph.core.errors import CheckpointIOError

_SCHEMA = """
CREATE TABLE IF NOT EXISTS checkpoints (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id TEXT NOT NULL,
    checkpoint_id TEXT NOT NULL,
    parent_checkpoint_id TEXT,
    step INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    payload TEXT NOT NULL,
    UNIQUE (thread_id, checkpoint_id)
)
"""

_INDEX = "CREATE INDEX IF NOT EXISTS idx_checkpoints_thread ON checkpoints (thread_id, seq)"


class SqliteSaver(BaseCheckpointSaver):
    """Checkpoint store persisted to an SQLite database file.

    The table is created on first use. Each ``put`` is a single INSERT
    followed by a commit, so a checkpoint is either fully written or absent.

    Example:
        ```python
        async with SqliteSaver.from_conn_string("./data/checkpoints.db") as saver:
            graph = builder.compile(checkpointer=saver)
            await graph.invoke({"messages": ["hi"]}, {"thread_id": "1"})
        ```
    """

    def __init__(
        self,
        db_path: Union[str, Path] = ":memory:",
        serializer: Optional[JsonSerializer] = None,
        timeout: float = 5.0,
    ) -> None:
        """Initialize the saver.

        Args:
            db_path: Database file, or ":memory:" for a throwaway database
            serializer: Payload codec; defaults to ``JsonSerializer``
            timeout: SQLite busy timeout in seconds
        """
        super().__init__()
        self.db_path = str(db_path)
        self.serializer = serializer or JsonSerializer()
        self.timeout = timeout
        self.connection: Optional[aiosqlite.Connection] = None

    @classmethod
    def from_conn_string(cls, conn_string: str) -> "SqliteSaver":
        """Create a saver for a database path, creating parent directories."""
        if conn_string != ":memory:":
            Path(conn_string).parent.mkdir(parents=True, exist_ok=True)
        return cls(db_path=conn_string)

    async def __aenter__(self) -> "SqliteSaver":
        await self.setup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def setup(self) -> None:
        """Open the connection and create the table if needed."""
        if self.connection is not None:
            return
        try:
            self.connection = await aiosqlite.connect(self.db_path, timeout=self.timeout)
            await self.connection.execute(_SCHEMA)
            await self.connection.execute(_INDEX)
            await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error(f"Could not open checkpoint database '{self.db_path}': {e}")
            raise CheckpointIOError(f"Could not open checkpoint database '{self.db_path}': {e}") from e
        logger.debug(f"Opened checkpoint database '{self.db_path}'")

    async def close(self) -> None:
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    @asynccontextmanager
    async def _cursor(self) -> AsyncIterator[aiosqlite.Cursor]:
        await self.setup()
        assert self.connection is not None
        try:
            async with self.connection.cursor() as cursor:
                yield cursor
        except aiosqlite.Error as e:
            logger.error(f"Checkpoint database error: {e}")
            await self.connection.rollback()
            raise CheckpointIOError(str(e)) from e

    def _decode(self, payload: str) -> Checkpoint:
        try:
            checkpoint = self.serializer.loads(payload)
        except (ValueError, TypeError, ImportError, AttributeError) as e:
            raise CheckpointIOError(f"Corrupt checkpoint payload: {e}") from e
        if not isinstance(checkpoint, Checkpoint):
            raise CheckpointIOError(f"Corrupt checkpoint payload: decoded a {type(checkpoint).__name__}")
        return checkpoint

    async def _fetch_one(self, sql: str, params: tuple) -> Optional[Checkpoint]:
        async with self._cursor() as cursor:
            await cursor.execute(sql, params)
            row = await cursor.fetchone()
        return self._decode(row[0]) if row else None

    async def _get_latest(self, thread_id: str) -> Optional[Checkpoint]:
        return await self._fetch_one(
            "SELECT payload FROM checkpoints WHERE thread_id = ? ORDER BY seq DESC LIMIT 1",
            (thread_id,),
        )

    async def _get_by_id(self, thread_id: str, checkpoint_id: str) -> Optional[Checkpoint]:
        return await self._fetch_one(
            "SELECT payload FROM checkpoints WHERE thread_id = ? AND checkpoint_id = ?",
            (thread_id, checkpoint_id),
        )

    async def _put(self, checkpoint: Checkpoint) -> None:
        try:
            payload = self.serializer.dumps(checkpoint)
        except (ValueError, TypeError) as e:
            raise CheckpointIOError(f"Checkpoint values are not serializable: {e}") from e
        async with self._cursor() as cursor:
            await cursor.execute(
                "INSERT INTO checkpoints "
                "(thread_id, checkpoint_id, parent_checkpoint_id, step, created_at, payload) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    checkpoint.thread_id,
                    checkpoint.checkpoint_id,
                    checkpoint.parent_checkpoint_id,
                    checkpoint.step,
                    checkpoint.created_at.isoformat(),
                    payload,
                ),
            )
            await self.connection.commit()

    async def _list(self, thread_id: str, limit: Optional[int]) -> List[Checkpoint]:
        sql = "SELECT payload FROM checkpoints WHERE thread_id = ? ORDER BY seq DESC"
        params: tuple = (thread_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (thread_id, limit)
        async with self._cursor() as cursor:
            await cursor.execute(sql, params)
            rows = await cursor.fetchall()
        return [self._decode(row[0]) for row in rows]
