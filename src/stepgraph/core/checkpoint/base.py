"""Checkpoint model and the saver interface.

A checkpoint is an immutable snapshot of one thread: channel values, the
frontier that will run next, and any interrupt markers. Each checkpoint points
at its parent, so a thread's history is a chain that ``update_state`` can fork
from any past point.

Savers are append-only. ``put`` is serialized per thread id with an
``asyncio.Lock`` so two runs on one thread never interleave their writes,
while unrelated threads proceed in parallel.
"""

import abc
import asyncio
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from stepgraph.core.config import RunConfig
from stepgraph.core.errors import CheckpointIOError
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.CHECKPOINT)


def new_checkpoint_id() -> str:
    return uuid.uuid4().hex


class InterruptWhen(str, Enum):
    """Where an interrupt was raised relative to the node."""
    BEFORE = "before"    # static breakpoint ahead of the node
    DURING = "during"    # raised by the node body
    AFTER = "after"      # static breakpoint once the node committed


class Interrupt(BaseModel):
    """Marker attached to a checkpoint when execution pauses."""
    model_config = ConfigDict(frozen=True)

    node_id: str
    reason: Any = None
    when: InterruptWhen = InterruptWhen.DURING


class CheckpointSource(str, Enum):
    """What produced a checkpoint."""
    INPUT = "input"
    LOOP = "loop"
    INTERRUPT = "interrupt"
    UPDATE = "update"


class Checkpoint(BaseModel):
    """
    Immutable snapshot of a thread.

    Attributes:
        thread_id: Owning thread
        checkpoint_id: Unique id within the thread
        parent_checkpoint_id: Previous checkpoint on this branch of history
        values: Channel values after the step
        next: Frontier to execute on resume
        step: Superstep counter along this branch
        pending_writes: ``(node_id, channel, value)`` writes that produced the values
        interrupts: Markers present when the run paused here
        source: What produced the checkpoint
        created_at: Write time (UTC)
    """
    model_config = ConfigDict(frozen=True)

    thread_id: str
    checkpoint_id: str = Field(default_factory=new_checkpoint_id)
    parent_checkpoint_id: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)
    next: List[str] = Field(default_factory=list)
    step: int = 0
    pending_writes: List[Tuple[str, str, Any]] = Field(default_factory=list)
    interrupts: List[Interrupt] = Field(default_factory=list)
    source: CheckpointSource = CheckpointSource.LOOP
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BaseCheckpointSaver(abc.ABC):
    """Interface shared by all checkpoint stores.

    Subclasses implement the ``_get_latest``, ``_get_by_id``, ``_put`` and
    ``_list`` hooks; the public methods handle config coercion, thread locking
    and history integrity.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def thread_lock(self, thread_id: str) -> asyncio.Lock:
        """The lock that serializes writes for ``thread_id``."""
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = self._locks[thread_id] = asyncio.Lock()
        return lock

    @staticmethod
    def _thread_id(config: RunConfig) -> str:
        if not config.thread_id:
            raise ValueError("A thread_id is required to address checkpoints")
        return config.thread_id

    async def get(self, config: Any) -> Optional[Checkpoint]:
        """Checkpoint named by ``config.checkpoint_id``, else the thread's latest."""
        config = RunConfig.coerce(config)
        thread_id = self._thread_id(config)
        if config.checkpoint_id:
            return await self._get_by_id(thread_id, config.checkpoint_id)
        return await self._get_latest(thread_id)

    async def get_by_id(self, config: Any, checkpoint_id: str) -> Optional[Checkpoint]:
        """Checkpoint ``checkpoint_id`` of the config's thread, or ``None``."""
        return await self.get(RunConfig.coerce(config).at(checkpoint_id))

    async def put(self, config: Any, checkpoint: Checkpoint) -> RunConfig:
        """Append ``checkpoint`` to its thread and return a config addressing it.

        Raises:
            CheckpointIOError: If the checkpoint belongs to another thread,
                reuses an existing id, or names a missing parent
        """
        config = RunConfig.coerce(config)
        thread_id = self._thread_id(config)
        if checkpoint.thread_id != thread_id:
            raise CheckpointIOError(
                f"Checkpoint for thread '{checkpoint.thread_id}' written under thread '{thread_id}'"
            )
        async with self.thread_lock(thread_id):
            if await self._get_by_id(thread_id, checkpoint.checkpoint_id) is not None:
                raise CheckpointIOError(f"Checkpoint '{checkpoint.checkpoint_id}' already exists")
            parent_id = checkpoint.parent_checkpoint_id
            if parent_id is not None and await self._get_by_id(thread_id, parent_id) is None:
                raise CheckpointIOError(f"Parent checkpoint '{parent_id}' not found in thread '{thread_id}'")
            await self._put(checkpoint)
        logger.debug(
            f"Saved checkpoint {checkpoint.checkpoint_id} "
            f"(thread={thread_id}, step={checkpoint.step}, source={checkpoint.source.value})"
        )
        return config.at(checkpoint.checkpoint_id)

    async def list(self, config: Any, limit: Optional[int] = None) -> List[Checkpoint]:
        """All checkpoints of the thread, newest first."""
        config = RunConfig.coerce(config)
        return await self._list(self._thread_id(config), limit)

    @abc.abstractmethod
    async def _get_latest(self, thread_id: str) -> Optional[Checkpoint]:
        ...

    @abc.abstractmethod
    async def _get_by_id(self, thread_id: str, checkpoint_id: str) -> Optional[Checkpoint]:
        ...

    @abc.abstractmethod
    async def _put(self, checkpoint: Checkpoint) -> None:
        ...

    @abc.abstractmethod
    async def _list(self, thread_id: str, limit: Optional[int]) -> List[Checkpoint]:
        ...
