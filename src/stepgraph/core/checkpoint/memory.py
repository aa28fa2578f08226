"""In-process checkpoint store. Does not survive a restart."""

from typing import Dict, List, Optional

from stepgraph.core.checkpoint.base import BaseCheckpointSaver, Checkpoint


class MemorySaver(BaseCheckpointSaver):
    """Keeps checkpoints in a dict of per-thread lists, in write order.

    Checkpoints are deep-copied on the way in and out, so callers cannot
    reach stored values through a returned object.
    """

    def __init__(self) -> None:
        super().__init__()
        self._storage: Dict[str, List[Checkpoint]] = {}

    async def _get_latest(self, thread_id: str) -> Optional[Checkpoint]:
        history = self._storage.get(thread_id)
        return history[-1].model_copy(deep=True) if history else None

    async def _get_by_id(self, thread_id: str, checkpoint_id: str) -> Optional[Checkpoint]:
        for checkpoint in self._storage.get(thread_id, []):
            if checkpoint.checkpoint_id == checkpoint_id:
                return checkpoint.model_copy(deep=True)
        return None

    async def _put(self, checkpoint: Checkpoint) -> None:
        self._storage.setdefault(checkpoint.thread_id, []).append(checkpoint.model_copy(deep=True))

    async def _list(self, thread_id: str, limit: Optional[int]) -> List[Checkpoint]:
        history = [c.model_copy(deep=True) for c in reversed(self._storage.get(thread_id, []))]
        return history[:limit] if limit is not None else history
