"""Run status and state inspection models.

This module provides:
1. RunStatus: the scheduler's lifecycle states
2. Task: a pending node execution as seen by ``get_state``
3. StateSnapshot: the caller-facing view of one checkpoint
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

from stepgraph.core.config import RunConfig
from stepgraph.core.checkpoint.base import Interrupt

class RunStatus(str, Enum):
    """Scheduler lifecycle."""
    IDLE = "idle"
    RUNNING = "running"
    INTERRUPTED = "interrupted"
    COMPLETED = "completed"
    FAILED = "failed"

class Task(BaseModel):
    """A node scheduled to run from a checkpoint."""
    id: str
    name: str
    interrupts: List[Interrupt] = Field(default_factory=list)

class StateSnapshot(BaseModel):
    """
    View of a thread at one checkpoint.

    Attributes:
        values: Channel values (full internal state)
        next: Node ids that will run when the thread resumes
        tasks: Pending tasks, with interrupt markers where relevant
        config: Config addressing this checkpoint
        parent_config: Config addressing the parent checkpoint, if any
        step: Superstep counter along this history
        interrupts: All markers recorded on the checkpoint
        created_at: Time the checkpoint was written
    """
    values: Dict[str, Any] = Field(default_factory=dict)
    next: List[str] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    config: Optional[RunConfig] = None
    parent_config: Optional[RunConfig] = None
    step: int = -1
    interrupts: List[Interrupt] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def is_interrupted(self) -> bool:
        return bool(self.interrupts)
