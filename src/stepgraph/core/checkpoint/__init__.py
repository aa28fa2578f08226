"""Checkpoint persistence.

Exposes the checkpoint model, the saver interface and its implementations.
"""

from stepgraph.core.checkpoint.base import (
    BaseCheckpointSaver,
    Checkpoint,
    CheckpointSource,
    Interrupt,
    InterruptWhen,
)
from stepgraph.core.checkpoint.memory import MemorySaver
from stepgraph.core.checkpoint.serde import JsonSerializer
from stepgraph.core.checkpoint.sqlite import SqliteSaver

__all__ = [
    "BaseCheckpointSaver",
    "Checkpoint",
    "CheckpointSource",
    "Interrupt",
    "InterruptWhen",
    "JsonSerializer",
    "MemorySaver",
    "SqliteSaver",
]
