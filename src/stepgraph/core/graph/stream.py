"""Stream modes, events and the in-node stream writer.

The scheduler reports progress as a sequence of :class:`StreamEvent` items.
:class:`StreamEmitter` turns that sequence into what a caller asked for:

- ``values``: the output-schema projection of the state after every commit
- ``updates``: ``{node_id: update}`` per node, ``{"__interrupt__": [...]}`` on pause
- ``events``: the raw :class:`StreamEvent` items

Requesting several modes yields ``(mode, payload)`` tuples.
"""

from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel

from stepgraph.core.graph.channels import StateSchema
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.STREAM)

INTERRUPT_KEY = "__interrupt__"


class StreamMode(str, Enum):
    """What a stream yields."""
    VALUES = "values"
    UPDATES = "updates"
    EVENTS = "events"


class EventKind(str, Enum):
    """Kinds of scheduler events."""
    NODE_START = "node_start"
    CUSTOM = "custom"          # emitted by a node through its writer
    NODE_END = "node_end"      # a node's update was committed
    STEP_END = "step_end"      # a checkpoint was committed
    INTERRUPT = "interrupt"


class StreamEvent(BaseModel):
    """One progress event.

    Attributes:
        event: Event kind
        step: Superstep counter of the checkpoint being built
        node: Node the event belongs to, if any
        data: Payload: custom chunk, node update, state values or interrupt markers
    """
    event: EventKind
    step: int
    node: Optional[str] = None
    data: Any = None


class StreamWriter:
    """Callable handed to nodes that declare a ``writer`` parameter.

    Example:
        ```python
        async def generate(state, writer):
            for token in ["a", "b"]:
                writer({"token": token})
            return {"text": "ab"}
        ```
    """

    def __init__(self, node_id: str, step: int, emit: Optional[Callable[[StreamEvent], None]] = None):
        self.node_id = node_id
        self.step = step
        self._emit = emit

    def __call__(self, chunk: Any) -> None:
        if self._emit is None:
            return
        self._emit(StreamEvent(event=EventKind.CUSTOM, step=self.step, node=self.node_id, data=chunk))


ModeSpec = Union[str, StreamMode, Iterable[Union[str, StreamMode]]]


def normalize_modes(mode: ModeSpec) -> Tuple[List[StreamMode], bool]:
    """Parse a mode argument into ``(modes, multiple)``.

    Raises:
        ValueError: If a mode name is unknown
    """
    if isinstance(mode, (str, StreamMode)):
        return [StreamMode(mode)], False
    modes = [StreamMode(m) for m in mode]
    if not modes:
        raise ValueError("At least one stream mode is required")
    return list(dict.fromkeys(modes)), True


class StreamEmitter:
    """Maps scheduler events onto caller-facing payloads."""

    def __init__(self, mode: ModeSpec, output_schema: StateSchema):
        self.modes, self.multiple = normalize_modes(mode)
        self.output_schema = output_schema

    def _payload(self, mode: StreamMode, event: StreamEvent) -> Optional[Any]:
        if mode == StreamMode.EVENTS:
            return event
        if mode == StreamMode.VALUES and event.event == EventKind.STEP_END:
            return self.output_schema.project(event.data)
        if mode == StreamMode.UPDATES:
            if event.event == EventKind.NODE_END:
                return {event.node: event.data}
            if event.event == EventKind.INTERRUPT:
                return {INTERRUPT_KEY: list(event.data)}
        return None

    def emit(self, event: StreamEvent) -> List[Any]:
        """Payloads to yield for ``event``, in mode order."""
        items = []
        for mode in self.modes:
            payload = self._payload(mode, event)
            if payload is None:
                continue
            items.append((mode.value, payload) if self.multiple else payload)
        return items
