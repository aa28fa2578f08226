"""Base node class for the graph system.

A Node is one unit of work in a graph: it reads a copy of the shared state and
returns a partial update. Nodes wrap any callable, sync or async, or can be
subclassed with ``process`` overridden.

Typical Usage:
    - Pass a plain function to ``StateGraph.add_node``; it is wrapped here
    - Declare ``config`` or ``writer`` parameters to receive the run config
      and a stream writer
    - Return a dict (or a pydantic model, or None) naming the channels to update
"""

import inspect
from typing import Any, Callable, Dict, Optional, Set, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from stepgraph.core.config import RunConfig
from stepgraph.core.errors import InvalidUpdateError
from stepgraph.core.graph.edges import RESERVED
from stepgraph.core.logging import get_logger, LogComponent

if TYPE_CHECKING:
    from stepgraph.core.graph.stream import StreamWriter

# Get logger for node operations
logger = get_logger(LogComponent.NODES)

INJECTABLE = ("config", "writer")


def normalize_update(node_id: str, result: Any) -> Dict[str, Any]:
    """Turn a node's return value into a channel update.

    Raises:
        InvalidUpdateError: If the value is not a dict, pydantic model or None
    """
    if result is None:
        return {}
    if isinstance(result, dict):
        return dict(result)
    if isinstance(result, BaseModel):
        # Only fields the node actually set count as writes.
        return {name: getattr(result, name) for name in result.model_fields_set}
    raise InvalidUpdateError(
        f"Node '{node_id}' returned {type(result).__name__}; expected a dict of channel updates"
    )


class Node(BaseModel):
    """
    Graph node wrapping a callable.

    Attributes:
        id: Unique node identifier
        fn: ``(state, [config], [writer]) -> update`` callable, sync or async
        metadata: Optional node metadata
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(..., description="Unique identifier for this node")
    fn: Optional[Callable[..., Any]] = Field(default=None)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    _accepts: Set[str] = PrivateAttr(default_factory=set)

    @model_validator(mode='after')
    def validate_node(self) -> 'Node':
        """Validate node configuration."""
        if not self.id:
            raise ValueError("Node must have an ID")
        if self.id in RESERVED:
            raise ValueError(f"Node ID '{self.id}' is reserved")
        if self.fn is not None:
            self._accepts = self._injectable_params(self.fn)
        return self

    @staticmethod
    def _injectable_params(fn: Callable[..., Any]) -> Set[str]:
        """Names from INJECTABLE that ``fn`` accepts as keyword arguments."""
        try:
            sig = inspect.signature(fn)
        except (TypeError, ValueError):
            return set()
        accepts = set()
        for name, param in sig.parameters.items():
            if param.kind == inspect.Parameter.VAR_KEYWORD:
                return set(INJECTABLE)
            if name in INJECTABLE and param.kind != inspect.Parameter.POSITIONAL_ONLY:
                accepts.add(name)
        return accepts

    def _prepare_params(self, config: RunConfig, writer: "StreamWriter") -> Dict[str, Any]:
        available = {"config": config, "writer": writer}
        return {name: available[name] for name in self._accepts}

    async def process(
        self,
        state: Dict[str, Any],
        config: RunConfig,
        writer: "StreamWriter",
    ) -> Dict[str, Any]:
        """Run the node body and return its normalized update.

        Override in subclasses to implement a node without ``fn``.
        """
        if self.fn is None:
            raise NotImplementedError("Subclasses must implement process() or pass fn")
        result = self.fn(state, **self._prepare_params(config, writer))
        if inspect.isawaitable(result):
            result = await result
        return normalize_update(self.id, result)

    def get_metadata(self, key: str, default: Any = None) -> Any:
        """Get metadata value."""
        return self.metadata.get(key, default)
