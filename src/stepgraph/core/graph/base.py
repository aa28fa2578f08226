"""Graph Base Classes

This module defines the graph builder. A :class:`StateGraph` collects nodes,
static edges and conditional branches over a shared state schema, then
validates and freezes them into a :class:`CompiledGraph` that can be invoked,
streamed and resumed.

Example:
    ```python
    class State(TypedDict):
        messages: Annotated[list, add_messages]

    def chatbot(state):
        return {"messages": [AIMessage("hello")]}

    builder = StateGraph(State)
    builder.add_node("chatbot", chatbot)
    builder.add_edge(START, "chatbot")
    builder.add_edge("chatbot", END)

    graph = builder.compile(checkpointer=MemorySaver())
    result = await graph.invoke({"messages": ["hi"]}, {"thread_id": "1"})
    ```
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field

from stepgraph.core.checkpoint.base import BaseCheckpointSaver
from stepgraph.core.config import GraphConfig
from stepgraph.core.errors import GraphDefinitionError
from stepgraph.core.graph.channels import StateSchema
from stepgraph.core.graph.compiled import CompiledGraph
from stepgraph.core.graph.edges import END, RESERVED, START, Branch
from stepgraph.core.graph.interrupts import InterruptController
from stepgraph.core.graph.nodes.base.node import Node
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.GRAPH)


class StateGraph(BaseModel):
    """Builder for a graph of nodes over a reducer-merged state.

    Attributes:
        state_schema: Channels of the shared state
        input_schema: Channels accepted as run input (defaults to all)
        output_schema: Channels returned by runs (defaults to all)
        nodes: Registered nodes, in registration order
        edges: Static successors per source, in declaration order
        branches: Conditional branches per source
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    state_schema: StateSchema = Field(default_factory=StateSchema)
    input_schema: Optional[StateSchema] = None
    output_schema: Optional[StateSchema] = None
    nodes: Dict[str, Node] = Field(default_factory=dict)
    edges: Dict[str, List[str]] = Field(default_factory=dict)
    branches: Dict[str, List[Branch]] = Field(default_factory=dict)

    def __init__(self, state_schema: Any = None, input_schema: Any = None, output_schema: Any = None, **data):
        super().__init__(
            state_schema=StateSchema.coerce(state_schema),
            input_schema=StateSchema.coerce(input_schema) if input_schema is not None else None,
            output_schema=StateSchema.coerce(output_schema) if output_schema is not None else None,
            **data,
        )

    @property
    def overall_schema(self) -> StateSchema:
        """Union of the state, input and output schemas."""
        others = [s for s in (self.input_schema, self.output_schema) if s is not None]
        return self.state_schema.merged_with(*others)

    def add_node(
        self,
        node: Union[str, Node, Callable[..., Any]],
        fn: Optional[Callable[..., Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "StateGraph":
        """Register a node.

        Args:
            node: Node id (with ``fn``), a ``Node`` instance, or a callable
                whose ``__name__`` becomes the id
            fn: Node body when ``node`` is an id
            metadata: Optional node metadata

        Raises:
            GraphDefinitionError: If the id is missing, reserved or already used
        """
        if isinstance(node, Node):
            instance = node
        else:
            if isinstance(node, str):
                node_id = node
                if fn is None:
                    raise GraphDefinitionError(f"Node '{node_id}' needs a callable")
            elif callable(node):
                fn = node
                node_id = getattr(node, "__name__", None) or type(node).__name__
            else:
                raise GraphDefinitionError(f"Cannot add {node!r} as a node")
            if node_id in RESERVED:
                raise GraphDefinitionError(f"Node id '{node_id}' is reserved")
            instance = Node(id=node_id, fn=fn, metadata=metadata or {})

        if instance.id in self.nodes:
            raise GraphDefinitionError(f"Node '{instance.id}' already exists")
        self.nodes[instance.id] = instance
        logger.debug(f"Added node: {instance.id}")
        return self

    def add_edge(self, from_node_id: str, to_node_id: str) -> "StateGraph":
        """Add a static edge. Endpoints are checked at compile time.

        Raises:
            GraphDefinitionError: If the edge leaves END or enters START
        """
        if from_node_id == END:
            raise GraphDefinitionError("END cannot be an edge source")
        if to_node_id == START:
            raise GraphDefinitionError("START cannot be an edge target")
        targets = self.edges.setdefault(from_node_id, [])
        if to_node_id not in targets:
            targets.append(to_node_id)
        logger.debug(f"Added edge: {from_node_id} --> {to_node_id}")
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: Callable[..., Any],
        targets: Optional[Union[List[str], Dict[Any, str]]] = None,
    ) -> "StateGraph":
        """Route from ``source`` to the node chosen by ``router(state)``.

        Args:
            source: Node (or START) the branch leaves from
            router: Sync or async callable returning a route
            targets: Declared targets as a list or ``{route: node_id}`` map;
                inferred from a ``Literal`` return annotation when omitted

        Raises:
            GraphDefinitionError: If the source is END or targets are undeclared
        """
        if source == END:
            raise GraphDefinitionError("END cannot be a branch source")
        branch = Branch.build(source, router, targets)
        if START in branch.targets:
            raise GraphDefinitionError(f"Branch on '{source}' cannot target START")
        self.branches.setdefault(source, []).append(branch)
        logger.debug(f"Added branch: {source} --?--> {branch.targets}")
        return self

    def set_entry_point(self, node_id: str) -> "StateGraph":
        """Equivalent to ``add_edge(START, node_id)``."""
        return self.add_edge(START, node_id)

    def set_finish_point(self, node_id: str) -> "StateGraph":
        """Equivalent to ``add_edge(node_id, END)``."""
        return self.add_edge(node_id, END)

    def chain(self, nodes: List[Union[str, Node, Callable[..., Any]]]) -> "StateGraph":
        """Connect a sequence of nodes in order.

        Callables and ``Node`` instances not yet registered are added first.
        The first node becomes the entry point if none exists.
        """
        ids = []
        for node in nodes:
            if isinstance(node, str):
                ids.append(node)
                continue
            node_id = node.id if isinstance(node, Node) else getattr(node, "__name__", type(node).__name__)
            if node_id not in self.nodes:
                self.add_node(node)
            ids.append(node_id)
        for source, target in zip(ids, ids[1:]):
            self.add_edge(source, target)
        if ids and START not in self.edges and START not in self.branches:
            self.set_entry_point(ids[0])
        return self

    def _successors(self, node_id: str) -> List[str]:
        targets = list(self.edges.get(node_id, []))
        for branch in self.branches.get(node_id, []):
            targets.extend(branch.destinations)
        return targets

    def _reachable(self, roots: Iterable[str], neighbours: Callable[[str], Iterable[str]]) -> Set[str]:
        seen: Set[str] = set()
        pending = list(roots)
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            pending.extend(neighbours(current))
        return seen

    def validate(self) -> List[str]:
        """Check the graph structure.

        Returns:
            List of problems; empty if the graph is valid
        """
        errors = []
        if not self.nodes:
            errors.append("Graph has no nodes")

        known_sources = set(self.nodes) | {START}
        known_targets = set(self.nodes) | {END}
        for source, targets in self.edges.items():
            if source not in known_sources:
                errors.append(f"Edge source '{source}' is not a node")
            for target in targets:
                if target not in known_targets:
                    errors.append(f"Edge target '{target}' (from '{source}') is not a node")
        for source, branches in self.branches.items():
            if source not in known_sources:
                errors.append(f"Branch source '{source}' is not a node")
            for branch in branches:
                for target in branch.targets:
                    if target not in known_targets:
                        errors.append(f"Branch target '{target}' (from '{source}') is not a node")

        if not self._successors(START):
            errors.append("START has no outgoing edge; call set_entry_point()")

        reachable = self._reachable([START], self._successors)
        for node_id in self.nodes:
            if node_id not in reachable:
                errors.append(f"Node '{node_id}' is unreachable from START")

        predecessors: Dict[str, List[str]] = {}
        for source in known_sources:
            for target in self._successors(source):
                predecessors.setdefault(target, []).append(source)
        finishes = self._reachable([END], lambda n: predecessors.get(n, []))
        for node_id in self.nodes:
            if node_id in reachable and node_id not in finishes:
                errors.append(f"Node '{node_id}' has no path to END")

        return errors

    def compile(
        self,
        checkpointer: Optional[BaseCheckpointSaver] = None,
        interrupt_before: Optional[Iterable[str]] = None,
        interrupt_after: Optional[Iterable[str]] = None,
        config: Optional[GraphConfig] = None,
    ) -> CompiledGraph:
        """Validate the graph and freeze it for execution.

        Args:
            checkpointer: Checkpoint store; required for breakpoints and resume
            interrupt_before: Nodes to pause ahead of
            interrupt_after: Nodes to pause behind
            config: Execution settings; defaults to ``GraphConfig()``

        Raises:
            GraphDefinitionError: Listing every problem found
        """
        before = list(interrupt_before or [])
        after = list(interrupt_after or [])
        errors = self.validate()
        for node_id in before + after:
            if node_id not in self.nodes:
                errors.append(f"Breakpoint on unknown node '{node_id}'")
        if (before or after) and checkpointer is None:
            errors.append("Breakpoints require a checkpointer")
        if errors:
            for error in errors:
                logger.error(f"Graph validation: {error}")
            raise GraphDefinitionError("Invalid graph", errors)

        schema = self.overall_schema
        compiled = CompiledGraph(
            nodes=dict(self.nodes),
            edges={source: list(targets) for source, targets in self.edges.items()},
            branches={source: list(branches) for source, branches in self.branches.items()},
            state_schema=schema,
            input_schema=self.input_schema or schema,
            output_schema=self.output_schema or schema,
            checkpointer=checkpointer,
            interrupts=InterruptController(before, after),
            config=config or GraphConfig(),
        )
        logger.info(
            f"Compiled graph with {len(self.nodes)} nodes"
            + (f", breakpoints before={before} after={after}" if before or after else "")
        )
        return compiled
