"""Compiled graph: the runnable produced by ``StateGraph.compile``.

Every entry point is asynchronous:

- ``invoke``: run to completion or the next interrupt, return the output values
- ``stream``: the same run, yielding progress in one or more stream modes
- ``get_state`` / ``get_state_history``: inspect a thread's checkpoints
- ``update_state``: fork a thread from any checkpoint with edited values
"""

import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stepgraph.core.checkpoint.base import BaseCheckpointSaver, Checkpoint, CheckpointSource
from stepgraph.core.checkpoint.memory import MemorySaver
from stepgraph.core.config import GraphConfig, RunConfig
from stepgraph.core.errors import InvalidUpdateError
from stepgraph.core.graph.channels import StateSchema
from stepgraph.core.graph.edges import START, Branch
from stepgraph.core.graph.interrupts import InterruptController
from stepgraph.core.graph.nodes.base.node import Node
from stepgraph.core.graph.scheduler import Scheduler, coerce_input, next_frontier
from stepgraph.core.graph.state import StateSnapshot
from stepgraph.core.graph.stream import ModeSpec, StreamEmitter
from stepgraph.core.logging import get_logger, LogComponent

logger = get_logger(LogComponent.GRAPH)


class CompiledGraph(BaseModel):
    """A validated, immutable graph bound to a checkpoint store.

    Attributes:
        nodes: Nodes by id
        edges: Static successors per source
        branches: Conditional branches per source
        state_schema: All channels of the state
        input_schema: Channels accepted as input
        output_schema: Channels returned to callers
        checkpointer: Checkpoint store, or None for single-shot runs
        interrupts: Static breakpoints
        config: Execution settings
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    nodes: Dict[str, Node]
    edges: Dict[str, List[str]] = Field(default_factory=dict)
    branches: Dict[str, List[Branch]] = Field(default_factory=dict)
    state_schema: StateSchema
    input_schema: StateSchema
    output_schema: StateSchema
    checkpointer: Optional[BaseCheckpointSaver] = None
    interrupts: InterruptController = Field(default_factory=InterruptController)
    config: GraphConfig = Field(default_factory=GraphConfig)

    def _saver(self) -> BaseCheckpointSaver:
        if self.checkpointer is None:
            raise ValueError("This operation requires a graph compiled with a checkpointer")
        return self.checkpointer

    def _scheduler(self, config: Any) -> Scheduler:
        config = RunConfig.coerce(config)
        if self.checkpointer is None:
            # Single-shot run: keep checkpoints for the duration of the call only.
            saver: BaseCheckpointSaver = MemorySaver()
            config = config.model_copy(update={"thread_id": config.thread_id or uuid.uuid4().hex})
        else:
            saver = self.checkpointer
            if not config.thread_id:
                raise ValueError("A thread_id is required when the graph has a checkpointer")
        return Scheduler(self, saver, config)

    async def invoke(self, input: Any, config: Any = None) -> Dict[str, Any]:
        """Run until the graph finishes or pauses.

        Args:
            input: Initial channel values, or ``None`` to resume the thread
            config: ``RunConfig`` or mapping with ``thread_id`` and optional
                ``checkpoint_id`` / ``recursion_limit``

        Returns:
            Output-schema projection of the final committed state

        Raises:
            NodeExecutionError: If a node failed; the failed step is not saved
            RoutingError: If a router chose an undeclared target
            GraphRecursionError: If the run exceeded its step budget
            EmptyInputError: If there is nothing to resume
        """
        scheduler = self._scheduler(config)
        async for _ in scheduler.run(input):
            pass
        logger.info(f"Run on thread '{scheduler.config.thread_id}' ended {scheduler.status.value}")
        return self.output_schema.project(scheduler.values)

    async def stream(self, input: Any, config: Any = None, mode: ModeSpec = "values") -> AsyncIterator[Any]:
        """Run the graph, yielding progress.

        Args:
            input: Initial channel values, or ``None`` to resume the thread
            config: Run config (see ``invoke``)
            mode: ``"values"``, ``"updates"``, ``"events"`` or a list of them;
                with a list, items are ``(mode, payload)`` tuples

        Breaking out of the iteration cancels the step in flight; steps
        already committed stay committed.
        """
        emitter = StreamEmitter(mode, self.output_schema)
        scheduler = self._scheduler(config)
        events = scheduler.run(input)
        try:
            async for event in events:
                for item in emitter.emit(event):
                    yield item
        finally:
            await events.aclose()

    def _snapshot(self, config: RunConfig, checkpoint: Checkpoint) -> StateSnapshot:
        parent = checkpoint.parent_checkpoint_id
        return StateSnapshot(
            values=checkpoint.values,
            next=checkpoint.next,
            tasks=self.interrupts.tasks_for(checkpoint.next, checkpoint.interrupts),
            config=config.at(checkpoint.checkpoint_id),
            parent_config=config.at(parent) if parent else None,
            step=checkpoint.step,
            interrupts=checkpoint.interrupts,
            created_at=checkpoint.created_at,
        )

    async def get_state(self, config: Any) -> StateSnapshot:
        """Snapshot of the addressed (or latest) checkpoint of a thread.

        A thread without checkpoints yields an empty snapshot.
        """
        config = RunConfig.coerce(config)
        checkpoint = await self._saver().get(config)
        if checkpoint is None:
            return StateSnapshot(config=config)
        return self._snapshot(config, checkpoint)

    async def get_state_history(self, config: Any, limit: Optional[int] = None) -> List[StateSnapshot]:
        """All snapshots of a thread, newest first."""
        config = RunConfig.coerce(config).at(None)
        checkpoints = await self._saver().list(config, limit=limit)
        return [self._snapshot(config, checkpoint) for checkpoint in checkpoints]

    async def update_state(self, config: Any, values: Any, as_node: Optional[str] = None) -> RunConfig:
        """Write ``values`` as a new child of the addressed (or latest) checkpoint.

        Values pass through the channel reducers. With ``as_node`` the next
        frontier is recomputed as if that node had produced the update;
        otherwise the parent's frontier is kept.

        Args:
            config: Thread, optionally with the ``checkpoint_id`` to fork from
            values: Channel update
            as_node: Node to attribute the update to

        Returns:
            Config addressing the new checkpoint

        Raises:
            InvalidUpdateError: If the update names unknown channels or nodes
        """
        saver = self._saver()
        config = RunConfig.coerce(config)
        if as_node is not None and as_node not in self.nodes and as_node != START:
            raise InvalidUpdateError(f"Unknown node '{as_node}' for update_state")

        base = await saver.get(config)
        if base is None and config.checkpoint_id:
            raise InvalidUpdateError(f"Checkpoint '{config.checkpoint_id}' not found")
        writer = as_node or "__update__"
        update = coerce_input(writer, values)
        self.state_schema.check_update(update)
        current = base.values if base else self.state_schema.initial_values()
        merged = self.state_schema.apply(current, [(writer, update)])

        if as_node is not None:
            next_nodes = await next_frontier(self, [as_node], merged)
        else:
            next_nodes = list(base.next) if base else []

        checkpoint = Checkpoint(
            thread_id=config.thread_id,
            parent_checkpoint_id=base.checkpoint_id if base else None,
            values=merged,
            next=next_nodes,
            step=(base.step if base else -1) + 1,
            pending_writes=[(writer, channel, value) for channel, value in update.items()],
            source=CheckpointSource.UPDATE,
        )
        new_config = await saver.put(config, checkpoint)
        logger.info(
            f"Updated thread '{config.thread_id}' from "
            f"{base.checkpoint_id if base else 'empty'} -> {checkpoint.checkpoint_id} (next={next_nodes})"
        )
        return new_config
